"""
auth/dependencies.py -- FastAPI Depends() helpers that turn a request into an Actor.

Two credential forms are accepted, checked in priority order:
  1. Authorization: Bearer <token> -- session token from /auth/login.
  2. X-API-Key header              -- long-lived credential for scripts.

get_current_actor() raises HTTP 401 when neither resolves. The error code
tells the client whether to log in again (token_expired) or give up
(invalid_token / unauthorized).

require_admin() wraps get_current_actor() and raises HTTP 403 if not admin.

Layer rule: no imports from api/. This module may import from fastapi because
it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.engine import AuthEngine
from auth.errors import TokenError
from auth.models import Actor


def get_engine(request: Request) -> AuthEngine:
    return request.app.state.engine


def bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header[:7].lower() == "bearer ":
        return auth_header[7:].strip() or None
    return None


def get_current_actor(request: Request) -> Actor:
    """Require authentication. Raises HTTP 401 if the request carries no usable credential.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(actor: Actor = Depends(get_current_actor)): ...
    """
    engine = get_engine(request)

    token = bearer_token(request)
    if token:
        try:
            claims = engine.tokens.validate(token)
        except TokenError as exc:
            raise HTTPException(status_code=401, detail={"code": exc.code, "message": str(exc)}) from exc
        # A deleted account's outstanding tokens stop working immediately.
        if not engine.users.user_exists(claims.username):
            raise HTTPException(
                status_code=401,
                detail={"code": "invalid_token", "message": "Account no longer exists."},
            )
        return Actor(username=claims.username, role=claims.role, via="token", token=token, claims=claims)

    raw_key = request.headers.get("X-API-Key", "")
    if raw_key:
        user = engine.users.get_user_by_api_key(raw_key)
        if user is not None:
            return Actor(username=user.username, role=user.role, via="api_key")

    raise HTTPException(
        status_code=401,
        detail={"code": "unauthorized", "message": "Authentication required."},
    )


def require_admin(request: Request) -> Actor:
    """Require the global admin role. 401 if unauthenticated, 403 if not admin.

    The role is read from the live account, not from the token claims, so a
    demoted or re-created account loses admin rights immediately.
    """
    actor = get_current_actor(request)
    if not get_engine(request).users.is_admin(actor.username):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return actor
