"""
api/routes/v1/auth.py -- Sessions, credentials, and user management endpoints.

Routes:
  POST   /api/v1/auth/setup              -- create the first admin (only while no users exist)
  POST   /api/v1/auth/login              -- password login; returns session token + API key
  POST   /api/v1/auth/logout             -- revoke the presented bearer token
  POST   /api/v1/auth/refresh            -- reissue a token for the current identity
  GET    /api/v1/auth/me                 -- current actor (requires auth)
  POST   /api/v1/auth/api-key/rotate     -- replace the caller's API key (requires auth)
  POST   /api/v1/auth/users              -- create user (admin only)
  GET    /api/v1/auth/users              -- list users (admin only)
  DELETE /api/v1/auth/users/{username}   -- delete user and cascade (admin only)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
  [C1] UserStore.authenticate() equalizes timing -- never inline the password check.
  [M5] Cache-Control: no-store on every response that carries a secret.

Engine errors (UserExists, WeakPassword, ...) propagate to the handlers in
api/main.py, which map them to status codes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    ApiKeyResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    TokenResponse,
    UserCreate,
    UserCreatedResponse,
    UserResponse,
)
from auth.dependencies import bearer_token, get_current_actor, get_engine, require_admin
from auth.engine import AuthEngine
from auth.errors import UserExists
from auth.models import Actor
from auth.roles import GlobalRole

router = APIRouter()


def _no_store(payload: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=payload)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/setup", response_model=UserCreatedResponse, status_code=201)
def setup(body: UserCreate, engine: AuthEngine = Depends(get_engine)) -> JSONResponse:
    """Create the first account as an admin. Refused once any user exists.

    The has_users() check is advisory; two racing setup calls for the same
    username are settled by the store's UserExists.
    """
    if engine.users.has_users():
        raise HTTPException(
            status_code=409,
            detail={"code": "setup_complete", "message": "Setup has already been completed."},
        )
    user, api_key = engine.users.create_user(body.username, body.password, body.email, GlobalRole.ADMIN)
    payload = UserCreatedResponse(**UserResponse.from_user(user).model_dump(), api_key=api_key)
    return _no_store(payload.model_dump(), status_code=201)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(login_rate_limit)  # [H2] must sit below @router so the registered endpoint is the limited one
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password.

    Unknown username and wrong password produce the same 401 bad_credentials.
    """
    engine: AuthEngine = request.app.state.engine
    user, api_key = engine.users.authenticate(body.username, body.password)
    token = engine.tokens.issue(user.username, user.role)
    payload = LoginResponse(
        access_token=token,
        expires_in=engine.tokens.ttl_seconds,
        username=user.username,
        role=user.role.value,
        api_key=api_key,
    )
    return _no_store(payload.model_dump())


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, engine: AuthEngine = Depends(get_engine)) -> MessageResponse:
    """Revoke the presented bearer token. Succeeds even if it was already unusable."""
    token = bearer_token(request)
    if token:
        engine.tokens.revoke(token)
    return MessageResponse(message="Logged out.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(actor: Actor = Depends(get_current_actor), engine: AuthEngine = Depends(get_engine)) -> JSONResponse:
    """Reissue a session token for the caller with a fresh expiry."""
    if actor.claims is not None:
        token = engine.tokens.refresh(actor.claims)
    else:
        token = engine.tokens.issue(actor.username, actor.role)
    return _no_store(TokenResponse(access_token=token, expires_in=engine.tokens.ttl_seconds).model_dump())


@router.get("/auth/me", response_model=MeResponse)
def me(actor: Actor = Depends(get_current_actor)) -> MeResponse:
    return MeResponse(username=actor.username, role=actor.role.value, auth_method=actor.via)


@router.post("/auth/api-key/rotate", response_model=ApiKeyResponse)
def rotate_api_key(actor: Actor = Depends(get_current_actor), engine: AuthEngine = Depends(get_engine)) -> JSONResponse:
    """Replace the caller's API key. The old key stops working immediately."""
    new_key = engine.users.rotate_credential(actor.username)
    return _no_store(ApiKeyResponse(api_key=new_key).model_dump())


# ---------------------------------------------------------------------------
# User management (admin only)
# ---------------------------------------------------------------------------


@router.post("/auth/users", response_model=UserCreatedResponse, status_code=201)
def create_user(
    body: UserCreate,
    actor: Actor = Depends(require_admin),
    engine: AuthEngine = Depends(get_engine),
) -> JSONResponse:
    """Create an account. Unknown roles are stored as guest."""
    try:
        user, api_key = engine.users.create_user(body.username, body.password, body.email, body.role)
    except UserExists as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": exc.code, "message": "A user with that username already exists."},
        ) from exc
    payload = UserCreatedResponse(**UserResponse.from_user(user).model_dump(), api_key=api_key)
    return _no_store(payload.model_dump(), status_code=201)


@router.get("/auth/users", response_model=list[UserResponse])
def list_users(actor: Actor = Depends(require_admin), engine: AuthEngine = Depends(get_engine)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in engine.users.list_users()]


@router.delete("/auth/users/{username}", response_model=MessageResponse)
def delete_user(
    username: str,
    actor: Actor = Depends(require_admin),
    engine: AuthEngine = Depends(get_engine),
) -> MessageResponse:
    """Delete an account plus its memberships, owned access rules, and shares.

    An admin cannot delete their own account through the API, which also
    guarantees the last admin survives.
    """
    if username == actor.username:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    report = engine.delete_user(username)
    return MessageResponse(
        message=(
            f"Deleted user {username} "
            f"({report.memberships} memberships, {report.access_rules} access rules, {report.shares} shares)."
        )
    )
