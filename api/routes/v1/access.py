"""
api/routes/v1/access.py -- Personal-tree visibility rules and access checks.

Routes:
  PUT    /api/v1/access                    -- set (replace) the rule for a path in the caller's tree
  GET    /api/v1/access?path=...           -- read the rule (requires access to the path)
  DELETE /api/v1/access?path=...           -- drop the rule (owner or admin)
  GET    /api/v1/access/check?path=&write= -- would the caller be allowed?

Personal trees are keyed by their first path segment: "alice/report.pdf"
belongs to alice. Only the owner (or a global admin) may change its rule.

The check endpoint combines both decision functions the download/upload
collaborators use: read is allowed by the FileAccess rule or by a share;
write needs ownership, a global admin role, or a read_write share.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from api.models import AccessCheckResponse, FileAccessResponse, FileAccessSet, MessageResponse, normalize_resource_path
from auth.dependencies import get_current_actor, get_engine
from auth.engine import AuthEngine
from auth.errors import NoAccessRuleDefined
from auth.models import Actor

router = APIRouter()


def _clean_path(raw: str) -> str:
    try:
        return normalize_resource_path(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "invalid_path", "message": str(exc)}) from exc


def _require_owner(engine: AuthEngine, actor: Actor, path: str) -> str:
    """Return the tree owner of ``path``; 403 unless it is the actor or the actor is admin."""
    owner = path.split("/", 1)[0]
    if owner != actor.username and not engine.users.is_admin(actor.username):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Only the owner can change access to this path."},
        )
    return owner


@router.put("/access", response_model=FileAccessResponse)
def set_access(
    body: FileAccessSet,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> FileAccessResponse:
    owner = _require_owner(engine, actor, body.path)
    for group_id in body.group_ids:
        engine.groups.get_group(group_id)
    rule = engine.access.set_file_access(body.path, owner, body.is_public, body.group_ids)
    return FileAccessResponse.from_rule(rule)


@router.get("/access", response_model=FileAccessResponse)
def get_access(
    path: str = Query(min_length=1, max_length=1024),
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> FileAccessResponse:
    path = _clean_path(path)
    if not engine.access.has_file_access(actor.username, path):
        raise HTTPException(status_code=403, detail={"code": "forbidden", "message": "Access denied."})
    return FileAccessResponse.from_rule(engine.access.get_file_access(path))


@router.delete("/access", response_model=MessageResponse)
def delete_access(
    path: str = Query(min_length=1, max_length=1024),
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> MessageResponse:
    path = _clean_path(path)
    _require_owner(engine, actor, path)
    if not engine.access.remove_file_access(path):
        raise NoAccessRuleDefined(f"no access control defined for path: {path}")
    return MessageResponse(message="Access rule removed.")


@router.get("/access/check", response_model=AccessCheckResponse)
def check_access(
    path: str = Query(min_length=1, max_length=1024),
    write: bool = False,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> AccessCheckResponse:
    path = _clean_path(path)
    username = actor.username

    if write:
        owns = engine.users.is_admin(username) or path.split("/", 1)[0] == username
        if owns:
            return AccessCheckResponse(path=path, allowed=True, via="owner_rule")
    elif engine.access.has_file_access(username, path):
        return AccessCheckResponse(path=path, allowed=True, via="owner_rule")

    if engine.sharing.has_access_to_shared_file(username, path, require_write=write):
        return AccessCheckResponse(path=path, allowed=True, via="share")
    return AccessCheckResponse(path=path, allowed=False)
