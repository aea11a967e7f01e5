"""
api/routes/v1/sharing.py -- Cross-group sharing endpoints.

Routes:
  POST   /api/v1/shares                   -- share a path with a target group
  DELETE /api/v1/shares/{share_id}        -- remove a share (sharer or admin)
  GET    /api/v1/groups/{group_id}/shares -- shares received by a group (requires read)

Sharing out of a group tree requires "manage" in the source group, and the
path must lie under groups/<source_group>/. A personal path can only be
shared by its owner (the first path segment) or a global admin; being able
to read a file is not enough to hand it out.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.models import MessageResponse, ShareCreate, ShareResponse
from api.routes.v1.groups import require_group_permission
from auth.dependencies import get_current_actor, get_engine
from auth.engine import AuthEngine
from auth.models import Actor

logger = logging.getLogger("lunatransfer.api")

router = APIRouter()


def _owns_personal_path(actor: Actor, path: str) -> bool:
    """True if ``path`` lies in the actor's personal tree. groups/ is never a personal tree."""
    owner = path.split("/", 1)[0]
    return owner == actor.username and owner != "groups"


@router.post("/shares", response_model=ShareResponse, status_code=201)
def share_file(
    body: ShareCreate,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> ShareResponse:
    if body.source_group:
        require_group_permission(engine, actor, body.source_group, "manage")
        if not body.file_path.startswith(f"groups/{body.source_group}/"):
            logger.warning("ACCESS_DENIED %s tried to share %s out of group %s", actor.username, body.file_path, body.source_group)
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "The file is not in the source group."},
            )
    elif not _owns_personal_path(actor, body.file_path) and not engine.users.is_admin(actor.username):
        logger.warning("ACCESS_DENIED %s tried to share %s", actor.username, body.file_path)
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You can only share your own files."},
        )
    share = engine.sharing.share_file(
        body.file_path,
        body.source_group,
        body.target_group,
        actor.username,
        body.permission,
    )
    return ShareResponse.from_share(share)


@router.delete("/shares/{share_id}", response_model=MessageResponse)
def remove_share(
    share_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> MessageResponse:
    engine.sharing.remove_share(share_id, actor.username)
    return MessageResponse(message="Share removed.")


@router.get("/groups/{group_id}/shares", response_model=list[ShareResponse])
def list_group_shares(
    group_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> list[ShareResponse]:
    require_group_permission(engine, actor, group_id, "read")
    return [ShareResponse.from_share(s) for s in engine.sharing.list_shares_for_group(group_id)]
