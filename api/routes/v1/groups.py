"""
api/routes/v1/groups.py -- Group and membership endpoints.

Routes:
  POST   /api/v1/groups                                -- create group (caller becomes group admin)
  GET    /api/v1/groups                                -- groups the caller belongs to (admins: all)
  GET    /api/v1/groups/{group_id}                     -- group details (requires read)
  GET    /api/v1/groups/{group_id}/members             -- list members (requires read)
  POST   /api/v1/groups/{group_id}/members             -- add member (requires manage)
  DELETE /api/v1/groups/{group_id}/members/{username}  -- remove member (requires manage)

Group permissions come from GroupStore.has_group_permission(); global admins
pass every check. Guests cannot create groups.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from api.models import GroupCreate, GroupResponse, MemberAdd, MemberResponse, MessageResponse
from auth.dependencies import get_current_actor, get_engine
from auth.engine import AuthEngine
from auth.models import Actor
from auth.roles import is_user

router = APIRouter()


def require_group_permission(engine: AuthEngine, actor: Actor, group_id: str, action: str) -> None:
    """Raise 403 unless the actor may perform ``action`` in the group.

    GroupNotFound from the lookup propagates as 404.
    """
    if not engine.groups.has_group_permission(actor.username, group_id, action):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": f"Group '{action}' permission required."},
        )


@router.post("/groups", response_model=GroupResponse, status_code=201)
def create_group(
    body: GroupCreate,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> GroupResponse:
    if not is_user(actor.role):
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Guests cannot create groups."},
        )
    group = engine.groups.create_group(body.name, body.description, actor.username)
    return GroupResponse.from_group(group)


@router.get("/groups", response_model=list[GroupResponse])
def list_groups(actor: Actor = Depends(get_current_actor), engine: AuthEngine = Depends(get_engine)) -> list[GroupResponse]:
    if engine.users.is_admin(actor.username):
        groups = engine.groups.list_groups()
    else:
        groups = engine.groups.list_groups_for_user(actor.username)
    return [GroupResponse.from_group(g) for g in groups]


@router.get("/groups/{group_id}", response_model=GroupResponse)
def get_group(
    group_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> GroupResponse:
    require_group_permission(engine, actor, group_id, "read")
    return GroupResponse.from_group(engine.groups.get_group(group_id))


@router.get("/groups/{group_id}/members", response_model=list[MemberResponse])
def list_members(
    group_id: str,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> list[MemberResponse]:
    require_group_permission(engine, actor, group_id, "read")
    return [MemberResponse.from_member(m) for m in engine.groups.list_members(group_id)]


@router.post("/groups/{group_id}/members", response_model=MemberResponse, status_code=201)
def add_member(
    group_id: str,
    body: MemberAdd,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> MemberResponse:
    """Add a user to the group. An unrecognized role is stored as reader."""
    require_group_permission(engine, actor, group_id, "manage")
    member = engine.groups.add_member(group_id, body.username, body.role, actor.username)
    return MemberResponse.from_member(member)


@router.delete("/groups/{group_id}/members/{username}", response_model=MessageResponse)
def remove_member(
    group_id: str,
    username: str,
    actor: Actor = Depends(get_current_actor),
    engine: AuthEngine = Depends(get_engine),
) -> MessageResponse:
    require_group_permission(engine, actor, group_id, "manage")
    engine.groups.remove_member(group_id, username, actor.username)
    return MessageResponse(message=f"User {username} removed from group.")
