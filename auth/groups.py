"""
auth/groups.py -- Group & Membership Manager.

Two record families, each with its own JSON collection and lock:

    groups.json         Group rows (unique name, opaque uuid id)
    group_members.json  GroupMember rows ((group_id, username) unique)

Creating a group and enrolling its creator touch both families and are not
transactional. A crash in between leaves a group without members;
ensure_creator_membership() is the idempotent repair.

Lock order: members may be read while the groups lock is held, never the
reverse. Other components (sharing, access control) call in here while
holding their own locks; nothing in this module calls back out to them.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from auth.errors import GroupExists, GroupNotFound, StorageError, UserAlreadyInGroup, UserNotFound, UserNotInGroup
from auth.models import Group, GroupMember
from auth.persistence import JsonCollection
from auth.roles import GroupRole, group_role_allows
from auth.store import UserStore
from core.audit import log_event
from core.config import get_settings

logger = logging.getLogger("lunatransfer.groups")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class GroupStore:
    """Repository and policy for groups and their members."""

    def __init__(self, users: UserStore, data_dir: Path | None = None, storage_dir: Path | None = None) -> None:
        if data_dir is None or storage_dir is None:
            settings = get_settings()
            data_dir = data_dir or settings.data_dir
            storage_dir = storage_dir or settings.storage_dir
        self._users = users
        self.storage_dir = Path(storage_dir)
        self._groups = JsonCollection(Path(data_dir) / "groups.json")
        self._members = JsonCollection(Path(data_dir) / "group_members.json")

    def group_storage_path(self, group_id: str) -> Path:
        return self.storage_dir / "groups" / group_id

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def create_group(self, name: str, description: str, creator: str) -> Group:
        """Create a group, provision groups/<id>/, and enroll the creator as admin.

        Raises:
            UserNotFound: creator is not a known user.
            GroupExists:  another group already has this exact name.
            StorageError: the group directory could not be created.
        """
        if not self._users.user_exists(creator):
            raise UserNotFound(f"user not found: {creator}")

        with self._groups.lock:
            records = self._groups.load(op="create_group", actor=creator, target=name)
            if any(r["name"] == name for r in records):
                raise GroupExists(f"group already exists: {name}")
            group = Group(
                id=str(uuid.uuid4()),
                name=name,
                description=description,
                created_by=creator,
                created_at=_now_iso(),
            )
            records.append(_group_to_record(group))
            self._groups.save(records, op="create_group", actor=creator, target=name)

        group_dir = self.group_storage_path(group.id)
        try:
            group_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("create_group: cannot create %s (actor=%s group=%s): %s", group_dir, creator, group.id, exc)
            raise StorageError(f"failed to create group directory for {name}") from exc

        self.add_member(group.id, creator, GroupRole.ADMIN, creator)
        log_event("GROUP_CREATED", creator, group=group.id, name=name)
        return group

    def get_group(self, group_id: str) -> Group:
        for record in self._groups.load(op="get_group", target=group_id):
            if record["id"] == group_id:
                return _record_to_group(record)
        raise GroupNotFound(f"group not found: {group_id}")

    def list_groups(self) -> list[Group]:
        return [_record_to_group(r) for r in self._groups.load(op="list_groups")]

    def ensure_creator_membership(self, group_id: str) -> bool:
        """Re-enroll a group's creator as admin if that row is missing.

        Returns True if a row was inserted. Safe to call repeatedly.
        """
        group = self.get_group(group_id)
        if self.get_member_role(group_id, group.created_by) is not None:
            return False
        try:
            self.add_member(group_id, group.created_by, GroupRole.ADMIN, group.created_by)
        except UserAlreadyInGroup:
            return False
        logger.info("ensure_creator_membership: re-enrolled %s in %s", group.created_by, group_id)
        return True

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def add_member(self, group_id: str, username: str, role: object, added_by: str) -> GroupMember:
        """Enroll ``username`` in the group. Unknown roles become reader.

        Raises:
            GroupNotFound:      no such group.
            UserNotFound:       no such user.
            UserAlreadyInGroup: the user already has a role in this group.
        """
        group = self.get_group(group_id)
        if not self._users.user_exists(username):
            raise UserNotFound(f"user not found: {username}")

        member = GroupMember(
            group_id=group_id,
            username=username,
            role=GroupRole.coerce(role),
            added_by=added_by,
            added_at=_now_iso(),
        )
        with self._members.lock:
            records = self._members.load(op="add_member", actor=added_by, target=username, group=group_id)
            if any(r["group_id"] == group_id and r["username"] == username for r in records):
                raise UserAlreadyInGroup(f"user {username} is already in group {group.name}")
            records.append(_member_to_record(member))
            self._members.save(records, op="add_member", actor=added_by, target=username, group=group_id)

        log_event("GROUP_USER_ADDED", added_by, target=username, group=group_id, role=member.role.value)
        return member

    def remove_member(self, group_id: str, username: str, removed_by: str) -> None:
        """Drop the user's membership row.

        Raises:
            GroupNotFound:  no such group.
            UserNotInGroup: the user has no row in this group.
        """
        group = self.get_group(group_id)
        with self._members.lock:
            records = self._members.load(op="remove_member", actor=removed_by, target=username, group=group_id)
            kept = [r for r in records if not (r["group_id"] == group_id and r["username"] == username)]
            if len(kept) == len(records):
                raise UserNotInGroup(f"user {username} is not in group {group.name}")
            self._members.save(kept, op="remove_member", actor=removed_by, target=username, group=group_id)

        log_event(
            "GROUP_USER_REMOVED",
            removed_by,
            f"User {username} was removed from group {group.name} by {removed_by}",
            target=username,
            group=group_id,
        )

    def remove_user_memberships(self, username: str) -> int:
        """Drop every membership row for ``username``. Returns the number removed."""
        with self._members.lock:
            records = self._members.load(op="remove_user_memberships", target=username)
            kept = [r for r in records if r["username"] != username]
            removed = len(records) - len(kept)
            if removed:
                self._members.save(kept, op="remove_user_memberships", target=username)
        return removed

    def list_members(self, group_id: str) -> list[GroupMember]:
        """Members of an existing group. Raises GroupNotFound for unknown ids."""
        self.get_group(group_id)
        return [
            _record_to_member(r)
            for r in self._members.load(op="list_members", group=group_id)
            if r["group_id"] == group_id
        ]

    def get_member_role(self, group_id: str, username: str) -> GroupRole | None:
        """The user's role in the group, or None. Does not check that the group exists."""
        for record in self._members.load(op="get_member_role", target=username, group=group_id):
            if record["group_id"] == group_id and record["username"] == username:
                return GroupRole.coerce(record.get("role"))
        return None

    def list_groups_for_user(self, username: str) -> list[Group]:
        member_of = {
            r["group_id"] for r in self._members.load(op="list_groups_for_user", target=username) if r["username"] == username
        }
        return [g for g in self.list_groups() if g.id in member_of]

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def has_group_permission(self, username: str, group_id: str, action: str) -> bool:
        """Decide whether ``username`` may perform ``action`` in the group.

        Global admins always may. Otherwise the member's group role is looked
        up and checked against the fixed action policy:

            read            any member
            write, upload   admin, contributor
            manage, delete  admin

        Non-members and unknown actions get False. An unknown group id raises
        GroupNotFound; callers treat that as deny.
        """
        if self._users.is_admin(username):
            return True
        self.get_group(group_id)
        role = self.get_member_role(group_id, username)
        if role is None:
            return False
        return group_role_allows(role, action)


# ---------------------------------------------------------------------------
# Record mappers
# ---------------------------------------------------------------------------


def _record_to_group(record: dict) -> Group:
    return Group(
        id=record["id"],
        name=record["name"],
        description=record.get("description", ""),
        created_by=record.get("created_by", ""),
        created_at=record.get("created_at", ""),
    )


def _group_to_record(group: Group) -> dict:
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by": group.created_by,
        "created_at": group.created_at,
    }


def _record_to_member(record: dict) -> GroupMember:
    return GroupMember(
        group_id=record["group_id"],
        username=record["username"],
        role=GroupRole.coerce(record.get("role")),
        added_by=record.get("added_by", ""),
        added_at=record.get("added_at", ""),
    )


def _member_to_record(member: GroupMember) -> dict:
    return {
        "group_id": member.group_id,
        "username": member.username,
        "role": member.role.value,
        "added_by": member.added_by,
        "added_at": member.added_at,
    }
