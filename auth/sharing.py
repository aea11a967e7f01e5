"""
auth/sharing.py -- Sharing Engine: cross-group share records and decisions.

A SharedFile grants one target group access to one path, which may live in
another group's tree (source_group set) or in a personal tree (source_group
empty). (source_path, group_id) is unique; a second share of the same path
to the same group is rejected with AlreadyShared rather than updated.

Permission values fail toward least privilege: anything other than
"read_write" is stored as "read".
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from auth.errors import AlreadyShared, NotShareOwner, SelfShareError, ShareNotFound
from auth.groups import GroupStore
from auth.models import SharedFile
from auth.persistence import JsonCollection
from auth.roles import SharePermission
from auth.store import UserStore
from core.audit import log_event
from core.config import get_settings

logger = logging.getLogger("lunatransfer.sharing")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class SharingEngine:
    """Repository for SharedFile records plus the shared-resource access decision."""

    def __init__(self, users: UserStore, groups: GroupStore, data_dir: Path | None = None) -> None:
        if data_dir is None:
            data_dir = get_settings().data_dir
        self._users = users
        self._groups = groups
        self._shares = JsonCollection(Path(data_dir) / "shared_files.json")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def share_file(
        self,
        source_path: str,
        source_group: str,
        target_group: str,
        shared_by: str,
        permission: object = SharePermission.READ,
    ) -> SharedFile:
        """Grant ``target_group`` access to ``source_path``.

        Raises:
            GroupNotFound:  target group (or a non-empty source group) does not exist.
            SelfShareError: source and target are the same group.
            AlreadyShared:  the path is already shared with the target group.
        """
        permission = SharePermission.coerce(permission)
        with self._shares.lock:
            if source_group:
                self._groups.get_group(source_group)
            self._groups.get_group(target_group)
            if source_group == target_group:
                raise SelfShareError("cannot share within the same group")

            records = self._shares.load(op="share_file", actor=shared_by, target=source_path, group=target_group)
            if any(r["source_path"] == source_path and r["group_id"] == target_group for r in records):
                raise AlreadyShared(f"{source_path} is already shared with group {target_group}")

            share = SharedFile(
                id=str(uuid.uuid4()),
                source_path=source_path,
                group_id=target_group,
                source_group=source_group,
                shared_by=shared_by,
                shared_at=_now_iso(),
                permission=permission,
            )
            records.append(_share_to_record(share))
            self._shares.save(records, op="share_file", actor=shared_by, target=source_path, group=target_group)

        log_event(
            "FILE_SHARED",
            shared_by,
            path=source_path,
            source_group=source_group or None,
            group=target_group,
            permission=permission.value,
        )
        return share

    def remove_share(self, share_id: str, username: str) -> None:
        """Delete a share. Only global admins and the original sharer may.

        Raises:
            ShareNotFound: no share with this id.
            NotShareOwner: caller is neither admin nor the sharer.
        """
        with self._shares.lock:
            records = self._shares.load(op="remove_share", actor=username, target=share_id)
            match = next((r for r in records if r["id"] == share_id), None)
            if match is None:
                raise ShareNotFound(f"share not found: {share_id}")
            if match["shared_by"] != username and not self._users.is_admin(username):
                raise NotShareOwner("you can only remove your own shared files")
            self._shares.save([r for r in records if r["id"] != share_id], op="remove_share", actor=username, target=share_id)

        log_event("SHARE_REMOVED", username, share=share_id, path=match["source_path"], group=match["group_id"])

    def remove_shares_by(self, username: str) -> int:
        """Delete every share created by ``username``. Returns the number removed."""
        with self._shares.lock:
            records = self._shares.load(op="remove_shares_by", target=username)
            kept = [r for r in records if r["shared_by"] != username]
            removed = len(records) - len(kept)
            if removed:
                self._shares.save(kept, op="remove_shares_by", target=username)
        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_share(self, share_id: str) -> SharedFile:
        for record in self._shares.load(op="get_share", target=share_id):
            if record["id"] == share_id:
                return _record_to_share(record)
        raise ShareNotFound(f"share not found: {share_id}")

    def list_shares(self) -> list[SharedFile]:
        return [_record_to_share(r) for r in self._shares.load(op="list_shares")]

    def list_shares_for_group(self, group_id: str) -> list[SharedFile]:
        """Shares whose target is ``group_id``."""
        return [s for s in self.list_shares() if s.group_id == group_id]

    def list_shares_for_path(self, path: str) -> list[SharedFile]:
        return [s for s in self.list_shares() if s.source_path == path]

    def has_access_to_shared_file(self, username: str, path: str, require_write: bool = False) -> bool:
        """Decide whether a share grants ``username`` access to ``path``.

        Global admins always pass. Otherwise any share of exactly this path
        into one of the caller's groups grants read; write additionally needs
        that share to be read_write.
        """
        if self._users.is_admin(username):
            return True
        member_of = {g.id for g in self._groups.list_groups_for_user(username)}
        if not member_of:
            return False
        for share in self.list_shares_for_path(path):
            if share.group_id not in member_of:
                continue
            if not require_write or share.permission is SharePermission.READ_WRITE:
                return True
        return False


# ---------------------------------------------------------------------------
# Record mappers
# ---------------------------------------------------------------------------


def _record_to_share(record: dict) -> SharedFile:
    return SharedFile(
        id=record["id"],
        source_path=record["source_path"],
        group_id=record["group_id"],
        source_group=record.get("source_group", ""),
        shared_by=record.get("shared_by", ""),
        shared_at=record.get("shared_at", ""),
        permission=SharePermission.coerce(record.get("permission")),
    )


def _share_to_record(share: SharedFile) -> dict:
    return {
        "id": share.id,
        "source_path": share.source_path,
        "group_id": share.group_id,
        "source_group": share.source_group,
        "shared_by": share.shared_by,
        "shared_at": share.shared_at,
        "permission": share.permission.value,
    }
