"""
auth/access.py -- Resource Access Control for personal storage paths.

One FileAccess rule per exact path (fileaccess.json). The decision function
has_file_access() short-circuits in a fixed order:

    1. caller is a global admin            -> True
    2. no rule for the path                -> False
    3. caller owns the rule                -> True
    4. rule is public                      -> True
    5. caller is a member of a rule group  -> True
    otherwise                              -> False

Paths arrive already normalized by the transport layer (no '..' segments);
this module compares them verbatim and case-sensitively.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from auth.errors import NoAccessRuleDefined
from auth.groups import GroupStore
from auth.models import FileAccess
from auth.persistence import JsonCollection
from auth.store import UserStore
from core.audit import log_event
from core.config import get_settings

logger = logging.getLogger("lunatransfer.access")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class AccessControl:
    """Repository for FileAccess rules plus the personal-tree access decision."""

    def __init__(self, users: UserStore, groups: GroupStore, data_dir: Path | None = None) -> None:
        if data_dir is None:
            data_dir = get_settings().data_dir
        self._users = users
        self._groups = groups
        self._rules = JsonCollection(Path(data_dir) / "fileaccess.json")

    def set_file_access(self, path: str, owner: str, is_public: bool, group_ids: list[str] | tuple[str, ...] = ()) -> FileAccess:
        """Create or wholesale-replace the rule for ``path``.

        Nothing from a previous rule for the same path is merged in.
        """
        rule = FileAccess(
            path=path,
            owner=owner,
            is_public=bool(is_public),
            group_ids=list(dict.fromkeys(group_ids)),
            created_at=_now_iso(),
        )
        with self._rules.lock:
            records = [r for r in self._rules.load(op="set_file_access", actor=owner, target=path) if r["path"] != path]
            records.append(_rule_to_record(rule))
            self._rules.save(records, op="set_file_access", actor=owner, target=path)
        log_event("FILE_ACCESS_SET", owner, path=path, public=rule.is_public, groups=",".join(rule.group_ids) or None)
        return rule

    def get_file_access(self, path: str) -> FileAccess:
        """Return the rule for ``path`` or raise NoAccessRuleDefined."""
        for record in self._rules.load(op="get_file_access", target=path):
            if record["path"] == path:
                return _record_to_rule(record)
        raise NoAccessRuleDefined(f"no access control defined for path: {path}")

    def remove_file_access(self, path: str) -> bool:
        """Delete the rule for ``path``. Returns False if there was none."""
        with self._rules.lock:
            records = self._rules.load(op="remove_file_access", target=path)
            kept = [r for r in records if r["path"] != path]
            if len(kept) == len(records):
                return False
            self._rules.save(kept, op="remove_file_access", target=path)
        return True

    def remove_rules_owned_by(self, owner: str) -> int:
        """Delete every rule whose owner is ``owner``. Returns the number removed."""
        with self._rules.lock:
            records = self._rules.load(op="remove_rules_owned_by", target=owner)
            kept = [r for r in records if r["owner"] != owner]
            removed = len(records) - len(kept)
            if removed:
                self._rules.save(kept, op="remove_rules_owned_by", target=owner)
        return removed

    def has_file_access(self, username: str, path: str) -> bool:
        if self._users.is_admin(username):
            return True
        try:
            rule = self.get_file_access(path)
        except NoAccessRuleDefined:
            return False
        if rule.owner == username:
            return True
        if rule.is_public:
            return True
        # Stale group ids (deleted groups) simply match nobody.
        return any(self._groups.get_member_role(group_id, username) is not None for group_id in rule.group_ids)


# ---------------------------------------------------------------------------
# Record mappers
# ---------------------------------------------------------------------------


def _record_to_rule(record: dict) -> FileAccess:
    return FileAccess(
        path=record["path"],
        owner=record["owner"],
        is_public=bool(record.get("is_public", False)),
        group_ids=list(record.get("group_ids") or []),
        created_at=record.get("created_at", ""),
    )


def _rule_to_record(rule: FileAccess) -> dict:
    return {
        "path": rule.path,
        "owner": rule.owner,
        "is_public": rule.is_public,
        "group_ids": list(rule.group_ids),
        "created_at": rule.created_at,
    }
