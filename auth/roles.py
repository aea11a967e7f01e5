"""
auth/roles.py -- Closed role vocabularies and the fixed permission policy.

Two independent role sets exist:
  GlobalRole -- attached to a User (admin / user / guest).
  GroupRole  -- attached to a GroupMember, scoped to one group
                (admin / contributor / reader).

Every ingestion point (API input, JSON deserialization) goes through
coerce(). Unknown values collapse to the least-privileged member of the set;
they never raise and never escalate.
"""

from __future__ import annotations

from enum import Enum


class GlobalRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"

    @classmethod
    def coerce(cls, value: object) -> GlobalRole:
        """Return the matching role, or GUEST for anything unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.GUEST


class GroupRole(str, Enum):
    ADMIN = "admin"  # manage the group and all its files
    CONTRIBUTOR = "contributor"  # upload and modify files
    READER = "reader"  # view and download only

    @classmethod
    def coerce(cls, value: object) -> GroupRole:
        """Return the matching role, or READER for anything unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.READER


class SharePermission(str, Enum):
    READ = "read"
    READ_WRITE = "read_write"

    @classmethod
    def coerce(cls, value: object) -> SharePermission:
        """Return the matching permission, or READ for anything unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.READ


# ---------------------------------------------------------------------------
# Group action policy (fixed, not configurable)
# ---------------------------------------------------------------------------

_GROUP_ACTIONS: dict[str, frozenset[GroupRole]] = {
    "read": frozenset(GroupRole),
    "write": frozenset({GroupRole.ADMIN, GroupRole.CONTRIBUTOR}),
    "upload": frozenset({GroupRole.ADMIN, GroupRole.CONTRIBUTOR}),
    "manage": frozenset({GroupRole.ADMIN}),
    "delete": frozenset({GroupRole.ADMIN}),
}


def group_role_allows(role: GroupRole, action: str) -> bool:
    """Return True if a member holding ``role`` may perform ``action``.

    Unknown actions are denied.
    """
    return role in _GROUP_ACTIONS.get(action, frozenset())


# ---------------------------------------------------------------------------
# Global role permission table
# ---------------------------------------------------------------------------

_WILDCARD = "*"

_ROLE_PERMISSIONS: dict[GlobalRole, frozenset[tuple[str, str]]] = {
    GlobalRole.ADMIN: frozenset({(_WILDCARD, _WILDCARD)}),
    GlobalRole.USER: frozenset({("read", "files"), ("write", "files"), ("delete", "files")}),
    GlobalRole.GUEST: frozenset(),
}


def role_has_permission(role: object, action: str, resource: str) -> bool:
    """Check the global role table for (action, resource).

    A "*" in either position of a granted pair matches anything.
    """
    for granted_action, granted_resource in _ROLE_PERMISSIONS[GlobalRole.coerce(role)]:
        if granted_action in (_WILDCARD, action) and granted_resource in (_WILDCARD, resource):
            return True
    return False


def is_admin(role: object) -> bool:
    return GlobalRole.coerce(role) is GlobalRole.ADMIN


def is_user(role: object) -> bool:
    """True for regular users and admins; guests are excluded."""
    return GlobalRole.coerce(role) in (GlobalRole.ADMIN, GlobalRole.USER)
