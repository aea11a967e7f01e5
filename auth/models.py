"""
auth/models.py -- Domain dataclasses for authorization and sharing entities.

Pattern: Data class (pure data container, zero logic). Stores own the
persistence and the decisions; these classes only own the shape.

Timestamps are ISO 8601 UTC strings, exactly as written to disk, so a record
survives a save/load cycle field-for-field.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from auth.roles import GlobalRole, GroupRole, SharePermission


@dataclass
class User:
    """A local account.

    password_hash is a bcrypt digest; the plaintext is never stored.
    api_key is the long-lived credential for non-interactive clients. It is
    regenerated by UserStore.rotate_credential(); the previous value stops
    resolving the moment the rotation is persisted.
    """

    username: str
    password_hash: str
    role: GlobalRole = GlobalRole.USER
    email: str = ""
    api_key: str = ""
    created_at: str = ""
    last_login: str | None = None


@dataclass
class Group:
    """A named collection of members owning the subtree groups/<id>/."""

    id: str
    name: str
    created_by: str
    description: str = ""
    created_at: str = ""


@dataclass
class GroupMember:
    """One user's role in one group. (group_id, username) is unique."""

    group_id: str
    username: str
    role: GroupRole = GroupRole.READER
    added_by: str = ""
    added_at: str = ""


@dataclass
class FileAccess:
    """Visibility rule for a single path in a user's personal tree.

    path is matched exactly (case-sensitive, no prefix or glob matching).
    group_ids behaves as a set; duplicates are dropped on write, order kept.
    """

    path: str
    owner: str
    is_public: bool = False
    group_ids: list[str] = field(default_factory=list)
    created_at: str = ""


@dataclass
class SharedFile:
    """Cross-group grant of one path to a target group.

    source_group is "" for files shared out of a personal tree.
    (source_path, group_id) is unique across all shares.
    """

    id: str
    source_path: str
    group_id: str
    shared_by: str
    source_group: str = ""
    shared_at: str = ""
    permission: SharePermission = SharePermission.READ


@dataclass
class SessionClaims:
    """Identity carried by a signed session token. Never persisted."""

    username: str
    role: GlobalRole
    issued_at: datetime
    expires_at: datetime


@dataclass
class BlacklistEntry:
    """A token revoked before its natural expiry."""

    token: str
    expires_at: datetime


@dataclass
class Actor:
    """The authenticated identity behind a request."""

    username: str
    role: GlobalRole
    via: str = "token"  # "token" or "api_key"
    token: str | None = None
    claims: SessionClaims | None = None
