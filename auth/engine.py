"""
auth/engine.py -- Wires the five components together over one data directory.

AuthEngine is what the transport layer holds (app.state.engine). It owns no
state of its own; each attribute is the single instance of its component:

    engine.users    UserStore            (auth/store.py)
    engine.tokens   SessionTokenManager  (auth/tokens.py)
    engine.groups   GroupStore           (auth/groups.py)
    engine.access   AccessControl        (auth/access.py)
    engine.sharing  SharingEngine        (auth/sharing.py)

Cross-family operations that must touch several components live here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from auth.access import AccessControl
from auth.groups import GroupStore
from auth.sharing import SharingEngine
from auth.store import UserStore
from auth.tokens import SessionTokenManager, TokenBlacklist
from core.config import Settings, get_settings

logger = logging.getLogger("lunatransfer.auth")


@dataclass
class CascadeReport:
    """What delete_user removed alongside the account."""

    memberships: int = 0
    access_rules: int = 0
    shares: int = 0


class AuthEngine:
    """Authorization and sharing engine bound to one data and storage directory.

    Usage:
        engine = AuthEngine()                       # from get_settings()
        engine = AuthEngine(data_dir=tmp / "data", storage_dir=tmp / "storage",
                            secret_key="x" * 32)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        data_dir: Path | None = None,
        storage_dir: Path | None = None,
        secret_key: str | None = None,
        token_expire_seconds: int | None = None,
        persist_blacklist: bool | None = None,
    ) -> None:
        settings = settings or get_settings()
        data_dir = Path(data_dir or settings.data_dir)
        storage_dir = Path(storage_dir or settings.storage_dir)
        if persist_blacklist is None:
            persist_blacklist = settings.persist_blacklist

        self.data_dir = data_dir
        self.storage_dir = storage_dir
        self.users = UserStore(data_dir=data_dir, storage_dir=storage_dir)
        self.tokens = SessionTokenManager(
            secret_key=secret_key or settings.secret_key,
            ttl_seconds=token_expire_seconds or settings.token_expire_seconds,
            blacklist=TokenBlacklist(data_dir / "blacklist.json" if persist_blacklist else None),
        )
        self.groups = GroupStore(self.users, data_dir=data_dir, storage_dir=storage_dir)
        self.access = AccessControl(self.users, self.groups, data_dir=data_dir)
        self.sharing = SharingEngine(self.users, self.groups, data_dir=data_dir)

    def delete_user(self, username: str) -> CascadeReport:
        """Delete the account, then everything that still names the user.

        The account deletion happens first and is never rolled back. The
        cascade then removes the user's group memberships, the FileAccess
        rules they own, and the shares they created. Groups the user created
        are kept; other admins may still run them.
        """
        self.users.delete_user(username)
        report = CascadeReport(
            memberships=self.groups.remove_user_memberships(username),
            access_rules=self.access.remove_rules_owned_by(username),
            shares=self.sharing.remove_shares_by(username),
        )
        logger.info(
            "delete_user %s: removed %d memberships, %d access rules, %d shares",
            username,
            report.memberships,
            report.access_rules,
            report.shares,
        )
        return report
