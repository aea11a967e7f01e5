"""
auth/store.py -- Credential Store: users, passwords, and API credentials.

Pattern: Repository + Data Mapper. UserStore is the repository;
_record_to_user / _user_to_record are the mappers between the on-disk JSON
records and the User dataclass.

Persistence is users.json under the data directory, rewritten whole on every
mutation (see auth/persistence.py). Two in-memory indexes sit on top of it:

    username -> User
    api_key  -> username

Both are derived caches, rebuilt from the records after every load and every
save. Callers never touch them directly; every mutation runs
load -> mutate -> save -> rebuild under the collection lock.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path

from auth.errors import InvalidCredentials, InvalidUsername, UserExists, UserNotFound
from auth.models import User
from auth.persistence import JsonCollection
from auth.roles import GlobalRole
from auth.tokens import _DUMMY_HASH, generate_api_key, hash_password, validate_password_strength, verify_password
from core.audit import log_event
from core.config import get_settings

logger = logging.getLogger("lunatransfer.store")

_USERNAME_RE = re.compile(r"[A-Za-z0-9_]{3,32}")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def user_storage_path(storage_dir: Path, username: str) -> Path:
    """Return storage_dir/<username> with separators and '..' stripped from the name."""
    safe = username.replace("..", "").replace("/", "").replace("\\", "")
    return Path(storage_dir) / safe


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore(data_dir=Path("data"), storage_dir=Path("storage"))
        user, api_key = store.create_user("alice", "s3cretpass", "a@example.com", "user")
        user, api_key = store.authenticate("alice", "s3cretpass")
    """

    def __init__(self, data_dir: Path | None = None, storage_dir: Path | None = None) -> None:
        if data_dir is None or storage_dir is None:
            settings = get_settings()
            data_dir = data_dir or settings.data_dir
            storage_dir = storage_dir or settings.storage_dir
        self.storage_dir = Path(storage_dir)
        self._collection = JsonCollection(Path(data_dir) / "users.json")
        self._users: dict[str, User] = {}
        self._api_key_index: dict[str, str] = {}
        self.reload()

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------

    def reload(self) -> None:
        """Re-read users.json and rebuild both indexes."""
        with self._collection.lock:
            self._rebuild(self._load("reload"))

    def _load(self, op: str, **context) -> dict[str, User]:
        return {u.username: u for u in map(_record_to_user, self._collection.load(op=op, **context))}

    def _save(self, users: dict[str, User], op: str, **context) -> None:
        self._collection.save([_user_to_record(u) for u in users.values()], op=op, **context)
        self._rebuild(users)

    def _rebuild(self, users: dict[str, User]) -> None:
        self._users = users
        self._api_key_index = {u.api_key: u.username for u in users.values() if u.api_key}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_user(self, username: str, password: str, email: str = "", role: object = GlobalRole.USER) -> tuple[User, str]:
        """Create an account and return (user, api_key).

        The role is coerced to the global vocabulary; anything unknown becomes
        guest. The user's storage directory is provisioned best-effort.

        Raises:
            InvalidUsername: not 3-32 chars of letters, digits, underscore.
            WeakPassword:    fails the strength rule (see validate_password_strength).
            UserExists:      username already taken.
        """
        if not _USERNAME_RE.fullmatch(username):
            raise InvalidUsername("username must be 3-32 letters, digits or underscores")
        validate_password_strength(password)

        with self._collection.lock:
            users = self._load("create_user", target=username)
            if username in users:
                raise UserExists(f"user already exists: {username}")
            api_key = generate_api_key()
            user = User(
                username=username,
                password_hash=hash_password(password),
                role=GlobalRole.coerce(role),
                email=email,
                api_key=api_key,
                created_at=_now_iso(),
            )
            users[username] = user
            self._save(users, "create_user", target=username)

        try:
            user_storage_path(self.storage_dir, username).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("create_user: could not provision storage for %s: %s", username, exc)

        log_event("USER_CREATED", username, role=user.role.value)
        return user, api_key

    def authenticate(self, username: str, password: str) -> tuple[User, str]:
        """Verify a password login and return (user, api_key).

        Always runs bcrypt, against _DUMMY_HASH when the username is unknown,
        so the response time does not reveal which usernames exist [C1].
        Unknown user and wrong password raise the same InvalidCredentials.
        """
        with self._collection.lock:
            user = self._users.get(username)
        if user is None:
            verify_password(password, _DUMMY_HASH)
            raise InvalidCredentials("invalid username or password")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials("invalid username or password")

        with self._collection.lock:
            users = self._load("authenticate", target=username)
            current = users.get(username)
            if current is None:
                # Deleted between the password check and the stamp.
                raise InvalidCredentials("invalid username or password")
            current.last_login = _now_iso()
            self._save(users, "authenticate", target=username)
        return current, current.api_key

    def rotate_credential(self, username: str) -> str:
        """Replace the user's API key and return the new one.

        The old key leaves the lookup index in the same save that adds the new
        key; there is no window where both resolve.
        """
        with self._collection.lock:
            users = self._load("rotate_credential", target=username)
            user = users.get(username)
            if user is None:
                raise UserNotFound(f"user not found: {username}")
            new_key = generate_api_key()
            while new_key in self._api_key_index:
                new_key = generate_api_key()
            user.api_key = new_key
            self._save(users, "rotate_credential", target=username)
        log_event("API_KEY_ROTATED", username)
        return new_key

    def delete_user(self, username: str) -> None:
        """Remove the account and its credential, then its storage subtree.

        Storage removal is best-effort: a failure is logged and the account
        deletion still stands.
        """
        with self._collection.lock:
            users = self._load("delete_user", target=username)
            if username not in users:
                raise UserNotFound(f"user not found: {username}")
            del users[username]
            self._save(users, "delete_user", target=username)

        user_dir = user_storage_path(self.storage_dir, username)
        if user_dir.exists():
            try:
                shutil.rmtree(user_dir)
            except OSError as exc:
                logger.warning("delete_user: failed to remove storage %s: %s", user_dir, exc)
        log_event("USER_DELETED", username)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user(self, username: str) -> User:
        with self._collection.lock:
            user = self._users.get(username)
        if user is None:
            raise UserNotFound(f"user not found: {username}")
        return user

    def get_user_by_api_key(self, api_key: str) -> User | None:
        """Resolve an API credential to its user. None if the key is unknown or rotated away."""
        if not api_key:
            return None
        with self._collection.lock:
            username = self._api_key_index.get(api_key)
            return self._users.get(username) if username is not None else None

    def user_exists(self, username: str) -> bool:
        with self._collection.lock:
            return username in self._users

    def has_users(self) -> bool:
        with self._collection.lock:
            return bool(self._users)

    def list_users(self) -> list[User]:
        """All users ordered by username."""
        with self._collection.lock:
            return sorted(self._users.values(), key=lambda u: u.username)

    def is_admin(self, username: str) -> bool:
        """True if the user exists and holds the global admin role."""
        with self._collection.lock:
            user = self._users.get(username)
        return user is not None and user.role is GlobalRole.ADMIN


# ---------------------------------------------------------------------------
# Record mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _record_to_user(record: dict) -> User:
    return User(
        username=record["username"],
        password_hash=record.get("password_hash", ""),
        role=GlobalRole.coerce(record.get("role")),
        email=record.get("email", ""),
        api_key=record.get("api_key", ""),
        created_at=record.get("created_at", ""),
        last_login=record.get("last_login"),
    )


def _user_to_record(user: User) -> dict:
    return {
        "username": user.username,
        "password_hash": user.password_hash,
        "email": user.email,
        "role": user.role.value,
        "api_key": user.api_key,
        "created_at": user.created_at,
        "last_login": user.last_login,
    }
