"""
auth/tokens.py -- Session tokens, password hashing, and API credential utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (username), role, iat, exp and
       a random jti so two tokens minted in the same second are still distinct
       strings (revoking one must not revoke the other). Tokens are stateless;
       nothing is persisted to issue one.

  Revocation: a TokenBlacklist keyed by the raw token string. Entries keep
       the token's own expiry and are purged lazily on every lookup, so the
       blacklist only ever holds tokens that would otherwise still validate.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in UserStore.authenticate() so response
       time does not reveal whether a username exists [C1].

  API credentials: secrets.token_hex(32) -- 256 bits of entropy.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
import secrets
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ExpiredToken, InvalidToken, WeakPassword
from auth.models import BlacklistEntry, SessionClaims
from auth.persistence import JsonCollection
from auth.roles import GlobalRole
from core.audit import log_event
from core.config import get_settings

logger = logging.getLogger("lunatransfer.auth")

_ALGORITHM = "HS256"

# bcrypt only looks at the first 72 bytes; longer inputs are rejected rather
# than silently truncated.
_BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

_LETTER_RE = re.compile(r"[A-Za-z]")
_DIGIT_RE = re.compile(r"[0-9]")


def validate_password_strength(plain: str) -> None:
    """Raise WeakPassword unless the password is 8-72 bytes with a letter and a digit."""
    if len(plain) < 8 or not _LETTER_RE.search(plain) or not _DIGIT_RE.search(plain):
        raise WeakPassword("password must be at least 8 characters and contain letters and numbers")
    if len(plain.encode("utf-8")) > _BCRYPT_MAX_BYTES:
        raise WeakPassword(f"password must be at most {_BCRYPT_MAX_BYTES} bytes")


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt digest."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored digest or over-long input.
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than later ones.
_DUMMY_HASH: str = hash_password("lunatransfer_timing_dummy1")


# ---------------------------------------------------------------------------
# API credentials
# ---------------------------------------------------------------------------


def generate_api_key() -> str:
    """Return a fresh random API credential (64 hex chars, 256 bits)."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# Blacklist
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenBlacklist:
    """Tokens revoked before their natural expiry.

    In-memory by default. Pass ``path`` to mirror the set into a JSON
    collection so revocations survive a restart.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, datetime] = {}
        self._collection = JsonCollection(path) if path is not None else None
        if self._collection is not None:
            for record in self._collection.load(op="load_blacklist"):
                self._entries[record["token"]] = datetime.fromisoformat(record["expires_at"])

    def add(self, token: str, expires_at: datetime) -> None:
        with self._lock:
            self._entries[token] = expires_at
            self._persist("blacklist_add")

    def contains(self, token: str) -> bool:
        """Return True if ``token`` is revoked and not yet naturally expired.

        Every lookup drops entries whose expiry has passed, which bounds the
        blacklist without a background sweep.
        """
        with self._lock:
            if self._purge(_utcnow()):
                self._persist("blacklist_purge")
            return token in self._entries

    def purge_expired(self) -> int:
        """Drop dead entries now. Returns how many were removed."""
        with self._lock:
            removed = self._purge(_utcnow())
            if removed:
                self._persist("blacklist_purge")
            return removed

    def entries(self) -> list[BlacklistEntry]:
        with self._lock:
            return [BlacklistEntry(token=t, expires_at=e) for t, e in self._entries.items()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge(self, now: datetime) -> int:
        dead = [token for token, expires_at in self._entries.items() if expires_at <= now]
        for token in dead:
            del self._entries[token]
        return len(dead)

    def _persist(self, op: str) -> None:
        if self._collection is None:
            return
        with self._collection.lock:
            self._collection.save(
                [{"token": t, "expires_at": e.isoformat()} for t, e in self._entries.items()],
                op=op,
            )


# ---------------------------------------------------------------------------
# Session token manager
# ---------------------------------------------------------------------------


class SessionTokenManager:
    """Issue, validate, refresh, and revoke signed session tokens.

    Token lifecycle:
        issued -> valid while now < exp and not blacklisted
               -> naturally expired (ExpiredToken) | revoked (InvalidToken)

    Usage:
        tokens = SessionTokenManager()
        token = tokens.issue("alice", GlobalRole.USER)
        claims = tokens.validate(token)
        tokens.revoke(token)
    """

    def __init__(
        self,
        secret_key: str | None = None,
        ttl_seconds: int | None = None,
        blacklist: TokenBlacklist | None = None,
    ) -> None:
        if secret_key is None or ttl_seconds is None:
            settings = get_settings()
            secret_key = secret_key or settings.secret_key
            ttl_seconds = ttl_seconds or settings.token_expire_seconds
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self.blacklist = blacklist if blacklist is not None else TokenBlacklist()

    def issue(self, username: str, role: object, ttl_seconds: int | None = None) -> str:
        """Mint a signed token for (username, role) expiring after the configured TTL.

        ``ttl_seconds`` overrides the configured TTL for this token only.
        """
        now = _utcnow()
        duration = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        payload = {
            "sub": username,
            "role": GlobalRole.coerce(role).value,
            "iat": now,
            "exp": now + timedelta(seconds=duration),
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def validate(self, token: str) -> SessionClaims:
        """Return the claims of a live token.

        Raises:
            InvalidToken: revoked, malformed, forged, or missing claims.
            ExpiredToken: correctly signed but past its expiry.
        """
        if not isinstance(token, str) or not token:
            raise InvalidToken("token is empty")
        if self.blacklist.contains(token):
            raise InvalidToken("token has been revoked")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise ExpiredToken("token expired") from exc
        except JWTError as exc:
            raise InvalidToken("token signature or format is invalid") from exc

        try:
            return SessionClaims(
                username=payload["sub"],
                role=GlobalRole.coerce(payload["role"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise InvalidToken("token is missing required claims") from exc

    def revoke(self, token: str) -> bool:
        """Blacklist a still-valid token until its original expiry.

        Returns False (and stores nothing) when the token is already unusable.
        """
        try:
            claims = self.validate(token)
        except (InvalidToken, ExpiredToken):
            return False
        self.blacklist.add(token, claims.expires_at)
        log_event("TOKEN_REVOKED", claims.username, expires_at=claims.expires_at.isoformat())
        return True

    def refresh(self, claims: SessionClaims) -> str:
        """Reissue a token for the same identity with a fresh TTL.

        ``claims`` must come from validate() -- refreshing needs a currently
        valid session, not a password.
        """
        token = self.issue(claims.username, claims.role)
        log_event("TOKEN_REFRESH", claims.username)
        return token
