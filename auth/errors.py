"""
auth/errors.py -- Exception hierarchy for the authorization and sharing engine.

Every "not found" / "already exists" / "not allowed" condition is a distinct
class so the transport layer can pick a response by type instead of matching
message strings. Each class carries a stable machine-readable ``code``.

Authorization checks (has_file_access, has_group_permission, ...) never raise
for a plain "no" -- denial is a normal False return. These exceptions cover
failed lookups, conflicts, and rejected mutations.
"""


class LunaError(Exception):
    """Base exception for all engine errors."""

    code = "error"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(LunaError):
    code = "not_found"


class UserNotFound(NotFoundError):
    code = "user_not_found"


class GroupNotFound(NotFoundError):
    code = "group_not_found"


class UserNotInGroup(NotFoundError):
    code = "user_not_in_group"


class ShareNotFound(NotFoundError):
    code = "share_not_found"


class NoAccessRuleDefined(NotFoundError):
    """No FileAccess rule exists for the path. Callers choose the default."""

    code = "no_access_rule"


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------


class ConflictError(LunaError):
    code = "conflict"


class UserExists(ConflictError):
    code = "user_exists"


class GroupExists(ConflictError):
    code = "group_exists"


class UserAlreadyInGroup(ConflictError):
    code = "user_already_in_group"


class AlreadyShared(ConflictError):
    code = "already_shared"


# ---------------------------------------------------------------------------
# Unauthorized
# ---------------------------------------------------------------------------


class UnauthorizedError(LunaError):
    code = "forbidden"


class InvalidCredentials(UnauthorizedError):
    """Unknown username or wrong password. Deliberately the same error for both."""

    code = "bad_credentials"


class NotShareOwner(UnauthorizedError):
    code = "not_share_owner"


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


class TokenError(LunaError):
    code = "token_error"


class InvalidToken(TokenError):
    """Malformed, forged, or revoked token."""

    code = "invalid_token"


class ExpiredToken(TokenError):
    """Well-formed and correctly signed, but past its expiry."""

    code = "token_expired"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(LunaError):
    code = "validation_error"


class WeakPassword(ValidationError):
    code = "weak_password"


class InvalidUsername(ValidationError):
    code = "invalid_username"


class SelfShareError(ValidationError):
    code = "self_share"


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(LunaError):
    """Reading or writing a persisted collection (or a storage subtree) failed."""

    code = "storage_error"
