"""
API request and response models for LunaTransfer REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the domain shape;
route handlers map between the two.

Resource paths are normalized here, before anything reaches the engine: the
engine trusts its path arguments and never re-checks for traversal.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import FileAccess, Group, GroupMember, SharedFile, User

# ---------------------------------------------------------------------------
# Path normalization
# ---------------------------------------------------------------------------


def normalize_resource_path(value: str) -> str:
    """Collapse a client path to "a/b/c" form and reject traversal.

    Backslashes become slashes, empty and "." segments are dropped, and any
    ".." segment is refused outright rather than resolved.
    """
    parts = [p for p in str(value).replace("\\", "/").split("/") if p not in ("", ".")]
    if not parts:
        raise ValueError("path must not be empty")
    if any(p == ".." for p in parts):
        raise ValueError("path must not contain '..' segments")
    return "/".join(parts)


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every exception handler."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=lambda: {"app": "ok"})


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=255)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    username: str
    role: str
    api_key: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserCreate(BaseModel):
    """Body for POST /auth/users and POST /auth/setup.

    role is passed through untouched; the store coerces unknown values to guest.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1, max_length=255)
    email: str = Field(default="", max_length=255)
    role: str = Field(default="user", max_length=30)


class UserResponse(BaseModel):
    username: str
    email: str
    role: str
    created_at: str
    last_login: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            username=user.username,
            email=user.email,
            role=user.role.value,
            created_at=user.created_at,
            last_login=user.last_login,
        )


class UserCreatedResponse(UserResponse):
    """Returned once at creation -- the only time the API key is shown unprompted."""

    api_key: str


class ApiKeyResponse(BaseModel):
    api_key: str


class MeResponse(BaseModel):
    username: str
    role: str
    auth_method: str


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


class GroupCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)


class GroupResponse(BaseModel):
    id: str
    name: str
    description: str
    created_by: str
    created_at: str

    @classmethod
    def from_group(cls, group: Group) -> "GroupResponse":
        return cls(
            id=group.id,
            name=group.name,
            description=group.description,
            created_by=group.created_by,
            created_at=group.created_at,
        )


class MemberAdd(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=64)
    role: str = Field(default="reader", max_length=30)


class MemberResponse(BaseModel):
    group_id: str
    username: str
    role: str
    added_by: str
    added_at: str

    @classmethod
    def from_member(cls, member: GroupMember) -> "MemberResponse":
        return cls(
            group_id=member.group_id,
            username=member.username,
            role=member.role.value,
            added_by=member.added_by,
            added_at=member.added_at,
        )


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


class ShareCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    file_path: str = Field(min_length=1, max_length=1024)
    source_group: str = Field(default="", max_length=64)
    target_group: str = Field(min_length=1, max_length=64)
    permission: str = Field(default="read", max_length=20)

    @field_validator("file_path")
    @classmethod
    def normalize_path(cls, value: str) -> str:
        return normalize_resource_path(value)


class ShareResponse(BaseModel):
    id: str
    source_path: str
    group_id: str
    source_group: str
    shared_by: str
    shared_at: str
    permission: str

    @classmethod
    def from_share(cls, share: SharedFile) -> "ShareResponse":
        return cls(
            id=share.id,
            source_path=share.source_path,
            group_id=share.group_id,
            source_group=share.source_group,
            shared_by=share.shared_by,
            shared_at=share.shared_at,
            permission=share.permission.value,
        )


# ---------------------------------------------------------------------------
# File access
# ---------------------------------------------------------------------------


class FileAccessSet(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    path: str = Field(min_length=1, max_length=1024)
    is_public: bool = False
    group_ids: list[str] = Field(default_factory=list, max_length=100)

    @field_validator("path")
    @classmethod
    def normalize_path(cls, value: str) -> str:
        return normalize_resource_path(value)


class FileAccessResponse(BaseModel):
    path: str
    owner: str
    is_public: bool
    group_ids: list[str]
    created_at: str

    @classmethod
    def from_rule(cls, rule: FileAccess) -> "FileAccessResponse":
        return cls(
            path=rule.path,
            owner=rule.owner,
            is_public=rule.is_public,
            group_ids=list(rule.group_ids),
            created_at=rule.created_at,
        )


class AccessCheckResponse(BaseModel):
    path: str
    allowed: bool
    via: Optional[str] = None  # "owner_rule" or "share" when allowed
