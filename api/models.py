"""
API request and response models for the game portal auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model carries hashed_password, reset tokens or any other
credential material; UserResponse.from_user() copies fields one by one.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints

from auth.models import User

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    user = "user"
    admin = "admin"


class AccountStatusEnum(str, Enum):
    active = "active"
    locked = "locked"
    suspended = "suspended"
    inactive = "inactive"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    correlation_id: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Only shape is validated here. Password strength is the policy's job so
    the caller gets every violated rule in one response, not a 422.
    """

    username: Annotated[str, StringConstraints(strip_whitespace=True)] = Field(
        min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$"
    )
    email: EmailStr
    # Never stripped: whitespace is a legal password character.
    password: str = Field(min_length=1, max_length=1024)
    bio: Optional[Annotated[str, StringConstraints(strip_whitespace=True)]] = Field(default=None, max_length=2000)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login. identifier is a username or email."""

    identifier: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=1024)


class PasswordCheckRequest(BaseModel):
    password: str = Field(max_length=1024)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=1, max_length=1024)


class ProfileUpdate(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[EmailStr] = None
    bio: Optional[str] = Field(default=None, max_length=2000)


class UserStatusPatch(BaseModel):
    status: AccountStatusEnum


class UserRolePatch(BaseModel):
    role: RoleEnum


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str
    account_status: str
    failed_login_attempts: int
    last_login: Optional[str] = None
    bio: Optional[str] = None
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role=str(user.role.value if isinstance(user.role, Enum) else user.role),
            account_status=str(
                user.account_status.value if isinstance(user.account_status, Enum) else user.account_status
            ),
            failed_login_attempts=user.failed_login_attempts,
            last_login=user.last_login,
            bio=user.bio,
            created_at=user.created_at or "",
        )


class LoginResponse(BaseModel):
    """Response for login and register. access_token is also set as an httpOnly cookie."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse
    permissions: list[str]


class PasswordStrengthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    errors: list[str]
    strength: int
    strength_label: str


class GeneratedPasswordResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    password: str
    strength: int
    strength_label: str


class TokenValidResponse(BaseModel):
    """Response for GET /api/v1/auth/reset-password/{token}. Reveals nothing about the owner."""

    model_config = ConfigDict(frozen=True)

    valid: bool = True


class MarkInactiveResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    marked_inactive: int
