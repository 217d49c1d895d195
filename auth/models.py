"""
auth/models.py -- Domain dataclasses and enums for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores, engines and routes do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    """Mirrors users.account_status.

    Only ACTIVE accounts may authenticate. LOCKED clears itself after the
    lockout window; SUSPENDED and INACTIVE need an explicit transition
    (admin action or a completed password reset).
    """

    ACTIVE = "active"
    LOCKED = "locked"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


@dataclass
class User:
    """A portal account as seen by the auth subsystem.

    email is stored lower-cased so uniqueness is case-insensitive.
    hashed_password is an Argon2id PHC string and must never leave the
    server -- response models and session claims are built field by field.

    last_login doubles as the lockout reference time: when the account is
    locked, it holds the moment the lock was applied.

    password_reset_token / password_reset_expires are set and cleared
    together (see UserStore.set_password_reset_token / consume_reset_token).
    """

    username: str
    email: str
    hashed_password: str
    role: Role = Role.USER
    id: int | None = None
    account_status: AccountStatus = AccountStatus.ACTIVE
    failed_login_attempts: int = 0
    last_login: str | None = None  # ISO 8601 UTC
    password_reset_token: str | None = None
    password_reset_expires: str | None = None  # ISO 8601 UTC
    last_password_reset: str | None = None  # ISO 8601 UTC
    bio: str | None = None
    created_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.account_status == AccountStatus.ACTIVE


@dataclass
class LoginAttemptRecord:
    """Failed-login bookkeeping for one client address. Process-local only."""

    count: int
    last_attempt: float  # epoch seconds
    locked: bool = False


@dataclass
class CsrfTokenEntry:
    expires_at: float  # epoch seconds
    user_id: int | None = None
