"""
auth/errors.py -- Outcome taxonomy for the auth subsystem.

Every expected failure on the authentication path is an AuthError subclass.
They are recoverable-by-caller outcomes: api/main.py renders them into the
standard ErrorResponse envelope with the status code carried here. Anything
that is NOT an AuthError (store unavailable, hashing primitive failure) is an
internal error and goes through the generic 500 handler instead.

Messages touching account existence are deliberately generic. Lockout and
password-strength messages are specific because the user can act on them.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. Subclasses set code, status_code and a default message."""

    code = "auth_error"
    status_code = 400
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_detail(self) -> dict:
        """Return the error payload placed under the envelope's "error" key."""
        return {"code": self.code, "message": self.message}


class InvalidCredentials(AuthError):
    """Wrong password or unknown identity -- the two are indistinguishable."""

    code = "invalid_credentials"
    status_code = 401
    message = "Invalid username or password."


class AccountLocked(AuthError):
    code = "account_locked"
    status_code = 403

    def __init__(self, remaining_minutes: int) -> None:
        self.remaining_minutes = remaining_minutes
        super().__init__(
            "Account locked after repeated failed login attempts. "
            f"Try again in {remaining_minutes} minute{'s' if remaining_minutes != 1 else ''}."
        )

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["remaining_minutes"] = self.remaining_minutes
        return detail


class AccountSuspended(AuthError):
    code = "account_suspended"
    status_code = 403
    message = "This account has been suspended. Contact an administrator."


class AccountInactive(AuthError):
    code = "account_inactive"
    status_code = 403
    message = "This account is inactive due to lack of use. Reset your password to reactivate it."


class UnauthorizedAccess(AuthError):
    code = "unauthorized"
    status_code = 401
    message = "Authentication required."


class ForbiddenAccess(AuthError):
    code = "forbidden"
    status_code = 403
    message = "You do not have permission to access this resource."


class CsrfValidationFailed(AuthError):
    code = "csrf_failed"
    status_code = 403
    message = "Missing or invalid CSRF token."


class TokenExpiredOrInvalid(AuthError):
    """Reset token unknown, expired or already used. No finer detail is given."""

    code = "invalid_token"
    status_code = 400
    message = "Invalid or expired token."


class RateLimitExceeded(AuthError):
    code = "rate_limited"
    status_code = 429
    message = "Too many requests. Try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = max(1, int(retry_after))
        super().__init__(message)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["retry_after"] = self.retry_after
        return detail


class WeakPassword(AuthError):
    """Password rejected by the policy. Lists every violated rule."""

    code = "weak_password"
    status_code = 400
    message = "The password does not meet the security requirements."

    def __init__(self, errors: list[str], strength: int, strength_label: str) -> None:
        self.errors = list(errors)
        self.strength = strength
        self.strength_label = strength_label
        super().__init__()

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["details"] = self.errors
        detail["strength"] = self.strength
        detail["strength_label"] = self.strength_label
        return detail
