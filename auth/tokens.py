"""
auth/tokens.py -- Session token issuance, verification and revocation.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, username (sub), email, role, iat, exp and a random jti.
       Password material -- raw or hashed -- is never placed in a token.
       decode() returns None on any failure (bad signature, malformed, wrong
       claim types, expired, revoked); the dependency layer turns None into
       a 401.

  Lifetime: at most 7 days. Settings rejects a longer TOKEN_EXPIRE_SECONDS,
       and the constructor clamps again so a hand-built manager cannot exceed
       the cap either.

  Expiry is checked against the injected clock rather than by python-jose,
       so tests can move time without sleeping.

  Logout: a signed token has no server-side session to destroy. revoke()
       records the jti in an in-process deny-list until the token's own
       expiry, and the route clears the cookie. The deny-list is per process:
       another instance behind a load balancer would still accept the token
       until it expires (known limitation).

  Cookie: httpOnly (no JS access), SameSite=Lax, Secure when SECURE_COOKIES
       is set, max_age equal to the token lifetime so both expire together.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import Role, User
from auth.store import utcnow
from core.config import MAX_SESSION_SECONDS

logger = logging.getLogger("gameportal.auth.tokens")

_ALGORITHM = "HS256"
AUTH_COOKIE = "access_token"


@dataclass(frozen=True)
class SessionClaims:
    user_id: int
    username: str
    email: str
    role: Role
    jti: str
    expires_at: datetime


class SessionTokenManager:
    """Issues and verifies signed session tokens.

    Usage:
        tokens = SessionTokenManager(settings.secret_key)
        token = tokens.issue(user)
        claims = tokens.decode(token)      # SessionClaims or None
        tokens.revoke(claims)              # logout
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = MAX_SESSION_SECONDS,
        secure_cookies: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._secret_key = secret_key
        self.expire_seconds = max(1, min(expire_seconds, MAX_SESSION_SECONDS))
        self.secure_cookies = secure_cookies
        self._clock = clock
        self._revoked: dict[str, float] = {}  # jti -> exp (epoch seconds)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Encode / decode
    # ------------------------------------------------------------------

    def issue(self, user: User) -> str:
        """Encode a signed token for an authenticated user."""
        now = self._clock()
        payload = {
            "sub": user.username,
            "user_id": user.id,
            "email": user.email,
            "role": Role(user.role).value,
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(seconds=self.expire_seconds)).timestamp()),
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def decode(self, token: str | None) -> SessionClaims | None:
        """Verify a token and return its claims, or None on any failure."""
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

        try:
            claims = SessionClaims(
                user_id=int(payload["user_id"]),
                username=str(payload["sub"]),
                email=str(payload["email"]),
                role=Role(payload["role"]),
                jti=str(payload["jti"]),
                expires_at=datetime.fromtimestamp(float(payload["exp"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError):
            return None

        if self._clock() >= claims.expires_at:
            return None
        if self.is_revoked(claims.jti):
            return None
        return claims

    # ------------------------------------------------------------------
    # Revocation (logout)
    # ------------------------------------------------------------------

    def revoke(self, claims: SessionClaims) -> None:
        with self._lock:
            self._revoked[claims.jti] = claims.expires_at.timestamp()
        logger.info("Session %s revoked for user %s", claims.jti[:8], claims.user_id)

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            return jti in self._revoked

    def sweep(self) -> int:
        """Forget revoked jtis whose token has expired anyway."""
        now = self._clock().timestamp()
        with self._lock:
            snapshot = list(self._revoked.items())
        expired = [jti for jti, exp in snapshot if exp <= now]
        with self._lock:
            for jti in expired:
                self._revoked.pop(jti, None)
        return len(expired)

    # ------------------------------------------------------------------
    # Cookie helpers
    # ------------------------------------------------------------------

    def set_cookie(self, response, token: str) -> None:
        """Write the session token as an httpOnly cookie on the response."""
        response.set_cookie(
            AUTH_COOKIE,
            value=token,
            httponly=True,
            samesite="lax",
            secure=self.secure_cookies,
            max_age=self.expire_seconds,
        )

    def clear_cookie(self, response) -> None:
        response.delete_cookie(AUTH_COOKIE, httponly=True, samesite="lax", secure=self.secure_cookies)
