"""
auth/reset.py -- Password-reset token lifecycle.

Lifecycle: issue -> validate (any number of reads) -> consume (exactly once)
-> expire. A token never validates after consumption or past its expiry.

Security design decisions:
  Tokens: secrets.token_hex(32) -- 256 bits of entropy, 1 hour lifetime,
       stored on the User row. Issuing a token overwrites the previous one, so
       each user has at most one live token.

  Single use: consume() is one conditional UPDATE that re-checks token and
       expiry in its WHERE clause (UserStore.consume_reset_token). Two
       concurrent consumes cannot both succeed.

  Enumeration resistance: request_reset() answers every non-throttled
       request with the same message, and pads every such branch -- unknown
       email, recent token already outstanding, fresh token issued -- to the
       same randomized minimum duration. Response shape and latency therefore
       carry no information about whether the email exists.

  Throttling:
       per user   -- no new token while one issued < 15 minutes ago is live;
                     the caller still gets the generic answer.
       per origin -- at most 3 requests per hour per client address;
                     the 4th raises RateLimitExceeded (a distinct outcome).

  Email: the service never sends mail itself. It returns the message to send,
       and the route hands it to a background task so a mail failure cannot
       affect the response.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import math
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from auth.email import EmailMessage, password_changed_message, password_reset_message
from auth.errors import RateLimitExceeded, TokenExpiredOrInvalid, WeakPassword
from auth.hashing import CredentialHasher
from auth.models import User
from auth.password_policy import PasswordPolicy
from auth.store import UserStore, from_iso, utcnow

logger = logging.getLogger("gameportal.auth.reset")

GENERIC_RESET_MESSAGE = "If that email address is registered, a password reset link has been sent."


@dataclass(frozen=True)
class ResetRequestOutcome:
    """What request_reset() decided.

    message is the only part a route may show to the caller. email is the
    message to dispatch in the background, or None when nothing is sent.
    """

    message: str
    email: EmailMessage | None = None


class ResetOriginLimiter:
    """Sliding-window request counter per client address."""

    def __init__(self, limit: int = 3, window_seconds: int = 3600, clock: Callable[[], float] = time.monotonic) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def hit(self, origin: str) -> None:
        """Record one request; raise RateLimitExceeded if origin is over the cap."""
        now = self._clock()
        with self._lock:
            recent = [t for t in self._hits.get(origin, []) if now - t < self.window_seconds]
            if len(recent) >= self.limit:
                self._hits[origin] = recent
                retry_after = self.window_seconds - (now - recent[0])
                blocked = True
            else:
                recent.append(now)
                self._hits[origin] = recent
                blocked = False
        if blocked:
            logger.warning("Password reset requests from %s exceeded %d/window", origin, self.limit)
            raise RateLimitExceeded(
                retry_after=math.ceil(retry_after),
                message="Too many password reset requests. Try again later.",
            )

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            snapshot = list(self._hits.items())
        stale = [origin for origin, hits in snapshot if not hits or now - hits[-1] >= self.window_seconds]
        removed = 0
        with self._lock:
            for origin in stale:
                hits = self._hits.get(origin)
                if hits is not None and (not hits or now - hits[-1] >= self.window_seconds):
                    del self._hits[origin]
                    removed += 1
        return removed


class PasswordResetService:
    """Issues, validates and consumes password-reset tokens.

    Usage:
        outcome = service.request_reset("ana@example.com", origin="203.0.113.7")
        user = service.validate(token)
        service.consume(token, "N3w-Secret!x")
    """

    def __init__(
        self,
        store: UserStore,
        hasher: CredentialHasher,
        policy: PasswordPolicy,
        origin_limiter: ResetOriginLimiter,
        app_url: str = "http://localhost:5000",
        token_ttl: timedelta = timedelta(hours=1),
        cooldown: timedelta = timedelta(minutes=15),
        min_delay_seconds: float = 1.0,
        delay_jitter_seconds: float = 1.0,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.policy = policy
        self.origin_limiter = origin_limiter
        self.app_url = app_url.rstrip("/")
        self.token_ttl = token_ttl
        self.cooldown = cooldown
        self.min_delay_seconds = min_delay_seconds
        self.delay_jitter_seconds = delay_jitter_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = secrets.SystemRandom()

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def request_reset(self, email: str, origin: str | None = None) -> ResetRequestOutcome:
        """Handle a forgot-password request without revealing whether email exists."""
        if origin:
            self.origin_limiter.hit(origin)

        started = time.monotonic()
        outcome = ResetRequestOutcome(message=GENERIC_RESET_MESSAGE)
        user = self.store.get_by_email(email)
        if user is None:
            logger.info("Password reset requested for unknown email")
        elif self.has_recent_token(user):
            logger.warning("Password reset for user %s suppressed: recent token still live", user.id)
        else:
            token = self.issue(user)
            outcome = ResetRequestOutcome(
                message=GENERIC_RESET_MESSAGE,
                email=password_reset_message(user.username, user.email, self.reset_url(token)),
            )

        self._pad_duration(started)
        return outcome

    def issue(self, user: User) -> str:
        """Generate and store a fresh token for user, replacing any prior one."""
        token = secrets.token_hex(32)
        self.store.set_password_reset_token(user.id, token, self._clock() + self.token_ttl)
        logger.info("Password reset token issued for user %s", user.id)
        return token

    def has_recent_token(self, user: User) -> bool:
        """True if user holds a live token issued less than cooldown ago."""
        expires = from_iso(user.password_reset_expires)
        if not user.password_reset_token or expires is None:
            return False
        now = self._clock()
        issued_at = expires - self.token_ttl
        return now < expires and now - issued_at < self.cooldown

    def reset_url(self, token: str) -> str:
        return f"{self.app_url}/reset-password?token={token}"

    def _pad_duration(self, started: float) -> None:
        target = self.min_delay_seconds + self._rng.uniform(0, self.delay_jitter_seconds)
        remaining = target - (time.monotonic() - started)
        if remaining > 0:
            self._sleep(remaining)

    # ------------------------------------------------------------------
    # Validate / consume
    # ------------------------------------------------------------------

    def validate(self, token: str) -> User:
        """Return the token's owner if token is live. Idempotent; does not consume."""
        user = self.store.get_by_reset_token(token)
        if user is None or user.password_reset_token != token:
            raise TokenExpiredOrInvalid()
        expires = from_iso(user.password_reset_expires)
        if expires is None or self._clock() >= expires:
            raise TokenExpiredOrInvalid()
        return user

    def consume(self, token: str, new_password: str) -> tuple[User, EmailMessage]:
        """Set a new password with token, exactly once.

        Returns the updated user and the confirmation message to dispatch.
        Raises TokenExpiredOrInvalid or WeakPassword.
        """
        user = self.validate(token)

        result = self.policy.validate(new_password)
        if not result.is_valid:
            raise WeakPassword(result.errors, self.policy.score(new_password), self.policy.classify(new_password))

        hashed = self.hasher.hash(new_password)
        if not self.store.consume_reset_token(user.id, token, hashed, self._clock()):
            # Lost a race with another consume, or expired between the two reads.
            raise TokenExpiredOrInvalid()

        logger.info("Password reset completed for user %s", user.id)
        updated = self.store.get_by_id(user.id) or user
        return updated, password_changed_message(updated.username, updated.email)
