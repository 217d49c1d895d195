"""
auth/lockout.py -- Brute-force protection for password logins.

Two independent layers:

  AccountLockoutEngine -- per-account state machine persisted on the User row.
      active --(5th consecutive failure)--> locked
      locked --(30 minutes after the lock reference time)--> active, counter 0
      suspended / inactive --> never auto-clear; rejected before the password
      check. Only an admin action or a completed password reset moves them.

  OriginAttemptTracker -- per-client-address counter kept in process memory.
      Slows credential stuffing that spreads guesses across many accounts:
      5 failures from one address inside the retention window lock that
      address for 30 minutes regardless of the targeted account. Guarded by a
      lock; sweep() bounds memory and runs from the background timer.

authenticate() is the single entry point for password logins. Do NOT inline
store lookups + hasher.verify() in a route -- that loses timing equalization
[C1] and the lockout bookkeeping.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta

from auth.errors import AccountInactive, AccountLocked, AccountSuspended, InvalidCredentials, RateLimitExceeded
from auth.hashing import CredentialHasher
from auth.models import AccountStatus, LoginAttemptRecord, User
from auth.store import UserStore, from_iso, utcnow

logger = logging.getLogger("gameportal.auth.lockout")


def _ceil_minutes(seconds: float) -> int:
    return max(1, math.ceil(seconds / 60))


# ---------------------------------------------------------------------------
# Per-origin tracker
# ---------------------------------------------------------------------------


class OriginAttemptTracker:
    """Thread-safe failed-login counters keyed by client address."""

    def __init__(
        self,
        max_attempts: int = 5,
        lock_seconds: int = 30 * 60,
        window_seconds: int = 30 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_attempts = max_attempts
        self.lock_seconds = lock_seconds
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: dict[str, LoginAttemptRecord] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def check(self, origin: str) -> None:
        """Raise RateLimitExceeded while origin is locked; clear an elapsed lock."""
        now = self._clock()
        with self._lock:
            record = self._records.get(origin)
            if record is None or not record.locked:
                return
            elapsed = now - record.last_attempt
            if elapsed >= self.lock_seconds:
                del self._records[origin]
                return
            remaining = self.lock_seconds - elapsed
        raise RateLimitExceeded(
            retry_after=math.ceil(remaining),
            message=(
                "Too many failed login attempts from this address. "
                f"Try again in {_ceil_minutes(remaining)} minutes."
            ),
        )

    def record_failure(self, origin: str) -> bool:
        """Count one failure for origin. Returns True if origin is now locked."""
        now = self._clock()
        with self._lock:
            record = self._records.get(origin)
            if record is None or (not record.locked and now - record.last_attempt >= self.window_seconds):
                record = LoginAttemptRecord(count=0, last_attempt=now)
                self._records[origin] = record
            if record.locked:
                return True
            record.count += 1
            record.last_attempt = now
            if record.count >= self.max_attempts:
                record.locked = True
                logger.warning("Origin %s locked after %d failed logins", origin, record.count)
            return record.locked

    def reset(self, origin: str) -> None:
        with self._lock:
            self._records.pop(origin, None)

    def _is_stale(self, record: LoginAttemptRecord, now: float) -> bool:
        age = now - record.last_attempt
        return age >= (self.lock_seconds if record.locked else self.window_seconds)

    def sweep(self) -> int:
        """Drop records whose lock or retention window has elapsed.

        The expiry scan runs on a snapshot outside the lock; deletion re-checks
        each candidate under the lock so a record refreshed meanwhile survives.
        """
        now = self._clock()
        with self._lock:
            snapshot = list(self._records.items())
        stale = [origin for origin, record in snapshot if self._is_stale(record, now)]
        removed = 0
        with self._lock:
            for origin in stale:
                record = self._records.get(origin)
                if record is not None and self._is_stale(record, now):
                    del self._records[origin]
                    removed += 1
        return removed


# ---------------------------------------------------------------------------
# Per-account engine
# ---------------------------------------------------------------------------


class AccountLockoutEngine:
    """Password authentication with per-account and per-origin lockout.

    Usage:
        engine = AccountLockoutEngine(store, hasher, OriginAttemptTracker())
        user = engine.authenticate("ana@example.com", "Tr0ub4dor!9", origin="203.0.113.7")
    """

    def __init__(
        self,
        store: UserStore,
        hasher: CredentialHasher,
        origins: OriginAttemptTracker,
        max_attempts: int = 5,
        lock_duration: timedelta = timedelta(minutes=30),
        inactivity_days: int = 90,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.origins = origins
        self.max_attempts = max_attempts
        self.lock_duration = lock_duration
        self.inactivity_days = inactivity_days
        self._clock = clock

    def find_user(self, identifier: str) -> User | None:
        """Resolve a login identifier: anything containing '@' is an email."""
        identifier = (identifier or "").strip()
        if not identifier:
            return None
        if "@" in identifier:
            return self.store.get_by_email(identifier)
        return self.store.get_by_username(identifier)

    def lock_expiry(self, user: User) -> datetime | None:
        reference = from_iso(user.last_login)
        if reference is None:
            return None
        return reference + self.lock_duration

    def authenticate(self, identifier: str, password: str, origin: str | None = None) -> User:
        """Verify a password login and apply every lockout rule.

        Returns the (refreshed) User on success. Raises InvalidCredentials,
        AccountLocked, AccountSuspended, AccountInactive or RateLimitExceeded.
        """
        now = self._clock()
        user = self.find_user(identifier)
        # Account state is reported before the origin check so a locked
        # account always answers AccountLocked, whichever address asks.
        if user is not None:
            user = self._ensure_can_authenticate(user, now)

        if origin:
            self.origins.check(origin)

        if user is None:
            # Equalize timing -- do NOT return before running the hasher [C1]
            self.hasher.dummy_verify(password)
            self._record_origin_failure(origin)
            raise InvalidCredentials()

        if not self.hasher.verify(password, user.hashed_password):
            self._record_origin_failure(origin)
            attempts = self.store.increment_failed_attempts(user.id)
            if attempts >= self.max_attempts:
                self.store.lock_account(user.id, now)
                logger.warning("Account %s locked after %d failed logins", user.id, attempts)
                raise AccountLocked(remaining_minutes=_ceil_minutes(self.lock_duration.total_seconds()))
            raise InvalidCredentials()

        self.store.record_successful_login(user.id, now)
        if origin:
            self.origins.reset(origin)
        if self.hasher.needs_rehash(user.hashed_password):
            self.store.update_password_hash(user.id, self.hasher.hash(password))
            logger.info("Upgraded password hash parameters for user %s", user.id)
        return self.store.get_by_id(user.id) or user

    def _ensure_can_authenticate(self, user: User, now: datetime) -> User:
        """Reject non-active accounts; auto-clear a lock whose window has passed."""
        if user.account_status == AccountStatus.LOCKED:
            expiry = self.lock_expiry(user)
            if expiry is not None and now < expiry:
                remaining = (expiry - now).total_seconds()
                raise AccountLocked(remaining_minutes=_ceil_minutes(remaining))
            self.store.unlock_account(user.id)
            logger.info("Lock on account %s expired; restored to active", user.id)
            user.account_status = AccountStatus.ACTIVE
            user.failed_login_attempts = 0
        elif user.account_status == AccountStatus.SUSPENDED:
            raise AccountSuspended()
        elif user.account_status == AccountStatus.INACTIVE:
            raise AccountInactive()
        return user

    def _record_origin_failure(self, origin: str | None) -> None:
        if origin:
            self.origins.record_failure(origin)

    # ------------------------------------------------------------------
    # Administrative transitions and batch jobs
    # ------------------------------------------------------------------

    def unlock(self, user_id: int) -> bool:
        """Administrative reset: active status and a zeroed counter."""
        return self.store.unlock_account(user_id)

    def set_status(self, user_id: int, status: AccountStatus) -> bool:
        """Explicit status transition. Moving to active also clears the counter."""
        status = AccountStatus(status)
        if status == AccountStatus.ACTIVE:
            return self.store.unlock_account(user_id)
        if status == AccountStatus.LOCKED:
            return self.store.lock_account(user_id, self._clock())
        return self.store.update_account_status(user_id, status)

    def mark_inactive_accounts(self) -> int:
        """Mark active accounts idle for longer than inactivity_days as inactive."""
        cutoff = self._clock() - timedelta(days=self.inactivity_days)
        changed = self.store.mark_inactive_accounts(cutoff)
        if changed:
            logger.info("Marked %d idle accounts inactive (cutoff %s)", changed, cutoff.isoformat())
        return changed
