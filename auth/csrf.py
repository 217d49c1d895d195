"""
auth/csrf.py -- Anti-forgery token store.

Tokens are random bearer values (secrets.token_hex(16), 128 bits) with a 24h
lifetime. They are not derived from the session; what ties a token to a caller
is the optional user_id recorded at issue time:

  - token issued to an anonymous response   -> accepted from any caller
  - token issued to user N's response       -> accepted only from user N

That keeps a token from being replayed across accounts while still letting the
first mutating request after login use the token handed out with the login
response (issued before any session existed).

The request/response wiring (header + cookie on every response, enforcement on
unsafe methods, exempt paths) lives in api/main.py; this module only owns
state. All access to the map goes through one lock; sweep() keeps the critical
section to a snapshot copy and per-key deletes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable

from auth.models import CsrfTokenEntry

logger = logging.getLogger("gameportal.csrf")

CSRF_HEADER = "X-CSRF-Token"
CSRF_COOKIE = "csrf_token"
CSRF_BODY_FIELD = "_csrf"


class CsrfTokenStore:
    """Thread-safe in-memory CSRF token registry."""

    def __init__(self, ttl_seconds: int = 24 * 3600, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CsrfTokenEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def issue(self, user_id: int | None = None) -> str:
        token = secrets.token_hex(16)
        entry = CsrfTokenEntry(expires_at=self._clock() + self.ttl_seconds, user_id=user_id)
        with self._lock:
            self._entries[token] = entry
        return token

    def validate(self, token: str | None, user_id: int | None = None) -> bool:
        """Return True if token is live and usable by user_id.

        An expired token is removed on sight. Validation does not consume the
        token -- it stays usable until expiry or an explicit clear.
        """
        if not token:
            return False
        now = self._clock()
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return False
            if entry.expires_at <= now:
                del self._entries[token]
                return False
            if entry.user_id is not None and entry.user_id != user_id:
                return False
        return True

    def clear(self, token: str | None) -> None:
        if token:
            with self._lock:
                self._entries.pop(token, None)

    def clear_user(self, user_id: int) -> int:
        """Drop every token bound to user_id (logout). Returns the number removed."""
        with self._lock:
            doomed = [t for t, e in self._entries.items() if e.user_id == user_id]
            for token in doomed:
                del self._entries[token]
        return len(doomed)

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            snapshot = list(self._entries.items())
        expired = [token for token, entry in snapshot if entry.expires_at <= now]
        removed = 0
        with self._lock:
            for token in expired:
                if self._entries.pop(token, None) is not None:
                    removed += 1
        if removed:
            logger.debug("Swept %d expired CSRF tokens", removed)
        return removed
