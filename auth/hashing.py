"""
auth/hashing.py -- One-way password hashing with Argon2id.

Security design decisions:
  Algorithm: Argon2id via argon2-cffi. Memory-hard, so GPU/ASIC brute force of
       a leaked hash table is expensive. Default cost: 19 MiB memory, time
       cost 2, parallelism 1 -- a single verify stays well under a second.

  Format: hash() returns the PHC string
       $argon2id$v=19$m=19456,t=2,p=1$<salt>$<digest>
       so every stored record carries its own algorithm, cost and salt.
       verify() reads parameters from the record, not from this instance,
       which keeps old hashes valid after a cost change. needs_rehash() tells
       the login path when to upgrade a stored record.

  Fail closed: verify() returns False for a mismatch, a malformed record or
       any internal argon2 error. Callers only ever see "failed".

  Timing equalization [C1]: dummy_verify() burns one verification against a
       fixed hash so a login for an unknown identity costs the same as a
       login with a wrong password.

  Latency: hashing is the expensive step of every auth request. Routes that
       call into this module are plain `def` handlers so FastAPI runs them in
       its worker thread pool instead of on the event loop.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerifyMismatchError

logger = logging.getLogger("gameportal.auth.hashing")


class CredentialHasher:
    """Argon2id hasher constructed once at startup and shared by reference.

    Usage:
        hasher = CredentialHasher()
        record = hasher.hash("Tr0ub4dor!9")
        hasher.verify("Tr0ub4dor!9", record)   # True
    """

    def __init__(self, memory_cost: int = 19456, time_cost: int = 2, parallelism: int = 1) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )
        # Computed once so the first unknown-user login is not measurably
        # slower than later ones.
        self._dummy_hash = self._hasher.hash("gameportal_timing_dummy")

    def hash(self, password: str) -> str:
        """Return a salted Argon2id PHC string for password.

        Raises argon2.exceptions.HashingError on a primitive failure; that is
        an internal error, not an auth outcome.
        """
        return self._hasher.hash(password)

    def verify(self, password: str, hash_record: str | None) -> bool:
        """Return True only if password matches hash_record."""
        if not hash_record:
            return False
        try:
            return self._hasher.verify(hash_record, password)
        except VerifyMismatchError:
            return False
        except InvalidHash:
            logger.warning("Stored password hash is malformed; treating as mismatch")
            return False
        except Exception:
            logger.exception("Password verification failed unexpectedly; treating as mismatch")
            return False

    def needs_rehash(self, hash_record: str) -> bool:
        """Return True if hash_record was produced with different cost parameters."""
        try:
            return self._hasher.check_needs_rehash(hash_record)
        except InvalidHash:
            return True

    def dummy_verify(self, password: str) -> None:
        """Spend one verification's worth of time without revealing anything [C1]."""
        self.verify(password, self._dummy_hash)
