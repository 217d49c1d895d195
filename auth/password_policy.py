"""
auth/password_policy.py -- Password quality rules, scoring and suggestions.

validate() is the gate used by registration and password reset. score() and
classify() drive the strength meter returned alongside validation errors.
generate() suggests a compliant password; it is never assigned to an account
without the user choosing it.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Iterable
from dataclasses import dataclass, field

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")

DEFAULT_COMMON_PASSWORDS: frozenset[str] = frozenset(
    {
        "123456", "123456789", "qwerty", "password", "12345", "qwerty123",
        "1q2w3e", "12345678", "111111", "1234567890", "senha", "admin",
        "welcome", "monkey", "login", "abc123", "starwars", "123123",
        "dragon", "passw0rd", "master", "hello", "freedom", "whatever",
        # Portuguese variants -- the portal's main audience
        "senha123", "administrador", "123mudar", "adminadmin", "usuario",
        "controle", "futebol", "flamengo", "corinthians", "palmeiras",
        "brasil", "102030", "bemvindo", "portugal", "mudar123",
    }
)  # fmt: skip

# Horizontal rows, vertical columns and diagonals of a US keyboard, plus plain
# numeric/alphabetic runs. Any 3-character window of these is a pattern.
_KEYBOARD_SEQUENCES = (
    "qwertyuiop", "asdfghjkl", "zxcvbnm",
    "qazwsx", "wsxedc", "edcrfv", "rfvtgb", "tgbyhn", "yhnujm",
    "1qaz", "2wsx", "3edc", "4rfv", "5tgb", "6yhn", "7ujm",
    "123456789", "987654321", "abcdefghijklmnopqrstuvwxyz",
)  # fmt: skip

_KEYBOARD_TRIPLES: frozenset[str] = frozenset(seq[i : i + 3] for seq in _KEYBOARD_SEQUENCES for i in range(len(seq) - 2))

_LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
_UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_DIGITS = "0123456789"
_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


class PasswordPolicy:
    """Rule- and heuristic-based password quality checks.

    Usage:
        policy = PasswordPolicy()
        policy.validate("abc").errors        # every violated rule
        policy.score("Tr0ub4dor!9")          # 0..100
        policy.classify("Tr0ub4dor!9")       # "medium"
    """

    def __init__(
        self,
        min_length: int = 8,
        max_length: int = 100,
        additional_common_passwords: Iterable[str] = (),
    ) -> None:
        self.min_length = min_length
        self.max_length = max_length
        self._common = set(DEFAULT_COMMON_PASSWORDS)
        self._common.update(p.lower() for p in additional_common_passwords)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def validate(self, password: str) -> ValidationResult:
        """Check password against every rule and report all violations at once."""
        errors: list[str] = []

        if not password or len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long.")
        if password and len(password) > self.max_length:
            errors.append(f"Password cannot be longer than {self.max_length} characters.")

        if password:
            if not _UPPER.search(password):
                errors.append("Password must contain at least one uppercase letter.")
            if not _LOWER.search(password):
                errors.append("Password must contain at least one lowercase letter.")
            if not _DIGIT.search(password):
                errors.append("Password must contain at least one number.")
            if not _SYMBOL.search(password):
                errors.append("Password must contain at least one special character.")
            if self.is_common(password):
                errors.append("This password is too common and easy to guess. Choose a more unique one.")
            if self.has_simple_pattern(password):
                errors.append("Avoid simple patterns such as keyboard sequences, runs or repeated characters.")

        return ValidationResult(is_valid=not errors, errors=errors)

    def is_common(self, password: str) -> bool:
        return password.lower() in self._common

    def has_simple_pattern(self, password: str) -> bool:
        """Detect keyboard sequences, triple repeats and 3-char codepoint runs."""
        lowered = password.lower()
        for i in range(len(lowered) - 2):
            window = lowered[i : i + 3]
            if window in _KEYBOARD_TRIPLES:
                return True
            a, b, c = (ord(ch) for ch in window)
            if a == b == c:
                return True
            if b - a == c - b and abs(b - a) == 1:
                return True
        return False

    # ------------------------------------------------------------------
    # Strength meter
    # ------------------------------------------------------------------

    def score(self, password: str) -> int:
        """Return a 0-100 strength score."""
        if not password:
            return 0

        score = min(30, len(password) * 2)
        for pattern in (_UPPER, _LOWER, _DIGIT, _SYMBOL):
            if pattern.search(password):
                score += 10

        if self.is_common(password):
            score -= 30
        if self.has_simple_pattern(password):
            score -= 20
        duplicates = len(password) - len(set(password))
        score -= min(10, duplicates * 2)

        return max(0, min(100, score))

    def classify(self, password: str) -> str:
        score = self.score(password)
        if score < 30:
            return "very weak"
        if score < 50:
            return "weak"
        if score < 75:
            return "medium"
        if score < 90:
            return "strong"
        return "very strong"

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def generate(self) -> str:
        """Return a random 12-16 character password that passes validate().

        One character from each class is placed first, the rest is filled from
        the union, then the whole is shuffled with a CSPRNG. A random fill can
        still land on a pattern, so candidates are drawn until one is valid.
        """
        rng = secrets.SystemRandom()
        alphabet = _LOWERCASE + _UPPERCASE + _DIGITS + _SYMBOLS
        length = max(self.min_length, 12 + rng.randrange(5))
        length = min(length, self.max_length)
        while True:
            chars = [
                rng.choice(_LOWERCASE),
                rng.choice(_UPPERCASE),
                rng.choice(_DIGITS),
                rng.choice(_SYMBOLS),
            ]
            chars.extend(rng.choice(alphabet) for _ in range(length - len(chars)))
            rng.shuffle(chars)
            candidate = "".join(chars)
            if self.validate(candidate).is_valid:
                return candidate
