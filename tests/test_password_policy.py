"""
tests/test_password_policy.py -- Unit tests for auth/password_policy.py.

Coverage:
  - validate(): every rule reported at once, boundaries, common list, patterns
  - has_simple_pattern(): keyboard rows/columns, repeats, codepoint runs
  - score() / classify(): component weights and label thresholds
  - generate(): output always passes validate()
"""

from __future__ import annotations

import pytest

from auth.password_policy import PasswordPolicy


@pytest.fixture
def policy() -> PasswordPolicy:
    return PasswordPolicy()


class TestValidate:
    def test_weak_password_lists_every_violation(self, policy: PasswordPolicy) -> None:
        result = policy.validate("abc")
        assert result.is_valid is False
        joined = " ".join(result.errors)
        assert "at least 8 characters" in joined
        assert "uppercase" in joined
        assert "number" in joined
        assert "special character" in joined
        assert "patterns" in joined
        assert len(result.errors) == 5

    @pytest.mark.parametrize("password", ["Tr0ub4dor!9", "correct-Horse1!", "Passw0rd!"])
    def test_strong_passwords_pass(self, policy: PasswordPolicy, password: str) -> None:
        result = policy.validate(password)
        assert result.is_valid, result.errors
        assert result.errors == []

    def test_empty_password(self, policy: PasswordPolicy) -> None:
        result = policy.validate("")
        assert result.is_valid is False
        assert result.errors == ["Password must be at least 8 characters long."]

    def test_length_boundaries(self, policy: PasswordPolicy) -> None:
        assert policy.validate("Tr0b4d!").is_valid is False  # 7 chars
        assert policy.validate("Tr0b4d!x").is_valid is True  # 8 chars
        long_ok = "Tr0b4d!x" + "Zq8#Wm2%" * 11 + "Lp5&"  # 100 chars
        assert len(long_ok) == 100
        assert policy.validate(long_ok).is_valid is True
        assert "longer than 100" in " ".join(policy.validate(long_ok + "K").errors)

    def test_common_password_case_insensitive(self) -> None:
        policy = PasswordPolicy(min_length=1)
        assert policy.is_common("PASSWORD")
        assert policy.is_common("Senha123")
        assert any("too common" in e for e in policy.validate("Passw0rd").errors)

    def test_additional_common_passwords(self) -> None:
        policy = PasswordPolicy(additional_common_passwords=["Gam3-Portal!"])
        assert policy.is_common("gam3-portal!")
        assert policy.validate("Gam3-Portal!").is_valid is False

    def test_whitespace_is_a_symbol(self, policy: PasswordPolicy) -> None:
        assert policy.validate("Tr0ub4dor 9").is_valid is True


class TestSimplePatterns:
    @pytest.mark.parametrize(
        "password",
        [
            "xQwErx",  # horizontal keyboard row, mixed case
            "x1qazx",  # vertical column
            "xwsxx",  # column fragment
            "aaa",  # triple repeat
            "x!!!x",  # triple repeat of a symbol
            "x456x",  # ascending digits
            "x987x",  # descending digits
            "xCbAx",  # descending letters, mixed case
            "xyzab",  # ascending letters
        ],
    )
    def test_detected(self, policy: PasswordPolicy, password: str) -> None:
        assert policy.has_simple_pattern(password) is True

    @pytest.mark.parametrize("password", ["Tr0ub4dor!9", "correct-Horse1!", "x1x2x3", "aabb", "ace"])
    def test_not_detected(self, policy: PasswordPolicy, password: str) -> None:
        assert policy.has_simple_pattern(password) is False


class TestScore:
    def test_empty_scores_zero(self, policy: PasswordPolicy) -> None:
        assert policy.score("") == 0

    def test_length_and_classes(self, policy: PasswordPolicy) -> None:
        # 11 chars -> 22, four classes -> +40, one duplicate 'r' -> -2
        assert policy.score("Tr0ub4dor!9") == 60
        assert policy.classify("Tr0ub4dor!9") == "medium"

    def test_length_bonus_caps_at_30(self, policy: PasswordPolicy) -> None:
        # 20 distinct lowercase letters without runs: 30 + 10
        assert policy.score("qmzhwkdrtpxfvjbsnlgc") == 40

    def test_common_and_pattern_penalties(self, policy: PasswordPolicy) -> None:
        # "password": 16 + 10 - 30 - 2 (one duplicate 's'); no 3-char pattern
        assert policy.score("password") == 0
        # "abc": 6 + 10 - 20 -> clamped to 0
        assert policy.score("abc") == 0

    def test_duplicate_penalty_capped(self, policy: PasswordPolicy) -> None:
        # 12 chars, all 'a'/'b' alternating: 24 + 10, pattern-free, 10 dups -> -10
        assert policy.score("abababababab") == 24

    def test_score_ceiling_is_length_plus_classes(self, policy: PasswordPolicy) -> None:
        """Length caps at 30 and classes at 40, so no password scores above 70."""
        assert policy.score("Zq8#Wm2%Lp5&Xv7*") == 70
        assert policy.classify("Zq8#Wm2%Lp5&Xv7*") == "medium"

    @pytest.mark.parametrize(
        ("password", "label"),
        [
            ("abc", "very weak"),
            ("qmzhwkdrtpxfvjbsnlgc", "weak"),
            ("Tr0ub4dor!9", "medium"),
        ],
    )
    def test_classify_thresholds(self, policy: PasswordPolicy, password: str, label: str) -> None:
        assert policy.classify(password) == label


class TestGenerate:
    def test_generated_passwords_are_valid(self, policy: PasswordPolicy) -> None:
        for _ in range(50):
            password = policy.generate()
            assert 12 <= len(password) <= 16
            assert policy.validate(password).is_valid

    def test_generated_passwords_differ(self, policy: PasswordPolicy) -> None:
        assert len({policy.generate() for _ in range(20)}) == 20
