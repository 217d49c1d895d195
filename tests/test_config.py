"""
tests/test_config.py -- Unit tests for core/config.py.

Settings is instantiated directly (not through the cached get_settings())
so each test sees exactly the environment it sets up.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import MAX_SESSION_SECONDS, Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in ("SECRET_KEY", "DEBUG", "TOKEN_EXPIRE_SECONDS", "PASSWORD_MIN_LENGTH"):
        monkeypatch.delenv(name, raising=False)


class TestSecretKey:
    def test_debug_generates_key(self) -> None:
        settings = Settings(_env_file=None, debug=True)
        assert len(settings.secret_key) >= 32

    def test_production_requires_key(self) -> None:
        with pytest.raises(ValidationError, match="SECRET_KEY is required"):
            Settings(_env_file=None, debug=False)

    def test_short_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="at least 32"):
            Settings(_env_file=None, secret_key="short")

    def test_key_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("SECRET_KEY", "k" * 40)
        assert Settings(_env_file=None).secret_key == "k" * 40


class TestPolicyDefaults:
    def test_defaults_match_policy(self) -> None:
        settings = Settings(_env_file=None, debug=True)
        assert settings.lockout_max_attempts == 5
        assert settings.lockout_duration_seconds == 1800
        assert settings.reset_token_ttl_seconds == 3600
        assert settings.reset_request_cooldown_seconds == 900
        assert settings.reset_origin_limit == 3
        assert settings.csrf_token_ttl_seconds == 86400
        assert settings.inactivity_days == 90
        assert settings.token_expire_seconds == MAX_SESSION_SECONDS
        assert settings.api_rate_limit == "100 per 15 minutes"

    def test_token_lifetime_capped(self) -> None:
        with pytest.raises(ValidationError, match="TOKEN_EXPIRE_SECONDS"):
            Settings(_env_file=None, debug=True, token_expire_seconds=MAX_SESSION_SECONDS + 1)

    def test_min_length_cannot_exceed_max(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, debug=True, password_min_length=200)

    def test_list_fields_parse_json_env(self, monkeypatch) -> None:
        monkeypatch.setenv("EXTRA_COMMON_PASSWORDS", '["Gam3-Portal!"]')
        assert Settings(_env_file=None, debug=True).extra_common_passwords == ["Gam3-Portal!"]
