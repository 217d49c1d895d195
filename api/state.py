"""
api/state.py -- Builds the auth components and attaches them to app.state.

Lifespan (api/main.py), the CLI (main.py) and the test fixtures all call
init_auth_state() so every entry point wires the same object graph from the
same Settings. Routes and dependencies read components back from
request.app.state; nothing is a module-level global.
"""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace
from typing import Any

from auth.csrf import CsrfTokenStore
from auth.email import EmailSender, LoggingEmailSender
from auth.hashing import CredentialHasher
from auth.lockout import AccountLockoutEngine, OriginAttemptTracker
from auth.password_policy import PasswordPolicy
from auth.permissions import PermissionEngine
from auth.reset import PasswordResetService, ResetOriginLimiter
from auth.store import UserStore
from auth.tokens import SessionTokenManager
from core.config import Settings


def init_auth_state(
    state: Any,
    settings: Settings,
    user_store: UserStore,
    email_sender: EmailSender | None = None,
) -> Any:
    """Populate state (app.state or any attribute bag) and return it."""
    hasher = CredentialHasher(
        memory_cost=settings.argon2_memory_cost,
        time_cost=settings.argon2_time_cost,
        parallelism=settings.argon2_parallelism,
    )
    policy = PasswordPolicy(
        min_length=settings.password_min_length,
        max_length=settings.password_max_length,
        additional_common_passwords=settings.extra_common_passwords,
    )
    origins = OriginAttemptTracker(
        max_attempts=settings.origin_max_attempts,
        lock_seconds=settings.origin_lockout_seconds,
        window_seconds=settings.origin_lockout_seconds,
    )

    state.settings = settings
    state.user_store = user_store
    state.hasher = hasher
    state.password_policy = policy
    state.email_sender = email_sender or LoggingEmailSender()
    state.tokens = SessionTokenManager(
        settings.secret_key,
        expire_seconds=settings.token_expire_seconds,
        secure_cookies=settings.secure_cookies,
    )
    state.csrf = CsrfTokenStore(ttl_seconds=settings.csrf_token_ttl_seconds)
    state.origins = origins
    state.lockout = AccountLockoutEngine(
        user_store,
        hasher,
        origins,
        max_attempts=settings.lockout_max_attempts,
        lock_duration=timedelta(seconds=settings.lockout_duration_seconds),
        inactivity_days=settings.inactivity_days,
    )
    state.reset = PasswordResetService(
        user_store,
        hasher,
        policy,
        ResetOriginLimiter(limit=settings.reset_origin_limit, window_seconds=settings.reset_origin_window_seconds),
        app_url=settings.app_url,
        token_ttl=timedelta(seconds=settings.reset_token_ttl_seconds),
        cooldown=timedelta(seconds=settings.reset_request_cooldown_seconds),
        min_delay_seconds=settings.reset_min_delay_seconds,
        delay_jitter_seconds=settings.reset_delay_jitter_seconds,
    )
    state.permissions = PermissionEngine()
    return state


def build_auth_components(settings: Settings, user_store: UserStore) -> SimpleNamespace:
    """Same object graph as init_auth_state, outside any FastAPI app (CLI use)."""
    return init_auth_state(SimpleNamespace(), settings, user_store)


def sweep_expired(state: Any) -> dict[str, int]:
    """Drop expired entries from every in-memory map. Returns per-map counts."""
    return {
        "csrf": state.csrf.sweep(),
        "origins": state.origins.sweep(),
        "revoked_sessions": state.tokens.sweep(),
        "reset_origins": state.reset.origin_limiter.sweep(),
    }
