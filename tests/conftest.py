"""
tests/conftest.py -- Shared test fixtures for the game portal auth tests.

This module provides:
  - store: an isolated UserStore on a named shared-memory SQLite database
  - hasher: a CredentialHasher with the (cheap) test cost parameters
  - make_user: factory that inserts a user with a known password
  - client: TestClient whose lifespan wires the test store into app.state
  - login / csrf_headers: helpers for driving authenticated, CSRF-protected calls

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process. Each test gets
its own uuid-suffixed name, so no state leaks between tests.

Environment variables must be set before any api/auth/core import:
  DEBUG               -- get_settings() auto-generates SECRET_KEY
  ALLOWED_HOSTS       -- TestClient sends Host: testserver
  ARGON2_*            -- cheap hashing so the suite stays fast
  RESET_*_SECONDS     -- no artificial delay on forgot-password
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager, suppress

# CRITICAL: Set these before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("ARGON2_MEMORY_COST", "1024")
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("RESET_MIN_DELAY_SECONDS", "0")
os.environ.setdefault("RESET_DELAY_JITTER_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from api.state import init_auth_state
from auth.email import EmailMessage, LoggingEmailSender
from auth.hashing import CredentialHasher
from auth.models import Role, User
from auth.store import UserStore
from core.config import get_settings

STRONG_PASSWORD = "Tr0ub4dor!9"

# ---------------------------------------------------------------------------
# Email capture
# ---------------------------------------------------------------------------


class CapturingEmailSender(LoggingEmailSender):
    """Logs like the default sender and keeps each message for assertions."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        super().send(message)
        self.sent.append(message)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _test_db_url() -> str:
    return f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _patch_lifespan(user_store: UserStore, email_sender: CapturingEmailSender):
    """Return an async context manager that replaces the real lifespan.

    Builds the same object graph as production (init_auth_state) against the
    test store. The background tasks are long sleeps so nothing sweeps state
    out from under a test; they are real asyncio.Tasks so cancel() works.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_auth_state(app.state, get_settings(), user_store, email_sender=email_sender)
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        app.state.inactivity_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        for task in (app.state.sweep_task, app.state.inactivity_task):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """slowapi keeps one in-memory counter per process; start every test at zero."""
    limiter.reset()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    user_store = UserStore(db_url=_test_db_url())
    yield user_store
    user_store.close()


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    settings = get_settings()
    return CredentialHasher(
        memory_cost=settings.argon2_memory_cost,
        time_cost=settings.argon2_time_cost,
        parallelism=settings.argon2_parallelism,
    )


@pytest.fixture
def make_user(store: UserStore, hasher: CredentialHasher) -> Callable[..., User]:
    """Return a factory: make_user("ana", role=Role.ADMIN, password=...) -> User."""

    def factory(username: str, password: str = STRONG_PASSWORD, role: Role = Role.USER, **fields) -> User:
        email = fields.pop("email", f"{username}@example.com")
        uid = store.create_user(
            User(
                username=username,
                email=email,
                hashed_password=hasher.hash(password),
                role=role,
                **fields,
            )
        )
        return store.get_by_id(uid)

    return factory


@pytest.fixture
def email_outbox() -> CapturingEmailSender:
    return CapturingEmailSender()


@pytest.fixture
def client(store: UserStore, email_outbox: CapturingEmailSender) -> Generator[TestClient, None, None]:
    """TestClient over the real app with an isolated store and captured email.

    The client keeps cookies between calls, so after login() it carries the
    session cookie like a browser would.
    """
    app.router.lifespan_context = _patch_lifespan(store, email_outbox)
    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client


@pytest.fixture
def login(client: TestClient) -> Callable[[str, str], dict]:
    """Return login(identifier, password) -> response JSON; asserts success."""

    def do_login(identifier: str, password: str = STRONG_PASSWORD) -> dict:
        resp = client.post("/api/v1/auth/login", json={"identifier": identifier, "password": password})
        assert resp.status_code == 200, f"Login failed: {resp.status_code} {resp.text}"
        return resp.json()

    return do_login


@pytest.fixture
def csrf_headers(client: TestClient) -> Callable[[], dict[str, str]]:
    """Return a callable producing headers with a fresh CSRF token for the current session."""

    def fresh() -> dict[str, str]:
        resp = client.get("/api/v1/health")
        return {"X-CSRF-Token": resp.headers["X-CSRF-Token"]}

    return fresh
