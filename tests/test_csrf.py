"""
tests/test_csrf.py -- Unit tests for auth/csrf.py and the CSRF middleware in api/main.py.

Coverage:
  - CsrfTokenStore: issue/validate, user binding, expiry, clear_user, sweep
  - Middleware: unsafe /api requests need a live token (header or "_csrf"
    JSON field); exempt paths and safe methods pass; a token bound to one
    user is refused for another
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from auth.csrf import CSRF_HEADER, CsrfTokenStore


class FakeTime:
    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


class TestCsrfTokenStore:
    def test_issued_token_validates(self) -> None:
        store = CsrfTokenStore()
        token = store.issue()
        assert len(token) == 32
        assert store.validate(token) is True
        # Not consumed by validation
        assert store.validate(token) is True

    def test_unknown_and_empty_tokens_rejected(self) -> None:
        store = CsrfTokenStore()
        assert store.validate(None) is False
        assert store.validate("") is False
        assert store.validate("f" * 32) is False

    def test_anonymous_token_accepted_from_anyone(self) -> None:
        store = CsrfTokenStore()
        token = store.issue()
        assert store.validate(token, user_id=None)
        assert store.validate(token, user_id=42)

    def test_bound_token_only_accepted_from_its_user(self) -> None:
        store = CsrfTokenStore()
        token = store.issue(user_id=7)
        assert store.validate(token, user_id=7) is True
        assert store.validate(token, user_id=8) is False
        assert store.validate(token, user_id=None) is False

    def test_expired_token_rejected_and_removed(self) -> None:
        clock = FakeTime()
        store = CsrfTokenStore(ttl_seconds=60, clock=clock)
        token = store.issue()
        clock.now += 60
        assert store.validate(token) is False
        assert len(store) == 0

    def test_clear_single_token(self) -> None:
        store = CsrfTokenStore()
        token = store.issue()
        store.clear(token)
        store.clear(None)
        assert store.validate(token) is False

    def test_clear_user_drops_only_that_users_tokens(self) -> None:
        store = CsrfTokenStore()
        mine = [store.issue(user_id=7), store.issue(user_id=7)]
        other = store.issue(user_id=8)
        assert store.clear_user(7) == 2
        assert not any(store.validate(t, user_id=7) for t in mine)
        assert store.validate(other, user_id=8)

    def test_sweep(self) -> None:
        clock = FakeTime()
        store = CsrfTokenStore(ttl_seconds=60, clock=clock)
        store.issue()
        clock.now += 30
        fresh = store.issue()
        clock.now += 30
        assert store.sweep() == 1
        assert store.validate(fresh)


class TestCsrfMiddleware:
    """Unsafe requests to protected /api paths are checked before the handler runs."""

    def test_logout_without_token_rejected(self, client: TestClient, make_user, login) -> None:
        make_user("ana")
        login("ana")
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "csrf_failed"
        # The session survived the rejected request
        assert client.get("/api/v1/auth/me").status_code == 200

    def test_logout_with_header_token_succeeds(self, client: TestClient, make_user, login, csrf_headers) -> None:
        make_user("ana")
        login("ana")
        resp = client.post("/api/v1/auth/logout", headers=csrf_headers())
        assert resp.status_code == 200

    def test_token_in_json_body_accepted(self, client: TestClient, make_user, login, csrf_headers) -> None:
        user = make_user("ana")
        login("ana")
        token = csrf_headers()[CSRF_HEADER]
        resp = client.patch(f"/api/v1/users/{user.id}", json={"bio": "speedrunner", "_csrf": token})
        assert resp.status_code == 200
        assert resp.json()["bio"] == "speedrunner"

    def test_login_response_token_usable_for_first_request(self, client: TestClient, make_user) -> None:
        make_user("ana")
        resp = client.post("/api/v1/auth/login", json={"identifier": "ana", "password": "Tr0ub4dor!9"})
        token = resp.headers[CSRF_HEADER]
        assert client.post("/api/v1/auth/logout", headers={CSRF_HEADER: token}).status_code == 200

    def test_token_bound_to_other_user_rejected(self, client: TestClient, make_user, login, csrf_headers) -> None:
        make_user("ana")
        make_user("bob")
        login("ana")
        anas_token = csrf_headers()
        client.cookies.clear()
        login("bob")
        resp = client.post("/api/v1/auth/logout", headers=anas_token)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "csrf_failed"

    def test_garbage_token_rejected(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/logout", headers={CSRF_HEADER: "nope"})
        assert resp.status_code == 403

    def test_exempt_paths_need_no_token(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/password-strength", json={"password": "abc"})
        assert resp.status_code == 200
        resp = client.post("/api/v1/auth/login", json={"identifier": "ghost", "password": "x"})
        assert resp.status_code == 401

    def test_safe_methods_need_no_token(self, client: TestClient) -> None:
        assert client.get("/api/v1/auth/password/generate").status_code == 200

    def test_rejection_carries_no_store_and_fresh_token_is_not_issued(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/logout")
        assert resp.headers["Cache-Control"] == "no-store"
        assert CSRF_HEADER not in resp.headers
