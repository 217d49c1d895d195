"""
tests/test_store.py -- Unit tests for auth/store.py (UserStore).

Coverage:
  - create / lookup by id, username, email (case-insensitive), reset token
  - uniqueness of username and email
  - field-scoped updates, atomic failure counter, lock / unlock
  - conditional reset-token consumption
  - fixed-width timestamps
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import AccountStatus, Role, User
from auth.store import UserStore, from_iso, to_iso

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def _new(username: str, email: str | None = None, **fields) -> User:
    return User(username=username, email=email or f"{username}@example.com", hashed_password="h", **fields)


class TestCreateAndLookup:
    def test_create_returns_id_and_defaults(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        user = store.get_by_id(uid)
        assert user.username == "ana"
        assert user.role == Role.USER
        assert user.account_status == AccountStatus.ACTIVE
        assert user.failed_login_attempts == 0
        assert user.created_at is not None
        assert user.last_login == user.created_at

    def test_email_stored_lower_and_matched_case_insensitively(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana", "Ana@Example.COM"))
        assert store.get_by_id(uid).email == "ana@example.com"
        assert store.get_by_email("  ANA@example.com ").id == uid

    def test_username_lookup_is_exact(self, store: UserStore) -> None:
        store.create_user(_new("ana"))
        assert store.get_by_username("ana") is not None
        assert store.get_by_username("ANA") is None

    def test_missing_lookups_return_none(self, store: UserStore) -> None:
        assert store.get_by_id(999) is None
        assert store.get_by_email("nobody@example.com") is None
        assert store.get_by_reset_token("") is None

    def test_duplicate_username_or_email_raises(self, store: UserStore) -> None:
        store.create_user(_new("ana"))
        with pytest.raises(IntegrityError):
            store.create_user(_new("ana", "other@example.com"))
        with pytest.raises(IntegrityError):
            store.create_user(_new("other", "ANA@example.com"))

    def test_has_users_and_list(self, store: UserStore) -> None:
        assert store.has_users() is False
        store.create_user(_new("zed"))
        store.create_user(_new("ana"))
        assert store.has_users() is True
        assert [u.username for u in store.list_users()] == ["ana", "zed"]

    def test_count_active_admins(self, store: UserStore) -> None:
        store.create_user(_new("root", role=Role.ADMIN))
        store.create_user(_new("ops", role=Role.ADMIN, account_status=AccountStatus.SUSPENDED))
        store.create_user(_new("ana"))
        assert store.count_active_admins() == 1

    def test_ping(self, store: UserStore) -> None:
        assert store.ping() is True


class TestUpdates:
    def test_update_user_fields(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        assert store.update_user(uid, email="New@Example.com", bio="hi", role=Role.ADMIN)
        user = store.get_by_id(uid)
        assert (user.email, user.bio, user.role) == ("new@example.com", "hi", Role.ADMIN)

    def test_update_user_rejects_unknown_fields(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        with pytest.raises(ValueError):
            store.update_user(uid, hashed_password="sneaky")

    def test_update_missing_user_returns_false(self, store: UserStore) -> None:
        assert store.update_user(999, bio="x") is False

    def test_failed_attempts_counter(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        assert [store.increment_failed_attempts(uid) for _ in range(3)] == [1, 2, 3]
        store.record_successful_login(uid, NOW)
        user = store.get_by_id(uid)
        assert user.failed_login_attempts == 0
        assert from_iso(user.last_login) == NOW

    def test_lock_and_unlock(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        store.increment_failed_attempts(uid)
        store.lock_account(uid, NOW)
        locked = store.get_by_id(uid)
        assert locked.account_status == AccountStatus.LOCKED
        assert from_iso(locked.last_login) == NOW

        store.unlock_account(uid)
        unlocked = store.get_by_id(uid)
        assert unlocked.account_status == AccountStatus.ACTIVE
        assert unlocked.failed_login_attempts == 0


class TestResetTokenStorage:
    def test_consume_is_conditional_and_single_use(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana", account_status=AccountStatus.INACTIVE, failed_login_attempts=4))
        store.set_password_reset_token(uid, "tok", NOW + timedelta(hours=1))
        assert store.get_by_reset_token("tok").id == uid

        assert store.consume_reset_token(uid, "wrong", "h2", NOW) is False
        assert store.consume_reset_token(uid, "tok", "h2", NOW) is True
        assert store.consume_reset_token(uid, "tok", "h3", NOW) is False

        user = store.get_by_id(uid)
        assert user.hashed_password == "h2"
        assert user.password_reset_token is None
        assert user.password_reset_expires is None
        assert user.account_status == AccountStatus.ACTIVE
        assert user.failed_login_attempts == 0
        assert from_iso(user.last_password_reset) == NOW

    def test_consume_after_expiry_fails(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        store.set_password_reset_token(uid, "tok", NOW)
        assert store.consume_reset_token(uid, "tok", "h2", NOW) is False

    def test_new_token_replaces_old(self, store: UserStore) -> None:
        uid = store.create_user(_new("ana"))
        store.set_password_reset_token(uid, "old", NOW + timedelta(hours=1))
        store.set_password_reset_token(uid, "new", NOW + timedelta(hours=1))
        assert store.get_by_reset_token("old") is None
        assert store.get_by_reset_token("new").id == uid


class TestMarkInactive:
    def test_only_active_accounts_before_cutoff(self, store: UserStore) -> None:
        old = to_iso(NOW - timedelta(days=100))
        idle = store.create_user(_new("idle", last_login=old))
        locked = store.create_user(_new("locked", last_login=old, account_status=AccountStatus.LOCKED))
        store.create_user(_new("fresh", last_login=to_iso(NOW)))

        assert store.mark_inactive_accounts(NOW - timedelta(days=90)) == 1
        assert store.get_by_id(idle).account_status == AccountStatus.INACTIVE
        assert store.get_by_id(locked).account_status == AccountStatus.LOCKED


class TestTimestamps:
    def test_to_iso_is_fixed_width_utc(self) -> None:
        assert to_iso(datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "2025-01-02T03:04:05.000000+00:00"
        naive = datetime(2025, 1, 2, 3, 4, 5)
        assert to_iso(naive) == "2025-01-02T03:04:05.000000+00:00"

    def test_from_iso_round_trip_and_empty(self) -> None:
        assert from_iso(to_iso(NOW)) == NOW
        assert from_iso(None) is None
        assert from_iso("") is None
