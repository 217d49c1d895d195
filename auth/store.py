"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Engines, dependencies and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency contract:
  Every mutation is a single UPDATE touching only the fields it owns, so
  concurrent writers to different fields of the same user never lose each
  other's updates. The failed-attempt counter is incremented in SQL
  (n = n + 1), not read-modify-written in Python. Reset-token consumption is
  a conditional UPDATE whose WHERE clause re-checks token and expiry, which
  makes it single-use even under concurrent requests.

Timestamps:
  Stored as ISO 8601 UTC strings with fixed microsecond precision (see
  to_iso). Fixed width makes SQL string comparison equal to chronological
  comparison, which mark_inactive_accounts and consume_reset_token rely on.

DB path: auth/gameportal_auth.db unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import AccountStatus, Role, User

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'gameportal_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),  # always lower-cased
    Column("hashed_password", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="user"),
    Column("account_status", String(20), nullable=False, server_default="active"),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
    Column("password_reset_token", String(128), unique=True),
    Column("password_reset_expires", String(32)),
    Column("last_password_reset", String(32)),
    Column("bio", Text),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO 8601 string."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(username="ana", email="ana@example.com", hashed_password=h))
        user = store.get_by_email("ANA@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def get_by_id(self, user_id: int) -> User | None:
        return self._fetch_one(_users.c.id == user_id)

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        return self._fetch_one(_users.c.username == username)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, ignoring case."""
        return self._fetch_one(_users.c.email == email.strip().lower())

    def get_by_reset_token(self, token: str) -> User | None:
        """Exact-match lookup. Expiry is the caller's concern."""
        if not token:
            return None
        return self._fetch_one(_users.c.password_reset_token == token)

    def list_users(self) -> list[User]:
        """Return all users ordered by username. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_active_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_users)
                .where((_users.c.role == Role.ADMIN.value) & (_users.c.account_status == AccountStatus.ACTIVE.value))
            ).scalar()
        return result or 0

    def _fetch_one(self, condition) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(condition)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        A user created without last_login gets the creation time, so a fresh
        account is not swept as inactive before its first login.

        Raises sqlalchemy.exc.IntegrityError if the username or email is taken.
        """
        created = to_iso(utcnow())
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    email=user.email.strip().lower(),
                    hashed_password=user.hashed_password,
                    role=Role(user.role).value,
                    account_status=AccountStatus(user.account_status).value,
                    failed_login_attempts=user.failed_login_attempts,
                    last_login=user.last_login or created,
                    bio=user.bio,
                    created_at=created,
                )
            )
            return result.inserted_primary_key[0]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update profile/admin fields: email, bio, role, account_status.

        Enum values are accepted and stored by value. Returns True if a row
        was updated, False if user_id was not found.
        """
        allowed = {"email", "bio", "role", "account_status"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        if "account_status" in fields:
            fields["account_status"] = AccountStatus(fields["account_status"]).value
        return self._update(user_id, **fields)

    def update_password_hash(self, user_id: int, hashed_password: str) -> bool:
        return self._update(user_id, hashed_password=hashed_password)

    # ------------------------------------------------------------------
    # Lockout bookkeeping
    # ------------------------------------------------------------------

    def increment_failed_attempts(self, user_id: int) -> int:
        """Atomically add one failed attempt and return the new count."""
        with self.engine.begin() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(failed_login_attempts=func.coalesce(_users.c.failed_login_attempts, 0) + 1)
            )
            count = conn.execute(select(_users.c.failed_login_attempts).where(_users.c.id == user_id)).scalar()
        return count or 0

    def update_account_status(self, user_id: int, status: AccountStatus) -> bool:
        return self._update(user_id, account_status=AccountStatus(status).value)

    def lock_account(self, user_id: int, when: datetime) -> bool:
        """Mark the account locked; last_login becomes the lock reference time."""
        return self._update(user_id, account_status=AccountStatus.LOCKED.value, last_login=to_iso(when))

    def unlock_account(self, user_id: int) -> bool:
        """Restore an account to active with a cleared failure counter."""
        return self._update(user_id, account_status=AccountStatus.ACTIVE.value, failed_login_attempts=0)

    def record_successful_login(self, user_id: int, when: datetime) -> bool:
        return self._update(user_id, failed_login_attempts=0, last_login=to_iso(when))

    def mark_inactive_accounts(self, cutoff: datetime) -> int:
        """Flip active accounts whose last login predates cutoff (or never happened) to inactive.

        Idempotent: already-inactive accounts do not match the WHERE clause.
        Returns the number of accounts changed.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.account_status == AccountStatus.ACTIVE.value)
                    & or_(_users.c.last_login < to_iso(cutoff), _users.c.last_login.is_(None))
                )
                .values(account_status=AccountStatus.INACTIVE.value)
            )
        return result.rowcount

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def set_password_reset_token(self, user_id: int, token: str, expires: datetime) -> bool:
        """Store a reset token, replacing any outstanding one."""
        return self._update(user_id, password_reset_token=token, password_reset_expires=to_iso(expires))

    def consume_reset_token(self, user_id: int, token: str, hashed_password: str, now: datetime) -> bool:
        """Apply a password reset if and only if token is still live for user_id.

        One conditional UPDATE sets the new hash, clears token and expiry,
        stamps last_password_reset, clears the failure counter and forces the
        account active. Returns False if the token was already consumed,
        replaced or has expired.
        """
        now_iso = to_iso(now)
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(
                    (_users.c.id == user_id)
                    & (_users.c.password_reset_token == token)
                    & (_users.c.password_reset_expires > now_iso)
                )
                .values(
                    hashed_password=hashed_password,
                    password_reset_token=None,
                    password_reset_expires=None,
                    last_password_reset=now_iso,
                    failed_login_attempts=0,
                    account_status=AccountStatus.ACTIVE.value,
                )
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------

    def _update(self, user_id: int, **values) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
        return result.rowcount > 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        account_status=AccountStatus(row.account_status),
        failed_login_attempts=row.failed_login_attempts or 0,
        last_login=row.last_login,
        password_reset_token=row.password_reset_token,
        password_reset_expires=row.password_reset_expires,
        last_password_reset=row.last_password_reset,
        bio=row.bio,
        created_at=row.created_at,
    )
