#!/usr/bin/env python3
"""
Game portal auth -- operator command line.

Account bootstrap and maintenance tasks that must work without a running
server or an existing admin session.

Usage:
  python main.py create-admin --username root --email root@example.com
  python main.py unlock alice
  python main.py unlock alice@example.com
  python main.py mark-inactive
  python main.py check-password

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the user database (default: auth/gameportal_auth.db)
  DEBUG=true    Auto-generate SECRET_KEY for local use (see core/config.py)
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from api.state import build_auth_components
from auth.models import Role, User
from auth.store import UserStore
from core.config import get_settings


def _open_store(database_url: Optional[str]) -> UserStore:
    url = database_url or get_settings().database_url
    return UserStore(url) if url else UserStore()


def _prompt_password(prompt: str = "Password: ") -> Optional[str]:
    """Read a password twice without echo. Returns None if the two entries differ."""
    first = getpass.getpass(prompt)
    second = getpass.getpass("Repeat password: ")
    if first != second:
        print("  [!] Passwords do not match.")
        return None
    return first


def cmd_create_admin(args, components) -> int:
    store: UserStore = components.user_store
    policy = components.password_policy

    password = _prompt_password()
    if password is None:
        return 1
    result = policy.validate(password)
    if not result.is_valid:
        print("  [!] Password rejected:")
        for err in result.errors:
            print(f"      - {err}")
        return 1

    admin = User(
        username=args.username,
        email=args.email,
        hashed_password=components.hasher.hash(password),
        role=Role.ADMIN,
    )
    try:
        uid = store.create_user(admin)
    except IntegrityError:
        print(f"  [!] A user named '{args.username}' or with email '{args.email}' already exists.")
        return 1
    print(f"  Created admin '{args.username}' (id {uid}).")
    return 0


def cmd_unlock(args, components) -> int:
    user = components.lockout.find_user(args.identifier)
    if user is None:
        print(f"  [!] No user matches '{args.identifier}'.")
        return 1
    components.lockout.unlock(user.id)
    print(f"  Unlocked '{user.username}' (status active, failed attempts reset).")
    return 0


def cmd_mark_inactive(args, components) -> int:
    changed = components.lockout.mark_inactive_accounts()
    days = components.lockout.inactivity_days
    print(f"  Marked {changed} account(s) inactive (no login in {days} days).")
    return 0


def cmd_check_password(args, components) -> int:
    policy = components.password_policy
    password = getpass.getpass("Password to check: ")
    result = policy.validate(password)
    print(f"  Strength: {policy.score(password)}/100 ({policy.classify(password)})")
    if result.is_valid:
        print("  Meets the password policy.")
        return 0
    for err in result.errors:
        print(f"  - {err}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gameportal-auth",
        description="Account bootstrap and maintenance for the game portal.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --username root --email root@example.com
  python main.py unlock alice
  python main.py mark-inactive
  DATABASE_URL=sqlite:////srv/portal/auth.db python main.py mark-inactive
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="SQLAlchemy URL of the user database (overrides DATABASE_URL)",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-admin", help="Create an admin account (prompts for the password)")
    create.add_argument("--username", required=True)
    create.add_argument("--email", required=True)
    create.set_defaults(func=cmd_create_admin)

    unlock = sub.add_parser("unlock", help="Clear a lock and zero the failed-attempt counter")
    unlock.add_argument("identifier", metavar="USER", help="Username or email")
    unlock.set_defaults(func=cmd_unlock)

    inactive = sub.add_parser("mark-inactive", help="Mark accounts idle past the inactivity window as inactive")
    inactive.set_defaults(func=cmd_mark_inactive)

    check = sub.add_parser("check-password", help="Score a password against the policy (prompts)")
    check.set_defaults(func=cmd_check_password)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    store = _open_store(args.database_url)
    try:
        return args.func(args, build_auth_components(get_settings(), store))
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
