#!/usr/bin/env python3
"""
Saiqa -- operator command line.

The HTTP API cannot bootstrap itself: creating users requires an admin
session, and a fresh database has no users. This CLI talks to the database
directly and is how the first admin account is created.

Usage:
  python main.py create-user --email admin@example.com --first-name Ada --last-name Admin --role admin
  python main.py create-user --email bob@example.com --first-name Bob --last-name Builder --password 'S3cure!pass'
  python main.py purge-tokens

Environment variables:
  DATABASE_URL   SQLAlchemy URL of the database (default: SQLite file beside the code).
                 See core/config.py for the full list.
"""

import argparse
import sys
from typing import Optional

from auth.models import ROLES, User
from auth.passwords import generate_secure_password, hash_password, password_problem
from auth.store import RefreshTokenStore, UserStore
from core.activity import log_entity
from core.config import get_settings
from core.db import create_db_engine


def _create_user(args: argparse.Namespace, database_url: str) -> int:
    password = args.password or generate_secure_password(12)
    problem = password_problem(password)
    if problem is not None:
        print(f"  [!] {problem}.")
        return 1

    store = UserStore(create_db_engine(database_url))
    if store.email_exists(args.email):
        print(f"  [!] A user with email '{args.email}' already exists.")
        return 1

    user_id = store.create_user(
        User(
            email=args.email,
            password_hash=hash_password(password),
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.role,
            # Accounts with a generated password must pick their own at first login.
            force_password_change=args.password is None,
        )
    )
    log_entity("USER", "CREATE_USER", user_id, created_by="cli", email=args.email, role=args.role)
    print(f"  Created {args.role} '{args.email}' (id {user_id}).")
    if args.password is None:
        print(f"  Generated password: {password}")
        print("  It is shown only once. The user must change it at first login.")
    return 0


def _purge_tokens(args: argparse.Namespace, database_url: str) -> int:
    removed = RefreshTokenStore(create_db_engine(database_url)).purge_expired()
    print(f"  Purged {removed} expired refresh token(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="saiqa",
        description="Saiqa admin backend -- operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --email admin@example.com --first-name Ada --last-name Admin --role admin
  python main.py purge-tokens
  DATABASE_URL=sqlite:////var/lib/saiqa/saiqa.db python main.py purge-tokens
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this command",
    )
    subcommands = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = subcommands.add_parser("create-user", help="Create a user account (e.g. the first admin)")
    create.add_argument("--email", required=True)
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument(
        "--role",
        choices=list(ROLES),
        default="admin",
        help="Account role (default: admin)",
    )
    create.add_argument(
        "--password",
        default=None,
        help="Initial password. When omitted a random one is generated and printed once.",
    )
    create.set_defaults(handler=_create_user)

    purge = subcommands.add_parser("purge-tokens", help="Delete expired refresh-token rows")
    purge.set_defaults(handler=_purge_tokens)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1
    database_url = args.database_url or get_settings().database_url
    return args.handler(args, database_url)


if __name__ == "__main__":
    sys.exit(main())
