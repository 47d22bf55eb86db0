#!/usr/bin/env python3
"""
authcore -- operator CLI for the authentication core.

Usage:
  python main.py check
  python main.py init-db
  python main.py purge-tokens --days 30

Environment variables (or .env):
  SECRET_KEY     Required. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL. Default: sqlite:///authcore.db
  See core/config.py for the full list.

Exit codes: 0 on success, 1 on configuration or database failure.
"""

import argparse
import sys
from datetime import timedelta

from pydantic import ValidationError as SettingsError

from auth.bootstrap import build_service
from core.config import get_settings
from core.errors import AuthCoreError
from core.logs import configure_logging, mask_url


def _cmd_check(args: argparse.Namespace) -> int:
    settings = get_settings()
    with build_service(settings, create_schema=False):
        print(f"  OK  database reachable: {mask_url(settings.database_url)}")
        print(f"  OK  access ttl {settings.access_token_ttl_seconds}s, refresh ttl {settings.refresh_token_ttl_seconds}s")
    return 0


def _cmd_init_db(args: argparse.Namespace) -> int:
    with build_service(get_settings(), create_schema=True):
        print("  OK  schema created (users, refresh_tokens, login_attempts)")
    return 0


def _cmd_purge(args: argparse.Namespace) -> int:
    if args.days < 0:
        print("  [!] --days must be >= 0")
        return 1
    with build_service(get_settings(), create_schema=False) as ctx:
        purged = ctx.service.purge_expired_refresh_tokens(timedelta(days=args.days))
    print(f"  OK  purged {purged} refresh token row(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="authcore", description="Authentication core operator commands.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="Validate configuration and database connectivity").set_defaults(func=_cmd_check)
    sub.add_parser("init-db", help="Create tables if they do not exist").set_defaults(func=_cmd_init_db)

    purge = sub.add_parser("purge-tokens", help="Delete refresh tokens expired/revoked more than N days ago")
    purge.add_argument("--days", type=int, default=30, help="Age threshold in days (default: 30)")
    purge.set_defaults(func=_cmd_purge)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        configure_logging(get_settings().log_level)
        return args.func(args)
    except SettingsError as e:
        print(f"  [!] Invalid configuration: {e.errors()[0].get('msg', 'see logs')}")
        return 1
    except AuthCoreError as e:
        print(f"  [!] {e.code}: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
