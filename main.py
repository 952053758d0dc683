#!/usr/bin/env python3
"""
Accounts -- user registration, email confirmation, sign-in and profiles.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py create-user jane jane@example.com --first-name Jane
  python main.py create-user ops ops@example.com --role admin --confirmed
  python main.py purge-tokens

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Session signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL   SQLAlchemy URL of the user database (default: sqlite accounts.db).
  MAIL_BACKEND   console (default), memory or smtp.
"""

import argparse
import getpass
import sys
from datetime import datetime, timezone

from core.config import get_settings
from core.exceptions import AccountError


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_user(args: argparse.Namespace) -> int:
    """Create a local account from the command line.

    Goes through AuthService.sign_up() so the same validation applies as for
    the HTTP endpoint. --confirmed consumes the email token right away.
    """
    from auth.service import AuthService
    from auth.tokens import TokenIssuer
    from mail.outbox import AccountMailer, build_mailer
    from users.store import UserStore

    settings = get_settings()
    password = args.password or getpass.getpass("Password: ")
    store = UserStore(settings.database_url)
    try:
        service = AuthService(
            store,
            TokenIssuer(store, reset_ttl_seconds=settings.reset_token_ttl_seconds),
            AccountMailer(build_mailer(settings), settings.public_url),
        )
        roles = ["user", args.role] if args.role and args.role != "user" else None
        user = service.sign_up(
            username=args.username,
            email=args.email,
            password=password,
            first_name=args.first_name,
            last_name=args.last_name,
            roles=roles,
        )
        if args.confirmed:
            user, _ = service.confirm_email(user.email_token or "")
    except AccountError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(f"  Created {user.display_username} (id={user.id}, roles={','.join(user.roles)}, public={user.public})")
    return 0


def _purge_tokens(args: argparse.Namespace) -> int:
    from users.store import UserStore

    store = UserStore(get_settings().database_url)
    try:
        purged = store.purge_expired_reset_tokens(datetime.now(timezone.utc))
    finally:
        store.close()
    print(f"  Purged {purged} expired reset token(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accounts",
        description="User account service: HTTP API and maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create a local account")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument("--password", help="Prompted for when omitted")
    create.add_argument("--first-name", default="")
    create.add_argument("--last-name", default="")
    create.add_argument("--role", choices=["user", "admin"], default="user")
    create.add_argument("--confirmed", action="store_true", help="Skip email confirmation and make the profile public")
    create.set_defaults(func=_create_user)

    purge = sub.add_parser("purge-tokens", help="Clear expired password reset tokens")
    purge.set_defaults(func=_purge_tokens)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
