#!/usr/bin/env python3
"""
RepoHub -- administration command line.

Usage:
  python main.py create-user owner@example.com --name "Olive Owner" --role owner
  python main.py issue-token --email owner@example.com
  python main.py issue-token --email owner@example.com --expires 600
  python main.py serve --port 8000 --reload

Self-registration (POST /api/v1/auth/signup) only ever creates collaborator
accounts. Owner and viewer accounts are created here.

Environment variables (see core/config.py):
  SECRET_KEY         Token signing key, at least 32 characters. Required unless DEBUG=true.
  DATABASE_URL       Hub database (repositories, issues).
  AUTH_DATABASE_URL  User database.
"""

import argparse
import getpass
import sys

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import get_settings


def _create_user(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1

    store = UserStore(get_settings().auth_database_url)
    try:
        if store.get_by_email(args.email) is not None:
            print(f"  [!] An account for '{args.email}' already exists.")
            return 1
        user = store.create_user(
            User(
                email=args.email,
                display_name=args.name or args.email.split("@", 1)[0],
                role=Role(args.role),
                hashed_password=hash_password(password),
            )
        )
    finally:
        store.close()
    print(f"  Created {user.role.value} {user.email} (id {user.id})")
    return 0


def _issue_token(args: argparse.Namespace) -> int:
    store = UserStore(get_settings().auth_database_url)
    try:
        user = store.get_by_email(args.email)
    finally:
        store.close()
    if user is None:
        print(f"  [!] No account found for '{args.email}'.")
        return 1
    print(create_access_token(user.id, user.role, email=user.email, expire_seconds=args.expires))
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="repohub",
        description="Administer a RepoHub installation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user owner@example.com --role owner
  python main.py create-user viewer@example.com --role viewer --password 'long-enough'
  python main.py issue-token --email owner@example.com
  python main.py serve --host 0.0.0.0 --port 8080
        """,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = commands.add_parser("create-user", help="Create an account with any role")
    create.add_argument("email", help="Login email (stored lowercase)")
    create.add_argument("--name", help="Display name (default: the part of the email before @)")
    create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.collaborator.value,
        help="Account role (default: collaborator)",
    )
    create.add_argument("--password", help="Password; prompted for when omitted")
    create.set_defaults(handler=_create_user)

    token = commands.add_parser("issue-token", help="Print a bearer token for an existing account")
    token.add_argument("--email", required=True, help="Account email")
    token.add_argument(
        "--expires",
        type=int,
        default=0,
        metavar="SECONDS",
        help="Token lifetime in seconds (default: TOKEN_EXPIRE_SECONDS)",
    )
    token.set_defaults(handler=_issue_token)

    serve = commands.add_parser("serve", help="Run the API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(handler=_serve)

    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 0
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
