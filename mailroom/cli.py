"""Command-line interface for the mailroom service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from getpass import getpass
from typing import Sequence

from .config import Settings, load_settings, resolve_config_path
from .database import Database, resolve_database_path
from .errors import ConflictError
from .models import Role
from .schemas import PASSWORD_MIN_LENGTH
from .security import PasswordHasher

logger = logging.getLogger("mailroom.cli")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mailroom service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the mailroom database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile-password",
        default=None,
        help="Password for the TLS private key, if encrypted",
    )

    add_user_parser = subparsers.add_parser(
        "add-user", help="Add a single address to the sender allow-list"
    )
    add_user_parser.add_argument("email", help="Email address of the sender")
    add_user_parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant the admin role (manage templates, senders, and logs)",
    )
    add_user_parser.add_argument(
        "--temporary",
        action="store_true",
        help="Use the email address as a temporary password that must be changed on first use",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "add-user"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings() -> Settings:
    try:
        return load_settings(resolve_config_path(os.getenv("MAILROOM_CONFIG")))
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc


def _initialise_database(settings: Settings) -> Database:
    env_path = str(settings.database_path) if settings.database_path else os.getenv("MAILROOM_DB_PATH")
    db_path = resolve_database_path(env_path)
    database = Database(db_path, hasher=PasswordHasher(rounds=settings.password_rounds))
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def _serve(
    *,
    settings: Settings,
    database: Database,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
    ssl_keyfile_password: str | None,
) -> None:
    from .service import create_app
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting mailroom on %s://%s:%s", protocol, host, port)

    app = create_app(settings=settings, database=database)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
        ssl_keyfile_password=ssl_keyfile_password,
    )


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _add_user(database: Database, *, email: str, admin: bool, temporary: bool) -> int:
    from .audit import AuditTrail
    from .users import AuthorizedUserService

    cleaned = email.strip().lower()
    if "@" not in cleaned:
        print(f"Error: '{email}' is not an email address.", file=sys.stderr)
        return 1

    if temporary:
        password = cleaned
    else:
        prompted = _prompt_for_password()
        if prompted is None:
            print("Aborted adding sender.", file=sys.stderr)
            return 1
        password = prompted

    service = AuthorizedUserService(database, AuditTrail(database))
    try:
        user = service.create_one(
            cleaned,
            password,
            role=Role.ADMIN if admin else Role.USER,
            must_change_password=temporary,
        )
    except ConflictError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    print(f"Added sender #{user.id}: {user.email} ({user.role.value})")
    if temporary:
        print("The temporary password is the email address; it must be changed on first use.")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = _load_settings()
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            settings=settings,
            database=database,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
            ssl_keyfile_password=args.ssl_keyfile_password,
        )
    elif args.command == "add-user":
        return _add_user(database, email=args.email, admin=args.admin, temporary=args.temporary)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0
