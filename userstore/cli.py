"""Command-line diagnostics for the user record store.

The DSN is read from ``--dsn`` or, when omitted, from ``USERSTORE_DSN`` and
the other ``USERSTORE_*`` settings.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from pydantic import ValidationError

from .config import DatabaseSettings
from .connection import create_provider
from .exceptions import UserStoreError
from .logging import configure_logging
from .repository import UserRepository

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="userstore", description=__doc__)
    parser.add_argument("--dsn", default=None, help="SQLAlchemy database URL, e.g. sqlite:///users.db.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (can be provided multiple times).",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Decrease log verbosity (can be provided multiple times).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("ping", help="Run the diagnostic query and print the backend status.")
    subparsers.add_parser("info", help="Print database, driver and capability metadata.")
    subparsers.add_parser("init-schema", help="Create the users table when it does not exist.")
    columns = subparsers.add_parser("columns", help="List the columns of a table.")
    columns.add_argument("table")
    count = subparsers.add_parser("count", help="Count the active users of a department.")
    count.add_argument("department")
    return parser


def _determine_log_level(verbose: int, quiet: int) -> int:
    base_level = logging.WARNING
    level = base_level - (verbose * 10) + (quiet * 10)
    return max(logging.DEBUG, min(logging.CRITICAL, level))


def _load_settings(dsn: str | None) -> DatabaseSettings:
    if dsn is not None:
        return DatabaseSettings(dsn=dsn)
    return DatabaseSettings()


def _run(repository: UserRepository, args: argparse.Namespace) -> str:
    if args.command == "ping":
        return repository.test_connection()
    if args.command == "info":
        return repository.get_database_info().format().rstrip("\n")
    if args.command == "init-schema":
        repository.ensure_schema()
        return "users table is ready"
    if args.command == "columns":
        return "\n".join(
            f"{column.ordinal_position:>3} {column.name:<20} {column.type_name:<12}"
            f" size={column.size if column.size is not None else '-'}"
            f" nullable={'yes' if column.nullable else 'no'}"
            for column in repository.get_table_columns(args.table)
        )
    if args.command == "count":
        return str(repository.execute_count_by_department(args.department))
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    configure_logging(level=_determine_log_level(args.verbose, args.quiet))

    try:
        settings = _load_settings(args.dsn)
    except ValidationError as exc:
        print(f"Invalid database settings: {exc}", file=sys.stderr)
        return 2

    LOGGER.debug("Using database", extra={"dsn": settings.dsn})
    provider = create_provider(settings)
    try:
        output = _run(UserRepository(provider), args)
    except UserStoreError as exc:
        LOGGER.error("%s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        provider.close()

    print(output)
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised by CLI
    raise SystemExit(main())
