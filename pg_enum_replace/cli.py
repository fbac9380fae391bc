from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from pydantic import ValidationError
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from pg_enum_replace.core.config import get_settings
from pg_enum_replace.core.logging import configure_logging, get_logger, redact_sensitive_data
from pg_enum_replace.db.base import build_engine
from pg_enum_replace.services.enum_replacement import (
    EnumValuesInUseError,
    build_enum_replacement_plan,
    replace_enum_values,
)

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_DATABASE_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_VALUES_IN_USE = 3


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pg-enum-replace",
        description="Replace the label set of a PostgreSQL ENUM column in one transaction.",
    )
    parser.add_argument("--table", required=True, help="Table holding the enum column.")
    parser.add_argument("--column", required=True, help="Enum column to retype.")
    parser.add_argument("--default", required=True, help="Column default to restore (must be a new label).")
    parser.add_argument(
        "--value",
        dest="values",
        action="append",
        required=True,
        help="New enum label; repeat in the desired order.",
    )
    parser.add_argument(
        "--enum-name",
        default=None,
        help="Enum type name (default: enum_<table>_<column>).",
    )
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL.")
    parser.add_argument("--dry-run", action="store_true", help="Print the statements without connecting.")
    parser.add_argument(
        "--precheck",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Reject labels still stored in the column before any DDL (default: ENUM_REPLACE_PRECHECK).",
    )
    return parser.parse_args(argv)


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        where = ".".join(str(part) for part in err["loc"]) or "settings"
        problems.append(f"{where}: {err['msg']}")
    return redact_sensitive_data("; ".join(problems))


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Invalid configuration: {_describe_validation_error(exc)}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)

    if args.dry_run:
        plan = build_enum_replacement_plan(
            table_name=args.table,
            column_name=args.column,
            default_value=args.default,
            new_values=args.values,
            enum_name=args.enum_name,
        )
        logger.info("cli.dry_run", extra={"table_name": args.table, "column_name": args.column})
        for step in plan:
            print(f"{step.sql};")
        return EXIT_OK

    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})
    if not settings.database_url:
        print("DATABASE_URL is not set", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        engine = build_engine(settings)
    except ArgumentError as exc:
        print(f"Invalid database URL: {redact_sensitive_data(str(exc))}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        replace_enum_values(
            engine,
            table_name=args.table,
            column_name=args.column,
            default_value=args.default,
            new_values=args.values,
            enum_name=args.enum_name,
            precheck=args.precheck,
        )
    except EnumValuesInUseError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_VALUES_IN_USE
    except SQLAlchemyError as exc:
        summary = str(getattr(exc, "orig", None) or exc).strip()
        print(f"Enum migration failed: {redact_sensitive_data(summary)}", file=sys.stderr)
        return EXIT_DATABASE_ERROR
    finally:
        engine.dispose()

    print(f"Enum migration complete: {args.table}.{args.column}")
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
