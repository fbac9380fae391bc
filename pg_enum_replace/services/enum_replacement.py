from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from sqlalchemy import Connection, CursorResult, Engine, TextClause, text
from sqlalchemy.exc import SQLAlchemyError

from pg_enum_replace.core.config import get_settings
from pg_enum_replace.core.logging import get_logger
from pg_enum_replace.core.run_context import run_scope
from pg_enum_replace.services.enum_queries import (
    get_query_to_create_enum,
    get_query_to_drop_enum,
    get_query_to_remove_default_from_column,
    get_query_to_rename_enum,
    get_query_to_select_values_in_use,
    get_query_to_set_column_default,
    get_query_to_set_enum_type,
)

logger = get_logger(__name__)

TEMPORARY_ENUM_SUFFIX = "_new"


class ReplacementStage(str, Enum):
    TYPE_CREATED = "type_created"
    DEFAULT_DROPPED = "default_dropped"
    COLUMN_RETYPED = "column_retyped"
    OLD_TYPE_DROPPED = "old_type_dropped"
    TYPE_RENAMED = "type_renamed"
    DEFAULT_RESTORED = "default_restored"


@dataclass(frozen=True)
class EnumReplacementStep:
    stage: ReplacementStage  # state reached once ``sql`` succeeds
    action: str
    sql: str


class EnumValuesInUseError(ValueError):
    """Raised when stored labels would not survive the retype."""

    def __init__(self, *, table_name: str, column_name: str, missing_values: Sequence[str]) -> None:
        self.table_name = table_name
        self.column_name = column_name
        self.missing_values = list(missing_values)
        super().__init__(
            f"{table_name}.{column_name} still holds values absent from the new enum: "
            f"{', '.join(self.missing_values)}"
        )


def default_enum_name(table_name: str, column_name: str) -> str:
    return f"enum_{table_name}_{column_name}"


def temporary_enum_name(enum_name: str) -> str:
    return f"{enum_name}{TEMPORARY_ENUM_SUFFIX}"


def as_text_clause(sql: str) -> TextClause:
    # text() would read ":word" inside a label as a bind parameter.
    return text(sql.replace(":", r"\:"))


def _execute(conn: Connection, sql: str) -> CursorResult[Any]:
    logger.debug("enum_replace.statement", extra={"sql": sql})
    return conn.execute(as_text_clause(sql))


# -------------------------
# Steps (single statements, for callers composing their own migration)
# -------------------------


def create_enum(conn: Connection, *, name: str, values: Sequence[str]) -> CursorResult[Any]:
    return _execute(conn, get_query_to_create_enum(name, values))


def unset_default_value_from_enum(conn: Connection, *, table_name: str, column_name: str) -> CursorResult[Any]:
    return _execute(conn, get_query_to_remove_default_from_column(table_name, column_name))


def set_column_type_to_enum(
    conn: Connection, *, table_name: str, column_name: str, enum_name: str
) -> CursorResult[Any]:
    return _execute(conn, get_query_to_set_enum_type(table_name, column_name, enum_name))


def drop_enum(conn: Connection, *, enum_name: str) -> CursorResult[Any]:
    return _execute(conn, get_query_to_drop_enum(enum_name))


def rename_enum(conn: Connection, *, old_enum_name: str, new_enum_name: str) -> CursorResult[Any]:
    return _execute(conn, get_query_to_rename_enum(old_enum_name, new_enum_name))


def set_column_default(
    conn: Connection,
    *,
    table_name: str,
    column_name: str,
    default_value: str,
    default_value_type: str,
) -> CursorResult[Any]:
    return _execute(
        conn,
        get_query_to_set_column_default(table_name, column_name, default_value, default_value_type),
    )


# -------------------------
# Precheck
# -------------------------


def find_values_in_use(
    conn: Connection,
    *,
    table_name: str,
    column_name: str,
    new_values: Sequence[str],
) -> list[str]:
    """Return stored labels of ``table_name.column_name`` missing from ``new_values``."""
    stored = _execute(conn, get_query_to_select_values_in_use(table_name, column_name)).scalars().all()
    allowed = set(new_values)
    return sorted({value for value in stored if value not in allowed})


def _ensure_values_representable(
    conn: Connection,
    *,
    table_name: str,
    column_name: str,
    new_values: Sequence[str],
) -> None:
    missing = find_values_in_use(conn, table_name=table_name, column_name=column_name, new_values=new_values)
    if not missing:
        return

    logger.warning(
        "enum_replace.precheck.failed",
        extra={"table_name": table_name, "column_name": column_name, "missing_values": missing},
    )
    raise EnumValuesInUseError(table_name=table_name, column_name=column_name, missing_values=missing)


# -------------------------
# Orchestration
# -------------------------


def build_enum_replacement_plan(
    *,
    table_name: str,
    column_name: str,
    default_value: str,
    new_values: Sequence[str],
    enum_name: str | None = None,
) -> list[EnumReplacementStep]:
    enum_name = enum_name or default_enum_name(table_name, column_name)
    new_enum_name = temporary_enum_name(enum_name)

    return [
        EnumReplacementStep(
            ReplacementStage.TYPE_CREATED,
            "create_type",
            get_query_to_create_enum(new_enum_name, new_values),
        ),
        EnumReplacementStep(
            ReplacementStage.DEFAULT_DROPPED,
            "drop_default",
            get_query_to_remove_default_from_column(table_name, column_name),
        ),
        EnumReplacementStep(
            ReplacementStage.COLUMN_RETYPED,
            "retype_column",
            get_query_to_set_enum_type(table_name, column_name, new_enum_name),
        ),
        EnumReplacementStep(
            ReplacementStage.OLD_TYPE_DROPPED,
            "drop_old_type",
            get_query_to_drop_enum(enum_name),
        ),
        EnumReplacementStep(
            ReplacementStage.TYPE_RENAMED,
            "rename_type",
            get_query_to_rename_enum(new_enum_name, enum_name),
        ),
        EnumReplacementStep(
            ReplacementStage.DEFAULT_RESTORED,
            "set_default",
            get_query_to_set_column_default(table_name, column_name, default_value, enum_name),
        ),
    ]


@contextmanager
def _transaction(bind: Engine | Connection) -> Iterator[Connection]:
    if isinstance(bind, Engine):
        with bind.begin() as conn:
            yield conn
    elif bind.in_transaction():
        # Caller owns the outer transaction (e.g. an Alembic revision).
        with bind.begin_nested():
            yield bind
    else:
        with bind.begin():
            yield bind


def replace_enum_values(
    bind: Engine | Connection,
    *,
    table_name: str,
    column_name: str,
    default_value: str,
    new_values: Sequence[str],
    enum_name: str | None = None,
    precheck: bool | None = None,
) -> None:
    """
    Replace the label set of the enum behind ``table_name.column_name``.

    PostgreSQL cannot remove labels from an existing ENUM, so a new type
    ``<enum_name>_new`` is created with ``new_values``, the column is moved onto
    it and the new type takes over the original name. The column default is
    dropped for the retype and restored as ``default_value`` afterwards.

    All steps share one transaction (a SAVEPOINT when ``bind`` is a connection
    already inside one); the first database error rolls everything back and is
    re-raised unchanged.
    """
    enum_name = enum_name or default_enum_name(table_name, column_name)
    values = list(new_values)
    if precheck is None:
        precheck = get_settings().enum_replace_precheck

    plan = build_enum_replacement_plan(
        table_name=table_name,
        column_name=column_name,
        default_value=default_value,
        new_values=values,
        enum_name=enum_name,
    )
    log_extra = {"table_name": table_name, "column_name": column_name, "enum_name": enum_name}

    reached = "start"
    attempted = "begin"
    with run_scope():
        try:
            logger.info("enum_replace.started", extra={**log_extra, "new_values": values, "precheck": precheck})

            with _transaction(bind) as conn:
                if precheck:
                    attempted = "precheck"
                    _ensure_values_representable(
                        conn, table_name=table_name, column_name=column_name, new_values=values
                    )

                for step in plan:
                    attempted = step.action
                    _execute(conn, step.sql)
                    reached = step.stage.value
                    logger.info(
                        "enum_replace.step.completed",
                        extra={**log_extra, "step": step.action, "stage": reached},
                    )
                attempted = "commit"

            logger.info("enum_replace.completed", extra=log_extra)
        except SQLAlchemyError as exc:
            # ``step`` is what failed, ``stage`` the last state reached before it (all rolled back).
            logger.error(
                "enum_replace.failed",
                extra={**log_extra, "step": attempted, "stage": reached, "error_type": type(exc).__name__},
                exc_info=True,
            )
            raise
