"""Alembic entry point.

Usage inside a revision::

    from alembic import op

    from pg_enum_replace.migrations.alembic_ops import replace_enum_values_op


    def upgrade() -> None:
        replace_enum_values_op(
            op,
            table_name="users",
            column_name="role",
            default_value="member",
            new_values=["admin", "member"],
        )
"""

from __future__ import annotations

from collections.abc import Sequence

from alembic.operations import Operations

from pg_enum_replace.core.logging import get_logger
from pg_enum_replace.services.enum_replacement import (
    build_enum_replacement_plan,
    replace_enum_values,
)

logger = get_logger(__name__)


def _is_offline(op: Operations) -> bool:
    return bool(op.get_context().as_sql)


def replace_enum_values_op(
    op: Operations,
    *,
    table_name: str,
    column_name: str,
    default_value: str,
    new_values: Sequence[str],
    enum_name: str | None = None,
    precheck: bool | None = None,
) -> None:
    if _is_offline(op):
        # No connection in --sql mode: emit the statements into the script instead.
        plan = build_enum_replacement_plan(
            table_name=table_name,
            column_name=column_name,
            default_value=default_value,
            new_values=new_values,
            enum_name=enum_name,
        )
        impl = op.get_context().impl
        for step in plan:
            # static_output skips SQL compilation, so "%" and ":" in labels stay literal.
            impl.static_output(step.sql + impl.command_terminator)
        logger.info(
            "enum_replace.offline.emitted",
            extra={"table_name": table_name, "column_name": column_name, "statements": len(plan)},
        )
        return

    replace_enum_values(
        op.get_bind(),
        table_name=table_name,
        column_name=column_name,
        default_value=default_value,
        new_values=new_values,
        enum_name=enum_name,
        precheck=precheck,
    )
