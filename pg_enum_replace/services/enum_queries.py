"""SQL text for replacing the label set of a PostgreSQL ENUM type.

Every builder returns a single-line statement. Names are double-quoted and
labels single-quoted; embedded quote characters are doubled so the statement
stays well-formed for any input.
"""

from __future__ import annotations

from collections.abc import Sequence


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def get_query_to_create_enum(name: str, values: Sequence[str]) -> str:
    labels = ", ".join(quote_literal(value) for value in values)
    return f"CREATE TYPE {quote_identifier(name)} AS ENUM ({labels})"


def get_query_to_remove_default_from_column(table_name: str, column_name: str) -> str:
    return (
        f"ALTER TABLE {quote_identifier(table_name)} "
        f"ALTER COLUMN {quote_identifier(column_name)} DROP DEFAULT"
    )


def get_query_to_set_enum_type(table_name: str, column_name: str, enum_name: str) -> str:
    """Retype a column through a text cast.

    PostgreSQL has no cast between two unrelated enum types, so each stored
    label goes ``old enum -> text -> new enum``. Labels missing from the new
    type fail the cast.
    """
    column = quote_identifier(column_name)
    enum = quote_identifier(enum_name)
    return (
        f"ALTER TABLE {quote_identifier(table_name)} "
        f"ALTER COLUMN {column} TYPE {enum} USING ({column}::text::{enum})"
    )


def get_query_to_drop_enum(enum_name: str) -> str:
    return f"DROP TYPE {quote_identifier(enum_name)}"


def get_query_to_rename_enum(old_enum_name: str, new_enum_name: str) -> str:
    return f"ALTER TYPE {quote_identifier(old_enum_name)} RENAME TO {quote_identifier(new_enum_name)}"


def get_query_to_set_column_default(
    table_name: str,
    column_name: str,
    default_value: str,
    default_value_type: str,
) -> str:
    return (
        f"ALTER TABLE {quote_identifier(table_name)} "
        f"ALTER COLUMN {quote_identifier(column_name)} "
        f"SET DEFAULT {quote_literal(default_value)}::{quote_identifier(default_value_type)}"
    )


def get_query_to_select_values_in_use(table_name: str, column_name: str) -> str:
    column = quote_identifier(column_name)
    return f"SELECT DISTINCT {column}::text FROM {quote_identifier(table_name)} WHERE {column} IS NOT NULL"
