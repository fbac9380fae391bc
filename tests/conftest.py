from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import pytest
from sqlalchemy import Connection, Engine, create_engine, text
from sqlalchemy.exc import ProgrammingError

# --- Force test settings early (before package import) ---
os.environ.setdefault("LOG_LEVEL", "INFO")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("ENUM_REPLACE_PRECHECK", "false")
os.environ.setdefault("DB_POOL", "null")

from pg_enum_replace.core.config import get_settings  # noqa: E402
from pg_enum_replace.core.logging import ROOT_HANDLER_NAME  # noqa: E402

DATABASE_URL = os.getenv("DATABASE_URL")


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    get_settings.cache_clear()
    try:
        yield
    finally:
        get_settings.cache_clear()
        # configure_logging() binds its handler to the captured stdout of the current test.
        root = logging.getLogger()
        for handler in list(root.handlers):
            if handler.name == ROOT_HANDLER_NAME:
                root.removeHandler(handler)


class _FakeResult:
    def __init__(self, rows: list[Any] | None = None):
        self._rows = rows or []

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class RecordingConnection:
    """Stands in for a SQLAlchemy Connection and records every statement and transaction event."""

    def __init__(
        self,
        *,
        in_transaction: bool = False,
        fail_on: str | None = None,
        stored_values: list[str] | None = None,
    ):
        self._in_transaction = in_transaction
        self._fail_on = fail_on
        self._stored_values = stored_values or []
        self.statements: list[str] = []
        self.events: list[str] = []

    def in_transaction(self) -> bool:
        return self._in_transaction

    @contextmanager
    def _scope(self, name: str):
        self.events.append(f"{name}.begin")
        try:
            yield self
        except BaseException:
            self.events.append(f"{name}.rollback")
            raise
        else:
            self.events.append(f"{name}.commit")

    def begin(self):
        return self._scope("transaction")

    def begin_nested(self):
        return self._scope("savepoint")

    def execute(self, clause):
        sql = str(clause)
        if sql.startswith("SELECT DISTINCT"):
            self.statements.append(sql)
            return _FakeResult(self._stored_values)

        if self._fail_on is not None and self._fail_on in sql:
            raise ProgrammingError(sql, {}, Exception(f"failed: {self._fail_on}"))

        self.statements.append(sql)
        return _FakeResult()


@pytest.fixture()
def make_connection():
    return RecordingConnection


@pytest.fixture()
def recording_connection() -> RecordingConnection:
    return RecordingConnection()


# -------------------------
# PostgreSQL (integration)
# -------------------------


@pytest.fixture(scope="session")
def pg_engine() -> Iterator[Engine]:
    if not DATABASE_URL:
        pytest.skip("DATABASE_URL is not set (point it to a Postgres DB to run integration tests).")

    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
    if engine.dialect.name != "postgresql":
        engine.dispose()
        pytest.skip("integration tests require a PostgreSQL DATABASE_URL")

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def pg_connection(pg_engine: Engine) -> Iterator[Connection]:
    connection = pg_engine.connect()
    trans = connection.begin()
    try:
        yield connection
    finally:
        trans.rollback()
        connection.close()


@pytest.fixture()
def unique_suffix() -> str:
    return uuid.uuid4().hex[:8]
