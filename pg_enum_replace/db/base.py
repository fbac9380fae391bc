from __future__ import annotations

from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import NullPool

from pg_enum_replace.core.config import Settings, get_settings


def build_engine(settings: Settings | None = None) -> Engine:
    settings = settings or get_settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL is not set (required to run enum migrations).")

    if settings.db_pool == "null":
        # One-shot CLI runs and pgbouncer setups: no connection outlives the migration.
        return create_engine(
            settings.database_url,
            poolclass=NullPool,
            pool_pre_ping=True,
        )

    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
