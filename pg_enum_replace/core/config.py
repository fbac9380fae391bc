from __future__ import annotations

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DB_POOL_MODES = {"queue", "null"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    # Only required when a migration actually connects (CLI or build_engine).
    database_url: str | None = None

    # DB pooling
    # - "null" pgbouncer / one-shot CLI runs
    # - "queue" long-lived processes
    db_pool: str = "queue"
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True

    # Reject labels still stored in the column before any DDL runs.
    enum_replace_precheck: bool = False

    @model_validator(mode="after")
    def _validate_pool_mode(self) -> Settings:
        self.db_pool = (self.db_pool or "queue").strip().lower()
        if self.db_pool not in DB_POOL_MODES:
            raise ValueError(f"db_pool must be one of: {', '.join(sorted(DB_POOL_MODES))}")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
