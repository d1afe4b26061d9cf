"""
Configuration settings for the event log store.

Uses Pydantic Settings to load environment variables for database connections,
logging, and seed defaults. The core (store and loader) never reads settings on
its own: callers build a `DatabaseConfig` / `SeedPlan` from `Settings` and pass
them in at construction.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Tuple

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """
    Validated connection parameters for PostgreSQL.
    """

    host: str = Field(..., min_length=1)
    port: int = Field(5432, gt=0, lt=65536)
    user: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    statement_timeout_ms: int = Field(0, ge=0)
    connect_timeout_seconds: float = Field(10.0, gt=0)
    pool_max_size: int = Field(5, ge=1)

    model_config = {"frozen": True}

    @property
    def dsn(self) -> str:
        # libpq keyword/value form, values quoted
        return make_conninfo(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            dbname=self.name,
        )


class SeedPlan(BaseModel):
    """
    Shape of the synthetic workload: which months of which year, and how many
    records to produce per month.
    """

    year: int = Field(2025, ge=1970, le=9999)
    months: Tuple[int, ...] = (1, 2, 3, 4)
    records_per_month: int = Field(1_000_000, ge=0)

    model_config = {"frozen": True}

    @field_validator("months")
    @classmethod
    def _check_months(cls, value: Tuple[int, ...]) -> Tuple[int, ...]:
        if not value:
            raise ValueError("at least one month is required")
        bad = [m for m in value if not 1 <= m <= 12]
        if bad:
            raise ValueError(f"months out of range: {bad}")
        return value

    @property
    def total_records(self) -> int:
        return len(self.months) * self.records_per_month


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="POSTGRES_HOST", min_length=1)
    db_port: int = Field(5432, alias="POSTGRES_PORT")
    db_user: str = Field("postgres", alias="POSTGRES_USER", min_length=1)
    db_password: str = Field("postgres", alias="POSTGRES_PASSWORD", min_length=1)
    db_name: str = Field("event_logs", alias="POSTGRES_DB", min_length=1)
    db_statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)
    db_connect_timeout_seconds: float = Field(10.0, alias="DB_CONNECT_TIMEOUT_SECONDS", gt=0)
    db_pool_max_size: int = Field(5, alias="DB_POOL_MAX_SIZE", ge=1)

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Seed defaults
    seed_year: int = Field(2025, alias="SEED_YEAR")
    seed_months: List[int] = Field(default_factory=lambda: [1, 2, 3, 4], alias="SEED_MONTHS")
    seed_records_per_month: int = Field(1_000_000, alias="SEED_RECORDS_PER_MONTH", ge=0)
    seed_batch_size: int = Field(1_000, alias="SEED_BATCH_SIZE", gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def database(self) -> DatabaseConfig:
        return DatabaseConfig(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_password,
            name=self.db_name,
            statement_timeout_ms=self.db_statement_timeout_ms,
            connect_timeout_seconds=self.db_connect_timeout_seconds,
            pool_max_size=self.db_pool_max_size,
        )

    @property
    def seed_plan(self) -> SeedPlan:
        return SeedPlan(
            year=self.seed_year,
            months=tuple(self.seed_months),
            records_per_month=self.seed_records_per_month,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["DatabaseConfig", "SeedPlan", "Settings", "get_settings"]
