"""
Pytest configuration for the event log store.

Provides fixtures for:
- Database connection management
- Schema creation from db/init.sql and per-test table cleanup
- Settings override for integration tests
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from event_logs.config import DatabaseConfig, Settings
from event_logs.infrastructure.db_factory import create_pool
from event_logs.store import EventStore

INIT_SQL = Path(__file__).parent.parent / "db" / "init.sql"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("POSTGRES_HOST", "localhost"),
        db_port=int(os.getenv("POSTGRES_PORT", "5432")),
        db_user=os.getenv("POSTGRES_USER", "postgres"),
        db_password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        db_name=os.getenv("POSTGRES_DB", "event_logs"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_db_config(test_settings: Settings) -> DatabaseConfig:
    return test_settings.database


@pytest.fixture(scope="session")
def db_connection_available(test_db_config: DatabaseConfig) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_db_config.dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_db_config: DatabaseConfig, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_db_config.dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the event_logs table exists.
    """
    with db_connection.cursor() as cur:
        cur.execute(INIT_SQL.read_text(encoding="utf-8"))
    db_connection.commit()
    return True


@pytest.fixture(scope="function")
def clean_event_logs(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty the event_logs table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.event_logs;")
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE public.event_logs;")
    db_connection.commit()


@pytest.fixture(scope="session")
def db_pool(
    test_db_config: DatabaseConfig, db_connection_available: bool
) -> Generator[ConnectionPool, None, None]:
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")
    with create_pool(test_db_config) as pool:
        yield pool


@pytest.fixture(scope="function")
def event_store(db_pool: ConnectionPool, clean_event_logs) -> EventStore:
    return EventStore(db_pool)
