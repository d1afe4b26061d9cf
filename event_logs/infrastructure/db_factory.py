"""
Database connection factory utilities for the event log store.

Builds psycopg connection pools from an explicit `DatabaseConfig`. Pools are
owned by whoever creates them: the CLI holds one for CRUD commands and the bulk
loader opens a dedicated one per run. Use the returned pool as a context
manager so it is closed exactly once.

Opening a pool retries transient failures using tenacity. Individual store
operations are never retried.
"""

from __future__ import annotations

from typing import Optional

import psycopg
from psycopg import Connection
from psycopg_pool import ConnectionPool, PoolTimeout
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from event_logs.config import DatabaseConfig
from event_logs.utils.logging import get_logger

log = get_logger(__name__)


def build_dsn(config: DatabaseConfig) -> str:
    """Compose a DSN string from a database config."""
    return config.dsn


def apply_statement_timeout(cur: psycopg.Cursor, timeout_ms: int) -> None:
    """
    Set the session statement timeout. A value of 0 keeps the server default.
    """
    if timeout_ms <= 0:
        return
    cur.execute("SELECT set_config('statement_timeout', %s, false)", (str(timeout_ms),))


def _configure_connection(timeout_ms: int):
    def configure(conn: Connection) -> None:
        with conn.cursor() as cur:
            apply_statement_timeout(cur, timeout_ms)
        # Pooled connections must be returned idle, not inside a transaction.
        conn.commit()

    return configure


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(PoolTimeout),
    reraise=True,
)
def create_pool(
    config: DatabaseConfig,
    min_size: int = 1,
    max_size: Optional[int] = None,
) -> ConnectionPool:
    """
    Create and open a synchronous connection pool with automatic retry.

    Retries up to 3 times with exponential backoff when the pool cannot be
    filled within `config.connect_timeout_seconds`. A pool that times out is
    closed by psycopg_pool before the next attempt.

    Parameters
    ----------
    config : DatabaseConfig
        Connection parameters.
    min_size : int
        Minimum number of idle connections to keep.
    max_size : int | None
        Maximum total connections. Defaults to `config.pool_max_size`.

    Returns
    -------
    ConnectionPool
        An open pool. The caller owns it and must close it.

    Raises
    ------
    psycopg_pool.PoolTimeout
        If the pool cannot be filled after all retry attempts.
    """
    effective_max = max(max_size or config.pool_max_size, min_size)
    log.debug(
        "Opening connection pool",
        extra={"host": config.host, "db": config.name, "min_size": min_size, "max_size": effective_max},
    )
    pool = ConnectionPool(
        conninfo=build_dsn(config),
        min_size=min_size,
        max_size=effective_max,
        open=False,
        timeout=config.connect_timeout_seconds,
        configure=_configure_connection(config.statement_timeout_ms),
    )
    pool.open(wait=True, timeout=config.connect_timeout_seconds)
    return pool


__all__ = [
    "apply_statement_timeout",
    "build_dsn",
    "create_pool",
]
