"""
Infrastructure package for the event log store.

Centralizes database connectivity concerns (DSN building, pooling, session
settings). Keep this layer focused on I/O and resource management, decoupled
from store/loader logic.
"""

from event_logs.infrastructure.db_factory import (
    apply_statement_timeout,
    build_dsn,
    create_pool,
)

__all__ = [
    "apply_statement_timeout",
    "build_dsn",
    "create_pool",
]
