"""
Event log store - PostgreSQL persistence for discrete event records.

This package provides:

- CRUD access to the `event_logs` table, whose key is `(id, created_at)`
- A synthetic-data bulk loader that inserts millions of records in fixed-size
  batches, isolating failures per batch
- A typer CLI over both

Connection parameters are passed explicitly (`DatabaseConfig`) to the store and
the loader; `get_settings()` builds them from the environment.
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from event_logs.config import DatabaseConfig, SeedPlan, Settings, get_settings
from event_logs.domain import (
    EventRecord,
    EventRecordPatch,
    EventStoreError,
    NewEventRecord,
    NotFoundError,
    StorageError,
    ValidationError,
)
from event_logs.loader import BatchFailure, BulkLoader, LoadReport, LoaderState, generate_events
from event_logs.store import EventStore
from event_logs.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "DatabaseConfig",
    "SeedPlan",
    "Settings",
    "get_settings",
    # Domain
    "EventRecord",
    "EventRecordPatch",
    "NewEventRecord",
    "EventStoreError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
    # Store and loader
    "EventStore",
    "BulkLoader",
    "BatchFailure",
    "LoadReport",
    "LoaderState",
    "generate_events",
    # Logging
    "configure_logging",
    "get_logger",
]
