"""
Domain package for the event log store.

Exports the record models and error kinds shared by the store, the loader and
the CLI. Keep this package focused on data definitions and validation concerns.
"""

from event_logs.domain.errors import (
    EventStoreError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from event_logs.domain.models import EventRecord, EventRecordPatch, NewEventRecord

__all__ = [
    "EventRecord",
    "EventRecordPatch",
    "NewEventRecord",
    "EventStoreError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
