"""
Error kinds raised by the event store.

`ValidationError` is a `StorageError` so that the bulk loader can isolate any
engine-side failure of a batch with a single `except StorageError`.
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID


class EventStoreError(Exception):
    """Base class for all store failures."""


class StorageError(EventStoreError):
    """Connectivity or engine-level failure."""


class ValidationError(StorageError):
    """The engine rejected the written values (null violation, type mismatch, key collision)."""


class NotFoundError(EventStoreError):
    """A single-id operation matched zero rows."""

    def __init__(self, event_id: UUID, message: Optional[str] = None) -> None:
        self.event_id = event_id
        super().__init__(message or f"event log {event_id} not found")


__all__ = ["EventStoreError", "NotFoundError", "StorageError", "ValidationError"]
