"""
Domain models for the event log store.

Defines the record schema aligned with `db/init.sql` plus the input shapes used
to create and partially update rows. Input models carry the validation that
collaborators apply before a record reaches the store; the store itself relies
on the database for anything beyond that.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, Field, model_validator

EVENT_TYPE_MAX_LENGTH = 50


def _assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _reject_empty_payload(value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if value is not None and not value:
        raise ValueError("payload must not be empty when provided")
    return value


Payload = Annotated[Optional[Dict[str, Any]], AfterValidator(_reject_empty_payload)]
Timestamp = Annotated[Optional[datetime], AfterValidator(_assume_utc)]


class EventRecord(BaseModel):
    """
    Representation of a single row in the `event_logs` table.

    The table key is `(id, created_at)`, so two records may share an `id`.
    """

    id: UUID = Field(..., description="Random identifier (not unique on its own).")
    event_type: str = Field(..., description="Categorical tag, at most 50 characters.")
    payload: Optional[Dict[str, Any]] = Field(None, description="Arbitrary JSON payload.")
    created_at: datetime = Field(..., description="Event timestamp (timestamptz).")

    model_config = {"frozen": True}


class NewEventRecord(BaseModel):
    """
    Input for a single insert. `id` and `created_at` fall back to the server
    defaults when omitted.
    """

    event_type: str = Field(..., min_length=1, max_length=EVENT_TYPE_MAX_LENGTH)
    payload: Payload = None
    created_at: Timestamp = None
    id: Optional[UUID] = None

    model_config = {"frozen": True}


class EventRecordPatch(BaseModel):
    """
    Partial update. Only fields explicitly set on the instance are written.
    """

    event_type: Optional[str] = Field(None, min_length=1, max_length=EVENT_TYPE_MAX_LENGTH)
    payload: Payload = None
    created_at: Timestamp = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _not_null_columns(self) -> "EventRecordPatch":
        for name in ("event_type", "created_at"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be set to null")
        return self

    def changes(self) -> Dict[str, Any]:
        """Column/value pairs explicitly supplied by the caller."""
        return self.model_dump(exclude_unset=True)


__all__ = ["EVENT_TYPE_MAX_LENGTH", "EventRecord", "EventRecordPatch", "NewEventRecord"]
