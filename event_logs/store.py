"""
CRUD access to the `event_logs` table.

The table key is `(id, created_at)`, but every single-record operation here is
addressed by `id` alone. Such an operation applies to the whole set of rows
sharing that id:

- `get_all_by_id` returns the full matched set ordered by `created_at`.
- `get_by_id` and `update` return the match with the latest `created_at`.
- `update` and `delete` touch every matched row.

The store borrows one connection per call from a caller-owned pool. Each call
is one statement in one transaction; nothing is retried.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, ContextManager, Iterable, Iterator, List, Optional, Protocol, Sequence
from uuid import UUID

import psycopg
from psycopg import sql
from psycopg.rows import class_row
from psycopg.types.json import Jsonb

from event_logs.domain.errors import NotFoundError, StorageError, ValidationError
from event_logs.domain.models import EventRecord, EventRecordPatch, NewEventRecord
from event_logs.utils.logging import get_logger

log = get_logger(__name__)

COLUMNS: Sequence[str] = ("id", "event_type", "payload", "created_at")
_DEFAULT = sql.SQL("DEFAULT")


class ConnectionSource(Protocol):
    """Anything that lends connections the way `psycopg_pool.ConnectionPool` does."""

    def connection(self) -> ContextManager[psycopg.Connection]: ...


def _json_param(value: Optional[dict]) -> Optional[Jsonb]:
    return Jsonb(value) if value is not None else None


def _latest(records: List[EventRecord]) -> EventRecord:
    return sorted(records, key=lambda r: r.created_at)[-1]


class EventStore:
    """
    Durable CRUD access to event records.

    Parameters
    ----------
    pool : ConnectionSource
        Pool to borrow connections from. Its lifecycle belongs to the caller.
    table : str
        Table name, `event_logs` by default.
    """

    def __init__(self, pool: ConnectionSource, table: str = "event_logs") -> None:
        self._pool = pool
        self._table = sql.Identifier(table)
        self._columns = sql.SQL(", ").join(sql.Identifier(c) for c in COLUMNS)

    @contextmanager
    def _cursor(self, operation: str, as_records: bool = True) -> Iterator[psycopg.Cursor]:
        """
        Borrow a connection and yield a cursor, translating driver errors.

        The connection context commits on success and rolls back on error.
        """
        row_factory = class_row(EventRecord) if as_records else None
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=row_factory) as cur:
                    yield cur
        except (psycopg.IntegrityError, psycopg.DataError) as exc:
            log.warning(f"[{operation}] rejected by database: {exc}", extra={"operation": operation})
            raise ValidationError(f"{operation} rejected: {exc}") from exc
        except psycopg.Error as exc:
            log.error(f"[{operation}] storage failure: {exc}", extra={"operation": operation})
            raise StorageError(f"{operation} failed: {exc}") from exc

    def _insert_statement(self, records: Sequence[Any]) -> tuple[sql.Composed, list]:
        params: list = []
        rows = []
        for record in records:
            parts = []
            for column, value in (
                ("id", record.id),
                ("event_type", record.event_type),
                ("payload", _json_param(record.payload)),
                ("created_at", record.created_at),
            ):
                if value is None and column in ("id", "created_at"):
                    parts.append(_DEFAULT)
                else:
                    parts.append(sql.Placeholder())
                    params.append(value)
            rows.append(sql.SQL("({})").format(sql.SQL(", ").join(parts)))
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES {rows}").format(
            table=self._table,
            columns=self._columns,
            rows=sql.SQL(", ").join(rows),
        )
        return query, params

    def list_all(self) -> List[EventRecord]:
        """
        Return every stored record, unordered and unpaginated.

        Meant for small tables only.
        """
        query = sql.SQL("SELECT {columns} FROM {table}").format(
            columns=self._columns, table=self._table
        )
        with self._cursor("list_all") as cur:
            cur.execute(query)
            records = cur.fetchall()
        log.debug("Listed event logs", extra={"rows": len(records)})
        return records

    def get_all_by_id(self, event_id: UUID) -> List[EventRecord]:
        """
        Return every row sharing `event_id`, oldest `created_at` first.

        Raises
        ------
        NotFoundError
            If no row has this id.
        """
        query = sql.SQL(
            "SELECT {columns} FROM {table} WHERE id = %s ORDER BY created_at"
        ).format(columns=self._columns, table=self._table)
        with self._cursor("get_by_id") as cur:
            cur.execute(query, (event_id,))
            records = cur.fetchall()
        if not records:
            raise NotFoundError(event_id)
        return records

    def get_by_id(self, event_id: UUID) -> EventRecord:
        """
        Return one row for `event_id`: the last of the matched set, i.e. the one
        with the latest `created_at`.
        """
        return self.get_all_by_id(event_id)[-1]

    def create(self, record: NewEventRecord) -> EventRecord:
        """
        Insert one row and return it as stored, server defaults included.
        """
        query, params = self._insert_statement([record])
        query = query + sql.SQL(" RETURNING {columns}").format(columns=self._columns)
        with self._cursor("create") as cur:
            cur.execute(query, params)
            created = cur.fetchone()
        log.debug("Created event log", extra={"id": str(created.id), "event_type": created.event_type})
        return created

    def update(self, event_id: UUID, patch: EventRecordPatch) -> EventRecord:
        """
        Apply the supplied fields to every row sharing `event_id`.

        Returns the updated row with the latest `created_at`.

        Raises
        ------
        ValidationError
            If the patch carries no fields, or the database rejects the values
            (setting `created_at` on an id shared by several rows collides on
            the primary key).
        NotFoundError
            If no row has this id.
        """
        changes = patch.changes()
        if not changes:
            raise ValidationError("update requires at least one field")

        assignments = []
        params: list = []
        for column in COLUMNS:
            if column not in changes:
                continue
            value = changes[column]
            assignments.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(_json_param(value) if column == "payload" else value)
        params.append(event_id)

        query = sql.SQL("UPDATE {table} SET {assignments} WHERE id = %s RETURNING {columns}").format(
            table=self._table,
            assignments=sql.SQL(", ").join(assignments),
            columns=self._columns,
        )
        with self._cursor("update") as cur:
            cur.execute(query, params)
            updated = cur.fetchall()
        if not updated:
            raise NotFoundError(event_id)
        log.debug(
            "Updated event log",
            extra={"id": str(event_id), "rows": len(updated), "fields": sorted(changes)},
        )
        return _latest(updated)

    def delete(self, event_id: UUID) -> None:
        """
        Remove every row sharing `event_id`.

        Raises
        ------
        NotFoundError
            If no row has this id.
        """
        query = sql.SQL("DELETE FROM {table} WHERE id = %s").format(table=self._table)
        with self._cursor("delete", as_records=False) as cur:
            cur.execute(query, (event_id,))
            removed = cur.rowcount
        if removed == 0:
            raise NotFoundError(event_id)
        log.info("Deleted event log", extra={"id": str(event_id), "rows": removed})

    def insert_many(self, records: Iterable[NewEventRecord]) -> int:
        """
        Insert an ordered batch with a single multi-row INSERT.

        The batch is all-or-nothing. Returns the number of rows inserted.

        Raises
        ------
        ValidationError
            If any row is rejected (e.g. a null `event_type`).
        StorageError
            On any other database failure.
        """
        batch = list(records)
        if not batch:
            return 0
        query, params = self._insert_statement(batch)
        with self._cursor("insert_many", as_records=False) as cur:
            cur.execute(query, params)
            inserted = cur.rowcount
        return inserted


__all__ = ["COLUMNS", "ConnectionSource", "EventStore"]
