"""
Synthetic data generation and batched loading into the `event_logs` table.

The loader walks a `SeedPlan` (months of one year, N records per month), groups
the generated records into contiguous fixed-size batches and inserts each batch
with one `EventStore.insert_many` call. A failing batch is logged, recorded in
the run's `LoadReport` and skipped: no retry, no abort, and earlier batches
stay committed.

Usage:
    from event_logs.config import get_settings
    from event_logs.loader import BulkLoader

    settings = get_settings()
    report = BulkLoader(settings.database, settings.seed_plan).run()
    print(report.rows_inserted, report.batches_failed)
"""

from __future__ import annotations

import enum
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import islice
from typing import Callable, ContextManager, Iterable, Iterator, List, Optional, Tuple

import psycopg

from event_logs.config import DatabaseConfig, SeedPlan
from event_logs.domain.errors import StorageError
from event_logs.domain.models import NewEventRecord
from event_logs.infrastructure.db_factory import create_pool
from event_logs.store import ConnectionSource, EventStore
from event_logs.utils.logging import get_logger

log = get_logger(__name__)

DEFAULT_BATCH_SIZE = 1_000
USER_LOGIN = "user_login"
ITEM_VIEWED = "item_viewed"


class LoaderState(str, enum.Enum):
    IDLE = "idle"
    GENERATING = "generating"
    INSERTING = "inserting"
    DRAINING = "draining"
    DONE = "done"


@dataclass(frozen=True)
class BatchFailure:
    """One batch that could not be inserted. `start`/`end` are global record offsets, end exclusive."""

    batch: int
    start: int
    end: int
    error: str
    error_type: str


@dataclass
class LoadReport:
    """
    Outcome of one loader run.
    """

    batch_size: int
    batches_total: int = 0
    rows_inserted: int = 0
    rows_failed: int = 0
    failures: List[BatchFailure] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def batches_failed(self) -> int:
        return len(self.failures)

    @property
    def batches_succeeded(self) -> int:
        return self.batches_total - self.batches_failed

    @property
    def throughput_rows_per_sec(self) -> float:
        return self.rows_inserted / self.duration_seconds if self.duration_seconds > 0 else 0.0

    @property
    def ok(self) -> bool:
        return not self.failures


def generate_events(plan: SeedPlan, rng: random.Random) -> Iterator[NewEventRecord]:
    """
    Yield the synthetic workload month by month.

    Within a month, even indices are `user_login` events keyed by a user id and
    odd indices are `item_viewed` events keyed by an item id. Timestamps fall in
    the plan's year/month on a random day 1-28 at a random time of day (UTC).
    """
    for month in plan.months:
        for i in range(plan.records_per_month):
            created_at = datetime(
                plan.year,
                month,
                rng.randint(1, 28),
                rng.randrange(24),
                rng.randrange(60),
                rng.randrange(60),
                tzinfo=timezone.utc,
            )
            if i % 2 == 0:
                yield NewEventRecord(
                    event_type=USER_LOGIN, payload={"userId": f"user{i}"}, created_at=created_at
                )
            else:
                yield NewEventRecord(
                    event_type=ITEM_VIEWED, payload={"itemId": f"item{i}"}, created_at=created_at
                )


def batched(records: Iterable[NewEventRecord], size: int) -> Iterator[Tuple[NewEventRecord, ...]]:
    """
    Yield contiguous batches of `size` records; the last one may be shorter.
    """
    if size <= 0:
        raise ValueError("batch size must be positive")
    iterator = iter(records)
    while True:
        batch = tuple(islice(iterator, size))
        if not batch:
            break
        yield batch


class BulkLoader:
    """
    Generate a synthetic dataset and load it in isolated batches.

    Parameters
    ----------
    config : DatabaseConfig
        Where to load. A dedicated single-connection pool is opened per run.
    plan : SeedPlan
        Workload shape for generated records.
    batch_size : int
        Records per `insert_many` call.
    rng : random.Random | None
        Random source for generation. Pass a seeded instance for reproducible
        output; defaults to a fresh `random.Random()` seeded from system entropy.
    pool_factory, store_factory
        Seams for swapping the pool and store (tests use in-memory fakes).
    """

    def __init__(
        self,
        config: DatabaseConfig,
        plan: Optional[SeedPlan] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        rng: Optional[random.Random] = None,
        pool_factory: Callable[..., ContextManager[ConnectionSource]] = create_pool,
        store_factory: Callable[[ConnectionSource], EventStore] = EventStore,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.config = config
        self.plan = plan or SeedPlan()
        self.batch_size = batch_size
        self.rng = rng if rng is not None else random.Random()
        self._pool_factory = pool_factory
        self._store_factory = store_factory
        self.state = LoaderState.IDLE

    def _transition(self, state: LoaderState) -> None:
        log.debug(f"[LOADER] {self.state.value} -> {state.value}")
        self.state = state

    def run(self, records: Optional[Iterable[NewEventRecord]] = None) -> LoadReport:
        """
        Load `records` (or the generated plan when omitted) batch by batch.

        Batch failures are collected in the returned report and never raised.

        Raises
        ------
        StorageError
            If the connection pool cannot be opened.
        """
        report = LoadReport(batch_size=self.batch_size)
        self._transition(LoaderState.GENERATING)
        source = records if records is not None else generate_events(self.plan, self.rng)
        log.info(
            "[LOADER START] Seeding event logs",
            extra={
                "year": self.plan.year,
                "months": list(self.plan.months),
                "planned_rows": None if records is not None else self.plan.total_records,
                "batch_size": self.batch_size,
            },
        )

        start = time.perf_counter()
        try:
            try:
                pool_cm = self._pool_factory(self.config, min_size=1, max_size=1)
            except psycopg.Error as exc:
                raise StorageError(f"could not open connection pool: {exc}") from exc
            with pool_cm as pool:
                try:
                    store = self._store_factory(pool)
                    for number, batch in enumerate(batched(source, self.batch_size), start=1):
                        self._insert_batch(store, number, batch, report)
                finally:
                    # pool is released on leaving the `with` block
                    self._transition(LoaderState.DRAINING)
        finally:
            report.duration_seconds = time.perf_counter() - start
            self._transition(LoaderState.DONE)

        log.info(
            "[LOADER COMPLETE] Seeding finished",
            extra={
                "batches": report.batches_total,
                "failed_batches": [f.batch for f in report.failures],
                "rows_inserted": report.rows_inserted,
                "rows_failed": report.rows_failed,
                "duration": round(report.duration_seconds, 2),
            },
        )
        return report

    def _insert_batch(
        self,
        store: EventStore,
        number: int,
        batch: Tuple[NewEventRecord, ...],
        report: LoadReport,
    ) -> None:
        self._transition(LoaderState.INSERTING)
        start = (number - 1) * self.batch_size
        end = start + len(batch)
        report.batches_total += 1
        log.info(f"[BATCH {number}] Inserting ({start} - {end})", extra={"batch": number})
        try:
            inserted = store.insert_many(batch)
        except StorageError as exc:
            log.error(
                f"[BATCH {number} FAILED] ({start} - {end}): {exc}",
                extra={"batch": number, "start": start, "end": end, "error_type": type(exc).__name__},
            )
            report.failures.append(
                BatchFailure(
                    batch=number,
                    start=start,
                    end=end,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
            )
            report.rows_failed += len(batch)
            return
        report.rows_inserted += inserted
        log.info(f"[BATCH {number}] Inserted successfully", extra={"batch": number, "rows": inserted})


__all__ = [
    "BatchFailure",
    "BulkLoader",
    "DEFAULT_BATCH_SIZE",
    "ITEM_VIEWED",
    "LoadReport",
    "LoaderState",
    "USER_LOGIN",
    "batched",
    "generate_events",
]
