from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Iterable, Iterator, List

import psycopg
import pytest

from event_logs.config import DatabaseConfig, SeedPlan
from event_logs.domain.errors import StorageError, ValidationError
from event_logs.domain.models import NewEventRecord
from event_logs.loader import (
    ITEM_VIEWED,
    USER_LOGIN,
    BulkLoader,
    LoaderState,
    batched,
    generate_events,
)

CONFIG = DatabaseConfig(host="localhost", user="postgres", password="postgres", name="event_logs")
BATCH_SIZE = 10
BATCH_COUNT = 4
FAILING_BATCH = 2
CREATED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


class _FakePool:
    def __init__(self) -> None:
        self.enter_calls = 0
        self.close_calls = 0

    def __enter__(self) -> "_FakePool":
        self.enter_calls += 1
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        del exc_type, exc, tb
        self.close_calls += 1


class _StateRecordingPool(_FakePool):
    """Remembers the loader state at the moment the pool is released."""

    def __init__(self) -> None:
        super().__init__()
        self.loader: BulkLoader | None = None
        self.state_on_release: LoaderState | None = None

    def __exit__(self, exc_type, exc, tb) -> None:
        super().__exit__(exc_type, exc, tb)
        self.state_on_release = self.loader.state


class _FakeStore:
    """Accepts batches unless a row has a null event_type, like the NOT NULL column."""

    def __init__(self, pool: _FakePool) -> None:
        self.pool = pool
        self.rows: List[NewEventRecord] = []
        self.calls = 0

    def insert_many(self, records: Iterable[NewEventRecord]) -> int:
        self.calls += 1
        batch = list(records)
        if any(record.event_type is None for record in batch):
            raise ValidationError('null value in column "event_type" violates not-null constraint')
        self.rows.extend(batch)
        return len(batch)


def _loader(pool: _FakePool, stores: List[_FakeStore], **kwargs) -> BulkLoader:
    def store_factory(p: _FakePool) -> _FakeStore:
        store = _FakeStore(p)
        stores.append(store)
        return store

    return BulkLoader(
        CONFIG,
        pool_factory=lambda config, **pool_kwargs: pool,
        store_factory=store_factory,
        **kwargs,
    )


def _records(count: int, null_batch: int | None = None) -> List[NewEventRecord]:
    records = []
    for i in range(count):
        batch_number = i // BATCH_SIZE + 1
        if batch_number == null_batch:
            records.append(
                NewEventRecord.model_construct(
                    event_type=None, payload={"userId": f"user{i}"}, created_at=CREATED_AT
                )
            )
        else:
            records.append(
                NewEventRecord(event_type=USER_LOGIN, payload={"userId": f"user{i}"}, created_at=CREATED_AT)
            )
    return records


def test_generate_events_alternates_types_and_payloads() -> None:
    plan = SeedPlan(year=2025, months=(1, 2), records_per_month=4)

    events = list(generate_events(plan, random.Random(7)))

    assert len(events) == plan.total_records
    assert [e.event_type for e in events[:4]] == [USER_LOGIN, ITEM_VIEWED, USER_LOGIN, ITEM_VIEWED]
    assert events[0].payload == {"userId": "user0"}
    assert events[1].payload == {"itemId": "item1"}
    # index restarts for each month
    assert events[4].payload == {"userId": "user0"}


def test_generate_events_timestamps_stay_inside_target_month() -> None:
    plan = SeedPlan(year=2025, months=(2, 4), records_per_month=200)

    events = list(generate_events(plan, random.Random(1)))

    for event in events[:200]:
        assert (event.created_at.year, event.created_at.month) == (2025, 2)
    for event in events[200:]:
        assert (event.created_at.year, event.created_at.month) == (2025, 4)
    assert all(1 <= e.created_at.day <= 28 for e in events)
    assert all(e.created_at.tzinfo is timezone.utc for e in events)
    assert all(e.id is None for e in events)


def test_generate_events_is_reproducible_with_seed() -> None:
    plan = SeedPlan(year=2025, months=(1,), records_per_month=50)

    first = list(generate_events(plan, random.Random(42)))
    second = list(generate_events(plan, random.Random(42)))
    other = list(generate_events(plan, random.Random(43)))

    assert first == second
    assert first != other


def test_batched_yields_contiguous_slices() -> None:
    records = _records(25)

    batches = list(batched(records, BATCH_SIZE))

    assert [len(b) for b in batches] == [10, 10, 5]
    assert [r for b in batches for r in b] == records
    with pytest.raises(ValueError):
        list(batched(records, 0))


def test_failed_batch_is_isolated_and_run_completes() -> None:
    pool = _FakePool()
    stores: List[_FakeStore] = []
    loader = _loader(pool, stores, batch_size=BATCH_SIZE)

    report = loader.run(_records(BATCH_SIZE * BATCH_COUNT, null_batch=FAILING_BATCH))

    store = stores[0]
    assert store.calls == BATCH_COUNT
    assert report.batches_total == BATCH_COUNT
    assert report.rows_inserted == 30
    assert report.rows_failed == BATCH_SIZE
    assert len(store.rows) == 30
    assert all(r.event_type is not None for r in store.rows)
    assert not report.ok
    assert report.batches_failed == 1
    assert report.batches_succeeded == BATCH_COUNT - 1
    failure = report.failures[0]
    assert (failure.batch, failure.start, failure.end) == (FAILING_BATCH, 10, 20)
    assert failure.error_type == "ValidationError"


def test_failed_batch_is_logged_with_batch_number(caplog) -> None:
    loader = _loader(_FakePool(), [], batch_size=BATCH_SIZE)

    with caplog.at_level("ERROR", logger="event_logs.loader"):
        loader.run(_records(BATCH_SIZE * BATCH_COUNT, null_batch=FAILING_BATCH))

    failed = [r.getMessage() for r in caplog.records if r.levelname == "ERROR"]
    assert len(failed) == 1
    assert failed[0].startswith(f"[BATCH {FAILING_BATCH} FAILED] (10 - 20)")


def test_pool_is_acquired_and_released_once_per_run() -> None:
    pool = _FakePool()
    loader = _loader(pool, [], batch_size=BATCH_SIZE)

    report = loader.run(_records(BATCH_SIZE * 3, null_batch=1))

    assert report.batches_failed == 1
    assert pool.enter_calls == 1
    assert pool.close_calls == 1
    assert loader.state is LoaderState.DONE


def test_pool_is_released_when_generation_breaks_mid_run() -> None:
    pool = _FakePool()
    loader = _loader(pool, [], batch_size=BATCH_SIZE)

    def broken() -> Iterator[NewEventRecord]:
        yield from _records(BATCH_SIZE)
        raise RuntimeError("generator exploded")

    with pytest.raises(RuntimeError, match="generator exploded"):
        loader.run(broken())

    assert pool.close_calls == 1
    assert loader.state is LoaderState.DONE


def _broken_source() -> Iterator[NewEventRecord]:
    yield from _records(BATCH_SIZE)
    raise RuntimeError("generator exploded")


@pytest.mark.parametrize("broken", [False, True], ids=["completed", "generator-error"])
def test_loader_is_draining_when_pool_is_released(broken: bool) -> None:
    pool = _StateRecordingPool()
    loader = _loader(pool, [], batch_size=BATCH_SIZE)
    pool.loader = loader

    if broken:
        with pytest.raises(RuntimeError):
            loader.run(_broken_source())
    else:
        loader.run(_records(BATCH_SIZE * 2))

    assert pool.state_on_release is LoaderState.DRAINING
    assert loader.state is LoaderState.DONE


def test_pool_open_failure_is_reported_as_storage_error() -> None:
    def failing_pool_factory(config, **kwargs):
        raise psycopg.OperationalError("connection refused")

    loader = BulkLoader(CONFIG, pool_factory=failing_pool_factory, batch_size=BATCH_SIZE)

    with pytest.raises(StorageError, match="could not open connection pool"):
        loader.run(_records(BATCH_SIZE))
    assert loader.state is LoaderState.DONE


def test_run_generates_plan_when_no_records_given() -> None:
    stores: List[_FakeStore] = []
    loader = _loader(
        _FakePool(),
        stores,
        plan=SeedPlan(year=2025, months=(1, 2, 3, 4), records_per_month=10),
        batch_size=BATCH_SIZE,
        rng=random.Random(3),
    )

    report = loader.run()

    assert report.ok
    assert report.batches_total == 4
    assert report.rows_inserted == 40
    assert [r.created_at.month for r in stores[0].rows[::10]] == [1, 2, 3, 4]


def test_loader_rejects_non_positive_batch_size() -> None:
    with pytest.raises(ValueError):
        BulkLoader(CONFIG, batch_size=0)
