from __future__ import annotations

import json
import random
import sys
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
from uuid import UUID

import psycopg
import pydantic
import typer
from rich.console import Console

from event_logs.config import SeedPlan, get_settings
from event_logs.domain.errors import NotFoundError, StorageError, ValidationError
from event_logs.domain.models import EventRecordPatch, NewEventRecord
from event_logs.infrastructure.db_factory import create_pool
from event_logs.loader import BulkLoader
from event_logs.reporter import print_events, print_load_report
from event_logs.store import EventStore
from event_logs.utils.logging import configure_logging

app = typer.Typer(help="Event log store CLI.")
console = Console()

EXIT_NOT_FOUND = 1
EXIT_BAD_INPUT = 2
EXIT_STORAGE = 3


def _configure() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@contextmanager
def _outcomes() -> Iterator[None]:
    """Map store failures to CLI exit codes."""
    try:
        yield
    except NotFoundError as exc:
        typer.echo(f"not found: {exc}", err=True)
        raise typer.Exit(code=EXIT_NOT_FOUND)
    except (ValidationError, pydantic.ValidationError) as exc:
        typer.echo(f"bad input: {exc}", err=True)
        raise typer.Exit(code=EXIT_BAD_INPUT)
    except (StorageError, psycopg.Error) as exc:
        typer.echo(f"storage failure: {exc}", err=True)
        raise typer.Exit(code=EXIT_STORAGE)


@contextmanager
def _open_store() -> Iterator[EventStore]:
    settings = get_settings()
    with create_pool(settings.database) as pool:
        yield EventStore(pool)


def _parse_payload(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise typer.BadParameter("payload must be a JSON object")
    return value


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"seed year={settings.seed_year} months={settings.seed_months} "
        f"per_month={settings.seed_records_per_month} batch={settings.seed_batch_size}"
    )


@app.command()
def seed(
    year: Optional[int] = typer.Option(None, "--year", "-y", help="Target year (default from settings)."),
    months: Optional[List[int]] = typer.Option(
        None, "--month", "-m", help="Target month, repeatable (default from settings)."
    ),
    per_month: Optional[int] = typer.Option(
        None, "--per-month", "-n", min=0, help="Records generated per month (default from settings)."
    ),
    batch_size: Optional[int] = typer.Option(
        None, "--batch-size", "-b", min=1, help="Records per insert batch (default from settings)."
    ),
    rng_seed: Optional[int] = typer.Option(
        None, "--seed", help="Fix the RNG seed for a reproducible dataset."
    ),
) -> None:
    """
    Generate synthetic event logs and insert them in isolated batches.
    """
    _configure()
    settings = get_settings()
    with _outcomes():
        plan = SeedPlan(
            year=year if year is not None else settings.seed_year,
            months=tuple(months or settings.seed_months),
            records_per_month=per_month if per_month is not None else settings.seed_records_per_month,
        )
        size = batch_size if batch_size is not None else settings.seed_batch_size
        typer.echo(
            f"Seeding {plan.total_records:,} event logs for {plan.year} months={list(plan.months)} "
            f"(batch={size}, seed={rng_seed})"
        )
        loader = BulkLoader(
            settings.database,
            plan,
            batch_size=size,
            rng=random.Random(rng_seed),
        )
        report = loader.run()
    print_load_report(report, console=console)


@app.command("list")
def list_events() -> None:
    """
    Print every stored event log.
    """
    _configure()
    with _outcomes(), _open_store() as store:
        records = store.list_all()
    print_events(records, console=console)


@app.command()
def get(
    event_id: UUID = typer.Argument(..., help="Event log id."),
    all_matches: bool = typer.Option(
        False, "--all", help="Show every row sharing this id, not only the latest."
    ),
) -> None:
    """
    Print the event log with this id.
    """
    _configure()
    with _outcomes(), _open_store() as store:
        records = store.get_all_by_id(event_id) if all_matches else [store.get_by_id(event_id)]
    print_events(records, console=console)


@app.command()
def create(
    event_type: str = typer.Option(..., "--event-type", "-t"),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="JSON object."),
    created_at: Optional[str] = typer.Option(None, "--created-at", help="ISO 8601 timestamp."),
) -> None:
    """
    Insert one event log and print it as stored.
    """
    _configure()
    with _outcomes():
        record = NewEventRecord(
            event_type=event_type,
            payload=_parse_payload(payload),
            created_at=created_at,
        )
        with _open_store() as store:
            created = store.create(record)
    print_events([created], console=console)


@app.command()
def update(
    event_id: UUID = typer.Argument(..., help="Event log id."),
    event_type: Optional[str] = typer.Option(None, "--event-type", "-t"),
    payload: Optional[str] = typer.Option(None, "--payload", "-p", help="JSON object."),
    clear_payload: bool = typer.Option(False, "--clear-payload", help="Set payload to null."),
    created_at: Optional[str] = typer.Option(None, "--created-at", help="ISO 8601 timestamp."),
) -> None:
    """
    Change the given fields on every row with this id.
    """
    if clear_payload and payload is not None:
        raise typer.BadParameter("--payload and --clear-payload are mutually exclusive")
    _configure()
    fields: Dict[str, Any] = {}
    if event_type is not None:
        fields["event_type"] = event_type
    if clear_payload:
        fields["payload"] = None
    elif payload is not None:
        fields["payload"] = _parse_payload(payload)
    if created_at is not None:
        fields["created_at"] = created_at

    with _outcomes():
        patch = EventRecordPatch(**fields)
        with _open_store() as store:
            updated = store.update(event_id, patch)
    print_events([updated], console=console)


@app.command()
def delete(event_id: UUID = typer.Argument(..., help="Event log id.")) -> None:
    """
    Remove every row with this id.
    """
    _configure()
    with _outcomes(), _open_store() as store:
        store.delete(event_id)
    typer.echo(f"Deleted {event_id}")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
