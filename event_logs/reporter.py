from __future__ import annotations

import json
from typing import Iterable, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from event_logs.domain.models import EventRecord
from event_logs.loader import LoadReport


def _format_payload(payload: Optional[dict]) -> str:
    if payload is None:
        return "[dim]null[/dim]"
    return json.dumps(payload, sort_keys=True)


def events_table(records: Iterable[EventRecord], title: str = "Event Logs") -> Table:
    """
    Build a rich table with one row per event record.
    """
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Event Type", style="magenta", no_wrap=True)
    table.add_column("Payload", style="green")
    table.add_column("Created At", justify="right", style="yellow")

    for record in records:
        table.add_row(
            str(record.id),
            record.event_type,
            _format_payload(record.payload),
            record.created_at.isoformat(),
        )
    return table


def load_report_table(report: LoadReport) -> Table:
    """
    Summarize a loader run. Failed batches are listed below the totals.
    """
    status = "[bold green]OK[/bold green]" if report.ok else "[bold red]PARTIAL[/bold red]"
    table = Table(
        title=f"Seed Run {status}",
        box=box.ROUNDED,
        caption=f"batch size {report.batch_size:,}",
    )
    table.add_column("Batches", justify="right", style="cyan")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Rows Inserted", justify="right", style="magenta")
    table.add_column("Rows Failed", justify="right", style="red")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Throughput (rows/s)", justify="right", style="bold green")
    table.add_row(
        f"{report.batches_total:,}",
        f"{report.batches_failed:,}",
        f"{report.rows_inserted:,}",
        f"{report.rows_failed:,}",
        f"{report.duration_seconds:.1f}",
        f"{report.throughput_rows_per_sec:,.2f}",
    )
    return table


def failures_table(report: LoadReport) -> Table:
    table = Table(title="Failed Batches", box=box.ROUNDED)
    table.add_column("Batch", justify="right", style="cyan")
    table.add_column("Range", style="yellow")
    table.add_column("Error", style="red")
    for failure in report.failures:
        table.add_row(
            str(failure.batch),
            f"{failure.start} - {failure.end}",
            f"{failure.error_type}: {failure.error}",
        )
    return table


def print_events(records: Iterable[EventRecord], console: Optional[Console] = None) -> None:
    console = console or Console()
    records = list(records)
    if not records:
        console.print("[yellow]No event logs to display.[/yellow]")
        return
    console.print(events_table(records))


def print_load_report(report: LoadReport, console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print(load_report_table(report))
    if report.failures:
        console.print(failures_table(report))


__all__ = [
    "events_table",
    "failures_table",
    "load_report_table",
    "print_events",
    "print_load_report",
]
