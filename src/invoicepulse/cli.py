"""
InvoicePulse CLI — command-line interface.

Usage:
    invoicepulse import aging_report.csv
    invoicepulse compare
    invoicepulse trend --metric backlog_count
    invoicepulse --config invoicepulse.yaml filter 30-60 --vendor acme
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from invoicepulse import __version__
from invoicepulse.analyzers.bucket_filter import to_predicate
from invoicepulse.analyzers.bucketing import UNKNOWN_STATE, short_state_name, state_sort_key
from invoicepulse.config import InvoicePulseConfig
from invoicepulse.exceptions import InvalidBucketLabel, InvoicePulseError
from invoicepulse.logging_config import setup_logging
from invoicepulse.models.invoice import ImportBatch, PoType
from invoicepulse.models.report import MetricKind, MetricSelector
from invoicepulse.models.stats import BatchStats
from invoicepulse.pilot import InvoicePulse

T = TypeVar("T")

app = typer.Typer(
    name="invoicepulse",
    help="InvoicePulse — batch analytics for invoice backlogs",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold]InvoicePulse[/bold] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version",
        callback=_version_callback,
        is_eager=True,
    ),
    config: str = typer.Option(
        "invoicepulse.yaml",
        "--config",
        "-c",
        help="Path to config file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log engine activity to stderr",
    ),
) -> None:
    """InvoicePulse — snapshot every import, compare the last two, trend the last five."""
    config_path = config if Path(config).exists() else None
    settings = InvoicePulseConfig.load(config_path)
    setup_logging("DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


def _pulse(ctx: typer.Context) -> InvoicePulse:
    try:
        return InvoicePulse(config=ctx.obj or InvoicePulseConfig.load())
    except InvoicePulseError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning domain errors into a red message and exit code 1."""
    try:
        return asyncio.run(coro)
    except (InvoicePulseError, FileNotFoundError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _money(value: float | None) -> str:
    if value is None:
        return "-"
    return f"-${abs(value):,.2f}" if value < 0 else f"${value:,.2f}"


def _signed(value: float) -> str:
    return f"{value:+,.0f}"


@app.command("import")
def import_(
    ctx: typer.Context,
    file: Path = typer.Argument(..., help="CSV or TSV invoice export, or a ZIP of exports"),
    batch_id: str = typer.Option(None, "--batch-id", help="Identifier for the new batch (id prefix for a ZIP)"),
    as_of: str = typer.Option(None, "--as-of", help="Reference date for invoice ages (YYYY-MM-DD)"),
) -> None:
    """Import an export file as a new batch and snapshot it.

    A ZIP archive imports each CSV/TXT file inside it as its own batch.
    """
    reference = None
    if as_of:
        try:
            reference = date.fromisoformat(as_of)
        except ValueError:
            console.print(f"[red]Error: --as-of must be YYYY-MM-DD, got {as_of!r}[/red]")
            raise typer.Exit(1)

    pulse = _pulse(ctx)
    if file.suffix.lower() == ".zip":
        with console.status("[bold green]Importing archive...[/bold green]"):
            imported = _run(pulse.import_zip(file, batch_id_prefix=batch_id, as_of=reference))
        if not imported:
            console.print("[yellow]No CSV or TXT files found in the archive.[/yellow]")
            return
        for batch in imported:
            _display_import(batch)
        return

    with console.status("[bold green]Importing...[/bold green]"):
        batch = _run(pulse.import_csv(file, batch_id=batch_id, as_of=reference))
    _display_import(batch)


def _display_import(batch: ImportBatch) -> None:
    table = Table(title=f"Imported {batch.filename}", show_lines=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Batch", batch.id)
    table.add_row("Invoices", str(batch.record_count))
    table.add_row("Skipped", f"{batch.skipped_count} ({batch.skipped_fully_paid} fully paid)")
    table.add_row(
        "Outliers",
        f"{batch.outlier_count} ({batch.outlier_high_value} high value, {batch.outlier_negative} negative)",
    )
    console.print(table)
    console.print(f"Imported batch {batch.id}")


@app.command()
def batches(
    ctx: typer.Context,
    show_all: bool = typer.Option(False, "--all", help="Include deleted batches"),
) -> None:
    """List import batches, oldest first."""
    pulse = _pulse(ctx)
    listing = _run(pulse.list_batches(include_deleted=show_all))
    if not listing:
        console.print("[yellow]No batches imported yet.[/yellow]")
        return

    table = Table(title="Import Batches")
    table.add_column("Batch", style="bold cyan")
    table.add_column("Imported")
    table.add_column("File")
    table.add_column("Invoices", justify="right")
    table.add_column("Outliers", justify="right")
    table.add_column("Status")
    for batch in listing:
        table.add_row(
            batch.id,
            batch.label,
            batch.filename,
            str(batch.record_count),
            str(batch.outlier_count),
            "[dim]deleted[/dim]" if batch.is_deleted else "active",
        )
    console.print(table)


@app.command()
def stats(
    ctx: typer.Context,
    batch: str = typer.Option(None, "--batch", "-b", help="Batch id (defaults to the latest)"),
) -> None:
    """Show the snapshot of a batch."""
    pulse = _pulse(ctx)
    if batch:
        snapshot: BatchStats | None = _run(pulse.stats(batch))
    else:
        snapshot = _run(pulse.current_stats())
    if snapshot is None:
        console.print("[yellow]No snapshot available. Import a batch or run backfill.[/yellow]")
        return
    _display_stats(snapshot)


@app.command()
def compare(ctx: typer.Context) -> None:
    """Compare the two most recent batches."""
    pulse = _pulse(ctx)
    report = _run(pulse.compare_latest())
    if not report.available:
        if report.missing_batch_ids:
            console.print(
                f"[yellow]Snapshot missing for {', '.join(report.missing_batch_ids)}; run backfill.[/yellow]"
            )
        else:
            console.print("[yellow]Need at least two batches to compare.[/yellow]")
        return

    console.print(Panel.fit(
        f"[bold]{report.previous_batch.label}[/bold] -> [bold]{report.current_batch.label}[/bold]",
        title="Batch Comparison",
    ))
    table = Table(show_lines=True)
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_column("Value", justify="right")
    table.add_row("Previous", str(report.previous_count), _money(report.previous_value))
    table.add_row("Current", str(report.current_count), _money(report.current_value))
    table.add_row("[green]Resolved[/green]", str(report.resolved_count), _money(report.resolved_value))
    table.add_row("[red]New[/red]", str(report.new_count), _money(report.new_value))
    table.add_row("Net", _signed(report.net_change), _money(report.net_value_change))
    console.print(table)

    changed = report.changed_states
    if changed:
        states = Table(title="Process State Changes")
        states.add_column("State", style="bold")
        states.add_column("Previous", justify="right")
        states.add_column("Current", justify="right")
        states.add_column("Change", justify="right")
        for row in changed:
            states.add_row(row.state, str(row.previous_count), str(row.current_count), _signed(row.change))
        console.print(states)


@app.command()
def trend(
    ctx: typer.Context,
    metric: MetricKind = typer.Option(MetricKind.BACKLOG_COUNT, "--metric", "-m", help="Metric to trend"),
    state: str = typer.Option(None, "--state", "-s", help="Process state label (for --metric process_state)"),
    measure: str = typer.Option("count", "--measure", help="count or value (for process_state)"),
) -> None:
    """Show a metric across the most recent batches."""
    try:
        selector = MetricSelector(kind=metric, state=state, measure=measure)
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    pulse = _pulse(ctx)
    series = _run(pulse.trend(selector))
    if not series.available:
        _explain_empty(series.missing_batch_ids)
        return

    as_money = metric.value.endswith("_value") or (metric == MetricKind.PROCESS_STATE and measure == "value")
    table = Table(title=f"Trend: {state or metric.value}")
    table.add_column("Batch", style="bold cyan")
    table.add_column("Imported")
    table.add_column("Value", justify="right")
    for point in series.points:
        table.add_row(point.batch_id, point.label, _money(point.value) if as_money else f"{point.value:,.0f}")
    console.print(table)
    console.print(f"Change: {_money(series.change) if as_money else _signed(series.change)}")


@app.command("state-trends")
def state_trends(
    ctx: typer.Context,
    measure: str = typer.Option("count", "--measure", help="count or value"),
) -> None:
    """Show one trend line per process state."""
    if measure not in ("count", "value"):
        console.print(f"[red]Error: --measure must be count or value, got {escape(measure)!r}[/red]")
        raise typer.Exit(1)

    pulse = _pulse(ctx)
    result = _run(pulse.state_trends(measure))
    if not isinstance(result, list):
        _explain_empty(result.missing_batch_ids)
        return
    if not result:
        console.print("[yellow]No process-state activity in the window.[/yellow]")
        return

    table = Table(title="Process State Trends")
    table.add_column("State", style="bold")
    for point in result[0].points:
        table.add_column(point.label, justify="right")
    table.add_column("Change", justify="right")
    for series in result:
        cells = [f"{v:,.0f}" if measure == "count" else _money(v) for v in series.values]
        table.add_row(short_state_name(series.state or ""), *cells, _signed(series.change))
    console.print(table)


@app.command("filter")
def filter_(
    ctx: typer.Context,
    label: str = typer.Argument(..., help="Aging bucket label, e.g. 30-60 or 360+"),
    state: str = typer.Option(None, "--state", help="Exact process state"),
    vendor: str = typer.Option(None, "--vendor", help="Supplier name contains"),
    po_type: str = typer.Option(None, "--po-type", help="PO or Non-PO"),
    limit: int = typer.Option(20, "--limit", "-n", help="Rows to show"),
) -> None:
    """Show the invoices of the current batch in an aging bucket."""
    extra: dict[str, Any] = {"state": state, "vendor": vendor}
    if po_type:
        extra["po_type"] = PoType(po_type)

    try:
        predicate = to_predicate(label, **extra)
    except InvalidBucketLabel as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    console.print(f"Filter: {predicate.to_params()}")

    pulse = _pulse(ctx)
    rows = _run(pulse.filter_by_bucket(label, **extra))
    console.print(f"{len(rows)} invoice(s) matched")
    if not rows:
        return

    table = Table()
    table.add_column("Invoice", style="bold cyan")
    table.add_column("Supplier")
    table.add_column("Amount", justify="right")
    table.add_column("Days", justify="right")
    table.add_column("State")
    for record in rows[:limit]:
        table.add_row(
            record.id,
            record.supplier or "-",
            _money(record.amount),
            str(record.days_old) if record.days_old is not None else "-",
            record.process_state or UNKNOWN_STATE,
        )
    console.print(table)


@app.command()
def backfill(ctx: typer.Context) -> None:
    """Build snapshots for batches that lack one."""
    pulse = _pulse(ctx)
    with console.status("[bold green]Backfilling...[/bold green]"):
        built = _run(pulse.backfill())
    console.print(f"Backfilled {len(built)} snapshot(s)")
    for batch_id in built:
        console.print(f"  [green]✓[/green] {batch_id}")


@app.command()
def delete(
    ctx: typer.Context,
    batch_id: str = typer.Argument(..., help="Batch to soft-delete (must be the latest)"),
) -> None:
    """Soft-delete the most recent batch."""
    pulse = _pulse(ctx)
    batch = _run(pulse.delete_latest_batch(batch_id))
    console.print(f"Deleted batch {batch.id} ({batch.filename})")


def _explain_empty(missing_batch_ids: list[str]) -> None:
    if missing_batch_ids:
        console.print(f"[yellow]Snapshot missing for {', '.join(missing_batch_ids)}; run backfill.[/yellow]")
    else:
        console.print("[yellow]Need at least two batches for a trend.[/yellow]")


def _display_stats(snapshot: BatchStats) -> None:
    """Display a batch snapshot in the terminal."""
    summary = Table(title=f"Batch {snapshot.batch_id}", show_lines=True)
    summary.add_column("Metric", style="bold")
    summary.add_column("Count", justify="right")
    summary.add_column("Value", justify="right")
    summary.add_row("Total", str(snapshot.total_invoices), _money(snapshot.total_value))
    summary.add_row("Backlog", str(snapshot.backlog_count), _money(snapshot.backlog_value))
    summary.add_row(
        "Ready for payment",
        str(snapshot.ready_for_payment_count),
        _money(snapshot.ready_for_payment_value),
    )
    summary.add_row(
        "Requires investigation",
        str(snapshot.requires_investigation.count),
        _money(snapshot.requires_investigation.value),
    )
    summary.add_row("Average days old", f"{snapshot.average_days_old:,.1f}", "")
    console.print(summary)

    if snapshot.is_empty:
        return

    aging = Table(title="Aging")
    aging.add_column("Bucket", style="bold")
    aging.add_column("Count", justify="right")
    aging.add_column("Value", justify="right")
    for bucket in snapshot.aging_breakdown:
        aging.add_row(bucket.bucket, str(bucket.count), _money(bucket.value))
    console.print(aging)

    states = Table(title="Process States")
    states.add_column("State", style="bold")
    states.add_column("Count", justify="right")
    states.add_column("Value", justify="right")
    for label in sorted(snapshot.process_state_counts, key=state_sort_key):
        totals = snapshot.process_state_counts[label]
        states.add_row(label, str(totals.count), _money(totals.value))
    if snapshot.unknown_state.count:
        states.add_row(f"[dim]{UNKNOWN_STATE}[/dim]", str(snapshot.unknown_state.count), _money(snapshot.unknown_state.value))
    console.print(states)

    po = Table(title="PO / Non-PO")
    po.add_column("Type", style="bold")
    po.add_column("Count", justify="right")
    po.add_column("Value", justify="right")
    for po_type, totals in snapshot.po_breakdown.items():
        po.add_row(po_type.value, str(totals.count), _money(totals.value))
    console.print(po)

    vendors = Table(title=f"Top Vendors (by {snapshot.vendor_rank_mode.value})")
    vendors.add_column("Supplier", style="bold")
    vendors.add_column("Invoices", justify="right")
    vendors.add_column("Value", justify="right")
    for vendor in snapshot.top_vendors:
        vendors.add_row(vendor.supplier, str(vendor.count), _money(vendor.value))
    console.print(vendors)


if __name__ == "__main__":
    app()
