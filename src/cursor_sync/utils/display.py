"""
Rich Terminal Display Components.

Console output for the operator CLI:
- Cycle summaries
- Cursor listings
- Status messages
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

from rich.console import Console
from rich.table import Table

from cursor_sync.core.models import Cursor
from cursor_sync.core.orchestrator import CycleOutcome, CycleResult


console = Console()

OUTCOME_STYLES = {
    CycleOutcome.DONE: "[green]✓ done[/green]",
    CycleOutcome.DRY_RUN: "[cyan]○ dry run[/cyan]",
    CycleOutcome.CONFLICT: "[yellow]⟳ conflict (skipped)[/yellow]",
    CycleOutcome.FAILED: "[red]✗ failed[/red]",
}


def format_outcome(outcome: CycleOutcome | None) -> str:
    """Format an outcome with color."""
    if outcome is None:
        return "[dim]pending[/dim]"
    return OUTCOME_STYLES.get(outcome, outcome.value)


def format_timestamp(value: datetime | None) -> str:
    if value is None:
        return "[dim]-[/dim]"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def print_cycle_summary(result: CycleResult) -> None:
    """Print a summary table after a sync cycle."""
    table = Table(title=f"Sync Cycle: {result.key}", border_style="green")

    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Outcome", format_outcome(result.outcome))
    table.add_row("Stage", result.stage.value)
    if result.window is not None:
        table.add_row("Window Start", format_timestamp(result.window.start))
        table.add_row("Window End", format_timestamp(result.window.end))
        if result.window.clamped:
            table.add_row("[red]Skipped Gap[/red]", str(result.window.gap))
    table.add_row("Previous Watermark", format_timestamp(result.previous_watermark))
    table.add_row("Next Watermark", format_timestamp(result.next_watermark))
    table.add_row("Records Fetched", f"{result.records_fetched:,}")
    table.add_row("Records Published", f"{result.records_published:,}")
    table.add_row("Open Records", f"{result.open_records:,}")
    table.add_row("Data Quality Issues", f"{len(result.issues):,}")
    table.add_row("Duration", f"{result.duration_seconds:.2f}s")

    console.print(table)


def print_cursors(cursors: Sequence[Cursor], now: datetime | None = None) -> None:
    """Print stored cursors with their lag."""
    now = now or datetime.now(timezone.utc)
    table = Table(title="Sync Cursors", border_style="blue")
    table.add_column("Source Type", style="cyan")
    table.add_column("Source ID")
    table.add_column("Target")
    table.add_column("Watermark")
    table.add_column("Lag", justify="right")
    table.add_column("Version", justify="right")

    for cursor in cursors:
        lag = cursor.lag(now)
        table.add_row(
            cursor.key.source_type,
            cursor.key.source_id,
            cursor.key.target_type,
            format_timestamp(cursor.watermark),
            format_lag(lag.total_seconds()),
            str(cursor.version),
        )

    console.print(table)


def format_lag(seconds: float) -> str:
    """Format a lag in seconds as a short human-readable string."""
    if seconds < 0:
        return "ahead"
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds / size:.1f}{unit}"
    return f"{seconds:.0f}s"


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green bold]✓[/green bold] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow bold]⚠[/yellow bold] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
