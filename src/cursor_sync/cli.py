"""
Cursor Sync CLI - Operator Command Line Interface.

Commands:
    run     Run one sync cycle for a source
    status  Show stored cursors and their lag
    config  Manage configuration

Scheduling is left to cron or whatever timer invokes ``run``.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from cursor_sync import __version__
from cursor_sync.config import Settings, load_settings
from cursor_sync.connectors import HttpRecordProvider, SQLiteCursorStore, SQLiteRecordSink
from cursor_sync.core.errors import StorageError
from cursor_sync.core.models import CursorKey
from cursor_sync.core.orchestrator import CycleOutcome, CycleResult, SyncOrchestrator
from cursor_sync.utils.display import (
    console,
    print_cursors,
    print_cycle_summary,
    print_error,
    print_info,
    print_success,
    print_warning,
)
from cursor_sync.utils.logger import setup_logging


app = typer.Typer(
    name="cursor-sync",
    help="Watermark-based incremental sync engine.",
    add_completion=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]cursor-sync[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Cursor Sync - incremental sync with durable watermarks."""
    pass


# =============================================================================
# RUN Command
# =============================================================================
@app.command()
def run(
    source_id: str = typer.Option(
        ...,
        "--source-id",
        "-s",
        help="Identifier of the source entity to sync.",
    ),
    source_type: str = typer.Option(
        "default",
        "--source-type",
        help="Kind of source entity (e.g. vehicle, integration).",
    ),
    target_type: Optional[str] = typer.Option(
        None,
        "--target",
        "-t",
        help="Sync target name (overrides config).",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file.",
        exists=True,
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="Provider endpoint (overrides config).",
    ),
    api_token: Optional[str] = typer.Option(
        None,
        "--api-token",
        envvar="CURSOR_SYNC_PROVIDER__API_TOKEN",
        help="Provider API token.",
    ),
    store_path: Optional[Path] = typer.Option(
        None,
        "--store",
        help="Cursor database path (overrides config).",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        "-n",
        help="Fetch and resolve without publishing or committing.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the cycle result as JSON.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output.",
    ),
) -> None:
    """
    Run one sync cycle for a source.

    Example:
        cursor-sync run --source-type vehicle --source-id 42 --target trips
    """
    try:
        settings = _build_settings(
            config_file=config_file,
            base_url=base_url,
            api_token=api_token,
            store_path=store_path,
            target_type=target_type,
            dry_run=dry_run,
        )
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    errors = settings.validate_provider()
    if errors:
        for err in errors:
            print_error(err)
        print_info("Use --help for configuration options.")
        raise typer.Exit(1)

    setup_logging(
        level="WARNING" if quiet else settings.logging.level,
        log_file=settings.logging.file,
        format_style=settings.logging.format,
        max_file_size_mb=settings.logging.max_file_size_mb,
        backup_count=settings.logging.backup_count,
    )

    if settings.dry_run:
        print_warning("DRY RUN - nothing will be published or committed")

    key = CursorKey(source_type, source_id, settings.target_type)
    result = asyncio.run(_run_cycle(settings, key))

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
    elif not quiet:
        console.print()
        print_cycle_summary(result)

    for issue in result.issues[:10]:
        print_warning(f"Data quality: {issue}")
    if len(result.issues) > 10:
        print_info(f"  ... and {len(result.issues) - 10} more")

    if result.window is not None and result.window.clamped:
        print_warning(
            f"Cursor lagged beyond max lookback; {result.window.gap} was not fetched. "
            "Schedule a backfill for this range."
        )

    if result.outcome == CycleOutcome.FAILED:
        print_error(f"Failed while {result.stage.value}: {result.error}")
        if result.cursor_state_unknown:
            print_warning("Cursor state is unknown; it will be re-read on the next run.")
        raise typer.Exit(1)
    if result.outcome == CycleOutcome.CONFLICT:
        print_info("Another run committed first; nothing to do.")
    elif not quiet:
        print_success("Sync cycle completed.")


async def _run_cycle(settings: Settings, key: CursorKey) -> CycleResult:
    store = SQLiteCursorStore.from_config(settings.store)
    sink = SQLiteRecordSink.from_config(settings.sink)
    async with HttpRecordProvider(settings.provider) as provider:
        orchestrator = SyncOrchestrator.from_settings(settings, store, provider, sink)
        return await orchestrator.run_cycle(key)


# =============================================================================
# STATUS Command
# =============================================================================
@app.command()
def status(
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file.",
        exists=True,
    ),
    store_path: Optional[Path] = typer.Option(
        None,
        "--store",
        help="Path to cursor database (overrides config).",
    ),
) -> None:
    """Show stored cursors and how far each lags behind now."""
    settings = _build_settings(config_file=config_file, store_path=store_path)
    store_path = settings.store.path

    if not store_path.exists():
        print_info(f"No cursor store found at {store_path}. Run a sync cycle first.")
        raise typer.Exit(0)

    try:
        cursors = SQLiteCursorStore.from_config(settings.store).list_cursors()
    except StorageError as e:
        print_error(f"Cannot read cursor store: {e}")
        raise typer.Exit(1)

    if not cursors:
        print_info("Cursor store is empty.")
        raise typer.Exit(0)

    print_cursors(cursors)


# =============================================================================
# CONFIG Command
# =============================================================================
@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration.",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Write a config file with default values.",
    ),
    output: Path = typer.Option(
        Path("config.toml"),
        "--output",
        "-o",
        help="Output path for config file.",
    ),
) -> None:
    """Manage configuration."""
    if init:
        Settings().to_file(output)
        print_success(f"Generated config file: {output}")
        return

    if show:
        settings = Settings()
        table = Table(title="Current Configuration", border_style="cyan")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        table.add_row("Provider URL", settings.provider.base_url or "[dim]not set[/dim]")
        table.add_row("Target", settings.target_type)
        table.add_row("Default Lookback", str(settings.window.default_lookback))
        table.add_row("Max Lookback", str(settings.window.max_lookback))
        table.add_row("Cursor Store", str(settings.store.path))
        table.add_row("Sink", f"{settings.sink.path} ({settings.sink.table})")
        table.add_row("Concurrency", str(settings.concurrency))

        console.print(table)
        return

    console.print("Use --show to view config or --init to create config file.")


# =============================================================================
# Helper Functions
# =============================================================================
def _build_settings(
    config_file: Path | None = None,
    **overrides: object,
) -> Settings:
    """Build settings from config file and CLI overrides."""
    settings = load_settings(config_file) if config_file else Settings()

    if overrides.get("base_url"):
        settings.provider.base_url = str(overrides["base_url"])
    if overrides.get("api_token"):
        from pydantic import SecretStr
        settings.provider.api_token = SecretStr(str(overrides["api_token"]))
    if overrides.get("store_path"):
        settings.store.path = Path(str(overrides["store_path"]))
    if overrides.get("target_type"):
        settings.target_type = str(overrides["target_type"])
    if overrides.get("dry_run"):
        settings.dry_run = True

    return settings


if __name__ == "__main__":
    app()
