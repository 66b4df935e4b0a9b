"""Command-line interface for tablesync."""

from __future__ import annotations

from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from tablesync import __version__

app = typer.Typer(
    name="tablesync",
    help="Replicate tables between SQL databases in batch or incremental mode",
    add_completion=False,
)

console = Console()

_STATUS_STYLES = {
    "synced": "green",
    "skipped": "yellow",
    "failed": "red",
}


def _load(config: Optional[str]):
    from tablesync.core.config import get_settings
    from tablesync.sync.manager import SyncManager
    from tablesync.utils.logging import setup_logging

    settings = get_settings(config)
    setup_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=settings.logging.file,
    )
    return settings, SyncManager(settings)


def _format_time(value) -> str:
    return value.isoformat(timespec="seconds") if value else "-"


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"tablesync version {__version__}")


@app.command()
def run(
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
    mode: str = typer.Option(None, "--mode", "-m", help="Force a mode (batch, incremental)"),
    table: Optional[List[str]] = typer.Option(
        None, "--table", "-t", help="Only sync these tables (repeatable)"
    ),
) -> None:
    """Sync the configured tables."""
    from tablesync.core.config import ExtractionMode

    try:
        forced = ExtractionMode(mode) if mode else None
        _, manager = _load(config)
        with manager:
            results = manager.run(mode=forced, tables=table or None)
    except Exception as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(1)

    rich_table = Table(show_header=True, header_style="bold")
    rich_table.add_column("Table")
    rich_table.add_column("Mode")
    rich_table.add_column("Status")
    rich_table.add_column("Rows", justify="right")
    rich_table.add_column("Seconds", justify="right")

    for result in results:
        style = _STATUS_STYLES.get(result.status, "white")
        rich_table.add_row(
            result.table,
            result.mode.value,
            f"[{style}]{result.status}[/{style}]",
            str(result.rows),
            f"{result.duration_seconds:.2f}",
        )
    console.print(rich_table)

    for result in results:
        if result.error:
            console.print(f"[red]{result.table}:[/red] {result.error}")

    if any(not r.ok for r in results):
        raise typer.Exit(1)


@app.command()
def status(
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Show the stored watermark of every table."""
    try:
        _, manager = _load(config)
        with manager:
            manager.registry.ensure_storage_exists()
            watermarks = manager.registry.list_all()
    except Exception as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(1)

    if not watermarks:
        console.print("No tables synced yet.")
        return

    rich_table = Table(show_header=True, header_style="bold")
    rich_table.add_column("Table")
    rich_table.add_column("Last synced")
    rich_table.add_column("Last row")
    rich_table.add_column("Last batch")

    for wm in watermarks:
        rich_table.add_row(
            wm.table_name,
            _format_time(wm.last_synced_at),
            _format_time(wm.last_row_at),
            _format_time(wm.last_batch_synced_at),
        )
    console.print(rich_table)


@app.command()
def reset(
    table: str = typer.Argument(..., help="Table whose watermark is dropped"),
    config: str = typer.Option(None, "--config", "-c", help="Config file path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Forget a table's watermark; it needs a batch load before syncing again."""
    if not yes:
        typer.confirm(f"Reset watermark of {table}?", abort=True)

    try:
        _, manager = _load(config)
        with manager:
            manager.registry.ensure_storage_exists()
            deleted = manager.registry.delete(table)
    except Exception as e:
        console.print(f"[red]Error:[/red] {str(e)}")
        raise typer.Exit(1)

    if deleted:
        console.print(f"[green]✓[/green] Reset watermark of {table}")
    else:
        console.print(f"[yellow]No watermark stored for {table}[/yellow]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
