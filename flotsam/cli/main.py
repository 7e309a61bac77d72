"""
flotsam: spaced-repetition scheduling for a zk note corpus.

Commands:
- flotsam due     - List notes due for review today
- flotsam list    - List every tracked note with its schedule
- flotsam review  - Record a review grade for a note
- flotsam add     - Start scheduling an existing note
- flotsam sync    - Reconcile the store with the corpus
- flotsam stats   - Show scheduling statistics
"""
from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from flotsam.config import Settings, get_settings
from flotsam.errors import FlotsamError
from flotsam.srs.cache import CacheState
from flotsam.srs.due import DueItem
from flotsam.srs.scheduler import MAX_GRADE, MIN_GRADE
from flotsam.srs.service import SchedulingService
from flotsam.srs.state_store import SchedulingRecord, now_local


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="flotsam",
    help="flotsam: SM-2 review scheduling for zk notes",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)

TITLE_WIDTH = 40


class OutputFormat(str, Enum):
    table = "table"
    json = "json"
    paths = "paths"


@dataclass
class CLIState:
    """Options shared by every command."""

    context: Optional[str] = None
    context_dir: Optional[Path] = None


@app.callback()
def callback(
    ctx: typer.Context,
    context: Optional[str] = typer.Option(
        None, "--context", "-c", help="Context to use (default: FLOTSAM_CONTEXT or 'personal')"
    ),
    context_dir: Optional[Path] = typer.Option(
        None, "--context-dir", help="Context directory (default: <data dir>/<context>)"
    ),
) -> None:
    ctx.obj = CLIState(context=context, context_dir=context_dir)


@contextmanager
def open_service(ctx: typer.Context) -> Iterator[SchedulingService]:
    """Open the service for the selected context; flotsam errors exit with code 1."""
    state: CLIState = ctx.obj or CLIState()
    try:
        with SchedulingService.open(state.context_dir, state.context, get_settings()) as service:
            yield service
    except FlotsamError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", soft_wrap=True)
        raise typer.Exit(1)


# =============================================================================
# Display Helpers
# =============================================================================

def truncate(text: str, width: int = TITLE_WIDTH) -> str:
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def status_style(item: DueItem) -> str:
    if not item.overdue:
        return "green"
    if item.days_past >= 7:
        return "bold red"
    return "yellow"


def print_due_table(items: list[DueItem]) -> None:
    if not items:
        console.print("[green]No notes due for review[/green]")
        return

    console.print(f"Found {len(items)} note(s) due for review:\n")

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Due Date")
    table.add_column("Status")

    for item in items:
        style = status_style(item)
        table.add_row(
            item.note_id,
            truncate(item.title),
            item.due_date.strftime("%Y-%m-%d"),
            f"[{style}]{item.status}[/{style}]",
        )

    console.print(table)


def print_records_table(records: list[SchedulingRecord]) -> None:
    if not records:
        console.print("[yellow]No tracked notes[/yellow]")
        return

    console.print(f"Found {len(records)} note(s) with scheduling data:\n")

    now = now_local()
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Path")
    table.add_column("Next Due")
    table.add_column("Reviews", justify="right")
    table.add_column("Correct", justify="right")
    table.add_column("Easiness", justify="right")

    for record in records:
        if record.due_date <= now:
            next_due = "[yellow]Past due[/yellow]"
        else:
            next_due = record.due_date.strftime("%Y-%m-%d")
        path = truncate(record.note_path)
        if record.archived:
            path = f"[dim]{path} (archived)[/dim]"
        table.add_row(
            path,
            next_due,
            str(record.total_reviews),
            str(record.consecutive_correct),
            f"{record.easiness:.2f}",
        )

    console.print(table)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def due(
    ctx: typer.Context,
    output_format: OutputFormat = typer.Option(
        OutputFormat.table, "--format", "-f", help="Output format"
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", min=0, help="Maximum notes to list (0 = no limit)"
    ),
) -> None:
    """List notes due for review today (overdue first)."""
    if limit is None:
        limit = get_settings().due_limit

    with open_service(ctx) as service:
        items = service.list_due(limit=limit)

        if output_format == OutputFormat.paths:
            for item in items:
                typer.echo(str(service.corpus_dir / item.note_path))
        elif output_format == OutputFormat.json:
            typer.echo(json.dumps([item.to_dict() for item in items]))
        else:
            print_due_table(items)


@app.command("list")
def list_notes(
    ctx: typer.Context,
    output_format: OutputFormat = typer.Option(
        OutputFormat.table, "--format", "-f", help="Output format"
    ),
    include_archived: bool = typer.Option(
        False, "--all", "-a", help="Include archived notes"
    ),
) -> None:
    """List every tracked note with its scheduling data."""
    with open_service(ctx) as service:
        records = service.list_notes(include_archived=include_archived)

        if output_format == OutputFormat.paths:
            for record in records:
                typer.echo(str(service.corpus_dir / record.note_path))
        elif output_format == OutputFormat.json:
            typer.echo(json.dumps([record.to_dict() for record in records]))
        else:
            print_records_table(records)


@app.command()
def review(
    ctx: typer.Context,
    note: str = typer.Argument(..., help="Note path (absolute, or relative to the corpus)"),
    grade: int = typer.Argument(
        ..., help=f"Recall quality: {MIN_GRADE} (blackout) to {MAX_GRADE} (perfect)"
    ),
) -> None:
    """Record a review and schedule the next one."""
    with open_service(ctx) as service:
        record = service.record_review(note, grade)

    interval = record.due_date.date() - record.last_reviewed.date()
    console.print(f"[green]Reviewed[/green] {record.note_path} (grade {grade})")
    console.print(
        f"  Next review: {record.due_date.strftime('%Y-%m-%d')} "
        f"[dim](in {interval.days} day(s), easiness {record.easiness:.2f}, "
        f"streak {record.consecutive_correct})[/dim]"
    )


@app.command()
def add(
    ctx: typer.Context,
    note: str = typer.Argument(..., help="Note path (absolute, or relative to the corpus)"),
    note_id: Optional[str] = typer.Option(None, "--id", help="Note id (default: read from the note)"),
) -> None:
    """Start scheduling a note that already exists in the corpus."""
    with open_service(ctx) as service:
        record = service.register_note(note, note_id=note_id)

    console.print(f"[green]Tracking[/green] {record.note_path} [dim](id {record.note_id})[/dim]")
    console.print(f"  First review: {record.due_date.strftime('%Y-%m-%d')}")


@app.command()
def sync(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Reconcile even if the corpus looks unchanged"),
) -> None:
    """Reconcile the scheduling store with the notes on disk."""
    with open_service(ctx) as service:
        state = service.validate_and_refresh(force=force)
        result = service.last_reconcile

    if state == CacheState.VALID:
        console.print("[green]Store is up to date[/green]")
        return

    console.print(f"[bold]Reconciled[/bold] [dim](cache was {state.value})[/dim]")
    console.print(f"  Notes scanned: {result.scanned}")
    console.print(f"  Adopted:       {len(result.adopted)}")
    console.print(f"  Removed:       {len(result.removed)}")
    console.print(f"  Archived:      {len(result.archived)}")
    console.print(f"  Restored:      {len(result.restored)}")


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show scheduling statistics for the context."""
    with open_service(ctx) as service:
        service.validate_and_refresh()
        summary = service.stats()
        db_path = service.store.db_path
        context = service.context

    table = Table(title=f"flotsam: {context}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Tracked notes", str(summary.total))
    table.add_row("Due today", str(summary.due))
    table.add_row("Mean easiness", f"{summary.mean_easiness:.2f}")
    table.add_row("Mean reviews", f"{summary.mean_reviews:.1f}")
    table.add_row("Store", str(db_path))

    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================

def configure_logging(settings: Settings) -> None:
    """Route loguru output to stderr and, if configured, a rotating log file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation="1 MB",
            retention=3,
        )


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
