"""greenlight ingest: structure exported chat/file items into pending drafts.

Each --source is a JSON or JSONL export of content items. All items from
one invocation run as a single persisted ingestion job; the command follows
the job row until it finishes and prints the outcome.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db, require_api_key
from greenlight.cli.errors import err_source_file
from greenlight.db.connection import Database
from greenlight.db.models import IngestionJob, JobStatus
from greenlight.db.repository import Repository
from greenlight.ingest.grouping import ContentItem
from greenlight.ingest.jobs import IngestionRunner
from greenlight.ingest.sources import SourceFormatError, load_items
from greenlight.services import build_orchestrator

_POLL_SECONDS = 0.5


def ingest_cmd(
    source: Annotated[
        list[Path] | None,
        typer.Option("--source", "-s", help="JSON/JSONL export of content items (repeatable)."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .greenlight.db (created if missing)."),
    ] = DEFAULT_DB,
    organization: Annotated[
        str | None,
        typer.Option("--org", help="Organization id (overrides config)."),
    ] = None,
) -> None:
    """Group, structure and score content items into drafts for review."""
    sources = source or []
    if not sources:
        console.print("[red]Error:[/] No --source specified. Use --source EXPORT.json.")
        raise typer.Exit(1)

    cfg = load_settings(organization)
    items = _load_all(sources)
    if not items:
        console.print("[yellow]No content items found to ingest.[/]")
        raise typer.Exit(0)

    require_api_key(cfg.generation.model)
    conn = open_db(db, create=True)
    database = Database(db)

    console.print(f"[bold]→ {len(items)} item(s)[/] for organization [bold]{cfg.organization}[/]")
    try:
        with IngestionRunner(
            database,
            build_orchestrator(cfg),
            workers=cfg.ingestion.workers,
            max_group_size=cfg.grouping.max_group_size,
            time_threshold_seconds=cfg.grouping.time_threshold_seconds,
        ) as runner:
            job = runner.start(items, cfg.organization, source_label=", ".join(p.name for p in sources))
            final = _follow(runner, job, Repository(conn))
    finally:
        conn.close()

    _print_summary(final)
    if final.status == JobStatus.FAILED:
        raise typer.Exit(1)


def _load_all(paths: list[Path]) -> list[ContentItem]:
    items: list[ContentItem] = []
    for path in paths:
        try:
            loaded = load_items(path)
        except FileNotFoundError:
            console.print(err_source_file(str(path), "File does not exist."))
            raise typer.Exit(1) from None
        except SourceFormatError as exc:
            console.print(err_source_file(str(path), str(exc)))
            raise typer.Exit(1) from None
        console.print(f"  [green]✓[/] {path}  ({len(loaded)} items)")
        items.extend(loaded)
    return items


def _follow(runner: IngestionRunner, job: IngestionJob, repo: Repository) -> IngestionJob:
    """Poll the job row until the worker finishes, rendering group progress."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Structuring groups", total=None)
        while True:
            try:
                return runner.wait(job.id, timeout=_POLL_SECONDS)
            except TimeoutError:
                current = repo.get_job(job.id)
                if current is not None and current.groups_total:
                    progress.update(task, total=current.groups_total, completed=current.groups_processed)


def _print_summary(job: IngestionJob) -> None:
    table = Table(title=f"Job {job.id}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    status_colour = "green" if job.status == JobStatus.COMPLETED else "red"
    table.add_row("Status", f"[{status_colour}]{job.status.value}[/]")
    table.add_row("Items", str(job.items_total))
    table.add_row("Groups", f"{job.groups_processed}/{job.groups_total}")
    table.add_row("Failed groups", str(job.groups_failed))
    table.add_row("Drafts created", str(job.drafts_created))
    table.add_row("Tokens used", f"{job.tokens_used:,}")
    if job.error:
        table.add_row("Error", f"[red]{job.error}[/]")
    console.print(table)
    if job.drafts_created:
        console.print("  Next:  greenlight drafts list --status pending")
