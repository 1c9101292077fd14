"""greenlight jobs: list ingestion jobs or show one job's progress."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db
from greenlight.cli.errors import err_not_found
from greenlight.db.models import IngestionJob, JobStatus
from greenlight.db.repository import Repository

_STATUS_STYLE = {
    JobStatus.PENDING: "dim",
    JobStatus.RUNNING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
}


def jobs_cmd(
    job_id: Annotated[
        str | None,
        typer.Argument(help="Job id to show. Omit to list recent jobs."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
    limit: Annotated[int, typer.Option("--limit", help="Maximum jobs to list.")] = 20,
) -> None:
    """Show ingestion jobs and their progress counters."""
    cfg = load_settings(organization)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        if job_id is None:
            _list_jobs(repo.list_jobs(cfg.organization, limit=limit))
            return
        job = repo.get_job(job_id)
        if job is None or job.organization_id != cfg.organization:
            console.print(err_not_found("Job", job_id, "greenlight jobs"))
            raise typer.Exit(1)
        _show_job(job)
    finally:
        conn.close()


def _status(job: IngestionJob) -> str:
    return f"[{_STATUS_STYLE[job.status]}]{job.status.value}[/]"


def _list_jobs(jobs: list[IngestionJob]) -> None:
    if not jobs:
        console.print("[yellow]No ingestion jobs yet.[/]  Run:  greenlight ingest --source <export.json>")
        return
    table = Table(title="Ingestion Jobs", show_header=True, header_style="bold")
    table.add_column("Job")
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Groups", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Drafts", justify="right")
    table.add_column("Created")
    for job in jobs:
        table.add_row(
            job.id,
            _status(job),
            job.source_label or "",
            f"{job.groups_processed}/{job.groups_total}",
            str(job.groups_failed),
            str(job.drafts_created),
            job.created_at or "",
        )
    console.print(table)


def _show_job(job: IngestionJob) -> None:
    table = Table(title=f"Job {job.id}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Status", _status(job))
    table.add_row("Source", job.source_label or "")
    table.add_row("Items", str(job.items_total))
    table.add_row("Groups", f"{job.groups_processed}/{job.groups_total}")
    table.add_row("Failed groups", str(job.groups_failed))
    table.add_row("Drafts created", str(job.drafts_created))
    table.add_row("Tokens used", f"{job.tokens_used:,}")
    table.add_row("Started", job.started_at or "")
    table.add_row("Completed", job.completed_at or "")
    if job.error:
        table.add_row("Error", f"[red]{job.error}[/]")
    console.print(table)
