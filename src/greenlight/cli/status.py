"""greenlight status command.

Shows configuration, knowledge-base counters, embedding coverage and the
most recent ingestion jobs for one organization.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db
from greenlight.config import GreenlightConfig
from greenlight.db.repository import Repository

_RECENT_JOBS = 3


def status_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
) -> None:
    """Show knowledge-base status for the organization."""
    cfg = load_settings(organization)

    # ---- Panel 1: Configuration ----
    _show_config_panel(db, cfg)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  greenlight ingest --source <export.json>",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = Repository(conn)
        # ---- Panel 2: Knowledge base ----
        _show_knowledge_panel(repo, cfg.organization)
        # ---- Panel 3: Recent jobs ----
        _show_jobs_panel(repo, cfg.organization)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_config_panel(db: Path, cfg: GreenlightConfig) -> None:
    lines = [
        f"Organization:     [bold]{cfg.organization}[/]",
        f"Database:         {db}",
        f"Generation model: {cfg.generation.model}",
        f"Embedding model:  {cfg.embedding.model}",
        f"Triage:           green >= {cfg.triage.green}, yellow >= {cfg.triage.yellow}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Greenlight[/]", expand=False))


def _show_knowledge_panel(repo: Repository, organization_id: str) -> None:
    stats = repo.stats(organization_id)
    documents = repo.list_documents(organization_id)
    embedded = sum(1 for d in documents if d.embedding is not None)
    avg_chunks = stats["chunks"] / len(documents) if documents else 0.0

    lines = [
        f"Approved documents: [bold]{stats['approved_documents']}[/]  ({embedded} embedded)",
        f"Drafts:             {stats['draft_documents']}  "
        f"([yellow]{stats['pending_drafts']} pending[/])",
        f"Chunks:             {stats['chunks']}  ({avg_chunks:.1f} per document)",
        f"Questions asked:    {stats['qa_interactions']}",
        f"Avg. confidence:    {stats['avg_confidence']:.2f}",
    ]
    tags = repo.list_tags(organization_id)
    if tags:
        lines.append(f"Categories:         {', '.join(tags)}")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_jobs_panel(repo: Repository, organization_id: str) -> None:
    jobs = repo.list_jobs(organization_id, limit=_RECENT_JOBS)
    if not jobs:
        return
    lines = [
        f"{job.status.value:<10} {job.groups_processed}/{job.groups_total} groups  "
        f"{job.drafts_created} drafts  {job.source_label}"
        for job in jobs
    ]
    console.print(Panel("\n".join(lines), title="[bold]Recent Jobs[/]", expand=False))
