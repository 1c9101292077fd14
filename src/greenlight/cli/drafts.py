"""greenlight drafts CLI commands.

Commands:
  greenlight drafts list                 show drafts with triage band and status
  greenlight drafts show <id>            full draft content and confidence breakdown
  greenlight drafts approve <id>         approve (optionally with edited content)
  greenlight drafts reject <id>          reject a pending draft
  greenlight drafts batch-approve <ids>  approve the green, pending subset
"""

from __future__ import annotations

import getpass
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db, triage_markup
from greenlight.cli.errors import (
    err_concurrent_update,
    err_invalid_transition,
    err_not_found,
    err_not_manager,
)
from greenlight.db.models import DraftStatus, TriageLevel
from greenlight.db.repository import Repository
from greenlight.errors import (
    AuthorizationError,
    ConcurrentUpdateError,
    InvalidTransitionError,
    NotFoundError,
)
from greenlight.rag.indexer import IndexResult
from greenlight.review.approval import MANAGER_ROLE, Actor
from greenlight.services import build_services

drafts_app = typer.Typer(
    name="drafts",
    help="Review drafts (list, show, approve, reject, batch-approve).",
    add_completion=False,
)

DbOption = Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")]
OrgOption = Annotated[str | None, typer.Option("--org", help="Organization id (overrides config).")]
UserOption = Annotated[str | None, typer.Option("--user", help="Reviewer id. Defaults to the login name.")]
RoleOption = Annotated[str, typer.Option("--role", help="Reviewer role; approval requires 'manager'.")]


@contextmanager
def _review_errors(user: str) -> Iterator[None]:
    """Translate review errors into rich messages and exit 1."""
    try:
        yield
    except AuthorizationError:
        console.print(err_not_manager(user))
        raise typer.Exit(1) from None
    except NotFoundError as exc:
        console.print(err_not_found(exc.kind, exc.ident, "greenlight drafts list"))
        raise typer.Exit(1) from None
    except InvalidTransitionError as exc:
        console.print(err_invalid_transition(exc.draft_id, exc.status))
        raise typer.Exit(1) from None
    except ConcurrentUpdateError as exc:
        console.print(err_concurrent_update(str(exc)))
        raise typer.Exit(1) from None


def _actor(user: str | None, role: str) -> Actor:
    return Actor(user_id=user or getpass.getuser(), role=role)


def _report_index(index: IndexResult | None) -> None:
    if index is None:
        return
    if index.ok:
        console.print(f"  [green]✓[/] Indexed {index.chunks_indexed} chunk(s)")
    else:
        console.print(
            f"  [yellow]⚠[/] Indexing failed: {index.error}\n"
            "    The approval is saved. Run:  greenlight reindex"
        )


@drafts_app.command("list")
def drafts_list_cmd(
    status: Annotated[
        DraftStatus | None,
        typer.Option("--status", help="Filter by status (pending, approved, rejected)."),
    ] = None,
    triage: Annotated[
        TriageLevel | None,
        typer.Option("--triage", help="Filter by triage band (green, yellow, red)."),
    ] = None,
    db: DbOption = DEFAULT_DB,
    organization: OrgOption = None,
) -> None:
    """List drafts with their triage band and review status."""
    cfg = load_settings(organization)
    conn = open_db(db)
    try:
        drafts = Repository(conn).list_drafts(cfg.organization, status=status, triage_level=triage)
    finally:
        conn.close()

    if not drafts:
        console.print("[yellow]No drafts found.[/]")
        raise typer.Exit(0)

    table = Table(title="Drafts", show_header=True, header_style="bold")
    table.add_column("Id")
    table.add_column("Title", style="bold")
    table.add_column("Triage")
    table.add_column("Confidence", justify="right")
    table.add_column("Status")
    table.add_column("Update")

    for draft in drafts:
        table.add_row(
            draft.id,
            draft.title,
            triage_markup(draft.triage_level.value),
            f"{draft.confidence_score:.2f}",
            draft.status.value,
            "yes" if draft.is_update else "",
        )
    console.print(table)

    pending = sum(1 for d in drafts if d.status == DraftStatus.PENDING)
    console.print(f"\n  {pending}/{len(drafts)} pending")


@drafts_app.command("show")
def drafts_show_cmd(
    draft_id: Annotated[str, typer.Argument(help="Draft id.")],
    db: DbOption = DEFAULT_DB,
    organization: OrgOption = None,
) -> None:
    """Show one draft: content, confidence reasoning and sources."""
    cfg = load_settings(organization)
    conn = open_db(db)
    try:
        draft = Repository(conn).get_draft(draft_id, cfg.organization)
    finally:
        conn.close()

    if draft is None:
        console.print(err_not_found("Draft", draft_id, "greenlight drafts list"))
        raise typer.Exit(1)

    header = (
        f"{triage_markup(draft.triage_level.value)}  confidence {draft.confidence_score:.2f}  "
        f"status {draft.status.value}"
    )
    if draft.is_update:
        header += f"\nUpdates document {draft.original_document_id}: {'; '.join(draft.changes_made) or 'no changes'}"
    console.print(Panel(header, title=f"[bold]{escape(draft.title)}[/]", expand=False))
    if draft.summary:
        console.print(f"[dim]{escape(draft.summary)}[/]\n")
    console.print(Markdown(draft.content))

    factors = Table(title="Confidence factors", show_header=True, header_style="bold")
    factors.add_column("Factor")
    factors.add_column("Score", justify="right")
    for name, value in draft.factor_breakdown.items():
        factors.add_row(name, f"{value:.2f}")
    console.print(factors)
    if draft.confidence_reasoning:
        console.print(f"  {draft.confidence_reasoning}")

    if draft.source_references:
        console.print("\n[bold]Sources[/]")
        for ref in draft.source_references:
            who = f" ({ref.author})" if ref.author else ""
            line = f"{ref.source_type}:{ref.source_id}{who}  {ref.snippet}"
            console.print(f"  • {escape(line)}")


@drafts_app.command("approve")
def drafts_approve_cmd(
    draft_id: Annotated[str, typer.Argument(help="Draft id.")],
    edited_file: Annotated[
        Path | None,
        typer.Option("--edited-file", help="Approve this file's content instead of the draft text."),
    ] = None,
    user: UserOption = None,
    role: RoleOption = MANAGER_ROLE,
    db: DbOption = DEFAULT_DB,
    organization: OrgOption = None,
) -> None:
    """Approve a pending draft into the knowledge base."""
    cfg = load_settings(organization)
    actor = _actor(user, role)
    edited = None
    if edited_file is not None:
        if not edited_file.exists():
            console.print(f"[red]Error:[/] Edited file not found: '{edited_file}'")
            raise typer.Exit(1)
        edited = edited_file.read_text(encoding="utf-8")

    conn = open_db(db)
    try:
        services = build_services(cfg, conn)
        with _review_errors(actor.user_id):
            result = services.approvals.approve(draft_id, actor, cfg.organization, edited_content=edited)
    finally:
        conn.close()

    console.print(f"[green]✓[/] {result.message}")
    console.print(f"  Category: {result.category}")
    _report_index(result.index)


@drafts_app.command("reject")
def drafts_reject_cmd(
    draft_id: Annotated[str, typer.Argument(help="Draft id.")],
    user: UserOption = None,
    role: RoleOption = MANAGER_ROLE,
    db: DbOption = DEFAULT_DB,
    organization: OrgOption = None,
) -> None:
    """Reject a pending draft. Approved documents are never touched."""
    cfg = load_settings(organization)
    actor = _actor(user, role)
    conn = open_db(db)
    try:
        services = build_services(cfg, conn)
        with _review_errors(actor.user_id):
            services.approvals.reject(draft_id, actor, cfg.organization)
    finally:
        conn.close()
    console.print(f"[green]✓[/] Rejected: {draft_id}")


@drafts_app.command("batch-approve")
def drafts_batch_approve_cmd(
    draft_ids: Annotated[list[str], typer.Argument(help="Draft ids; only green pending drafts are approved.")],
    user: UserOption = None,
    role: RoleOption = MANAGER_ROLE,
    db: DbOption = DEFAULT_DB,
    organization: OrgOption = None,
) -> None:
    """Approve the green, pending subset of the given drafts as generated."""
    cfg = load_settings(organization)
    actor = _actor(user, role)
    conn = open_db(db)
    try:
        services = build_services(cfg, conn)
        with _review_errors(actor.user_id):
            result = services.approvals.batch_approve(draft_ids, actor, cfg.organization)
    finally:
        conn.close()

    console.print(f"[green]✓[/] {result.message}")
    for approval in result.approved:
        console.print(f"  [green]✓[/] {approval.draft_id} → {approval.document_id} (v{approval.version})")
        _report_index(approval.index)
    for skipped in result.skipped_ids:
        console.print(f"  [yellow]–[/] skipped {skipped} (not pending or not green)")
