"""greenlight documents CLI commands.

Commands:
  greenlight documents list             approved documents with version and tags
  greenlight documents versions <id>    version history of one document
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db
from greenlight.cli.errors import err_not_found
from greenlight.db.repository import Repository

documents_app = typer.Typer(
    name="documents",
    help="Browse approved documents and their version history.",
    add_completion=False,
)

DbOption = Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")]
OrgOption = Annotated[str | None, typer.Option("--org", help="Organization id (overrides config).")]


@documents_app.command("list")
def documents_list_cmd(db: DbOption = DEFAULT_DB, organization: OrgOption = None) -> None:
    """List approved documents, most recently approved first."""
    cfg = load_settings(organization)
    conn = open_db(db)
    try:
        documents = Repository(conn).list_documents(cfg.organization)
    finally:
        conn.close()

    if not documents:
        console.print("[yellow]No approved documents found.[/]")
        raise typer.Exit(0)

    table = Table(title="Documents", show_header=True, header_style="bold")
    table.add_column("Id")
    table.add_column("Title", style="bold")
    table.add_column("Version", justify="right")
    table.add_column("Tags")
    table.add_column("Approved at")

    for doc in documents:
        table.add_row(doc.id, escape(doc.title), str(doc.version), ", ".join(doc.tags), doc.approved_at)
    console.print(table)


@documents_app.command("versions")
def documents_versions_cmd(
    document_id: Annotated[str, typer.Argument(help="Approved document id.")],
    db: DbOption = DEFAULT_DB,
    organization: OrgOption = None,
) -> None:
    """Show the version history of an approved document, oldest first."""
    cfg = load_settings(organization)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        document = repo.get_document(document_id, cfg.organization)
        versions = repo.list_versions(document_id) if document is not None else []
    finally:
        conn.close()

    if document is None:
        console.print(err_not_found("Document", document_id, "greenlight documents list"))
        raise typer.Exit(1)

    table = Table(title=f"Versions: {escape(document.title)}", show_header=True, header_style="bold")
    table.add_column("Version", justify="right")
    table.add_column("Changes")
    table.add_column("Approved by")
    table.add_column("Approved at")

    for version in versions:
        marker = " [green](current)[/]" if version.version == document.version else ""
        table.add_row(
            f"{version.version}{marker}",
            escape(version.changes),
            version.approved_by,
            version.approved_at,
        )
    console.print(table)
    console.print(f"\n  {len(versions)} version(s), current v{document.version}")
