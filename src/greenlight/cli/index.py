"""greenlight reindex / categorize: maintain embeddings and tags of approved documents."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.table import Table

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db, require_api_key
from greenlight.services import build_services


def reindex_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
) -> None:
    """Re-embed every approved document of the organization."""
    cfg = load_settings(organization)
    require_api_key(cfg.embedding.model)

    conn = open_db(db)
    try:
        results = build_services(cfg, conn).indexer.reindex_organization(cfg.organization)
    finally:
        conn.close()

    if not results:
        console.print("[yellow]No approved documents to index.[/]")
        raise typer.Exit(0)

    failed = [r for r in results if not r.ok]
    for result in results:
        if result.ok:
            console.print(f"  [green]✓[/] {result.document_id}  {result.chunks_indexed} chunk(s)")
        else:
            console.print(f"  [red]✗[/] {result.document_id}  {escape(result.error or 'failed')}")
    console.print(f"\n  {len(results) - len(failed)}/{len(results)} indexed")
    if failed:
        raise typer.Exit(1)


def categorize_cmd(
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Write the proposed categories as document tags."),
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
) -> None:
    """Propose categories for approved documents (theme analysis with keyword fallback)."""
    cfg = load_settings(organization)
    require_api_key(cfg.generation.model)

    conn = open_db(db)
    try:
        services = build_services(cfg, conn)
        documents = services.repo.list_documents(cfg.organization)
        if not documents:
            console.print("[yellow]No approved documents to categorize.[/]")
            raise typer.Exit(0)
        result = services.categorizer.categorize(documents)
        tagged = services.categorizer.apply(cfg.organization, result) if apply else 0
    finally:
        conn.close()

    titles = {d.id: d.title for d in documents}
    table = Table(title="Categories", show_header=True, header_style="bold")
    table.add_column("Category", style="bold")
    table.add_column("Confidence", justify="right")
    table.add_column("Documents")
    for category in result.categories:
        names = ", ".join(titles.get(i, i) for i in category.document_ids)
        table.add_row(escape(category.name), f"{category.confidence:.2f}", escape(names))
    console.print(table)
    if result.uncategorized:
        console.print(f"  {len(result.uncategorized)} document(s) fall under {cfg.categorization.default_category}")
    if apply:
        console.print(f"[green]✓[/] Tagged {tagged} document(s)")
    else:
        console.print("  Run with --apply to write these categories as tags.")
