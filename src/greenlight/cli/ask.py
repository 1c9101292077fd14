"""greenlight ask / search / metrics: question answering over approved documents."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from greenlight.cli.common import DEFAULT_DB, console, load_settings, open_db, require_api_key
from greenlight.cli.errors import err_processing
from greenlight.errors import ProcessingError
from greenlight.services import build_services


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer from the knowledge base.")],
    max_sources: Annotated[
        int | None,
        typer.Option("--max-sources", help="Maximum chunks used as context."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Minimum cosine similarity for a chunk to be used."),
    ] = None,
    user: Annotated[str | None, typer.Option("--user", help="User id recorded with the question.")] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
) -> None:
    """Answer a question from approved documents, citing the sources used."""
    cfg = load_settings(organization)
    require_api_key(cfg.embedding.model)
    require_api_key(cfg.generation.model)

    conn = open_db(db)
    try:
        services = build_services(cfg, conn)
        answer = services.rag.answer(
            question,
            cfg.organization,
            max_sources=max_sources if max_sources is not None else cfg.retrieval.max_sources,
            similarity_threshold=threshold if threshold is not None else cfg.retrieval.similarity_threshold,
            user_id=user,
        )
    except ProcessingError as exc:
        console.print(err_processing(exc.stage, str(exc.cause)))
        raise typer.Exit(1) from None
    finally:
        conn.close()

    console.print(
        Panel(
            escape(answer.answer),
            title=f"[bold]Answer[/]  confidence {answer.confidence:.2f}",
            expand=False,
        )
    )
    if answer.sources:
        table = Table(title="Sources", show_header=True, header_style="bold")
        table.add_column("Document")
        table.add_column("Similarity", justify="right")
        table.add_column("Snippet")
        for source in answer.sources:
            table.add_row(escape(source.title), f"{source.similarity:.2f}", escape(source.snippet))
        console.print(table)
    for follow_up in answer.follow_up_questions:
        console.print(f"  [dim]?[/] {follow_up}")


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search text.")],
    limit: Annotated[int, typer.Option("--limit", help="Maximum documents returned.")] = 10,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", help="Minimum cosine similarity."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
) -> None:
    """Find approved documents similar to a query."""
    cfg = load_settings(organization)
    require_api_key(cfg.embedding.model)

    conn = open_db(db)
    try:
        hits = build_services(cfg, conn).retriever.search_documents(
            query, cfg.organization, limit=limit, similarity_threshold=threshold
        )
    except ProcessingError as exc:
        console.print(err_processing(exc.stage, str(exc.cause)))
        raise typer.Exit(1) from None
    finally:
        conn.close()

    if not hits:
        console.print("[yellow]No matching documents.[/]")
        raise typer.Exit(0)

    table = Table(title="Documents", show_header=True, header_style="bold")
    table.add_column("Id")
    table.add_column("Title", style="bold")
    table.add_column("Version", justify="right")
    table.add_column("Similarity", justify="right")
    for doc, similarity in hits:
        table.add_row(doc.id, escape(doc.title), str(doc.version), f"{similarity:.2f}")
    console.print(table)


def metrics_cmd(
    since: Annotated[
        str | None,
        typer.Option("--since", help="Only count questions asked at or after this ISO timestamp."),
    ] = None,
    top: Annotated[int, typer.Option("--top", help="Rows per ranking.")] = 10,
    db: Annotated[Path, typer.Option("--db", help="Path to .greenlight.db.")] = DEFAULT_DB,
    organization: Annotated[str | None, typer.Option("--org", help="Organization id.")] = None,
) -> None:
    """Show question-answering analytics."""
    cfg = load_settings(organization)
    conn = open_db(db)
    try:
        rag = build_services(cfg, conn).rag
        metrics = rag.metrics(cfg.organization, since=since, top=top)
        suggestions = rag.suggest_questions(cfg.organization)
    finally:
        conn.close()

    console.print(
        Panel(
            f"Questions asked:     {metrics.total_queries}\n"
            f"Average confidence:  {metrics.avg_confidence:.2f}",
            title="[bold]Q&A[/]",
            expand=False,
        )
    )
    if metrics.top_sources:
        table = Table(title="Most cited documents", show_header=True, header_style="bold")
        table.add_column("Document")
        table.add_column("Cited", justify="right")
        for row in metrics.top_sources:
            table.add_row(escape(row["title"] or row["document_id"]), str(row["query_count"]))
        console.print(table)
    if suggestions:
        console.print("\n[bold]Suggested questions[/]")
        for question in suggestions:
            console.print(f"  • {escape(question)}")
