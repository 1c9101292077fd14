"""Greenlight CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from greenlight.cli.ask import ask_cmd, metrics_cmd, search_cmd
from greenlight.cli.documents import documents_app
from greenlight.cli.drafts import drafts_app
from greenlight.cli.index import categorize_cmd, reindex_cmd
from greenlight.cli.ingest import ingest_cmd
from greenlight.cli.jobs import jobs_cmd
from greenlight.cli.status import status_cmd
from greenlight.log import configure_logging


def _installed_version() -> str:
    try:
        return importlib.metadata.version("greenlight")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"greenlight {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="greenlight",
    help=(
        "Greenlight: turn team conversations and files into reviewed knowledge.\n\n"
        "  greenlight ingest   Group and structure exported items into drafts.\n"
        "  greenlight drafts   Review drafts: approve, reject, batch-approve.\n"
        "  greenlight documents  Browse approved documents and their versions.\n"
        "  greenlight ask      Answer questions from approved documents."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Log level for pipeline logs (stderr)."),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit logs as JSON lines."),
    ] = False,
) -> None:
    """Greenlight: turn team conversations and files into reviewed knowledge."""
    configure_logging(level=log_level, json=json_logs)


app.command("ingest")(ingest_cmd)
app.command("jobs")(jobs_cmd)
app.command("reindex")(reindex_cmd)
app.command("categorize")(categorize_cmd)
app.command("search")(search_cmd)
app.command("ask")(ask_cmd)
app.command("metrics")(metrics_cmd)
app.command("status")(status_cmd)
app.add_typer(drafts_app, name="drafts")
app.add_typer(documents_app, name="documents")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Greenlight version."""
    typer.echo(f"greenlight {_installed_version()}")


if __name__ == "__main__":
    app()
