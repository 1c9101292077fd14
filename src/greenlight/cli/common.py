"""Helpers shared by the greenlight CLI commands."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from greenlight.ai.llm_client import validate_api_key
from greenlight.cli.errors import err_config, err_no_api_key, err_no_db
from greenlight.config import ConfigError, GreenlightConfig, load_config
from greenlight.db.connection import Database
from greenlight.db.schema import initialize

DEFAULT_DB = Path(".greenlight.db")

console = Console()


def open_db(db_path: Path, *, create: bool = False) -> sqlite3.Connection:
    """Open *db_path* with the schema applied. Exits 1 if missing and not *create*."""
    if not create and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def load_settings(organization: str | None = None) -> GreenlightConfig:
    """Load config from the working directory; *organization* overrides it."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from None
    if organization:
        cfg.organization = organization
    return cfg


def require_api_key(model: str) -> None:
    """Exit 1 with an actionable message when *model* has no API key."""
    try:
        validate_api_key(model)
    except EnvironmentError:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from None


def triage_markup(level: str) -> str:
    colour = {"green": "green", "yellow": "yellow", "red": "red"}.get(level, "white")
    return f"[{colour}]● {level}[/]"
