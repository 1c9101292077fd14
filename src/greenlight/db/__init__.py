"""Greenlight database layer."""

from greenlight.db.connection import Database
from greenlight.db.migrations import MIGRATIONS, run_migrations
from greenlight.db.repository import Repository
from greenlight.db.schema import initialize

__all__ = [
    "Database",
    "MIGRATIONS",
    "Repository",
    "initialize",
    "run_migrations",
]
