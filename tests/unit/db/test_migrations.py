"""Tests for the forward-only migration runner."""

from __future__ import annotations

from greenlight.db.connection import Database
from greenlight.db.migrations import MIGRATIONS, current_version, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_creates_schema_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()


def test_current_version_zero_before_migrations(tmp_path):
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE schema_version (version INTEGER NOT NULL, applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    assert current_version(conn) == 0
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

def test_run_migrations_creates_job_table(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "ingestion_jobs")
    conn.close()


def test_run_migrations_creates_chunk_table(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "document_chunks")
    conn.close()


# --- Incremental application ---

def test_run_migrations_applies_only_pending(tmp_path, monkeypatch):
    """A database already at version 1 only receives the later migration."""
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL, applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    import greenlight.db.migrations as mod
    monkeypatch.setattr(
        mod,
        "MIGRATIONS",
        [(1, "CREATE TABLE v1_marker (x INTEGER);"), (2, "CREATE TABLE v2_marker (x INTEGER);")],
    )
    run_migrations(conn)

    assert _table_exists(conn, "v2_marker")
    assert not _table_exists(conn, "v1_marker")
    versions = [r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version").fetchall()]
    assert versions == [1, 2]
    conn.close()


# --- initialize() delegates to run_migrations() ---

def test_initialize_delegates_to_run_migrations(tmp_path):
    from greenlight.db.schema import initialize
    conn = _fresh_conn(tmp_path)
    initialize(conn)
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()
