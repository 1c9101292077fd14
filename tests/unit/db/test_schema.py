"""Tests for database schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from greenlight.db.schema import CURRENT_VERSION, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


@pytest.mark.parametrize("table", [
    "draft_documents",
    "approved_documents",
    "document_versions",
    "document_chunks",
    "qa_interactions",
    "ingestion_jobs",
    "schema_version",
])
def test_table_exists(tmp_db, table):
    assert _table_exists(tmp_db, table)


def test_draft_columns(tmp_db):
    cols = _table_columns(tmp_db, "draft_documents")
    assert {
        "confidence_score",
        "triage_level",
        "factor_breakdown",
        "source_external_id",
        "is_update",
        "original_document_id",
        "changes_made",
        "status",
    } <= cols


def test_approved_document_columns(tmp_db):
    cols = _table_columns(tmp_db, "approved_documents")
    assert {"version", "tags", "embedding", "source_external_id", "approved_by"} <= cols


def test_version_starts_at_current(tmp_db):
    version = tmp_db.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    initialize(tmp_db)
    count = tmp_db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == 1


def test_triage_level_check_constraint(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO draft_documents (id, organization_id, title, content, confidence_score, triage_level)"
            " VALUES ('d', 'o', 't', 'c', 0.5, 'blue')"
        )


def test_confidence_range_check_constraint(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO draft_documents (id, organization_id, title, content, confidence_score, triage_level)"
            " VALUES ('d', 'o', 't', 'c', 1.5, 'green')"
        )


def test_version_unique_per_document(tmp_db):
    tmp_db.execute(
        "INSERT INTO approved_documents (id, organization_id, title, content, approved_by, approved_at)"
        " VALUES ('doc', 'o', 't', 'c', 'm', '2024-01-01')"
    )
    insert = (
        "INSERT INTO document_versions (document_id, version, content, changes, approved_by, approved_at)"
        " VALUES ('doc', 1, 'c', 'Initial version', 'm', '2024-01-01')"
    )
    tmp_db.execute(insert)
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(insert)
