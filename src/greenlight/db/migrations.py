"""Forward-only migration runner for Greenlight's database schema."""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS approved_documents (
    id                  TEXT PRIMARY KEY,
    organization_id     TEXT NOT NULL,
    title               TEXT NOT NULL,
    content             TEXT NOT NULL,
    summary             TEXT NOT NULL DEFAULT '',
    tags                TEXT NOT NULL DEFAULT '[]',
    version             INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
    approved_by         TEXT NOT NULL,
    approved_at         DATETIME NOT NULL,
    source_external_id  TEXT,
    source_draft_id     TEXT,
    embedding           BLOB,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_approved_documents_org
    ON approved_documents(organization_id);
CREATE INDEX IF NOT EXISTS idx_approved_documents_source
    ON approved_documents(source_external_id, organization_id);

CREATE TABLE IF NOT EXISTS draft_documents (
    id                    TEXT PRIMARY KEY,
    organization_id       TEXT NOT NULL,
    title                 TEXT NOT NULL,
    content               TEXT NOT NULL,
    summary               TEXT NOT NULL DEFAULT '',
    topics                TEXT NOT NULL DEFAULT '[]',
    confidence_score      REAL NOT NULL CHECK (confidence_score >= 0 AND confidence_score <= 1),
    triage_level          TEXT NOT NULL CHECK (triage_level IN ('green', 'yellow', 'red')),
    confidence_reasoning  TEXT NOT NULL DEFAULT '',
    factor_breakdown      TEXT NOT NULL DEFAULT '{}',
    source_references     TEXT NOT NULL DEFAULT '[]',
    source_external_id    TEXT,
    processing_metadata   TEXT NOT NULL DEFAULT '{}',
    status                TEXT NOT NULL DEFAULT 'pending'
                          CHECK (status IN ('pending', 'approved', 'rejected')),
    is_update             INTEGER NOT NULL DEFAULT 0,
    original_document_id  TEXT REFERENCES approved_documents(id),
    changes_made          TEXT NOT NULL DEFAULT '[]',
    approved_by           TEXT,
    approved_at           DATETIME,
    created_at            DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at            DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_draft_documents_queue
    ON draft_documents(organization_id, status, triage_level);

CREATE TABLE IF NOT EXISTS document_versions (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id   TEXT NOT NULL REFERENCES approved_documents(id) ON DELETE CASCADE,
    version       INTEGER NOT NULL,
    content       TEXT NOT NULL,
    changes       TEXT NOT NULL,
    approved_by   TEXT NOT NULL,
    approved_at   DATETIME NOT NULL,
    created_at    DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (document_id, version)
);

CREATE TABLE IF NOT EXISTS document_chunks (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    document_id      TEXT NOT NULL REFERENCES approved_documents(id) ON DELETE CASCADE,
    organization_id  TEXT NOT NULL,
    chunk_index      INTEGER NOT NULL,
    content          TEXT NOT NULL,
    start_offset     INTEGER NOT NULL DEFAULT 0,
    end_offset       INTEGER NOT NULL DEFAULT 0,
    token_count      INTEGER NOT NULL DEFAULT 0,
    embedding        BLOB NOT NULL,
    created_at       DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (document_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_document_chunks_org
    ON document_chunks(organization_id);

CREATE TABLE IF NOT EXISTS qa_interactions (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    organization_id  TEXT NOT NULL,
    user_id          TEXT,
    question         TEXT NOT NULL,
    answer           TEXT NOT NULL,
    confidence       REAL NOT NULL CHECK (confidence >= 0 AND confidence <= 1),
    sources          TEXT NOT NULL DEFAULT '[]',
    tokens_used      INTEGER NOT NULL DEFAULT 0,
    created_at       DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS ingestion_jobs (
    id                TEXT PRIMARY KEY,
    organization_id   TEXT NOT NULL,
    source_label      TEXT NOT NULL DEFAULT '',
    status            TEXT NOT NULL DEFAULT 'pending'
                      CHECK (status IN ('pending', 'running', 'completed', 'failed')),
    items_total       INTEGER NOT NULL DEFAULT 0,
    groups_total      INTEGER NOT NULL DEFAULT 0,
    groups_processed  INTEGER NOT NULL DEFAULT 0,
    groups_failed     INTEGER NOT NULL DEFAULT 0,
    drafts_created    INTEGER NOT NULL DEFAULT 0,
    tokens_used       INTEGER NOT NULL DEFAULT 0,
    error             TEXT,
    started_at        DATETIME,
    completed_at      DATETIME,
    created_at        DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied schema version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0
