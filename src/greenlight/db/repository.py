"""Repository pattern for all Greenlight database operations.

Single interface for: drafts, approved documents, version snapshots,
embedding chunks + similarity search, Q&A interactions, ingestion jobs.

Every write commits immediately unless it runs inside ``transaction()``,
in which case the outermost block commits (or rolls back) once.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from greenlight.db.models import (
    ApprovedDocument,
    ChunkMatch,
    DocumentVersion,
    DraftDocument,
    DraftStatus,
    EmbeddingChunk,
    IngestionJob,
    JobStatus,
    QAInteraction,
    SourceReference,
    TriageLevel,
)
from greenlight.db.vectors import deserialize, serialize
from greenlight.errors import ConcurrentUpdateError


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for every application-set datetime column."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class Repository:
    """Data access layer for all Greenlight database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the
    caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see greenlight.db.schema.initialize).
        """
        self._conn = conn
        self._tx_depth = 0

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes into one atomic unit; nested blocks join the outer one."""
        self._tx_depth += 1
        try:
            yield
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                self._conn.rollback()
            raise
        self._tx_depth -= 1
        if self._tx_depth == 0:
            self._conn.commit()

    def _commit(self) -> None:
        if self._tx_depth == 0:
            self._conn.commit()

    # ------------------------------------------------------------------
    # Draft documents
    # ------------------------------------------------------------------

    def add_draft(self, draft: DraftDocument) -> None:
        """Insert a draft, or refresh it in place if the id already exists.

        Only pending drafts are overwritten so that re-running an ingestion
        job never resurrects an approved or rejected draft.
        """
        self._conn.execute(
            """
            INSERT INTO draft_documents (
                id, organization_id, title, content, summary, topics,
                confidence_score, triage_level, confidence_reasoning,
                factor_breakdown, source_references, source_external_id,
                processing_metadata, status, is_update, original_document_id,
                changes_made
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                content = excluded.content,
                summary = excluded.summary,
                topics = excluded.topics,
                confidence_score = excluded.confidence_score,
                triage_level = excluded.triage_level,
                confidence_reasoning = excluded.confidence_reasoning,
                factor_breakdown = excluded.factor_breakdown,
                source_references = excluded.source_references,
                processing_metadata = excluded.processing_metadata,
                is_update = excluded.is_update,
                original_document_id = excluded.original_document_id,
                changes_made = excluded.changes_made,
                updated_at = datetime('now')
            WHERE draft_documents.status = 'pending'
            """,
            (
                draft.id,
                draft.organization_id,
                draft.title,
                draft.content,
                draft.summary,
                json.dumps(draft.topics),
                draft.confidence_score,
                TriageLevel(draft.triage_level).value,
                draft.confidence_reasoning,
                json.dumps(draft.factor_breakdown),
                json.dumps([vars(ref) for ref in draft.source_references]),
                draft.source_external_id,
                json.dumps(draft.processing_metadata),
                DraftStatus(draft.status).value,
                int(draft.is_update),
                draft.original_document_id,
                json.dumps(draft.changes_made),
            ),
        )
        self._commit()

    def get_draft(self, draft_id: str, organization_id: str | None = None) -> DraftDocument | None:
        """Return a draft by id (optionally scoped to an organization), or None."""
        sql = "SELECT * FROM draft_documents WHERE id = ?"
        params: list = [draft_id]
        if organization_id is not None:
            sql += " AND organization_id = ?"
            params.append(organization_id)
        row = self._conn.execute(sql, params).fetchone()
        return _row_to_draft(row) if row else None

    def list_drafts(
        self,
        organization_id: str,
        status: DraftStatus | str | None = None,
        triage_level: TriageLevel | str | None = None,
    ) -> list[DraftDocument]:
        """Return drafts for an organization, newest first, optionally filtered."""
        sql = "SELECT * FROM draft_documents WHERE organization_id = ?"
        params: list = [organization_id]
        if status is not None:
            sql += " AND status = ?"
            params.append(DraftStatus(status).value)
        if triage_level is not None:
            sql += " AND triage_level = ?"
            params.append(TriageLevel(triage_level).value)
        sql += " ORDER BY created_at DESC, rowid DESC"
        return [_row_to_draft(r) for r in self._conn.execute(sql, params).fetchall()]

    def list_batch_eligible(self, draft_ids: list[str], organization_id: str) -> list[DraftDocument]:
        """Return the subset of *draft_ids* that are pending AND green, in request order."""
        if not draft_ids:
            return []
        placeholders = ",".join("?" * len(draft_ids))
        rows = self._conn.execute(
            f"""
            SELECT * FROM draft_documents
            WHERE id IN ({placeholders})
              AND organization_id = ?
              AND status = 'pending'
              AND triage_level = 'green'
            """,
            [*draft_ids, organization_id],
        ).fetchall()
        by_id = {r["id"]: _row_to_draft(r) for r in rows}
        ordered: list[DraftDocument] = []
        for draft_id in dict.fromkeys(draft_ids):
            if draft_id in by_id:
                ordered.append(by_id[draft_id])
        return ordered

    def mark_draft_approved(self, draft_id: str, approved_by: str, approved_at: str) -> bool:
        """Move a pending draft to approved. Returns False if it was not pending."""
        cur = self._conn.execute(
            """
            UPDATE draft_documents
            SET status = 'approved', approved_by = ?, approved_at = ?, updated_at = datetime('now')
            WHERE id = ? AND status = 'pending'
            """,
            (approved_by, approved_at, draft_id),
        )
        self._commit()
        return cur.rowcount == 1

    def mark_draft_rejected(self, draft_id: str) -> bool:
        """Move a pending draft to rejected. Returns False if it was not pending."""
        cur = self._conn.execute(
            """
            UPDATE draft_documents
            SET status = 'rejected', updated_at = datetime('now')
            WHERE id = ? AND status = 'pending'
            """,
            (draft_id,),
        )
        self._commit()
        return cur.rowcount == 1

    def count_pending(self, organization_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM draft_documents WHERE organization_id = ? AND status = 'pending'",
            (organization_id,),
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Approved documents
    # ------------------------------------------------------------------

    def add_document(self, doc: ApprovedDocument) -> None:
        """Insert a new approved document."""
        self._conn.execute(
            """
            INSERT INTO approved_documents (
                id, organization_id, title, content, summary, tags, version,
                approved_by, approved_at, source_external_id, source_draft_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                doc.id,
                doc.organization_id,
                doc.title,
                doc.content,
                doc.summary,
                json.dumps(doc.tags),
                doc.version,
                doc.approved_by,
                doc.approved_at or utc_now(),
                doc.source_external_id,
                doc.source_draft_id,
            ),
        )
        self._commit()

    def get_document(self, document_id: str, organization_id: str | None = None) -> ApprovedDocument | None:
        sql = "SELECT * FROM approved_documents WHERE id = ?"
        params: list = [document_id]
        if organization_id is not None:
            sql += " AND organization_id = ?"
            params.append(organization_id)
        row = self._conn.execute(sql, params).fetchone()
        return _row_to_document(row) if row else None

    def get_document_by_source(self, organization_id: str, source_external_id: str) -> ApprovedDocument | None:
        """Return the most recently updated document built from *source_external_id*."""
        row = self._conn.execute(
            """
            SELECT * FROM approved_documents
            WHERE organization_id = ? AND source_external_id = ?
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (organization_id, source_external_id),
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self, organization_id: str) -> list[ApprovedDocument]:
        rows = self._conn.execute(
            "SELECT * FROM approved_documents WHERE organization_id = ? ORDER BY approved_at DESC",
            (organization_id,),
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def update_document_version(self, doc: ApprovedDocument, expected_version: int) -> None:
        """Write *doc* over the stored row if its version is still *expected_version*.

        Raises:
            ConcurrentUpdateError: If another writer bumped the version first.
        """
        cur = self._conn.execute(
            """
            UPDATE approved_documents
            SET content = ?, summary = ?, tags = ?, version = ?,
                approved_by = ?, approved_at = ?, updated_at = ?
            WHERE id = ? AND version = ?
            """,
            (
                doc.content,
                doc.summary,
                json.dumps(doc.tags),
                doc.version,
                doc.approved_by,
                doc.approved_at,
                doc.approved_at or utc_now(),
                doc.id,
                expected_version,
            ),
        )
        if cur.rowcount != 1:
            raise ConcurrentUpdateError(
                f"Document '{doc.id}' is no longer at version {expected_version}"
            )
        self._commit()

    def set_document_embedding(self, document_id: str, embedding: list[float]) -> None:
        self._conn.execute(
            "UPDATE approved_documents SET embedding = ? WHERE id = ?",
            (serialize(embedding), document_id),
        )
        self._commit()

    def set_document_tags(self, organization_id: str, document_ids: list[str], tags: list[str]) -> int:
        """Overwrite tags on the given documents. Returns the number of rows changed."""
        if not document_ids:
            return 0
        placeholders = ",".join("?" * len(document_ids))
        cur = self._conn.execute(
            f"""
            UPDATE approved_documents
            SET tags = ?, updated_at = datetime('now')
            WHERE organization_id = ? AND id IN ({placeholders})
            """,
            [json.dumps(tags), organization_id, *document_ids],
        )
        self._commit()
        return cur.rowcount

    def list_tags(self, organization_id: str) -> list[str]:
        """Distinct tags in use across an organization's documents, sorted."""
        tags: set[str] = set()
        for row in self._conn.execute(
            "SELECT tags FROM approved_documents WHERE organization_id = ?",
            (organization_id,),
        ).fetchall():
            tags.update(t for t in json.loads(row["tags"]) if t)
        return sorted(tags)

    # ------------------------------------------------------------------
    # Version snapshots (append-only)
    # ------------------------------------------------------------------

    def add_version(self, version: DocumentVersion) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO document_versions (document_id, version, content, changes, approved_by, approved_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                version.document_id,
                version.version,
                version.content,
                version.changes,
                version.approved_by,
                version.approved_at,
            ),
        )
        self._commit()
        return cur.lastrowid

    def list_versions(self, document_id: str) -> list[DocumentVersion]:
        rows = self._conn.execute(
            """
            SELECT id, document_id, version, content, changes, approved_by, approved_at
            FROM document_versions WHERE document_id = ? ORDER BY version
            """,
            (document_id,),
        ).fetchall()
        return [
            DocumentVersion(
                id=r["id"],
                document_id=r["document_id"],
                version=r["version"],
                content=r["content"],
                changes=r["changes"],
                approved_by=r["approved_by"],
                approved_at=r["approved_at"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Embedding chunks
    # ------------------------------------------------------------------

    def replace_chunks(self, document_id: str, chunks: list[EmbeddingChunk]) -> int:
        """Delete every chunk row for *document_id*, then insert *chunks*."""
        self._conn.execute("DELETE FROM document_chunks WHERE document_id = ?", (document_id,))
        for chunk in chunks:
            self._conn.execute(
                """
                INSERT INTO document_chunks (
                    document_id, organization_id, chunk_index, content,
                    start_offset, end_offset, token_count, embedding
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document_id,
                    chunk.organization_id,
                    chunk.chunk_index,
                    chunk.content,
                    chunk.start_offset,
                    chunk.end_offset,
                    chunk.token_count,
                    serialize(chunk.embedding),
                ),
            )
        self._commit()
        return len(chunks)

    def count_chunks(self, document_id: str | None = None, organization_id: str | None = None) -> int:
        sql = "SELECT COUNT(*) FROM document_chunks WHERE 1 = 1"
        params: list = []
        if document_id is not None:
            sql += " AND document_id = ?"
            params.append(document_id)
        if organization_id is not None:
            sql += " AND organization_id = ?"
            params.append(organization_id)
        return self._conn.execute(sql, params).fetchone()[0]

    def search_chunks(
        self,
        embedding: list[float],
        organization_id: str,
        threshold: float,
        limit: int,
    ) -> list[ChunkMatch]:
        """Cosine-similarity search over an organization's chunks, best first.

        Only chunks with similarity strictly above *threshold* are returned.
        """
        rows = self._conn.execute(
            """
            SELECT * FROM (
                SELECT c.document_id, c.chunk_index, c.content, d.title,
                       1.0 - vec_distance_cosine(c.embedding, ?) AS similarity
                FROM document_chunks c
                JOIN approved_documents d ON d.id = c.document_id
                WHERE c.organization_id = ?
            )
            WHERE similarity > ?
            ORDER BY similarity DESC
            LIMIT ?
            """,
            (serialize(embedding), organization_id, threshold, limit),
        ).fetchall()
        return [
            ChunkMatch(
                document_id=r["document_id"],
                chunk_index=r["chunk_index"],
                title=r["title"],
                content=r["content"],
                similarity=float(r["similarity"]),
            )
            for r in rows
        ]

    def search_documents(
        self,
        embedding: list[float],
        organization_id: str,
        threshold: float,
        limit: int,
    ) -> list[tuple[ApprovedDocument, float]]:
        """Whole-document cosine search. Documents without an embedding are skipped."""
        rows = self._conn.execute(
            """
            SELECT * FROM (
                SELECT *, 1.0 - vec_distance_cosine(embedding, ?) AS similarity
                FROM approved_documents
                WHERE organization_id = ? AND embedding IS NOT NULL
            )
            WHERE similarity > ?
            ORDER BY similarity DESC
            LIMIT ?
            """,
            (serialize(embedding), organization_id, threshold, limit),
        ).fetchall()
        return [(_row_to_document(r), float(r["similarity"])) for r in rows]

    # ------------------------------------------------------------------
    # Q&A interactions
    # ------------------------------------------------------------------

    def add_interaction(self, interaction: QAInteraction) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO qa_interactions (organization_id, user_id, question, answer, confidence, sources, tokens_used)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                interaction.organization_id,
                interaction.user_id,
                interaction.question,
                interaction.answer,
                interaction.confidence,
                json.dumps(interaction.sources),
                interaction.tokens_used,
            ),
        )
        self._commit()
        return cur.lastrowid

    def list_interactions(
        self,
        organization_id: str,
        since: str | None = None,
        limit: int | None = None,
    ) -> list[QAInteraction]:
        """Return interactions newest first, optionally since an ISO timestamp."""
        sql = "SELECT * FROM qa_interactions WHERE organization_id = ?"
        params: list = [organization_id]
        if since is not None:
            sql += " AND created_at >= ?"
            params.append(since)
        sql += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        return [
            QAInteraction(
                organization_id=r["organization_id"],
                user_id=r["user_id"],
                question=r["question"],
                answer=r["answer"],
                confidence=r["confidence"],
                sources=json.loads(r["sources"]),
                tokens_used=r["tokens_used"],
                created_at=r["created_at"],
            )
            for r in self._conn.execute(sql, params).fetchall()
        ]

    # ------------------------------------------------------------------
    # Ingestion jobs
    # ------------------------------------------------------------------

    def add_job(self, job: IngestionJob) -> None:
        self._conn.execute(
            """
            INSERT INTO ingestion_jobs (id, organization_id, source_label, status, items_total)
            VALUES (?, ?, ?, ?, ?)
            """,
            (job.id, job.organization_id, job.source_label, JobStatus(job.status).value, job.items_total),
        )
        self._commit()

    def update_job(self, job: IngestionJob) -> None:
        """Persist every mutable counter and status field of *job*."""
        self._conn.execute(
            """
            UPDATE ingestion_jobs
            SET status = ?, items_total = ?, groups_total = ?, groups_processed = ?,
                groups_failed = ?, drafts_created = ?, tokens_used = ?, error = ?,
                started_at = ?, completed_at = ?
            WHERE id = ?
            """,
            (
                JobStatus(job.status).value,
                job.items_total,
                job.groups_total,
                job.groups_processed,
                job.groups_failed,
                job.drafts_created,
                job.tokens_used,
                job.error,
                job.started_at,
                job.completed_at,
                job.id,
            ),
        )
        self._commit()

    def get_job(self, job_id: str) -> IngestionJob | None:
        row = self._conn.execute("SELECT * FROM ingestion_jobs WHERE id = ?", (job_id,)).fetchone()
        return _row_to_job(row) if row else None

    def list_jobs(self, organization_id: str | None = None, limit: int = 20) -> list[IngestionJob]:
        sql = "SELECT * FROM ingestion_jobs"
        params: list = []
        if organization_id is not None:
            sql += " WHERE organization_id = ?"
            params.append(organization_id)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        return [_row_to_job(r) for r in self._conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def stats(self, organization_id: str) -> dict[str, float | int]:
        """Knowledge-base counters for one organization."""
        row = self._conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM approved_documents WHERE organization_id = :org) AS approved,
                (SELECT COUNT(*) FROM draft_documents WHERE organization_id = :org) AS drafts,
                (SELECT COUNT(*) FROM draft_documents
                    WHERE organization_id = :org AND status = 'pending') AS pending,
                (SELECT COUNT(*) FROM document_chunks WHERE organization_id = :org) AS chunks,
                (SELECT COUNT(*) FROM qa_interactions WHERE organization_id = :org) AS interactions,
                (SELECT AVG(confidence_score) FROM draft_documents
                    WHERE organization_id = :org) AS avg_confidence
            """,
            {"org": organization_id},
        ).fetchone()
        return {
            "approved_documents": row["approved"],
            "draft_documents": row["drafts"],
            "pending_drafts": row["pending"],
            "chunks": row["chunks"],
            "qa_interactions": row["interactions"],
            "avg_confidence": row["avg_confidence"] or 0.0,
        }


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_draft(row: sqlite3.Row) -> DraftDocument:
    return DraftDocument(
        id=row["id"],
        organization_id=row["organization_id"],
        title=row["title"],
        content=row["content"],
        summary=row["summary"],
        topics=json.loads(row["topics"]),
        confidence_score=row["confidence_score"],
        triage_level=TriageLevel(row["triage_level"]),
        confidence_reasoning=row["confidence_reasoning"],
        factor_breakdown=json.loads(row["factor_breakdown"]),
        source_references=[SourceReference(**ref) for ref in json.loads(row["source_references"])],
        source_external_id=row["source_external_id"],
        processing_metadata=json.loads(row["processing_metadata"]),
        status=DraftStatus(row["status"]),
        is_update=bool(row["is_update"]),
        original_document_id=row["original_document_id"],
        changes_made=json.loads(row["changes_made"]),
        approved_by=row["approved_by"],
        approved_at=row["approved_at"],
        created_at=row["created_at"],
    )


def _row_to_document(row: sqlite3.Row) -> ApprovedDocument:
    return ApprovedDocument(
        id=row["id"],
        organization_id=row["organization_id"],
        title=row["title"],
        content=row["content"],
        summary=row["summary"],
        tags=json.loads(row["tags"]),
        version=row["version"],
        approved_by=row["approved_by"],
        approved_at=row["approved_at"],
        source_external_id=row["source_external_id"],
        source_draft_id=row["source_draft_id"],
        embedding=deserialize(row["embedding"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_job(row: sqlite3.Row) -> IngestionJob:
    return IngestionJob(
        id=row["id"],
        organization_id=row["organization_id"],
        source_label=row["source_label"],
        status=JobStatus(row["status"]),
        items_total=row["items_total"],
        groups_total=row["groups_total"],
        groups_processed=row["groups_processed"],
        groups_failed=row["groups_failed"],
        drafts_created=row["drafts_created"],
        tokens_used=row["tokens_used"],
        error=row["error"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
    )
