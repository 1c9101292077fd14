"""Tests for Repository CRUD, transactions and similarity search."""

from __future__ import annotations

import uuid

import pytest

from greenlight.db.models import (
    DocumentVersion,
    DraftStatus,
    EmbeddingChunk,
    IngestionJob,
    JobStatus,
    QAInteraction,
    SourceReference,
    TriageLevel,
)
from greenlight.errors import ConcurrentUpdateError


def _chunk(document_id: str, index: int, embedding: list[float], org: str = "org-1", text: str = "chunk") -> EmbeddingChunk:
    return EmbeddingChunk(
        document_id=document_id,
        organization_id=org,
        chunk_index=index,
        content=f"{text} {index}",
        embedding=embedding,
    )


# ------------------------------------------------------------------
# Drafts
# ------------------------------------------------------------------


def test_add_and_get_draft_roundtrips_json_fields(repo, make_draft):
    draft = make_draft(
        topics=["IT", "Passwords"],
        factor_breakdown={"content_clarity": 0.9},
        source_references=[SourceReference(source_type="chat", source_id="c1", snippet="hi", author="bob")],
    )
    loaded = repo.get_draft(draft.id)
    assert loaded.topics == ["IT", "Passwords"]
    assert loaded.factor_breakdown == {"content_clarity": 0.9}
    assert loaded.source_references[0].author == "bob"
    assert loaded.status == DraftStatus.PENDING
    assert loaded.triage_level == TriageLevel.GREEN


def test_get_draft_scoped_to_organization(repo, make_draft):
    draft = make_draft(organization_id="org-1")
    assert repo.get_draft(draft.id, "org-2") is None
    assert repo.get_draft(draft.id, "org-1") is not None


def test_add_draft_upsert_refreshes_pending(repo, make_draft):
    draft = make_draft(title="Old")
    draft.title = "New"
    repo.add_draft(draft)
    assert repo.get_draft(draft.id).title == "New"


def test_add_draft_upsert_never_touches_decided_draft(repo, make_draft):
    draft = make_draft(title="Old")
    repo.mark_draft_rejected(draft.id)
    draft.title = "New"
    repo.add_draft(draft)
    loaded = repo.get_draft(draft.id)
    assert loaded.title == "Old"
    assert loaded.status == DraftStatus.REJECTED


def test_list_drafts_filters(repo, make_draft):
    green = make_draft(triage=TriageLevel.GREEN)
    make_draft(triage=TriageLevel.RED, score=0.2)
    rejected = make_draft(triage=TriageLevel.GREEN)
    repo.mark_draft_rejected(rejected.id)

    ids = [d.id for d in repo.list_drafts("org-1", status="pending", triage_level="green")]
    assert ids == [green.id]
    assert len(repo.list_drafts("org-1")) == 3
    assert repo.list_drafts("org-2") == []


def test_list_batch_eligible_keeps_request_order(repo, make_draft):
    a = make_draft()
    b = make_draft()
    yellow = make_draft(triage=TriageLevel.YELLOW, score=0.6)
    result = repo.list_batch_eligible([b.id, yellow.id, a.id, b.id, "missing"], "org-1")
    assert [d.id for d in result] == [b.id, a.id]


def test_list_batch_eligible_other_org_excluded(repo, make_draft):
    draft = make_draft(organization_id="org-2")
    assert repo.list_batch_eligible([draft.id], "org-1") == []


def test_mark_draft_approved_only_from_pending(repo, make_draft):
    draft = make_draft()
    assert repo.mark_draft_approved(draft.id, "mgr", "2024-03-01T10:00:00+00:00") is True
    assert repo.mark_draft_approved(draft.id, "mgr", "2024-03-01T10:00:00+00:00") is False
    assert repo.mark_draft_rejected(draft.id) is False
    loaded = repo.get_draft(draft.id)
    assert loaded.status == DraftStatus.APPROVED
    assert loaded.approved_by == "mgr"


def test_count_pending(repo, make_draft):
    make_draft()
    decided = make_draft()
    repo.mark_draft_rejected(decided.id)
    assert repo.count_pending("org-1") == 1


# ------------------------------------------------------------------
# Approved documents
# ------------------------------------------------------------------


def test_add_and_get_document(repo, make_document):
    doc = make_document(tags=["IT"])
    loaded = repo.get_document(doc.id)
    assert loaded.title == doc.title
    assert loaded.tags == ["IT"]
    assert loaded.version == 1
    assert loaded.embedding is None


def test_get_document_by_source(repo, make_document):
    doc = make_document(source_external_id="chat:c1:m1")
    assert repo.get_document_by_source("org-1", "chat:c1:m1").id == doc.id
    assert repo.get_document_by_source("org-2", "chat:c1:m1") is None
    assert repo.get_document_by_source("org-1", "chat:other") is None


def test_update_document_version_bumps(repo, make_document):
    doc = make_document()
    doc.content = "New content"
    doc.version = 2
    repo.update_document_version(doc, expected_version=1)
    loaded = repo.get_document(doc.id)
    assert loaded.version == 2
    assert loaded.content == "New content"


def test_update_document_version_conflict_raises(repo, make_document):
    doc = make_document()
    doc.version = 3
    with pytest.raises(ConcurrentUpdateError):
        repo.update_document_version(doc, expected_version=2)
    assert repo.get_document(doc.id).version == 1


def test_set_document_embedding_roundtrip(repo, make_document):
    doc = make_document()
    repo.set_document_embedding(doc.id, [0.5, 0.25])
    assert repo.get_document(doc.id).embedding == pytest.approx([0.5, 0.25])


def test_set_tags_and_list_tags(repo, make_document):
    a = make_document(tags=["IT"])
    b = make_document()
    make_document(organization_id="org-2", tags=["Secret"])
    changed = repo.set_document_tags("org-1", [b.id], ["HR"])
    assert changed == 1
    assert repo.list_tags("org-1") == ["HR", "IT"]
    assert repo.get_document(a.id).tags == ["IT"]


def test_set_tags_ignores_other_org(repo, make_document):
    doc = make_document(organization_id="org-2")
    assert repo.set_document_tags("org-1", [doc.id], ["HR"]) == 0


# ------------------------------------------------------------------
# Versions
# ------------------------------------------------------------------


def test_versions_listed_in_order(repo, make_document):
    doc = make_document()
    for version in (2, 1):
        repo.add_version(
            DocumentVersion(
                document_id=doc.id,
                version=version,
                content=f"v{version}",
                changes="note",
                approved_by="mgr",
                approved_at="2024-03-01",
            )
        )
    assert [v.version for v in repo.list_versions(doc.id)] == [1, 2]


# ------------------------------------------------------------------
# Transactions
# ------------------------------------------------------------------


def test_transaction_rolls_back_every_write(repo, make_document):
    doc = make_document()
    with pytest.raises(RuntimeError):
        with repo.transaction():
            repo.set_document_tags("org-1", [doc.id], ["HR"])
            repo.add_version(
                DocumentVersion(doc.id, 1, "c", "Initial version", "mgr", "2024-03-01")
            )
            raise RuntimeError("boom")
    assert repo.get_document(doc.id).tags == []
    assert repo.list_versions(doc.id) == []


def test_nested_transaction_joins_outer(repo, make_document):
    doc = make_document()
    with pytest.raises(RuntimeError):
        with repo.transaction():
            with repo.transaction():
                repo.set_document_tags("org-1", [doc.id], ["HR"])
            raise RuntimeError("outer fails after inner block")
    assert repo.get_document(doc.id).tags == []


def test_transaction_commits_on_success(repo, tmp_path, make_document):
    from greenlight.db.connection import Database

    doc = make_document()
    with repo.transaction():
        repo.set_document_tags("org-1", [doc.id], ["HR"])

    other = Database(tmp_path / ".greenlight.db").connect()
    try:
        row = other.execute("SELECT tags FROM approved_documents WHERE id = ?", (doc.id,)).fetchone()
    finally:
        other.close()
    assert row["tags"] == '["HR"]'


# ------------------------------------------------------------------
# Chunks and similarity search
# ------------------------------------------------------------------


def test_replace_chunks_deletes_previous(repo, make_document):
    doc = make_document()
    repo.replace_chunks(doc.id, [_chunk(doc.id, i, [1.0, 0.0]) for i in range(3)])
    repo.replace_chunks(doc.id, [_chunk(doc.id, 0, [1.0, 0.0])])
    assert repo.count_chunks(document_id=doc.id) == 1


def test_search_chunks_threshold_is_strict_and_sorted(repo, make_document):
    doc = make_document(title="VPN")
    repo.replace_chunks(
        doc.id,
        [
            _chunk(doc.id, 0, [1.0, 0.0]),   # similarity 1.0
            _chunk(doc.id, 1, [1.0, 1.0]),   # similarity ~0.707
            _chunk(doc.id, 2, [0.0, 1.0]),   # similarity 0.0
        ],
    )
    matches = repo.search_chunks([1.0, 0.0], "org-1", threshold=0.7, limit=10)
    assert [m.chunk_index for m in matches] == [0, 1]
    assert matches[0].similarity == pytest.approx(1.0, abs=1e-5)
    assert matches[0].title == "VPN"


def test_search_chunks_respects_limit(repo, make_document):
    doc = make_document()
    repo.replace_chunks(doc.id, [_chunk(doc.id, i, [1.0, 0.1 * i]) for i in range(4)])
    assert len(repo.search_chunks([1.0, 0.0], "org-1", threshold=0.0, limit=2)) == 2


def test_search_chunks_scoped_to_organization(repo, make_document):
    mine = make_document()
    theirs = make_document(organization_id="org-2")
    repo.replace_chunks(mine.id, [_chunk(mine.id, 0, [0.0, 1.0])])
    repo.replace_chunks(theirs.id, [_chunk(theirs.id, 0, [1.0, 0.0], org="org-2")])
    assert repo.search_chunks([1.0, 0.0], "org-1", threshold=0.5, limit=5) == []


def test_search_documents_skips_unembedded(repo, make_document):
    embedded = make_document(title="Embedded")
    make_document(title="Bare")
    repo.set_document_embedding(embedded.id, [1.0, 0.0])
    hits = repo.search_documents([1.0, 0.0], "org-1", threshold=0.5, limit=5)
    assert [doc.title for doc, _ in hits] == ["Embedded"]


# ------------------------------------------------------------------
# Q&A interactions
# ------------------------------------------------------------------


def test_interactions_newest_first_with_limit(repo):
    for i in range(3):
        repo.add_interaction(QAInteraction(organization_id="org-1", question=f"q{i}", answer="a", confidence=0.5))
    rows = repo.list_interactions("org-1", limit=2)
    assert [r.question for r in rows] == ["q2", "q1"]


def test_interactions_since_filter(repo):
    repo.add_interaction(QAInteraction(organization_id="org-1", question="q", answer="a", confidence=0.5))
    assert repo.list_interactions("org-1", since="2999-01-01") == []
    assert len(repo.list_interactions("org-1", since="2000-01-01")) == 1


# ------------------------------------------------------------------
# Jobs
# ------------------------------------------------------------------


def test_job_lifecycle(repo):
    job = IngestionJob(id=str(uuid.uuid4()), organization_id="org-1", items_total=4)
    repo.add_job(job)
    assert repo.get_job(job.id).status == JobStatus.PENDING

    job.status = JobStatus.COMPLETED
    job.groups_total = 2
    job.groups_processed = 2
    job.drafts_created = 2
    repo.update_job(job)

    loaded = repo.get_job(job.id)
    assert loaded.status == JobStatus.COMPLETED
    assert loaded.drafts_created == 2
    assert [j.id for j in repo.list_jobs("org-1")] == [job.id]
    assert repo.list_jobs("org-2") == []


def test_get_job_missing_returns_none(repo):
    assert repo.get_job("nope") is None


# ------------------------------------------------------------------
# Stats
# ------------------------------------------------------------------


def test_stats_counts(repo, make_draft, make_document):
    make_draft(score=0.9)
    make_draft(score=0.5, triage=TriageLevel.YELLOW)
    make_document()
    repo.add_interaction(QAInteraction(organization_id="org-1", question="q", answer="a", confidence=0.4))

    stats = repo.stats("org-1")
    assert stats["approved_documents"] == 1
    assert stats["draft_documents"] == 2
    assert stats["pending_drafts"] == 2
    assert stats["qa_interactions"] == 1
    assert stats["avg_confidence"] == pytest.approx(0.7)


def test_stats_empty_org(repo):
    stats = repo.stats("empty")
    assert stats["approved_documents"] == 0
    assert stats["avg_confidence"] == 0.0
