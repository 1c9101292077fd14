"""Domain models for the Greenlight database layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class TriageLevel(str, Enum):
    """Review urgency band. Ordered red < yellow < green."""

    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"

    @property
    def rank(self) -> int:
        return _TRIAGE_RANK[self]


_TRIAGE_RANK = {TriageLevel.RED: 0, TriageLevel.YELLOW: 1, TriageLevel.GREEN: 2}


class DraftStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SourceReference:
    """Pointer from a draft back to one raw content item."""

    source_type: str
    source_id: str
    snippet: str = ""
    author: str | None = None
    timestamp: str | None = None
    url: str | None = None


@dataclass
class DraftDocument:
    id: str
    organization_id: str
    title: str
    content: str
    summary: str = ""
    topics: list[str] = field(default_factory=list)
    confidence_score: float = 0.0
    triage_level: TriageLevel = TriageLevel.RED
    confidence_reasoning: str = ""
    factor_breakdown: dict[str, float] = field(default_factory=dict)
    source_references: list[SourceReference] = field(default_factory=list)
    source_external_id: str | None = None
    processing_metadata: dict = field(default_factory=dict)
    status: DraftStatus = DraftStatus.PENDING
    is_update: bool = False
    original_document_id: str | None = None
    changes_made: list[str] = field(default_factory=list)
    approved_by: str | None = None
    approved_at: str | None = None
    created_at: str | None = None


@dataclass
class ApprovedDocument:
    id: str
    organization_id: str
    title: str
    content: str
    summary: str = ""
    tags: list[str] = field(default_factory=list)
    version: int = 1
    approved_by: str = ""
    approved_at: str | None = None
    source_external_id: str | None = None
    source_draft_id: str | None = None
    embedding: list[float] | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class DocumentVersion:
    document_id: str
    version: int
    content: str
    changes: str
    approved_by: str
    approved_at: str
    id: int | None = None  # set after insert


@dataclass
class EmbeddingChunk:
    document_id: str
    chunk_index: int
    content: str
    embedding: list[float]
    organization_id: str = ""
    start_offset: int = 0
    end_offset: int = 0
    token_count: int = 0


@dataclass
class ChunkMatch:
    """A chunk returned by similarity search, with its parent document title."""

    document_id: str
    chunk_index: int
    title: str
    content: str
    similarity: float


@dataclass
class QAInteraction:
    organization_id: str
    question: str
    answer: str
    confidence: float
    sources: list[dict] = field(default_factory=list)
    user_id: str | None = None
    tokens_used: int = 0
    created_at: str | None = None


@dataclass
class IngestionJob:
    id: str
    organization_id: str
    source_label: str = ""
    status: JobStatus = JobStatus.PENDING
    items_total: int = 0
    groups_total: int = 0
    groups_processed: int = 0
    groups_failed: int = 0
    drafts_created: int = 0
    tokens_used: int = 0
    error: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None
