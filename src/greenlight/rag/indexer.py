"""Embedding indexer: chunk an approved document, embed, and persist.

For each document:
1. Verify it exists in ``approved_documents`` (NotFoundError otherwise).
2. Chunk content (500 tokens / 50 overlap by default), sentence-preserving.
3. Embed all chunks in batches, plus one whole-document embedding.
4. Replace the document's chunk rows and update its own embedding.

Empty content produces zero chunks and still counts as completed.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from greenlight.ai.llm_client import EmbeddingClient
from greenlight.db.models import EmbeddingChunk
from greenlight.db.repository import Repository, utc_now
from greenlight.db.vectors import check_dimensions
from greenlight.errors import NotFoundError
from greenlight.ingest.chunker import TextChunker, merge_small_chunks

logger = structlog.get_logger(__name__)

INDEX_MAX_TOKENS = 500
INDEX_OVERLAP_TOKENS = 50
INDEX_MIN_TOKENS = 50


@dataclass
class IndexResult:
    """Outcome of indexing one document."""

    document_id: str
    status: str  # completed | failed
    chunks_total: int = 0
    chunks_indexed: int = 0
    error: str | None = None
    completed_at: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "completed"


class EmbeddingIndexer:
    """Produces and stores chunk and whole-document embeddings.

    Args:
        repo: Open Repository instance.
        embedder: Embedding service.
        max_tokens: Chunk window size in estimated tokens.
        overlap_tokens: Overlap between consecutive chunks.
        min_tokens: Chunks smaller than this are folded into their successor.
        dimensions: Expected vector length. None accepts any length.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        max_tokens: int = INDEX_MAX_TOKENS,
        overlap_tokens: int = INDEX_OVERLAP_TOKENS,
        min_tokens: int = INDEX_MIN_TOKENS,
        dimensions: int | None = None,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._chunker = TextChunker(
            max_tokens=max_tokens,
            overlap_tokens=overlap_tokens,
            preserve_sentences=True,
        )
        self._min_tokens = min_tokens
        self._dimensions = dimensions

    def embed_document(self, document_id: str, content: str | None = None) -> IndexResult:
        """Index *document_id*, using *content* or the stored content.

        Raises:
            NotFoundError: If the document is not an approved document.
        """
        doc = self._repo.get_document(document_id)
        if doc is None:
            raise NotFoundError("Document", document_id)
        text = doc.content if content is None else content

        chunks = [c for c in merge_small_chunks(self._chunker.chunk(text), self._min_tokens) if c.content]
        result = IndexResult(document_id=document_id, status="completed", chunks_total=len(chunks))

        try:
            vectors = self._embedder.embed_batch([c.content for c in chunks]) if chunks else []
            document_vector = self._embedder.embed(text) if text.strip() else None
            if self._dimensions is not None:
                for vector in [*vectors, *([document_vector] if document_vector else [])]:
                    check_dimensions(vector, self._dimensions)
        except Exception as exc:
            logger.error("embedding_failed", document_id=document_id, error=str(exc))
            result.status = "failed"
            result.error = str(exc)
            result.completed_at = utc_now()
            return result

        rows = [
            EmbeddingChunk(
                document_id=document_id,
                organization_id=doc.organization_id,
                chunk_index=c.chunk_index,
                content=c.content,
                embedding=vector,
                start_offset=c.start_offset,
                end_offset=c.end_offset,
                token_count=c.token_count,
            )
            for c, vector in zip(chunks, vectors)
        ]
        with self._repo.transaction():
            self._repo.replace_chunks(document_id, rows)
            if document_vector is not None:
                self._repo.set_document_embedding(document_id, document_vector)

        result.chunks_indexed = len(rows)
        result.completed_at = utc_now()
        logger.info("document_indexed", document_id=document_id, chunks=len(rows))
        return result

    def reindex_organization(self, organization_id: str) -> list[IndexResult]:
        """Re-embed every approved document of an organization."""
        return [self.embed_document(doc.id, doc.content) for doc in self._repo.list_documents(organization_id)]

    def stats(self, organization_id: str) -> dict[str, float | int]:
        docs = self._repo.list_documents(organization_id)
        total_chunks = self._repo.count_chunks(organization_id=organization_id)
        return {
            "total_documents": len(docs),
            "documents_with_embeddings": sum(1 for d in docs if d.embedding is not None),
            "total_chunks": total_chunks,
            "avg_chunks_per_document": total_chunks / len(docs) if docs else 0.0,
        }
