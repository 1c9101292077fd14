"""Dense retriever over indexed document chunks (sqlite-vec cosine distance)."""

from __future__ import annotations

from dataclasses import dataclass

from greenlight.ai.llm_client import EmbeddingClient
from greenlight.db.models import ApprovedDocument, ChunkMatch
from greenlight.db.repository import Repository
from greenlight.errors import ProcessingError


@dataclass
class RetrieverConfig:
    """Defaults for similarity search.

    Attributes:
        max_sources: Maximum number of chunks returned.
        similarity_threshold: Chunks must score strictly above this.
    """

    max_sources: int = 5
    similarity_threshold: float = 0.7


class Retriever:
    """Embeds a query and returns the organization's most similar chunks."""

    def __init__(self, repo: Repository, embedder: EmbeddingClient, config: RetrieverConfig | None = None) -> None:
        self._repo = repo
        self._embedder = embedder
        self.config = config or RetrieverConfig()

    def retrieve(
        self,
        query: str,
        organization_id: str,
        max_sources: int | None = None,
        similarity_threshold: float | None = None,
    ) -> list[ChunkMatch]:
        """Return up to *max_sources* chunks above the threshold, best first."""
        limit = max_sources if max_sources is not None else self.config.max_sources
        threshold = similarity_threshold if similarity_threshold is not None else self.config.similarity_threshold
        if limit < 1:
            return []
        if self._repo.count_chunks(organization_id=organization_id) == 0:
            return []
        embedding = self._embedder.embed(query)
        return self._repo.search_chunks(embedding, organization_id, threshold, limit)

    def search_documents(
        self,
        query: str,
        organization_id: str,
        limit: int = 10,
        similarity_threshold: float | None = None,
    ) -> list[tuple[ApprovedDocument, float]]:
        """Whole-document similarity search (used by the ``search`` command).

        Raises:
            ProcessingError: If the query cannot be embedded.
        """
        threshold = similarity_threshold if similarity_threshold is not None else self.config.similarity_threshold
        try:
            embedding = self._embedder.embed(query)
        except Exception as exc:
            raise ProcessingError("retrieve", exc) from exc
        return self._repo.search_documents(embedding, organization_id, threshold, limit)
