"""Service wiring: build every pipeline component once from a GreenlightConfig.

Components receive their collaborators through constructor arguments;
nothing in the pipeline reaches for a module-level singleton.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from greenlight.ai.categorization import CategorizationService
from greenlight.ai.confidence import ConfidenceScorer, TriageThresholds
from greenlight.ai.llm_client import EmbeddingClient, LLMClient
from greenlight.ai.pii import RegexRedactor
from greenlight.ai.rate_limit import FixedIntervalLimiter
from greenlight.ai.structuring import StructuringOrchestrator
from greenlight.config import GreenlightConfig
from greenlight.db.repository import Repository
from greenlight.rag.answerer import RagPipeline
from greenlight.rag.indexer import EmbeddingIndexer
from greenlight.rag.retriever import Retriever, RetrieverConfig
from greenlight.review.approval import ApprovalService, DocumentLocks


@dataclass
class Services:
    config: GreenlightConfig
    repo: Repository
    llm: LLMClient
    embedder: EmbeddingClient
    orchestrator: StructuringOrchestrator
    categorizer: CategorizationService
    indexer: EmbeddingIndexer
    approvals: ApprovalService
    retriever: Retriever
    rag: RagPipeline


def build_llm(cfg: GreenlightConfig) -> LLMClient:
    return LLMClient(cfg.generation.model, timeout=cfg.generation.timeout, num_retries=cfg.generation.num_retries)


def build_embedder(cfg: GreenlightConfig) -> EmbeddingClient:
    return EmbeddingClient(
        cfg.embedding.model,
        batch_size=cfg.embedding.batch_size,
        timeout=cfg.generation.timeout,
        num_retries=cfg.generation.num_retries,
    )


def build_orchestrator(cfg: GreenlightConfig, llm: LLMClient | None = None) -> StructuringOrchestrator:
    scorer = ConfidenceScorer(
        weights=cfg.confidence_weights,
        thresholds=TriageThresholds(green=cfg.triage.green, yellow=cfg.triage.yellow),
    )
    return StructuringOrchestrator(llm or build_llm(cfg), scorer, RegexRedactor())


def build_services(
    cfg: GreenlightConfig,
    conn: sqlite3.Connection,
    llm: LLMClient | None = None,
    embedder: EmbeddingClient | None = None,
    locks: DocumentLocks | None = None,
) -> Services:
    """Wire all services around one open connection."""
    repo = Repository(conn)
    llm = llm or build_llm(cfg)
    embedder = embedder or build_embedder(cfg)

    categorizer = CategorizationService(
        repo,
        llm,
        limiter=FixedIntervalLimiter(cfg.categorization.interval_seconds),
        batch_size=cfg.categorization.batch_size,
        default_category=cfg.categorization.default_category,
    )
    indexer = EmbeddingIndexer(
        repo,
        embedder,
        max_tokens=cfg.chunking.max_tokens,
        overlap_tokens=cfg.chunking.overlap_tokens,
        min_tokens=cfg.chunking.min_tokens,
        dimensions=cfg.embedding.dimensions,
    )
    retriever = Retriever(
        repo,
        embedder,
        RetrieverConfig(
            max_sources=cfg.retrieval.max_sources,
            similarity_threshold=cfg.retrieval.similarity_threshold,
        ),
    )
    return Services(
        config=cfg,
        repo=repo,
        llm=llm,
        embedder=embedder,
        orchestrator=build_orchestrator(cfg, llm),
        categorizer=categorizer,
        indexer=indexer,
        approvals=ApprovalService(
            repo,
            categorizer,
            indexer,
            locks=locks,
            default_category=cfg.categorization.default_category,
        ),
        retriever=retriever,
        rag=RagPipeline(repo, llm, retriever),
    )
