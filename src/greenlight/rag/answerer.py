"""Retrieval-augmented answer synthesis, Q&A logging and analytics."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field

import structlog

from greenlight.ai.llm_client import LLMClient
from greenlight.ai.prompts import question_answering_messages
from greenlight.db.models import ChunkMatch, QAInteraction
from greenlight.db.repository import Repository
from greenlight.errors import ProcessingError
from greenlight.rag.retriever import Retriever

logger = structlog.get_logger(__name__)

INSUFFICIENT_KNOWLEDGE_ANSWER = (
    "I don't have enough information in the knowledge base to answer your question. "
    "Please try rephrasing your question or contact your team for more specific information."
)
NO_CONTEXT_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
MIN_CONTEXT_CONFIDENCE = 0.15
FULL_CONTEXT_CHARS = 1500
SNIPPET_CHARS = 200
MAX_FOLLOW_UPS = 3
CONTEXT_SEPARATOR = "\n\n---\n\n"

_STATED_CONFIDENCE_RE = re.compile(r"confidence[:\s]*([0-9]*\.?[0-9]+)", re.IGNORECASE)


@dataclass(frozen=True)
class AnswerSource:
    document_id: str
    title: str
    similarity: float
    snippet: str

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "title": self.title,
            "similarity": round(self.similarity, 4),
            "snippet": self.snippet,
        }


@dataclass
class RagAnswer:
    answer: str
    confidence: float
    sources: list[AnswerSource] = field(default_factory=list)
    tokens_used: int = 0
    follow_up_questions: list[str] = field(default_factory=list)


@dataclass
class RagMetrics:
    total_queries: int
    avg_confidence: float
    top_sources: list[dict]
    common_questions: list[dict]


def answer_confidence(matches: list[ChunkMatch], stated: float | None = None) -> float:
    """Heuristic answer confidence from retrieval quality.

    0.1 with no context. Otherwise it grows with mean similarity and with the
    amount of retrieved text, never dropping below 0.15 and never above 0.95.
    A confidence the model states in its answer is averaged in.
    """
    if not matches:
        return NO_CONTEXT_CONFIDENCE
    mean_similarity = sum(max(0.0, m.similarity) for m in matches) / len(matches)
    coverage = min(1.0, sum(len(m.content) for m in matches) / FULL_CONTEXT_CHARS)
    score = 0.3 + 0.45 * mean_similarity + 0.2 * coverage
    if stated is not None:
        score = (score + stated) / 2
    return round(min(MAX_CONFIDENCE, max(MIN_CONTEXT_CONFIDENCE, score)), 4)


def follow_up_questions(answer: str, source_count: int) -> list[str]:
    lowered = answer.lower()
    questions = []
    if "process" in lowered or "procedure" in lowered:
        questions.append("What are the steps involved in this process?")
    if "policy" in lowered or "rule" in lowered:
        questions.append("Are there any exceptions to this policy?")
    if "contact" in lowered or "team" in lowered:
        questions.append("Who should I contact for more information?")
    if source_count > 1:
        questions.append("Can you provide more details from the other sources?")
    return questions[:MAX_FOLLOW_UPS]


def _snippet(text: str) -> str:
    return text[:SNIPPET_CHARS] + ("..." if len(text) > SNIPPET_CHARS else "")


def _stated_confidence(answer: str) -> float | None:
    match = _STATED_CONFIDENCE_RE.search(answer)
    if not match:
        return None
    value = float(match.group(1))
    return min(1.0, value / 100 if value > 1 else value)


class RagPipeline:
    """Question answering over an organization's approved documents.

    Args:
        repo: Repository used for Q&A logging and analytics.
        llm: Completion service for answer synthesis.
        retriever: Similarity retriever over indexed chunks.
    """

    def __init__(self, repo: Repository, llm: LLMClient, retriever: Retriever) -> None:
        self._repo = repo
        self._llm = llm
        self._retriever = retriever

    def answer(
        self,
        question: str,
        organization_id: str,
        max_sources: int = 5,
        similarity_threshold: float = 0.7,
        user_id: str | None = None,
    ) -> RagAnswer:
        """Answer *question* from retrieved context.

        With no chunk above the threshold a fixed low-confidence answer is
        returned and no completion call is made.

        Raises:
            ProcessingError: If the query embedding or the completion call
                fails after retries.
        """
        try:
            matches = self._retriever.retrieve(question, organization_id, max_sources, similarity_threshold)
        except Exception as exc:
            logger.error("retrieve_failed", organization_id=organization_id, error=str(exc))
            raise ProcessingError("retrieve", exc) from exc

        if not matches:
            response = RagAnswer(answer=INSUFFICIENT_KNOWLEDGE_ANSWER, confidence=NO_CONTEXT_CONFIDENCE)
            self._log_interaction(question, organization_id, user_id, response)
            return response

        context = CONTEXT_SEPARATOR.join(f"[Document: {m.title}]\n{m.content}" for m in matches)
        try:
            result = self._llm.complete(
                question_answering_messages(question, context),
                temperature=0.2,
                max_tokens=500,
            )
        except Exception as exc:
            logger.error("answer_failed", organization_id=organization_id, error=str(exc))
            raise ProcessingError("answer", exc) from exc

        response = RagAnswer(
            answer=result.content,
            confidence=answer_confidence(matches, _stated_confidence(result.content)),
            sources=[AnswerSource(m.document_id, m.title, m.similarity, _snippet(m.content)) for m in matches],
            tokens_used=result.usage.total_tokens,
            follow_up_questions=follow_up_questions(result.content, len(matches)),
        )
        self._log_interaction(question, organization_id, user_id, response)
        return response

    def _log_interaction(self, question: str, organization_id: str, user_id: str | None, response: RagAnswer) -> None:
        try:
            self._repo.add_interaction(
                QAInteraction(
                    organization_id=organization_id,
                    user_id=user_id,
                    question=question,
                    answer=response.answer,
                    confidence=response.confidence,
                    sources=[s.to_dict() for s in response.sources],
                    tokens_used=response.tokens_used,
                )
            )
        except Exception as exc:
            logger.warning("qa_log_failed", organization_id=organization_id, error=str(exc))

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    def metrics(self, organization_id: str, since: str | None = None, top: int = 10) -> RagMetrics:
        interactions = self._repo.list_interactions(organization_id, since=since)
        total = len(interactions)

        source_counts: Counter[str] = Counter()
        titles: dict[str, str] = {}
        for interaction in interactions:
            for source in interaction.sources:
                doc_id = source.get("document_id")
                if doc_id:
                    source_counts[doc_id] += 1
                    titles.setdefault(doc_id, source.get("title", ""))

        questions = Counter(i.question.lower() for i in interactions)
        return RagMetrics(
            total_queries=total,
            avg_confidence=sum(i.confidence for i in interactions) / total if total else 0.0,
            top_sources=[
                {"document_id": doc_id, "title": titles[doc_id], "query_count": count}
                for doc_id, count in source_counts.most_common(top)
            ],
            common_questions=[{"question": q, "count": c} for q, c in questions.most_common(top)],
        )

    def suggest_questions(self, organization_id: str, limit: int = 5) -> list[str]:
        """Most frequently asked of the last 50 questions."""
        recent = self._repo.list_interactions(organization_id, limit=50)
        return [q for q, _ in Counter(i.question for i in recent).most_common(limit)]
