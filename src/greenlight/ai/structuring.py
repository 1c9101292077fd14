"""AI structuring orchestrator: turns one content group into a draft document.

Stages, run in order for each group:

  1. redact   PII is masked before any content leaves the process
  2. classify pick a DocumentDomain (falls back to DEFAULT_SOP)
  3. structure rewrite raw content into a headed markdown document
  4. topics   JSON array of topic strings (falls back to [])
  5. score    heuristic confidence assessment + triage level

A model call that fails outright raises ProcessingError for the whole
group. Unparseable output never raises; it resolves to the stage fallback.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field

import structlog

from greenlight.ai.confidence import ConfidenceAssessment, ConfidenceScorer
from greenlight.ai.llm_client import LLMClient, Usage
from greenlight.ai.parsing import enum_label, json_string_list, parse_or_default
from greenlight.ai.pii import NullRedactor, Redactor
from greenlight.ai.prompts import (
    DocumentDomain,
    classification_messages,
    structuring_messages,
    topic_messages,
)
from greenlight.db.models import DraftDocument
from greenlight.errors import ProcessingError
from greenlight.ingest.grouping import (
    ContentGroup,
    source_metadata_for,
    source_references_for,
)

logger = structlog.get_logger(__name__)

MIN_CONTENT_CHARS = 10
MIN_TOPIC_CONTENT_CHARS = 100
MAX_TOPICS = 5
MAX_TITLE_CHARS = 120

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$")
_MAIN_HEADING_RE = re.compile(r"^#{1,2}\s")
_NUMBERED_RE = re.compile(r"^\d+\.")
_FIRST_SENTENCE_RE = re.compile(r"^[^.!?]*[.!?]")


@dataclass(frozen=True)
class StageOptions:
    temperature: float
    max_tokens: int


CLASSIFY = StageOptions(temperature=0.1, max_tokens=50)
STRUCTURE = StageOptions(temperature=0.3, max_tokens=2000)
TOPICS = StageOptions(temperature=0.2, max_tokens=200)


@dataclass
class StructuredDocument:
    """Output of one orchestrator run, before it becomes a draft row."""

    title: str
    content: str
    summary: str
    topics: list[str]
    domain: DocumentDomain
    confidence: ConfidenceAssessment
    usage: dict[str, Usage] = field(default_factory=dict)
    pii_entities_found: int = 0

    @property
    def total_tokens(self) -> int:
        return sum(u.total_tokens for u in self.usage.values())


class StructuringOrchestrator:
    """Drives the classify → structure → topics → score sequence for a group.

    Args:
        llm: Completion service used for every stage.
        scorer: Confidence scorer (carries weights and triage thresholds).
        redactor: PII filter applied to raw content before any model call.
    """

    def __init__(
        self,
        llm: LLMClient,
        scorer: ConfidenceScorer | None = None,
        redactor: Redactor | None = None,
    ) -> None:
        self._llm = llm
        self._scorer = scorer or ConfidenceScorer()
        self._redactor = redactor or NullRedactor()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def structure(self, group: ContentGroup) -> StructuredDocument:
        """Run every stage for *group*.

        Raises:
            ProcessingError: If the group has no usable content or a model
                call fails after retries.
        """
        raw = "\n\n".join(c for c in group.contents if c.strip())
        if len(raw.strip()) < MIN_CONTENT_CHARS:
            raise ProcessingError(
                "validate",
                ValueError("content is empty or too short to structure"),
            )

        redaction = self._redactor.redact(raw)
        usage: dict[str, Usage] = {}

        domain = self.classify(redaction.redacted_text, usage)
        content = self._structure(domain, group, redaction.redacted_text, len(redaction.entities), usage)
        topics = self.extract_topics(content, usage)
        confidence = self._scorer.score(content, source_metadata_for(group))

        fallback_title = next((item.title for item in group.items if item.title), None)
        return StructuredDocument(
            title=extract_title(content, fallback_title),
            content=content,
            summary=extract_summary(content),
            topics=topics,
            domain=domain,
            confidence=confidence,
            usage=usage,
            pii_entities_found=len(redaction.entities),
        )

    def to_draft(self, group: ContentGroup, organization_id: str) -> DraftDocument:
        """Structure *group* and wrap the result in a pending DraftDocument."""
        doc = self.structure(group)
        draft = DraftDocument(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            title=doc.title,
            content=doc.content,
            summary=doc.summary,
            topics=doc.topics,
            confidence_score=doc.confidence.score,
            triage_level=doc.confidence.level,
            confidence_reasoning=doc.confidence.reasoning,
            factor_breakdown=doc.confidence.factor_breakdown,
            source_references=source_references_for(group),
            source_external_id=group.source_external_id,
            processing_metadata={
                "domain": doc.domain.value,
                "model": self._llm.model,
                "source_count": len(group),
                "pii_entities_found": doc.pii_entities_found,
                "token_usage": {stage: u.total_tokens for stage, u in doc.usage.items()},
                "tokens_used": doc.total_tokens,
            },
        )
        logger.info(
            "group_structured",
            draft_id=draft.id,
            domain=doc.domain.value,
            score=round(doc.confidence.score, 3),
            triage=doc.confidence.level.value,
            tokens=doc.total_tokens,
        )
        return draft

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def classify(self, raw: str, usage: dict[str, Usage]) -> DocumentDomain:
        text = self._call("classify", classification_messages(raw), CLASSIFY, usage)
        return parse_or_default(text, enum_label(DocumentDomain), DocumentDomain.DEFAULT_SOP, stage="classify")

    def extract_topics(self, content: str, usage: dict[str, Usage]) -> list[str]:
        if len(content) <= MIN_TOPIC_CONTENT_CHARS:
            return []
        text = self._call("topics", topic_messages(content), TOPICS, usage)
        return parse_or_default(text, json_string_list(limit=MAX_TOPICS), [], stage="topics")

    def _structure(
        self,
        domain: DocumentDomain,
        group: ContentGroup,
        redacted: str,
        entity_count: int,
        usage: dict[str, Usage],
    ) -> str:
        messages = structuring_messages(domain, [redacted], group.source_type.value, entity_count)
        content = self._call("structure", messages, STRUCTURE, usage).strip()
        if not content:
            logger.warning("structure_empty_response", source_id=group.source_id)
            return redacted
        return content

    def _call(self, stage: str, messages: list[dict], options: StageOptions, usage: dict[str, Usage]) -> str:
        try:
            result = self._llm.complete(
                messages,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
            )
        except Exception as exc:
            logger.error("stage_failed", stage=stage, error=str(exc))
            raise ProcessingError(stage, exc) from exc
        usage[stage] = usage.get(stage, Usage()) + result.usage
        return result.content


# ---------------------------------------------------------------------------
# Title / summary extraction
# ---------------------------------------------------------------------------


def extract_title(content: str, fallback: str | None = None) -> str:
    """First markdown heading, else *fallback*, else the first line."""
    lines = [line.strip() for line in content.splitlines() if line.strip()]
    for line in lines:
        match = _HEADING_RE.match(line)
        if match:
            return match.group(1)[:MAX_TITLE_CHARS]
    if fallback:
        return fallback[:MAX_TITLE_CHARS]
    if lines:
        return lines[0].lstrip("#*- ").strip()[:MAX_TITLE_CHARS] or "Untitled document"
    return "Untitled document"


def extract_summary(content: str) -> str:
    """One-sentence summary pulled from structured content.

    Looks for a summary/overview/description section first, then the first
    prose paragraph, then the main headings, then a generic description.
    """
    lines = [line for line in content.split("\n") if line.strip()]

    for idx, line in enumerate(lines[:-1]):
        lowered = line.lower()
        if "summary" in lowered or "overview" in lowered or "description" in lowered:
            following = [
                candidate
                for candidate in lines[idx + 1 : idx + 3]
                if not candidate.startswith("#") and len(candidate.strip()) > 10
            ]
            if following:
                sentence = _first_sentence(" ".join(following).strip())
                if len(sentence) > 20:
                    return sentence
            break

    for line in lines:
        if line.startswith(("#", "-", "*")) or _NUMBERED_RE.match(line) or len(line) <= 30:
            continue
        sentence = _first_sentence(line)
        if len(sentence) > 20:
            return sentence
        break

    headings = [re.sub(r"^#+\s*", "", h) for h in lines if _MAIN_HEADING_RE.match(h)][:2]
    if len(headings) == 1:
        return f"Documentation about {headings[0].lower()}."
    if headings:
        return f"Documentation covering {' and '.join(headings).lower()}."

    if "procedure" in content or "steps" in content:
        return "Standard operating procedure documentation."
    if "policy" in content or "guidelines" in content:
        return "Policy and guidelines documentation."
    return "Internal documentation and reference material."


def _first_sentence(text: str) -> str:
    clean = re.sub(r"\s+", " ", text).strip()
    match = _FIRST_SENTENCE_RE.match(clean)
    if match:
        return match.group(0).strip()
    if len(clean) > 120:
        truncated = clean[:120]
        last_space = truncated.rfind(" ")
        if last_space > 80:
            return truncated[:last_space] + "."
    if not clean:
        return "Document content summary not available."
    return clean if clean.endswith((".", "!", "?")) else clean + "."
