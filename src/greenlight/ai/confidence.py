"""Multi-factor confidence scoring and triage classification.

Four heuristic factors, each bounded to [0, 1]:

- ``content_clarity``: headings, lists, sentence structure
- ``source_consistency``: number and diversity of sources and authors
- ``information_density``: share of content left after stripping filler
- ``authority``: recency, participant count, chat activity

The composite score is the weighted sum of the factors. Weights may be
partially overridden; the effective weights are always re-normalised to
sum to 1.0.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone

from greenlight.db.models import TriageLevel

CONTENT_CLARITY = "content_clarity"
SOURCE_CONSISTENCY = "source_consistency"
INFORMATION_DENSITY = "information_density"
AUTHORITY = "authority"

DEFAULT_WEIGHTS: dict[str, float] = {
    CONTENT_CLARITY: 0.3,
    SOURCE_CONSISTENCY: 0.3,
    INFORMATION_DENSITY: 0.2,
    AUTHORITY: 0.2,
}

# Factor value used for consistency and authority when no source metadata exists.
NO_SOURCE_FLOOR = 0.2

_HEADING_RE = re.compile(r"#{1,6}\s|[A-Z][^.!?]*:")
_BULLET_RE = re.compile(r"^\s*[-*+]\s|^\s*\d+\.\s", re.MULTILINE)
_STRUCTURE_RE = re.compile(r"^#{1,6}\s|^\s*[-*+]\s|^\s*\d+\.\s", re.MULTILINE)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_NOISE_PATTERNS = (
    re.compile(r"\b(um|uh|like|you know|basically|actually)\b", re.IGNORECASE),
    re.compile(r"\b(thanks|thank you|please|hi|hello|bye)\b", re.IGNORECASE),
    re.compile(r"\.{2,}"),
    re.compile(r"\s+"),
)

_STRENGTHS = {
    CONTENT_CLARITY: "well-structured content",
    SOURCE_CONSISTENCY: "consistent across multiple sources",
    INFORMATION_DENSITY: "high information density",
    AUTHORITY: "authoritative sources",
}
_WEAKNESSES = {
    CONTENT_CLARITY: "unclear or unstructured content",
    SOURCE_CONSISTENCY: "limited source validation",
    INFORMATION_DENSITY: "low information content",
    AUTHORITY: "questionable source authority",
}


@dataclass
class SourceMetadata:
    """Aggregate signals about where a candidate document came from."""

    source_type: str
    author_count: int = 0
    message_count: int = 1
    last_modified: datetime | None = None
    participants: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConfidenceAssessment:
    score: float
    level: TriageLevel
    reasoning: str
    factor_breakdown: dict[str, float]


@dataclass(frozen=True)
class TriageThresholds:
    """The one canonical pair of triage cut-offs."""

    green: float = 0.8
    yellow: float = 0.5

    def __post_init__(self) -> None:
        if not 0.0 <= self.yellow <= self.green <= 1.0:
            raise ValueError(
                f"thresholds must satisfy 0 <= yellow <= green <= 1 (got {self.yellow}, {self.green})"
            )


def classify_triage(score: float, thresholds: TriageThresholds | None = None) -> TriageLevel:
    """Map a score to green / yellow / red."""
    t = thresholds or TriageThresholds()
    if score >= t.green:
        return TriageLevel.GREEN
    if score >= t.yellow:
        return TriageLevel.YELLOW
    return TriageLevel.RED


def effective_weights(overrides: Mapping[str, float] | None = None) -> dict[str, float]:
    """Merge *overrides* onto the defaults and normalise to a sum of 1.0.

    Unknown factor names raise ValueError. If every weight ends up zero the
    defaults are used unchanged.
    """
    weights = dict(DEFAULT_WEIGHTS)
    for name, value in (overrides or {}).items():
        if name not in weights:
            raise ValueError(f"Unknown confidence factor '{name}'")
        if value < 0:
            raise ValueError(f"Weight for '{name}' must be >= 0, got {value}")
        weights[name] = float(value)
    total = sum(weights.values())
    if total <= 0:
        return dict(DEFAULT_WEIGHTS)
    return {name: value / total for name, value in weights.items()}


class ConfidenceScorer:
    """Computes a ConfidenceAssessment from content and source metadata.

    Args:
        weights: Partial weight overrides keyed by factor name.
        thresholds: Triage cut-offs.
        now: Clock used for recency; injectable for tests.
    """

    def __init__(
        self,
        weights: Mapping[str, float] | None = None,
        thresholds: TriageThresholds | None = None,
        now=None,
    ) -> None:
        self.weights = effective_weights(weights)
        self.thresholds = thresholds or TriageThresholds()
        self._now = now or (lambda: datetime.now(timezone.utc))

    def score(
        self,
        content: str,
        sources: list[SourceMetadata],
        weights: Mapping[str, float] | None = None,
    ) -> ConfidenceAssessment:
        """Score *content*; *weights* overrides the scorer's weights for this call only.

        Raises:
            ValueError: If *weights* names an unknown factor or a negative weight.
        """
        applied = effective_weights(weights) if weights is not None else self.weights
        factors = {
            CONTENT_CLARITY: content_clarity(content),
            SOURCE_CONSISTENCY: source_consistency(sources),
            INFORMATION_DENSITY: information_density(content),
            AUTHORITY: authority(sources, self._now()),
        }
        total = sum(factors[name] * weight for name, weight in applied.items())
        total = min(1.0, max(0.0, total))
        level = classify_triage(total, self.thresholds)
        return ConfidenceAssessment(
            score=total,
            level=level,
            reasoning=build_reasoning(factors, total, level),
            factor_breakdown=factors,
        )


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------


def content_clarity(content: str) -> float:
    score = 0.5
    parts = _SENTENCE_SPLIT_RE.split(content)
    if _HEADING_RE.match(content):
        score += 0.15
    if _BULLET_RE.search(content):
        score += 0.1
    if len(parts) > 2:
        score += 0.15
    avg_sentence_length = len(content) / (len(parts) or 1)
    if 20 < avg_sentence_length < 100:
        score += 0.1
    return min(1.0, score)


def source_consistency(sources: list[SourceMetadata]) -> float:
    if not sources:
        return NO_SOURCE_FLOOR
    if len(sources) == 1:
        return 0.7
    score = min(0.9, 0.5 + (len(sources) - 1) * 0.1)
    if len({s.source_type for s in sources}) > 1:
        score += 0.1
    if sum(s.author_count for s in sources) > 2:
        score += 0.1
    return min(1.0, score)


def information_density(content: str) -> float:
    total = len(content)
    if total == 0:
        return 0.0
    clean = content
    for pattern in _NOISE_PATTERNS:
        clean = pattern.sub(" ", clean)
    score = len(clean.strip()) / total
    if total < 100:
        score *= 0.7
    elif total < 300:
        score *= 0.85
    if _STRUCTURE_RE.search(content):
        score += 0.1
    return min(1.0, score)


def authority(sources: list[SourceMetadata], now: datetime) -> float:
    if not sources:
        return NO_SOURCE_FLOOR
    score = 0.5

    ages = [
        (now - _aware(s.last_modified)).total_seconds() / 86400
        for s in sources
        if s.last_modified is not None
    ]
    if ages:
        avg_age = sum(ages) / len(ages)
        if avg_age < 30:
            score += 0.2
        elif avg_age < 90:
            score += 0.1
        elif avg_age > 365:
            score -= 0.1

    participants = sum(len(s.participants) or s.author_count for s in sources)
    if participants > 5:
        score += 0.2
    elif participants > 2:
        score += 0.1

    chat = [s for s in sources if s.source_type == "chat"]
    if chat and sum(s.message_count or 1 for s in chat) / len(chat) > 10:
        score += 0.1

    return min(1.0, max(0.0, score))


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def build_reasoning(factors: Mapping[str, float], score: float, level: TriageLevel) -> str:
    strengths = [_STRENGTHS[name] for name, value in factors.items() if value >= 0.7]
    weaknesses = [_WEAKNESSES[name] for name, value in factors.items() if value < 0.4]

    reasoning = f"Confidence: {round(score * 100)}% ({level.value}). "
    if strengths:
        reasoning += f"Strengths: {', '.join(strengths)}. "
    if weaknesses:
        reasoning += f"Areas for review: {', '.join(weaknesses)}."
    return reasoning.strip()
