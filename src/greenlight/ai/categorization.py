"""Category suggestion for single documents and batch categorization.

Category names that overlap heavily are merged. The overlap test is a
pluggable strategy; the default is :func:`similar_names`, a Jaccard word
overlap above 0.6.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from greenlight.ai.llm_client import LLMClient
from greenlight.ai.parsing import json_object, json_value, parse_or_default
from greenlight.ai.prompts import category_suggestion_messages, theme_analysis_messages
from greenlight.ai.rate_limit import FixedIntervalLimiter
from greenlight.db.models import ApprovedDocument
from greenlight.db.repository import Repository

logger = structlog.get_logger(__name__)

DEFAULT_CATEGORY = "General Documents"
NEW_CATEGORY_LABEL = "NEW_CATEGORY"
UNCATEGORIZED = "Uncategorized"
SIMILARITY_THRESHOLD = 0.6
MIN_CATEGORY_CONFIDENCE = 0.6
MIN_CATEGORY_DOCUMENTS = 2
FALLBACK_THEME_CONFIDENCE = 0.7

_THEME_KEYWORDS: dict[str, tuple[str, ...]] = {
    "Human Resources": ("hr", "human resources", "employee", "staff", "personnel", "benefits", "policy"),
    "Information Technology": ("it", "technology", "software", "system", "network", "security", "technical"),
    "Finance & Accounting": ("finance", "accounting", "budget", "cost", "expense", "financial", "money"),
    "Operations": ("operations", "process", "procedure", "workflow", "standard", "operating"),
    "Compliance & Legal": ("compliance", "legal", "regulation", "audit", "risk", "governance"),
    "Training & Development": ("training", "development", "learning", "education", "course", "skill"),
}

SimilarityStrategy = Callable[[str, str], bool]


def similar_names(name_a: str, name_b: str, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    """True when the word sets of the two names overlap by more than *threshold* (Jaccard)."""
    words_a = set(name_a.lower().split())
    words_b = set(name_b.lower().split())
    union = words_a | words_b
    if not union:
        return False
    return len(words_a & words_b) / len(union) > threshold


@dataclass(frozen=True)
class CategorySuggestion:
    category: str
    confidence: float
    reasoning: str


@dataclass
class Category:
    name: str
    confidence: float
    document_ids: list[str] = field(default_factory=list)
    description: str = ""
    reasoning: str = ""


@dataclass
class CategorizationResult:
    categories: list[Category] = field(default_factory=list)
    uncategorized: list[str] = field(default_factory=list)
    tokens_used: int = 0


def merge_similar_categories(
    categories: list[Category],
    similar: SimilarityStrategy = similar_names,
) -> list[Category]:
    """Fold each category into the first earlier category whose name is *similar*.

    The surviving category keeps its name, takes the highest confidence of
    the merged set and the union of their document ids (first-seen order).
    """
    merged: list[Category] = []
    for category in categories:
        target = next((m for m in merged if similar(m.name, category.name)), None)
        if target is None:
            merged.append(
                Category(
                    name=category.name,
                    confidence=category.confidence,
                    document_ids=list(dict.fromkeys(category.document_ids)),
                    description=category.description,
                    reasoning=category.reasoning,
                )
            )
            continue
        target.confidence = max(target.confidence, category.confidence)
        target.document_ids = list(dict.fromkeys([*target.document_ids, *category.document_ids]))
        target.reasoning = "Merged from similar categories"
    return merged


def keyword_themes(documents: list[ApprovedDocument]) -> list[Category]:
    """Assign documents to fixed business themes by keyword match."""
    themes: dict[str, list[str]] = {}
    for doc in documents:
        text = f"{doc.title} {doc.summary} {' '.join(doc.tags)}".lower()
        for theme, keywords in _THEME_KEYWORDS.items():
            if any(re.search(rf"\b{re.escape(k)}\b", text) for k in keywords):
                themes.setdefault(theme, []).append(doc.id)
    return [
        Category(
            name=theme,
            confidence=FALLBACK_THEME_CONFIDENCE,
            document_ids=ids,
            reasoning="Keyword match",
        )
        for theme, ids in themes.items()
    ]


class CategorizationService:
    """Suggests and applies categories (stored as document tags).

    Args:
        repo: Repository used to read existing tags and write new ones.
        llm: Completion service.
        limiter: Paces batch theme-analysis calls.
        batch_size: Documents per theme-analysis call.
        default_category: Category used whenever a suggestion cannot be made.
        similar: Strategy deciding whether two category names should merge.
    """

    def __init__(
        self,
        repo: Repository,
        llm: LLMClient,
        limiter: FixedIntervalLimiter | None = None,
        batch_size: int = 5,
        default_category: str = DEFAULT_CATEGORY,
        similar: SimilarityStrategy = similar_names,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._repo = repo
        self._llm = llm
        self._limiter = limiter or FixedIntervalLimiter(1.0)
        self._batch_size = batch_size
        self.default_category = default_category
        self._similar = similar

    # ------------------------------------------------------------------
    # Single-document suggestion
    # ------------------------------------------------------------------

    def suggest(self, title: str, content: str, organization_id: str) -> CategorySuggestion:
        """Pick an existing organization category for a document.

        Unparseable responses resolve to the default category. Transport
        errors propagate; callers that must not fail catch them.
        """
        existing = self._repo.list_tags(organization_id)
        if not existing:
            return CategorySuggestion(self.default_category, 0.5, "No existing categories found, using default")

        result = self._llm.complete(
            category_suggestion_messages(title, content, existing),
            temperature=0.2,
            max_tokens=300,
        )
        fallback = CategorySuggestion(self.default_category, 0.5, "Failed to parse AI suggestion")
        return parse_or_default(result.content, self._parse_suggestion, fallback, stage="category_suggestion")

    @staticmethod
    def _parse_suggestion(text: str) -> CategorySuggestion:
        data = json_object(text)
        category = str(data["category"]).strip()
        if not category:
            raise ValueError("empty category")
        if category.upper() == NEW_CATEGORY_LABEL:
            category = UNCATEGORIZED
        return CategorySuggestion(
            category=category,
            confidence=min(1.0, max(0.0, float(data.get("confidence") or 0.7))),
            reasoning=str(data.get("reasoning") or "AI-based content analysis"),
        )

    # ------------------------------------------------------------------
    # Batch categorization
    # ------------------------------------------------------------------

    def categorize(self, documents: list[ApprovedDocument]) -> CategorizationResult:
        """Group *documents* into categories, paced batch by batch.

        A batch whose call or response fails falls back to keyword themes.
        """
        found: list[Category] = []
        tokens = 0
        for start in range(0, len(documents), self._batch_size):
            batch = documents[start : start + self._batch_size]
            self._limiter.wait()
            try:
                result = self._llm.complete(
                    theme_analysis_messages([(d.id, d.title, (d.summary or d.content)[:300]) for d in batch]),
                    temperature=0.3,
                    max_tokens=1500,
                )
            except Exception as exc:
                logger.warning("theme_analysis_failed", batch_start=start, error=str(exc))
                found.extend(keyword_themes(batch))
                continue
            tokens += result.usage.total_tokens
            batch_ids = {d.id for d in batch}
            themes = parse_or_default(
                result.content,
                lambda text: self._parse_themes(text, batch_ids),
                None,
                stage="theme_analysis",
            )
            found.extend(themes if themes is not None else keyword_themes(batch))

        merged = merge_similar_categories(
            sorted(found, key=lambda c: c.confidence, reverse=True),
            self._similar,
        )
        kept = [
            c
            for c in merged
            if c.confidence > MIN_CATEGORY_CONFIDENCE and len(c.document_ids) >= MIN_CATEGORY_DOCUMENTS
        ]
        covered = {doc_id for c in kept for doc_id in c.document_ids}
        logger.info("documents_categorized", documents=len(documents), categories=len(kept))
        return CategorizationResult(
            categories=kept,
            uncategorized=[d.id for d in documents if d.id not in covered],
            tokens_used=tokens,
        )

    @staticmethod
    def _parse_themes(text: str, allowed_ids: set[str]) -> list[Category]:
        value = json_value(text)
        if isinstance(value, dict):
            value = value.get("themes") or value.get("categories")
        if not isinstance(value, list):
            raise ValueError("expected a list of themes")
        themes = []
        for item in value:
            name = str(item.get("name") or item.get("theme") or "").strip()
            ids = [str(i) for i in item.get("document_ids") or item.get("documentIds") or [] if str(i) in allowed_ids]
            if not name or not ids:
                continue
            themes.append(
                Category(
                    name=name,
                    confidence=float(item.get("confidence") or FALLBACK_THEME_CONFIDENCE),
                    document_ids=ids,
                    description=str(item.get("description") or ""),
                )
            )
        return themes

    def apply(self, organization_id: str, result: CategorizationResult) -> int:
        """Write each category name as the tag of its documents. Returns rows changed."""
        changed = 0
        with self._repo.transaction():
            for category in result.categories:
                changed += self._repo.set_document_tags(organization_id, category.document_ids, [category.name])
        return changed
