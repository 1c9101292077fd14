"""Tests for category suggestion, theme analysis and name merging."""

from __future__ import annotations

import json

import pytest

from greenlight.ai.categorization import (
    DEFAULT_CATEGORY,
    UNCATEGORIZED,
    CategorizationResult,
    CategorizationService,
    Category,
    keyword_themes,
    merge_similar_categories,
    similar_names,
)


class CountingLimiter:
    def __init__(self) -> None:
        self.waits = 0

    def wait(self) -> float:
        self.waits += 1
        return 0.0


def _service(repo, llm, **kwargs) -> CategorizationService:
    kwargs.setdefault("limiter", CountingLimiter())
    return CategorizationService(repo, llm, **kwargs)


# ------------------------------------------------------------------
# similar_names / merge
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "a,b,expected",
    [
        ("IT Support", "it support", True),
        ("IT Support Desk", "IT Support", True),  # 2/3 > 0.6
        ("HR Policy", "HR Benefits", False),  # 1/3
        ("Finance", "Operations", False),
        ("", "", False),
    ],
)
def test_similar_names(a, b, expected):
    assert similar_names(a, b) is expected


def test_merge_folds_into_first_similar_category():
    merged = merge_similar_categories(
        [
            Category("IT Support", 0.7, ["d1", "d2"]),
            Category("Finance", 0.9, ["d3"]),
            Category("IT Support Desk", 0.95, ["d2", "d4"]),
        ]
    )
    assert [c.name for c in merged] == ["IT Support", "Finance"]
    it = merged[0]
    assert it.confidence == 0.95
    assert it.document_ids == ["d1", "d2", "d4"]
    assert it.reasoning == "Merged from similar categories"


def test_merge_accepts_custom_similarity_strategy():
    merged = merge_similar_categories(
        [Category("A", 0.8, ["d1"]), Category("B", 0.8, ["d2"])],
        similar=lambda a, b: True,
    )
    assert len(merged) == 1
    assert merged[0].document_ids == ["d1", "d2"]


# ------------------------------------------------------------------
# keyword_themes
# ------------------------------------------------------------------


def test_keyword_themes_match_whole_words(make_document):
    hr = make_document(title="Employee benefits overview")
    it = make_document(title="Network security checklist")
    neither = make_document(title="Kitchen rota", summary="Who cleans the fridge, with items listed.")

    themes = {c.name: c.document_ids for c in keyword_themes([hr, it, neither])}
    assert themes["Human Resources"] == [hr.id]
    assert themes["Information Technology"] == [it.id]
    assert all(neither.id not in ids for ids in themes.values())


# ------------------------------------------------------------------
# suggest
# ------------------------------------------------------------------


def test_suggest_without_existing_tags_uses_default(repo, make_llm):
    llm = make_llm()
    suggestion = _service(repo, llm).suggest("VPN", "content", "org-1")
    assert suggestion.category == DEFAULT_CATEGORY
    assert suggestion.confidence == 0.5
    assert llm.calls == []


def test_suggest_returns_model_category(repo, make_llm, make_document):
    make_document(tags=["IT"])
    suggestion = _service(repo, make_llm()).suggest("Password reset", "content", "org-1")
    assert suggestion.category == "IT"
    assert suggestion.confidence == 0.9


def test_suggest_new_category_maps_to_uncategorized(repo, make_llm, make_document):
    make_document(tags=["IT"])
    llm = make_llm({"category": '{"category": "NEW_CATEGORY", "confidence": 0.4}'})
    assert _service(repo, llm).suggest("Lunch menu", "content", "org-1").category == UNCATEGORIZED


def test_suggest_unparseable_reply_uses_default(repo, make_llm, make_document):
    make_document(tags=["IT"])
    llm = make_llm({"category": "It is probably IT"})
    suggestion = _service(repo, llm, default_category="Misc").suggest("x", "y", "org-1")
    assert suggestion.category == "Misc"


def test_suggest_propagates_transport_errors(repo, make_llm, make_document):
    make_document(tags=["IT"])
    llm = make_llm({"category": RuntimeError("timeout")})
    with pytest.raises(RuntimeError):
        _service(repo, llm).suggest("x", "y", "org-1")


# ------------------------------------------------------------------
# categorize
# ------------------------------------------------------------------


def test_categorize_paces_each_batch(repo, make_llm, make_document):
    docs = [make_document(title=f"Doc {i}") for i in range(5)]
    limiter = CountingLimiter()
    llm = make_llm()
    _service(repo, llm, limiter=limiter, batch_size=2).categorize(docs)
    assert limiter.waits == 3
    assert llm.stages() == ["themes", "themes", "themes"]


def test_categorize_filters_weak_and_singleton_categories(repo, make_llm, make_document):
    docs = [make_document(title=f"Doc {i}") for i in range(4)]
    ids = [d.id for d in docs]
    reply = json.dumps(
        [
            {"name": "Engineering", "confidence": 0.9, "document_ids": ids[:2]},
            {"name": "Lonely", "confidence": 0.9, "document_ids": [ids[2]]},
            {"name": "Weak", "confidence": 0.5, "document_ids": ids[2:]},
            {"name": "Ghost", "confidence": 0.9, "document_ids": ["not-in-batch", "nope"]},
        ]
    )
    result = _service(repo, make_llm({"themes": reply}), batch_size=10).categorize(docs)

    assert [c.name for c in result.categories] == ["Engineering"]
    assert result.categories[0].document_ids == ids[:2]
    assert result.uncategorized == ids[2:]
    assert result.tokens_used == 15


def test_categorize_merges_across_batches_before_filtering(repo, make_llm, make_document):
    docs = [make_document(title=f"Doc {i}") for i in range(2)]

    def themes(messages):
        doc_id = next(d.id for d in docs if d.id in messages[-1]["content"])
        name = "IT Support" if doc_id == docs[0].id else "IT Support Desk"
        return json.dumps([{"name": name, "confidence": 0.8, "document_ids": [doc_id]}])

    result = _service(repo, make_llm({"themes": themes}), batch_size=1).categorize(docs)
    assert len(result.categories) == 1
    assert set(result.categories[0].document_ids) == {docs[0].id, docs[1].id}


def test_categorize_falls_back_to_keywords_on_bad_reply(repo, make_llm, make_document):
    docs = [make_document(title="Security policy"), make_document(title="Network setup")]
    result = _service(repo, make_llm({"themes": "no json here"})).categorize(docs)
    (category,) = result.categories
    assert category.name == "Information Technology"
    assert category.confidence == 0.7


def test_categorize_falls_back_to_keywords_on_transport_error(repo, make_llm, make_document):
    docs = [make_document(title="Security policy"), make_document(title="Network setup")]
    result = _service(repo, make_llm({"themes": RuntimeError("down")})).categorize(docs)
    assert [c.name for c in result.categories] == ["Information Technology"]
    assert result.tokens_used == 0


def test_batch_size_must_be_positive(repo, make_llm):
    with pytest.raises(ValueError):
        _service(repo, make_llm(), batch_size=0)


# ------------------------------------------------------------------
# apply
# ------------------------------------------------------------------


def test_apply_writes_tags(repo, make_llm, make_document):
    a = make_document(title="A")
    b = make_document(title="B")
    result = CategorizationResult(categories=[Category("Ops", 0.9, [a.id, b.id])])

    changed = _service(repo, make_llm()).apply("org-1", result)

    assert changed == 2
    assert repo.get_document(a.id).tags == ["Ops"]
    assert repo.list_tags("org-1") == ["Ops"]
