"""Tests for the temporal grouping engine."""

from __future__ import annotations

import pytest

from greenlight.ingest.grouping import (
    ContentGroup,
    SourceType,
    group_items,
    source_metadata_for,
    source_references_for,
)


# ------------------------------------------------------------------
# group_items
# ------------------------------------------------------------------


def test_empty_input_gives_no_groups():
    assert group_items([]) == []


def test_close_items_from_one_source_form_one_group(make_item):
    items = [make_item(minutes=m) for m in (0, 10, 20)]
    groups = group_items(items)
    assert len(groups) == 1
    assert len(groups[0]) == 3


def test_gap_above_threshold_splits(make_item):
    items = [make_item(minutes=0), make_item(minutes=61)]
    assert len(group_items(items, time_threshold_seconds=3600)) == 2


def test_gap_equal_to_threshold_does_not_split(make_item):
    items = [make_item(minutes=0), make_item(minutes=60)]
    assert len(group_items(items, time_threshold_seconds=3600)) == 1


def test_source_change_splits(make_item):
    items = [make_item(source_id="a", minutes=0), make_item(source_id="b", minutes=1)]
    groups = group_items(items)
    assert [g.source_id for g in groups] == ["a", "b"]


def test_max_group_size_splits(make_item):
    items = [make_item(minutes=i) for i in range(25)]
    groups = group_items(items, max_group_size=10)
    assert [len(g) for g in groups] == [10, 10, 5]


def test_items_sorted_by_timestamp(make_item):
    late = make_item(item_id="late", minutes=30)
    early = make_item(item_id="early", minutes=0)
    groups = group_items([late, early])
    assert [i.id for i in groups[0].items] == ["early", "late"]


def test_every_item_lands_in_exactly_one_group(make_item):
    items = [make_item(source_id=f"s{i % 3}", minutes=i * 7) for i in range(40)]
    groups = group_items(items, max_group_size=4, time_threshold_seconds=600)
    grouped = [item.id for g in groups for item in g.items]
    assert sorted(grouped) == sorted(i.id for i in items)
    for group in groups:
        assert len({i.source_id for i in group.items}) == 1
        assert 1 <= len(group) <= 4


def test_invalid_group_size_raises(make_item):
    with pytest.raises(ValueError):
        group_items([make_item()], max_group_size=0)


# ------------------------------------------------------------------
# ContentGroup
# ------------------------------------------------------------------


def test_chat_external_id_uses_first_item(make_item):
    group = ContentGroup([make_item(item_id="m1", source_id="chan"), make_item(item_id="m2", source_id="chan")])
    assert group.source_external_id == "chat:chan:m1"


def test_file_external_id_is_stable_across_items(make_item):
    group = ContentGroup([make_item(item_id="v7", source_id="doc-9", source_type=SourceType.FILE)])
    assert group.source_external_id == "file:doc-9"


def test_contents_preserve_order(make_item):
    group = ContentGroup([make_item(content="one"), make_item(content="two")])
    assert group.contents == ["one", "two"]


# ------------------------------------------------------------------
# Metadata and references
# ------------------------------------------------------------------


def test_source_metadata_counts_authors_and_messages(make_item):
    group = ContentGroup([
        make_item(author="alice", minutes=0),
        make_item(author="bob", minutes=5),
        make_item(author="alice", minutes=9),
        make_item(author=None, minutes=12),
    ])
    (meta,) = source_metadata_for(group)
    assert meta.source_type == "chat"
    assert meta.author_count == 2
    assert meta.message_count == 4
    assert meta.participants == ["alice", "bob"]
    assert meta.last_modified == group.items[-1].timestamp


def test_source_references_truncate_snippets(make_item):
    long_text = "z" * 250
    group = ContentGroup([make_item(content=long_text), make_item(content="short")])
    refs = source_references_for(group)
    assert refs[0].snippet == "z" * 200 + "..."
    assert refs[1].snippet == "short"
    assert refs[0].author == "alice"
    assert refs[0].source_type == "chat"
