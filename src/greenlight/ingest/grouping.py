"""Temporal grouping engine: clusters raw content items into documents-to-be."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from greenlight.ai.confidence import SourceMetadata
from greenlight.db.models import SourceReference

DEFAULT_MAX_GROUP_SIZE = 10
DEFAULT_TIME_THRESHOLD_SECONDS = 3600
SNIPPET_CHARS = 200


class SourceType(str, Enum):
    CHAT = "chat"  # chat channel / thread messages
    FILE = "file"  # documents from a file store


@dataclass(frozen=True)
class ContentItem:
    """One atomic unit of fetched source content."""

    id: str
    source_type: SourceType
    source_id: str
    content: str
    timestamp: datetime
    author: str | None = None
    url: str | None = None
    title: str | None = None


@dataclass
class ContentGroup:
    """Items sharing a source id and falling inside one time window."""

    items: list[ContentItem] = field(default_factory=list)

    @property
    def source_id(self) -> str:
        return self.items[0].source_id

    @property
    def source_type(self) -> SourceType:
        return self.items[0].source_type

    @property
    def source_external_id(self) -> str:
        """Stable identity used to spot re-ingested content.

        A file keeps its identity across syncs, so file groups are keyed by
        the file's source id. Chat groups are keyed by their first message.
        """
        if self.source_type == SourceType.FILE:
            return f"{self.source_type.value}:{self.source_id}"
        return f"{self.source_type.value}:{self.source_id}:{self.items[0].id}"

    @property
    def contents(self) -> list[str]:
        return [item.content for item in self.items]

    def __len__(self) -> int:
        return len(self.items)


def group_items(
    items: list[ContentItem],
    max_group_size: int = DEFAULT_MAX_GROUP_SIZE,
    time_threshold_seconds: float = DEFAULT_TIME_THRESHOLD_SECONDS,
) -> list[ContentGroup]:
    """Partition *items* into groups by source identity and time proximity.

    Items are walked in timestamp order. A new group starts when the current
    one is full, when the source id changes, or when the gap to the previous
    item exceeds *time_threshold_seconds*. Every item lands in exactly one
    group.
    """
    if max_group_size < 1:
        raise ValueError("max_group_size must be >= 1")

    groups: list[ContentGroup] = []
    current: list[ContentItem] = []
    previous: ContentItem | None = None

    for item in sorted(items, key=lambda i: i.timestamp):
        if previous is not None and current:
            gap = abs((item.timestamp - previous.timestamp).total_seconds())
            if (
                len(current) >= max_group_size
                or item.source_id != previous.source_id
                or gap > time_threshold_seconds
            ):
                groups.append(ContentGroup(current))
                current = []
        current.append(item)
        previous = item

    if current:
        groups.append(ContentGroup(current))
    return groups


def source_metadata_for(group: ContentGroup) -> list[SourceMetadata]:
    """Aggregate source signals for the confidence scorer."""
    authors = sorted({item.author for item in group.items if item.author})
    return [
        SourceMetadata(
            source_type=group.source_type.value,
            author_count=len(authors),
            message_count=len(group.items),
            last_modified=max(item.timestamp for item in group.items),
            participants=authors,
        )
    ]


def source_references_for(group: ContentGroup) -> list[SourceReference]:
    refs = []
    for item in group.items:
        snippet = item.content[:SNIPPET_CHARS]
        if len(item.content) > SNIPPET_CHARS:
            snippet += "..."
        refs.append(
            SourceReference(
                source_type=item.source_type.value,
                source_id=item.source_id,
                snippet=snippet,
                author=item.author,
                timestamp=item.timestamp.isoformat(),
                url=item.url,
            )
        )
    return refs
