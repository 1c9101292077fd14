"""Greenlight ingest pipeline: chunker, temporal grouping, source loaders, jobs."""

from greenlight.ingest.chunker import Chunk, TextChunker, chunk_text, estimate_tokens, merge_small_chunks
from greenlight.ingest.grouping import ContentGroup, ContentItem, SourceType, group_items
from greenlight.ingest.sources import load_items

__all__ = [
    "Chunk",
    "ContentGroup",
    "ContentItem",
    "SourceType",
    "TextChunker",
    "chunk_text",
    "estimate_tokens",
    "group_items",
    "load_items",
    "merge_small_chunks",
]
