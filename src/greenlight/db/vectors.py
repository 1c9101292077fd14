"""Embedding (de)serialization for sqlite-vec scalar functions.

Embeddings are stored as compact float32 blobs in ordinary columns and
compared with ``vec_distance_cosine()``. This keeps organization scoping
and delete-then-insert replacement in plain SQL.
"""

from __future__ import annotations

import struct
from collections.abc import Sequence

import sqlite_vec


def serialize(embedding: Sequence[float]) -> bytes:
    """Pack *embedding* into the float32 blob format sqlite-vec reads."""
    if not embedding:
        raise ValueError("embedding must contain at least one dimension")
    return sqlite_vec.serialize_float32(list(embedding))


def deserialize(blob: bytes | None) -> list[float] | None:
    """Unpack a float32 blob written by serialize(); None passes through."""
    if blob is None:
        return None
    count = len(blob) // 4
    return list(struct.unpack(f"{count}f", blob))


def check_dimensions(embedding: Sequence[float], dimensions: int) -> None:
    """Raise ValueError if *embedding* does not have *dimensions* entries."""
    if len(embedding) != dimensions:
        raise ValueError(
            f"Embedding has {len(embedding)} dimensions, expected {dimensions}. "
            "Check embedding.dimensions in greenlight.yaml."
        )
