"""Token-aware text chunker used to prepare documents for embedding.

Token counts are estimated as ``ceil(len(text) * 0.25)`` (about 4 characters
per token). No external tokenizer dependency is required; callers must treat
the count as an approximation.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace

TOKENS_PER_CHAR = 0.25
DEFAULT_MAX_TOKENS = 500
DEFAULT_OVERLAP_TOKENS = 50
DEFAULT_MIN_TOKENS = 50

_SENTENCE_END_RE = re.compile(r"[.!?]+")
_PARAGRAPH_BREAK = "\n\n"


@dataclass(frozen=True)
class Chunk:
    """One bounded segment of a source text.

    ``start_offset``/``end_offset`` index into the original text and describe
    the untrimmed window; ``content`` is that window with surrounding
    whitespace stripped.
    """

    content: str
    chunk_index: int
    start_offset: int
    end_offset: int
    token_count: int


def estimate_tokens(text: str) -> int:
    """Deterministic token estimate from character length."""
    return math.ceil(len(text) * TOKENS_PER_CHAR)


class TextChunker:
    """Sliding-window chunker that prefers sentence or paragraph boundaries.

    The window is ``max_tokens`` worth of characters. When the window does not
    reach the end of the text it is trimmed back to the last sentence
    terminator (if that keeps more than half of the window) and/or to the last
    blank line (if that keeps more than 30%). Consecutive windows overlap by
    ``overlap_tokens`` worth of characters; every step advances at least one
    character so degenerate input always terminates.
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
        preserve_sentences: bool = True,
        preserve_paragraphs: bool = False,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if overlap_tokens < 0:
            raise ValueError("overlap_tokens must be >= 0")
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.preserve_sentences = preserve_sentences
        self.preserve_paragraphs = preserve_paragraphs

    @property
    def max_chars(self) -> int:
        return math.floor(self.max_tokens / TOKENS_PER_CHAR)

    @property
    def overlap_chars(self) -> int:
        return math.floor(self.overlap_tokens / TOKENS_PER_CHAR)

    def chunk(self, text: str) -> list[Chunk]:
        """Split *text* into ordered chunks. Never returns an empty list."""
        if not text or not text.strip():
            return [Chunk(content="", chunk_index=0, start_offset=0, end_offset=len(text or ""), token_count=0)]

        length = len(text)
        if length <= self.max_chars:
            return [Chunk(content=text, chunk_index=0, start_offset=0, end_offset=length, token_count=estimate_tokens(text))]

        chunks: list[Chunk] = []
        pos = 0
        while pos < length:
            end = min(pos + self.max_chars, length)
            window = text[pos:end]

            if end < length:
                window = self._trim_window(window)

            chunks.append(
                Chunk(
                    content=window.strip(),
                    chunk_index=len(chunks),
                    start_offset=pos,
                    end_offset=pos + len(window),
                    token_count=estimate_tokens(window),
                )
            )
            if pos + len(window) >= length:
                break
            pos = max(pos + len(window) - self.overlap_chars, pos + 1)

        return chunks

    def _trim_window(self, window: str) -> str:
        if self.preserve_sentences:
            cut = _last_sentence_end(window)
            if cut > len(window) * 0.5:
                window = window[:cut]
        if self.preserve_paragraphs:
            cut = _last_paragraph_end(window)
            if cut > len(window) * 0.3:
                window = window[:cut]
        return window


def _last_sentence_end(text: str) -> int:
    """Offset just past the last run of sentence terminators, or len(text)."""
    last = None
    for last in _SENTENCE_END_RE.finditer(text):
        pass
    return last.end() if last is not None else len(text)


def _last_paragraph_end(text: str) -> int:
    idx = text.rfind(_PARAGRAPH_BREAK)
    return idx + len(_PARAGRAPH_BREAK) if idx >= 0 else len(text)


def chunk_text(
    text: str,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    preserve_sentences: bool = True,
    preserve_paragraphs: bool = False,
) -> list[Chunk]:
    """Convenience wrapper around :class:`TextChunker`."""
    return TextChunker(max_tokens, overlap_tokens, preserve_sentences, preserve_paragraphs).chunk(text)


def merge_small_chunks(chunks: list[Chunk], min_tokens: int = DEFAULT_MIN_TOKENS) -> list[Chunk]:
    """Fold chunks under *min_tokens* into the chunk that follows them.

    A small chunk keeps absorbing its successors until it reaches the
    threshold or runs out of chunks. The result is re-indexed from 0.
    """
    merged: list[Chunk] = []
    i = 0
    while i < len(chunks):
        current = chunks[i]
        while current.token_count < min_tokens and i + 1 < len(chunks):
            i += 1
            following = chunks[i]
            current = replace(
                current,
                content=f"{current.content}\n\n{following.content}",
                end_offset=following.end_offset,
                token_count=current.token_count + following.token_count,
            )
        merged.append(current)
        i += 1
    return [replace(c, chunk_index=idx) for idx, c in enumerate(merged)]
