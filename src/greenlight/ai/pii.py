"""PII redaction applied to raw content before it reaches the language model."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class PIIEntity:
    text: str
    category: str
    offset: int
    length: int
    confidence_score: float = 0.9


@dataclass(frozen=True)
class RedactionResult:
    redacted_text: str
    entities: list[PIIEntity] = field(default_factory=list)
    original_length: int = 0
    redacted_length: int = 0


class Redactor(Protocol):
    def redact(self, text: str) -> RedactionResult: ...


class NullRedactor:
    """Pass-through redactor for trusted sources and tests."""

    def redact(self, text: str) -> RedactionResult:
        return RedactionResult(text, [], len(text), len(text))


_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("Email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("CreditCard", re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b")),
    ("SSN", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("PhoneNumber", re.compile(r"(?:\+?1[-.\s]?)?\(?\b[0-9]{3}\)?[-.\s]?[0-9]{3}[-.\s][0-9]{4}\b")),
    ("IPAddress", re.compile(r"\b(?:[0-9]{1,3}\.){3}[0-9]{1,3}\b")),
)


class RegexRedactor:
    """Pattern-based redactor for emails, card numbers, SSNs, phones and IPs.

    Matches are replaced character-for-character with *mask*, so offsets and
    text length are preserved. Where patterns overlap, the earlier-listed
    category wins.
    """

    def __init__(self, mask: str = "*") -> None:
        if len(mask) != 1:
            raise ValueError("mask must be a single character")
        self.mask = mask

    def redact(self, text: str) -> RedactionResult:
        entities: list[PIIEntity] = []
        taken: list[tuple[int, int]] = []
        for category, pattern in _PATTERNS:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < t_end and end > t_start for t_start, t_end in taken):
                    continue
                taken.append((start, end))
                entities.append(PIIEntity(match.group(0), category, start, end - start))

        chars = list(text)
        for entity in entities:
            chars[entity.offset : entity.offset + entity.length] = self.mask * entity.length
        redacted = "".join(chars)
        entities.sort(key=lambda e: e.offset)
        return RedactionResult(redacted, entities, len(text), len(redacted))
