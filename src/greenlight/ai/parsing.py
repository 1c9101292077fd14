"""Parse-or-default combinator for structured language-model output.

Model responses that should contain JSON (or a label from a closed set) are
plain text and may be malformed. Every orchestrator stage resolves such a
response through :func:`parse_or_default`, which never raises: it either
returns the parsed value or the stage's documented fallback, and logs a
warning on the way.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ParseError(ValueError):
    """Raised by a parser to signal that the fallback should be used."""


def parse_or_default(text: str, parser: Callable[[str], T], default: T, *, stage: str) -> T:
    """Return ``parser(text)``, or *default* if the parser rejects the text."""
    try:
        return parser(text)
    except (ValueError, TypeError, KeyError, AttributeError) as exc:
        logger.warning("parse_fallback", stage=stage, error=str(exc), preview=text[:120])
        return default


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1) if match else stripped


def json_value(text: str) -> Any:
    return json.loads(strip_code_fence(text))


def json_string_list(limit: int | None = None) -> Callable[[str], list[str]]:
    """Parser for a JSON array of strings, truncated to *limit* entries."""

    def _parse(text: str) -> list[str]:
        value = json_value(text)
        if not isinstance(value, list):
            raise ParseError(f"expected a JSON array, got {type(value).__name__}")
        items = [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
        return items[:limit] if limit is not None else items

    return _parse


def json_object(text: str) -> dict[str, Any]:
    value = json_value(text)
    if not isinstance(value, dict):
        raise ParseError(f"expected a JSON object, got {type(value).__name__}")
    return value


def enum_label(enum_cls: type[E]) -> Callable[[str], E]:
    """Parser that matches a response case-insensitively against *enum_cls* values."""

    def _parse(text: str) -> E:
        label = text.strip().strip("\"'`.").upper()
        try:
            return enum_cls(label)
        except ValueError:
            raise ParseError(f"'{label}' is not a valid {enum_cls.__name__}") from None

    return _parse
