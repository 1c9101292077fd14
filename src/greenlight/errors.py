"""Greenlight exception taxonomy.

Parse failures on model output are never raised; they resolve to a
documented fallback (see greenlight.ai.parsing). Everything else that
should reach a caller derives from GreenlightError.
"""

from __future__ import annotations


class GreenlightError(Exception):
    """Base class for all pipeline errors."""


class NotFoundError(GreenlightError):
    """A draft, document or job does not exist (or belongs to another organization)."""

    def __init__(self, kind: str, ident: str) -> None:
        super().__init__(f"{kind} '{ident}' not found")
        self.kind = kind
        self.ident = ident


class AuthorizationError(GreenlightError):
    """The acting user lacks the role required for the operation."""


class InvalidTransitionError(GreenlightError):
    """A draft was asked to leave a terminal state."""

    def __init__(self, draft_id: str, status: str) -> None:
        super().__init__(f"Draft '{draft_id}' is already {status}")
        self.draft_id = draft_id
        self.status = status


class ConcurrentUpdateError(GreenlightError):
    """An approved document's version changed underneath an update."""


class ProcessingError(GreenlightError):
    """A language-model stage failed outright (after retries)."""

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"{stage} stage failed: {cause}")
        self.stage = stage
        self.cause = cause
