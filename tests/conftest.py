"""Shared pytest fixtures."""

from __future__ import annotations

import re
import uuid
import zlib
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from greenlight.ai.llm_client import Completion, Usage
from greenlight.db.connection import Database
from greenlight.db.models import ApprovedDocument, DraftDocument, TriageLevel
from greenlight.db.repository import Repository
from greenlight.db.schema import initialize
from greenlight.ingest.grouping import ContentItem, SourceType

STRUCTURED_DOC = """# Password Reset Procedure

## Purpose
This procedure explains how an administrator resets a user password in the admin console.

## Procedure
1. Open the admin console and sign in.
2. Select the affected user account.
3. Click reset password and confirm the dialog.

## Summary
Administrators reset passwords from the admin console in three short steps."""

# User-message prefixes identifying which call a prompt belongs to.
_STAGE_PREFIXES = {
    "Classify this content": "classify",
    "Structure the following": "structure",
    "Analyze this content": "topics",
    "Question:": "answer",
    "Title:": "category",
    "Documents:": "themes",
}

_DEFAULT_REPLIES: dict[str, str] = {
    "classify": "DEFAULT_SOP",
    "structure": STRUCTURED_DOC,
    "topics": '["Passwords", "Admin Console"]',
    "answer": "Open the admin console and reset the password.",
    "category": '{"category": "IT", "confidence": 0.9, "reasoning": "Account admin"}',
    "themes": "[]",
}


class FakeLLM:
    """Scripted stand-in for LLMClient.

    ``replies`` maps a stage name to a string, an exception instance, or a
    callable taking the message list. Every call is recorded in ``calls`` as
    ``(stage, messages)``.
    """

    model = "fake/model"

    def __init__(self, replies: dict | None = None) -> None:
        self.replies = {**_DEFAULT_REPLIES, **(replies or {})}
        self.calls: list[tuple[str, list[dict]]] = []

    def stages(self) -> list[str]:
        return [stage for stage, _ in self.calls]

    def complete(self, messages: list[dict], temperature: float = 0.0, max_tokens: int = 2048) -> Completion:
        user = messages[-1]["content"]
        stage = next((s for prefix, s in _STAGE_PREFIXES.items() if user.startswith(prefix)), "unknown")
        self.calls.append((stage, messages))
        reply = self.replies.get(stage, "")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)
        return Completion(content=reply, usage=Usage(10, 5, 15), finish_reason="stop")


class FakeEmbedder:
    """Deterministic bag-of-words embeddings; identical text has similarity 1.0."""

    model = "fake/embedding"

    def __init__(self, dimensions: int = 16, fail: bool = False) -> None:
        self.dimensions = dimensions
        self.fail = fail
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        return [self.vector(t) for t in texts]

    def vector(self, text: str) -> list[float]:
        vec = [0.0] * self.dimensions
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            vec[zlib.crc32(word.encode()) % (self.dimensions - 1)] += 1.0
        vec[-1] = 0.01  # never all-zero
        return vec


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".greenlight.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db) -> Repository:
    return Repository(tmp_db)


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def make_llm() -> Callable[..., FakeLLM]:
    return FakeLLM


@pytest.fixture
def make_embedder() -> Callable[..., FakeEmbedder]:
    return FakeEmbedder


@pytest.fixture
def make_item() -> Callable[..., ContentItem]:
    base = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def _make(
        content: str = "To reset a password open the admin console and pick the user.",
        source_id: str = "channel-1",
        minutes: float = 0,
        source_type: SourceType = SourceType.CHAT,
        author: str | None = "alice",
        item_id: str | None = None,
        title: str | None = None,
    ) -> ContentItem:
        return ContentItem(
            id=item_id or uuid.uuid4().hex[:8],
            source_type=source_type,
            source_id=source_id,
            content=content,
            timestamp=base + timedelta(minutes=minutes),
            author=author,
            title=title,
        )

    return _make


@pytest.fixture
def make_draft(repo) -> Callable[..., DraftDocument]:
    """Insert and return a pending draft."""

    def _make(
        title: str = "Password Reset Procedure",
        content: str = STRUCTURED_DOC,
        organization_id: str = "org-1",
        triage: TriageLevel = TriageLevel.GREEN,
        score: float = 0.85,
        topics: list[str] | None = None,
        source_external_id: str | None = "chat:channel-1:m1",
        **extra,
    ) -> DraftDocument:
        draft = DraftDocument(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            title=title,
            content=content,
            summary="How to reset a password.",
            topics=topics if topics is not None else ["IT"],
            confidence_score=score,
            triage_level=triage,
            source_external_id=source_external_id,
            **extra,
        )
        repo.add_draft(draft)
        return draft

    return _make


@pytest.fixture
def make_document(repo) -> Callable[..., ApprovedDocument]:
    """Insert and return an approved document at version 1."""

    def _make(
        title: str = "VPN Setup",
        content: str = "Install the VPN client and sign in with your company account.",
        organization_id: str = "org-1",
        tags: list[str] | None = None,
        source_external_id: str | None = None,
        summary: str = "",
    ) -> ApprovedDocument:
        doc = ApprovedDocument(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            title=title,
            content=content,
            summary=summary,
            tags=tags or [],
            approved_by="manager-1",
            approved_at="2024-03-01T09:00:00+00:00",
            source_external_id=source_external_id,
        )
        repo.add_document(doc)
        return doc

    return _make


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run CLI commands from tmp_path as organization org-1 with a fake API key.

    The default ``.greenlight.db`` resolves to the ``tmp_db`` file.
    """
    from greenlight.cli.common import console

    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("greenlight.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for var in ("GREENLIGHT_GENERATION_MODEL", "GREENLIGHT_EMBEDDING_MODEL", "GREENLIGHT_ORGANIZATION"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setattr(console, "width", 200)
    (tmp_path / "greenlight.yaml").write_text(
        "organization: org-1\n"
        "embedding:\n  dimensions: 16\n"
        "categorization:\n  interval_seconds: 0\n",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def fake_models(monkeypatch) -> SimpleNamespace:
    """Route every CLI command's model calls to FakeLLM / FakeEmbedder.

    Tests may replace ``.llm`` or ``.embedder`` before invoking a command.
    """
    from greenlight import services

    models = SimpleNamespace(llm=FakeLLM(), embedder=FakeEmbedder())

    def _build_services(cfg, conn, llm=None, embedder=None, locks=None):
        return services.build_services(cfg, conn, llm=models.llm, embedder=models.embedder, locks=locks)

    def _build_orchestrator(cfg, llm=None):
        return services.build_orchestrator(cfg, models.llm)

    for module in ("drafts", "ask", "index"):
        monkeypatch.setattr(f"greenlight.cli.{module}.build_services", _build_services)
    monkeypatch.setattr("greenlight.cli.ingest.build_orchestrator", _build_orchestrator)
    return models
