"""Tests for greenlight ask, search, metrics, reindex and categorize commands."""

from __future__ import annotations

from typer.testing import CliRunner

from greenlight.cli.main import app
from greenlight.rag.indexer import EmbeddingIndexer

runner = CliRunner()

VPN_TEXT = "Install the VPN client and sign in with your company account."


def _index_vpn_doc(repo, make_document, embedder):
    doc = make_document(title="VPN Setup", content=VPN_TEXT)
    EmbeddingIndexer(repo, embedder).embed_document(doc.id)
    return doc


# ---------------------------------------------------------------------------
# greenlight ask
# ---------------------------------------------------------------------------


def test_ask_with_context(cli_env, fake_models, repo, make_document):
    _index_vpn_doc(repo, make_document, fake_models.embedder)
    result = runner.invoke(app, ["ask", VPN_TEXT, "--threshold", "0.5", "--user", "u1"])

    assert result.exit_code == 0, result.output
    assert "Open the admin console and reset the password." in result.output
    assert "VPN Setup" in result.output
    assert repo.list_interactions("org-1")[0].user_id == "u1"


def test_ask_without_context(cli_env, fake_models, repo):
    result = runner.invoke(app, ["ask", "Where is the parking policy?"])
    assert result.exit_code == 0
    assert "don't have enough information" in result.output
    assert "confidence 0.10" in result.output
    assert fake_models.llm.calls == []


def test_ask_processing_error(cli_env, fake_models, repo, make_document, make_llm):
    _index_vpn_doc(repo, make_document, fake_models.embedder)
    fake_models.llm = make_llm({"answer": RuntimeError("timeout")})
    result = runner.invoke(app, ["ask", VPN_TEXT, "--threshold", "0.5"])
    assert result.exit_code == 1
    assert "answer step failed" in result.output


def test_ask_embedding_failure(cli_env, fake_models, repo, make_document, make_embedder):
    _index_vpn_doc(repo, make_document, fake_models.embedder)
    fake_models.embedder = make_embedder(fail=True)
    result = runner.invoke(app, ["ask", VPN_TEXT])
    assert result.exit_code == 1
    assert "retrieve step failed" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_ask_requires_db(cli_env, fake_models):
    result = runner.invoke(app, ["ask", "anything"])
    assert result.exit_code == 1
    assert "No database found" in result.output


# ---------------------------------------------------------------------------
# greenlight search / metrics
# ---------------------------------------------------------------------------


def test_search_finds_document(cli_env, fake_models, repo, make_document):
    _index_vpn_doc(repo, make_document, fake_models.embedder)
    result = runner.invoke(app, ["search", VPN_TEXT])
    assert result.exit_code == 0
    assert "VPN Setup" in result.output


def test_search_no_hits(cli_env, fake_models, repo):
    result = runner.invoke(app, ["search", "nothing"])
    assert result.exit_code == 0
    assert "No matching documents" in result.output


def test_search_embedding_failure(cli_env, fake_models, repo, make_document, make_embedder):
    _index_vpn_doc(repo, make_document, fake_models.embedder)
    fake_models.embedder = make_embedder(fail=True)
    result = runner.invoke(app, ["search", VPN_TEXT])
    assert result.exit_code == 1
    assert "retrieve step failed" in result.output


def test_metrics_after_questions(cli_env, fake_models, repo, make_document):
    _index_vpn_doc(repo, make_document, fake_models.embedder)
    runner.invoke(app, ["ask", VPN_TEXT, "--threshold", "0.5"])
    runner.invoke(app, ["ask", VPN_TEXT, "--threshold", "0.5"])

    result = runner.invoke(app, ["metrics"])

    assert result.exit_code == 0
    assert "Questions asked:     2" in result.output
    assert "VPN Setup" in result.output
    assert VPN_TEXT in result.output


# ---------------------------------------------------------------------------
# greenlight reindex / categorize
# ---------------------------------------------------------------------------


def test_reindex_no_documents(cli_env, fake_models, repo):
    result = runner.invoke(app, ["reindex"])
    assert result.exit_code == 0
    assert "No approved documents to index" in result.output


def test_reindex_embeds_documents(cli_env, fake_models, repo, make_document):
    doc = make_document()
    result = runner.invoke(app, ["reindex"])
    assert result.exit_code == 0
    assert "1/1 indexed" in result.output
    assert repo.count_chunks(doc.id) == 1


def test_reindex_failure_exits_one(cli_env, fake_models, repo, make_document, make_embedder):
    make_document()
    fake_models.embedder = make_embedder(fail=True)
    result = runner.invoke(app, ["reindex"])
    assert result.exit_code == 1
    assert "0/1 indexed" in result.output


def test_categorize_preview_and_apply(cli_env, fake_models, repo, make_document, make_llm):
    fake_models.llm = make_llm({"themes": "no themes today"})
    a = make_document(title="Network security checklist")
    b = make_document(title="Software install guide")

    preview = runner.invoke(app, ["categorize"])
    assert preview.exit_code == 0
    assert "Information Technology" in preview.output
    assert "--apply" in preview.output
    assert repo.get_document(a.id).tags == []

    applied = runner.invoke(app, ["categorize", "--apply"])
    assert applied.exit_code == 0
    assert "Tagged 2 document(s)" in applied.output
    assert repo.get_document(b.id).tags == ["Information Technology"]
