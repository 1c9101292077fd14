"""Tests for greenlight documents commands."""

from __future__ import annotations

from typer.testing import CliRunner

from greenlight.cli.main import app
from greenlight.review.approval import Actor, ApprovalService

runner = CliRunner()

MANAGER = Actor("manager-1", "manager")


def _approve_chain(repo, make_draft) -> str:
    """Approve a draft, then two updates of it; return the document id."""
    service = ApprovalService(repo)
    document_id = service.approve(make_draft().id, MANAGER, "org-1").document_id
    for n in (2, 3):
        update = make_draft(
            content=f"Revision {n} of the password guide.",
            is_update=True,
            original_document_id=document_id,
            changes_made=[f"Step {n} rewritten"],
        )
        service.approve(update.id, MANAGER, "org-1")
    return document_id


def test_documents_list_requires_db(cli_env):
    result = runner.invoke(app, ["documents", "list"])
    assert result.exit_code == 1
    assert "No database found" in result.output


def test_documents_list_empty(cli_env, repo):
    result = runner.invoke(app, ["documents", "list"])
    assert result.exit_code == 0
    assert "No approved documents found" in result.output


def test_documents_list_shows_documents(cli_env, make_document):
    doc = make_document(title="VPN Setup", tags=["IT"])
    make_document(title="Holiday Policy", organization_id="org-2")
    result = runner.invoke(app, ["documents", "list"])
    assert result.exit_code == 0
    assert "VPN Setup" in result.output
    assert doc.id in result.output
    assert "Holiday Policy" not in result.output


def test_versions_renders_history(cli_env, repo, make_draft):
    document_id = _approve_chain(repo, make_draft)
    result = runner.invoke(app, ["documents", "versions", document_id])
    assert result.exit_code == 0
    assert "Initial version" in result.output
    assert "Step 2 rewritten" in result.output
    assert "Step 3 rewritten" in result.output
    assert "manager-1" in result.output
    assert "(current)" in result.output
    assert "3 version(s), current v3" in result.output


def test_versions_unknown_document(cli_env, repo):
    result = runner.invoke(app, ["documents", "versions", "missing-id"])
    assert result.exit_code == 1
    assert "Document 'missing-id' not found" in result.output
    assert "greenlight documents list" in result.output


def test_versions_scoped_to_organization(cli_env, make_document):
    other = make_document(organization_id="org-2")
    result = runner.invoke(app, ["documents", "versions", other.id])
    assert result.exit_code == 1
    assert "not found" in result.output
