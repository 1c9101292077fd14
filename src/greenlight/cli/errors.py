"""Greenlight rich error messages.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from greenlight.cli.errors import err_no_db
    console.print(err_no_db(".greenlight.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

_PROVIDER_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
    "groq": "GROQ_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _PROVIDER_ENV.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".greenlight.db") -> str:
    """No .greenlight.db found."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  greenlight ingest --source <export.json>"
    )


def err_config(message: str) -> str:
    """greenlight.yaml or the global config could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix greenlight.yaml (or ~/.greenlight/config.yaml) and retry."
    )


def err_source_file(path: str, message: str) -> str:
    """An export file could not be read as content items."""
    return (
        f"[red]Error:[/] Cannot load items from '{path}'.\n"
        f"  {message}\n"
        "  Expected a JSON array, an object with 'items', or JSONL with one item per line."
    )


def err_not_found(kind: str, ident: str, hint: str) -> str:
    """A draft, document or job id does not exist in this organization."""
    return (
        f"[red]Error:[/] {kind} '{ident}' not found.\n"
        f"  Run:  {hint}"
    )


def err_not_manager(user: str) -> str:
    """Approval actions require the manager role."""
    return (
        f"[red]Error:[/] User '{user}' is not allowed to review drafts.\n"
        "  Re-run with:  --role manager"
    )


def err_invalid_transition(draft_id: str, status: str) -> str:
    """Draft is no longer pending."""
    return (
        f"[yellow]Draft already {status}:[/] '{draft_id}'\n"
        "  Only pending drafts can be approved or rejected.\n"
        "  Run:  greenlight drafts list --status pending"
    )


def err_processing(stage: str, cause: str) -> str:
    """A model call failed after retries."""
    return (
        f"[red]Error:[/] The {stage} step failed: {cause}\n"
        "  Check your network connection and model settings, then retry."
    )


def err_concurrent_update(message: str) -> str:
    """The approved document changed during approval."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Nothing was written. Review the latest version and retry."
    )
