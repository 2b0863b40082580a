"""lore rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from lore.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("gemini"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'gemini'. Set:  export GEMINI_API_KEY=...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "voyage": "VOYAGE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=..."
    )


def err_no_db(db_path: str = ".lore.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  lore init"
    )


def err_config(message: str) -> str:
    """Invalid or forbidden configuration value."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix lore.yaml or ~/.lore/config.yaml and retry."
    )


def err_lease_held(message: str) -> str:
    """Another orchestrator already runs against this database."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Stop the other `lore run` process, or wait for its lease to expire."
    )


def err_invalid_records(path: str, reason: str) -> str:
    """Input file for ``lore add`` could not be read."""
    return (
        f"[red]Error:[/] Cannot read records from '{path}': {reason}\n"
        "  Expected a JSON object/array or JSONL lines of {\"source\": ..., \"payload\": {...}},\n"
        "  or bare payloads together with --source chat|repository."
    )


def err_record_not_found(record_id: str) -> str:
    """No live raw record with *record_id*."""
    return (
        f"[red]Error:[/] No raw record '{record_id}' (or it was already removed).\n"
        "  Run:  lore status  to inspect the knowledge base."
    )


def err_no_embeddings(model: str) -> str:
    """Nothing embedded yet, so there is nothing to index."""
    return (
        f"[yellow]No embedded chunks for '{model}' yet.[/]\n"
        "  Run:  lore embed  (or lore run) first, then  lore index."
    )
