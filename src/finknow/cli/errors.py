"""finknow rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from finknow.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai", "OPENAI_API_KEY"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str, env_var: str) -> str:
    """No API key for *provider*."""
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".finknow.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  finknow init"
    )


def err_config(message: str) -> str:
    """Config file rejected by the loader."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix finknow.yaml (or ~/.finknow/config.yaml) and retry."
    )


def err_store(message: str) -> str:
    """Knowledge store could not be opened or written."""
    return (
        f"[red]Error:[/] Knowledge store failure: {message}\n"
        "  Check the --db path, or re-create the index for the configured model with a fresh database."
    )


def err_provider(message: str) -> str:
    """Embedding provider failed — nothing was stored."""
    return (
        f"[red]Error:[/] Embedding provider failure: {message}\n"
        "  Nothing was stored. Check network access and the embedding.model setting, then retry."
    )


def err_invalid_input(message: str) -> str:
    """Input rejected before anything was written."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Run:  finknow add --help  for the expected options."
    )


def err_no_content() -> str:
    """Neither --text nor --file was given."""
    return (
        "[red]Error:[/] No content to add.\n"
        "  Use --text \"...\" or --file path/to/notes.txt"
    )


def err_entity_not_found(entity_type: str, entity_id: str) -> str:
    """No chunks stored for the requested entity."""
    return (
        f"[yellow]Not found:[/] no chunks stored for {entity_type}/{entity_id}.\n"
        "  Run:  finknow status  to see what is stored."
    )
