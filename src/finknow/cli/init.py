"""finknow init — create the knowledge base and default config.

Creates:
  .finknow.db              — schema + vec index for the configured embedding model
  ~/.finknow/config.yaml   — global defaults (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from finknow.cli._shared import console, load_cli_config, open_retriever
from finknow.config import ensure_global_config


def init_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .finknow.db)."),
    ] = None,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override ~/.finknow/config.yaml (for testing)."),
    ] = None,
) -> None:
    """Initialize the knowledge base for the configured embedding model."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.database.path)
    existed = db_path.exists()

    retriever = open_retriever(cfg, must_exist=False)

    verb = "Opened existing" if existed else "Created"
    console.print(f"  [green]✓[/] {verb} {db_path}")
    console.print(
        f"  [green]✓[/] Vector index {retriever.store.table} "
        f"({cfg.embedding.model}, {cfg.embedding.dimensions} dims)"
    )

    cfg_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\nNext steps:")
    console.print("  1. finknow add --pool general_financial_knowledge --category ahorro --text \"...\"")
    console.print("  2. finknow search --all --user <user-id> \"¿cómo ahorro para mi meta?\"")
