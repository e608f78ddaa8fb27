"""Helpers shared by the finknow CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from finknow.cli.errors import err_config, err_no_db, err_store
from finknow.config import ConfigError, FinknowConfig, load_config
from finknow.errors import StorageError
from finknow.rag.factory import build_retriever
from finknow.rag.retriever import KnowledgeRetriever

console = Console()


def load_cli_config(db: Path | None) -> FinknowConfig:
    """Load config, apply the --db flag, and exit(1) with a message on error."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if db is not None:
        cfg.database.path = str(db)
    return cfg


def open_retriever(cfg: FinknowConfig, *, must_exist: bool = True) -> KnowledgeRetriever:
    """Build the retriever for *cfg*, exiting with an actionable message on failure."""
    db_path = Path(cfg.database.path)
    if must_exist and not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    try:
        return build_retriever(cfg)
    except StorageError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc
