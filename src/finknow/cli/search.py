"""finknow search — similarity search from the terminal.

Single search filters by pool, owner and category; ``--all`` runs the combined
personal + goals + general search used by the assistant.

Usage:
  finknow search --user u1 "¿cuánto gano al mes?"
  finknow search --pool general_financial_knowledge --category ahorro "fondo de emergencia"
  finknow search --all --user u1 "¿cómo llego a mi meta de ahorro?"

``--all`` takes its per-pool limits and merge threshold from configuration, so
``--limit`` and ``--threshold`` are rejected there.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from finknow.cli._shared import console, load_cli_config, open_retriever
from finknow.cli.errors import err_invalid_input, err_no_api_key
from finknow.db.models import SearchResult
from finknow.errors import MissingApiKeyError, ValidationError
from finknow.ingest.embedder import validate_api_key
from finknow.rag.tools import ERROR_PREFIX, FINANCIAL_ERROR_PREFIX, NO_RESULTS_MESSAGE, error_record


def search_cmd(
    query: Annotated[str, typer.Argument(help="Natural-language query.")],
    pool: Annotated[
        list[str] | None,
        typer.Option("--pool", "-p", help="Restrict to a pool (repeatable)."),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Include this user's own knowledge."),
    ] = None,
    shared: Annotated[
        bool,
        typer.Option("--shared/--no-shared", help="Include shared (ownerless) knowledge."),
    ] = True,
    category: Annotated[
        str | None,
        typer.Option("--category", help="Only knowledge tagged with this category."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum results (default from config)."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=-1.0, max=1.0, help="Minimum similarity (exclusive)."),
    ] = None,
    all_pools: Annotated[
        bool,
        typer.Option("--all", help="Combined personal + goals + general search (needs --user)."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .finknow.db)."),
    ] = None,
) -> None:
    """Search stored knowledge by meaning."""
    if all_pools and not user:
        console.print(err_invalid_input("--all searches one user's pools: pass --user."))
        raise typer.Exit(1)
    if all_pools and (limit is not None or threshold is not None):
        console.print(err_invalid_input("--all takes its limits from config: drop --limit/--threshold."))
        raise typer.Exit(1)

    cfg = load_cli_config(db)
    try:
        validate_api_key(cfg.embedding.model)
    except MissingApiKeyError as exc:
        console.print(err_no_api_key(exc.provider, exc.env_var))
        raise typer.Exit(1) from exc

    retriever = open_retriever(cfg)

    try:
        if all_pools:
            outcome = asyncio.run(
                retriever.search_all_financial_knowledge(query, user, category=category)
            )
        else:
            outcome = asyncio.run(
                retriever.search(
                    query,
                    entity_types=pool or None,
                    user_id=user,
                    include_user_content=user is not None,
                    include_general_content=shared,
                    metadata_filters={"category": category} if category else None,
                    limit=limit,
                    threshold=threshold,
                )
            )
    except ValidationError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc

    if outcome.error is not None:
        prefix = FINANCIAL_ERROR_PREFIX if all_pools else ERROR_PREFIX
        console.print(f"[red]{error_record(outcome.error, prefix).content}[/]")
        raise typer.Exit(1)

    if not outcome.results:
        console.print(f"[yellow]{NO_RESULTS_MESSAGE}[/]")
        return

    _print_results(outcome.results)


def _print_results(records: list[SearchResult]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Similarity", justify="right", no_wrap=True)
    table.add_column("Pool")
    table.add_column("Entity", no_wrap=True)
    table.add_column("Content", overflow="fold")

    for i, r in enumerate(records, 1):
        table.add_row(
            str(i),
            f"{r.similarity:.3f}",
            r.entity_type,
            r.entity_id or "—",
            r.content,
        )
    console.print(table)
