"""finknow remove / clear — knowledge lifecycle management.

``remove`` deletes every chunk (and its vectors in all indexes) of one parent
entity; call it when the goal or knowledge item it came from is deleted.
``clear`` empties the whole knowledge base.

Usage:
  finknow remove --pool personal_financial_goals --entity-id goal-42
  finknow clear --yes
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from finknow.cli._shared import console, load_cli_config, open_retriever
from finknow.cli.errors import err_entity_not_found, err_store
from finknow.errors import StorageError


def remove_cmd(
    pool: Annotated[
        str,
        typer.Option("--pool", "-p", help="Pool (entity type) of the parent entity."),
    ],
    entity_id: Annotated[
        str,
        typer.Option("--entity-id", "-e", help="Parent entity id."),
    ],
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .finknow.db)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove all chunks of one parent entity."""
    cfg = load_cli_config(db)
    retriever = open_retriever(cfg)

    try:
        chunk_count = retriever.store.count(entity_type=pool, entity_id=entity_id)
        if chunk_count == 0:
            console.print(err_entity_not_found(pool, entity_id))
            raise typer.Exit(0)

        console.print(f"\nRemove entity: [bold]{pool}/{entity_id}[/]")
        console.print(f"  Chunks: {chunk_count}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        removed = asyncio.run(retriever.delete_entity(pool, entity_id))
    except StorageError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc

    console.print(f"\n[green]✓[/] Removed {pool}/{entity_id}: {removed} chunk(s) deleted")


def clear_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .finknow.db)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Delete every stored chunk (environment reset)."""
    cfg = load_cli_config(db)
    retriever = open_retriever(cfg)

    try:
        total = retriever.store.count()
        if not yes:
            if not typer.confirm(f"Delete all {total} chunk(s)?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)
        removed = asyncio.run(retriever.clear())
    except StorageError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc

    console.print(f"[green]✓[/] Knowledge base cleared: {removed} chunk(s) deleted")
