"""finknow status — knowledge base overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from finknow.cli._shared import console, load_cli_config, open_retriever
from finknow.cli.errors import err_store
from finknow.errors import StorageError
from finknow.pools import BUILTIN_POOLS


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .finknow.db)."),
    ] = None,
) -> None:
    """Show the database, the embedding index and chunk counts per pool."""
    cfg = load_cli_config(db)
    db_path = Path(cfg.database.path)

    lines = [
        f"Database:   {db_path}",
        f"Embedding:  {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Thresholds: search > {cfg.retrieval.threshold:g}, merge > {cfg.retrieval.merge_threshold:g}",
    ]

    if not db_path.exists():
        lines.append("\n[yellow]No database found.[/]\n  Run:  finknow init")
        console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))
        return

    retriever = open_retriever(cfg)
    try:
        counts = retriever.store.pool_counts()
    except StorageError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc

    lines.append(f"Index:      {retriever.store.table}")
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Pool")
    table.add_column("Chunks", justify="right")
    for pool in [*BUILTIN_POOLS, *sorted(set(counts) - set(BUILTIN_POOLS))]:
        table.add_row(pool, str(counts.get(pool, 0)))
    table.add_row("[bold]total[/]", f"[bold]{sum(counts.values())}[/]")
    console.print(table)
