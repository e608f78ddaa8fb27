"""finknow add — chunk, embed and store one piece of knowledge.

Pool dispatch:
  personal_knowledge           → owned by --user
  personal_financial_goals     → owned by --user, text rendered as a goal sentence
  general_financial_knowledge  → shared, tagged with --category / --source
  any other pool name          → stored as-is, optionally owned by --user

Usage:
  finknow add --user u1 --text "Mi sueldo líquido es 1.200.000."
  finknow add --pool general_financial_knowledge --category ahorro --file tips.txt
  finknow add --pool personal_financial_goals --user u1 --goal-type ahorro \\
      --target-amount 1500000 --text "Fondo de emergencia"
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Annotated, Any

import typer

from finknow.cli._shared import console, load_cli_config, open_retriever
from finknow.cli.errors import (
    err_invalid_input,
    err_no_api_key,
    err_no_content,
    err_provider,
    err_store,
)
from finknow.errors import MissingApiKeyError, ProviderError, StorageError, ValidationError
from finknow.ingest.embedder import validate_api_key
from finknow.pools import GENERAL_KNOWLEDGE, PERSONAL_GOALS, PERSONAL_KNOWLEDGE
from finknow.rag.tools import KnowledgeTools


def add_cmd(
    text: Annotated[
        str | None,
        typer.Option("--text", "-t", help="Knowledge text to store."),
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Read the knowledge text from a UTF-8 file."),
    ] = None,
    pool: Annotated[
        str,
        typer.Option("--pool", "-p", help="Knowledge pool (entity type)."),
    ] = PERSONAL_KNOWLEDGE,
    entity_id: Annotated[
        str | None,
        typer.Option("--entity-id", help="Parent entity id (default: random)."),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Owning user id (required for personal pools)."),
    ] = None,
    category: Annotated[
        str,
        typer.Option("--category", help="General knowledge category."),
    ] = "general",
    source: Annotated[
        str | None,
        typer.Option("--source", help="General knowledge source / attribution."),
    ] = None,
    goal_type: Annotated[
        str | None,
        typer.Option("--goal-type", help="Goal type (goals pool)."),
    ] = None,
    status: Annotated[
        str,
        typer.Option("--status", help="Goal status (goals pool)."),
    ] = "active",
    target_amount: Annotated[
        float | None,
        typer.Option("--target-amount", help="Goal target amount (goals pool)."),
    ] = None,
    target_date: Annotated[
        str | None,
        typer.Option("--target-date", help="Goal target date, e.g. 2026-12-31 (goals pool)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the knowledge base (default: .finknow.db)."),
    ] = None,
) -> None:
    """Store knowledge so it can be found by similarity search."""
    content = _read_content(text, file)

    if pool in (PERSONAL_KNOWLEDGE, PERSONAL_GOALS) and not user:
        console.print(err_invalid_input(f"Pool '{pool}' needs an owner: pass --user."))
        raise typer.Exit(1)
    if pool == PERSONAL_GOALS and not goal_type:
        console.print(err_invalid_input("Goals need a --goal-type (e.g. ahorro)."))
        raise typer.Exit(1)

    cfg = load_cli_config(db)
    try:
        validate_api_key(cfg.embedding.model)
    except MissingApiKeyError as exc:
        console.print(err_no_api_key(exc.provider, exc.env_var))
        raise typer.Exit(1) from exc

    entity_id = entity_id or uuid.uuid4().hex
    tools = KnowledgeTools(open_retriever(cfg, must_exist=False), id_factory=lambda: entity_id)

    try:
        result = asyncio.run(
            _dispatch(
                tools,
                pool,
                entity_id,
                content,
                user=user,
                category=category,
                source=source,
                goal_type=goal_type,
                status=status,
                target_amount=target_amount,
                target_date=target_date,
            )
        )
    except ValidationError as exc:
        console.print(err_invalid_input(str(exc)))
        raise typer.Exit(1) from exc
    except ProviderError as exc:
        console.print(err_provider(str(exc)))
        raise typer.Exit(1) from exc
    except StorageError as exc:
        console.print(err_store(str(exc)))
        raise typer.Exit(1) from exc

    owner = f" for user {user}" if user else ""
    console.print(
        f"[green]✓[/] Stored {result['embeddings_count']} chunk(s) in {pool}/{entity_id}{owner}"
    )


def _read_content(text: str | None, file: Path | None) -> str:
    if text is not None and file is not None:
        console.print(err_invalid_input("Use either --text or --file, not both."))
        raise typer.Exit(1)
    if file is not None:
        if not file.is_file():
            console.print(err_invalid_input(f"File not found: {file}"))
            raise typer.Exit(1)
        text = file.read_text(encoding="utf-8")
    if not text or not text.strip():
        console.print(err_no_content())
        raise typer.Exit(1)
    return text


async def _dispatch(
    tools: KnowledgeTools,
    pool: str,
    entity_id: str,
    content: str,
    *,
    user: str | None,
    category: str,
    source: str | None,
    goal_type: str | None,
    status: str,
    target_amount: float | None,
    target_date: str | None,
) -> dict[str, Any]:
    if pool == PERSONAL_KNOWLEDGE:
        return await tools.add_personal_knowledge(entity_id, content, user)
    if pool == PERSONAL_GOALS:
        return await tools.add_personal_goal(
            entity_id,
            user,
            description=content.strip(),
            goal_type=goal_type,
            status=status,
            target_amount=target_amount,
            target_date=target_date,
        )
    if pool == GENERAL_KNOWLEDGE:
        return await tools.add_general_knowledge(content, category=category, source=source)
    result = await tools.retriever.add_knowledge(pool, entity_id, content, user_id=user)
    return {"embeddings_count": result.embeddings_count}
