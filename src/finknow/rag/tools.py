"""Caller-facing knowledge operations for the chat/tool layer.

These adapters fix the defaults the assistant tools rely on and convert a
``SearchOutcome`` into records a chat reply can always render: an empty
outcome becomes one "no relevant information" record and a failed one becomes
one apologetic error record, both with ``similarity == 0``. Ingest errors are
never converted; they reach the caller.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any

from finknow.db.models import SearchResult
from finknow.pools import GENERAL_KNOWLEDGE, PERSONAL_GOALS, PERSONAL_KNOWLEDGE
from finknow.rag.retriever import KnowledgeRetriever, SearchOutcome

NO_RESULTS_MESSAGE = "No se encontró información relevante para la consulta"
ERROR_PREFIX = "Error al buscar información"
FINANCIAL_ERROR_PREFIX = "Error al buscar información financiera"
GENERAL_NO_RESULTS_MESSAGE = "No se encontró información relevante de conocimiento financiero general"
GENERAL_ERROR_PREFIX = "Error al buscar conocimiento financiero general"

_POOL_LABELS: dict[str, str] = {
    PERSONAL_KNOWLEDGE: "personal",
    PERSONAL_GOALS: "goals",
    GENERAL_KNOWLEDGE: "general",
}


def no_results_record(message: str = NO_RESULTS_MESSAGE) -> SearchResult:
    return SearchResult(content=message, similarity=0.0, entity_type="none", entity_id="")


def error_record(error: Exception, prefix: str = ERROR_PREFIX) -> SearchResult:
    return SearchResult(
        content=f"{prefix}: {str(error) or 'Unknown error'}",
        similarity=0.0,
        entity_type="error",
        entity_id="",
    )


def render_outcome(
    outcome: SearchOutcome,
    *,
    no_results_message: str = NO_RESULTS_MESSAGE,
    error_prefix: str = ERROR_PREFIX,
) -> list[SearchResult]:
    """Turn *outcome* into a non-empty list of records."""
    if outcome.error is not None:
        return [error_record(outcome.error, error_prefix)]
    if not outcome.results:
        return [no_results_record(no_results_message)]
    return list(outcome.results)


def format_amount(amount: float) -> str:
    """Format *amount* the es-CL way: ``1500000`` → ``1.500.000``, ``12.5`` → ``12,5``."""
    text = f"{amount:,.3f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def goal_content(
    description: str,
    goal_type: str,
    target_amount: float | None = None,
    target_date: str | None = None,
) -> str:
    """Render a goal as the sentence that gets embedded."""
    text = f"Meta financiera: {description}. Tipo: {goal_type}."
    if target_amount:
        text += f" Monto objetivo: ${format_amount(target_amount)}."
    if target_date:
        text += f" Fecha objetivo: {target_date}."
    return text


class KnowledgeTools:
    """Thin adapters over :class:`KnowledgeRetriever` for the assistant tools.

    Args:
        retriever: The retrieval core.
        id_factory: Generates ids for new knowledge records.
    """

    def __init__(
        self,
        retriever: KnowledgeRetriever,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._retriever = retriever
        self._new_id = id_factory

    @property
    def retriever(self) -> KnowledgeRetriever:
        return self._retriever

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    async def add_knowledge(self, content: str, user_id: str) -> dict[str, Any]:
        """Store a personal fact under a new resource id."""
        resource_id = self._new_id()
        result = await self._retriever.add_knowledge(
            PERSONAL_KNOWLEDGE, resource_id, content, user_id=user_id
        )
        return {"resource_id": resource_id, "embeddings_count": result.embeddings_count}

    async def add_personal_knowledge(
        self, knowledge_id: str, content: str, user_id: str
    ) -> dict[str, Any]:
        result = await self._retriever.add_knowledge(
            PERSONAL_KNOWLEDGE, knowledge_id, content, user_id=user_id
        )
        return {"knowledge_id": knowledge_id, "embeddings_count": result.embeddings_count}

    async def add_personal_goal(
        self,
        goal_id: str,
        user_id: str,
        description: str,
        goal_type: str,
        status: str = "active",
        target_amount: float | None = None,
        target_date: str | None = None,
    ) -> dict[str, Any]:
        """Make a goal searchable. The goal record itself lives elsewhere."""
        content = goal_content(description, goal_type, target_amount, target_date)
        result = await self._retriever.add_knowledge(
            PERSONAL_GOALS,
            goal_id,
            content,
            user_id=user_id,
            metadata={"goal_type": goal_type, "status": status, "target_amount": target_amount},
        )
        return {"goal_id": goal_id, "embeddings_count": result.embeddings_count}

    async def add_general_knowledge(
        self, content: str, category: str = "general", source: str | None = None
    ) -> dict[str, Any]:
        knowledge_id = self._new_id()
        result = await self._retriever.add_knowledge(
            GENERAL_KNOWLEDGE,
            knowledge_id,
            content,
            metadata={"category": category, "source": source},
        )
        return {"knowledge_id": knowledge_id, "embeddings_count": result.embeddings_count}

    async def remove_entity(self, entity_type: str, entity_id: str) -> int:
        """Cascade hook: call when the parent goal / knowledge item is deleted."""
        return await self._retriever.delete_entity(entity_type, entity_id)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(self, query: str, **options: Any) -> list[SearchResult]:
        """Single-pool search that always returns at least one record.

        Accepts the keyword options of :meth:`KnowledgeRetriever.search`.
        """
        outcome = await self._retriever.search(query, **options)
        return render_outcome(outcome)

    async def find_relevant_content(
        self, query: str, user_id: str, limit: int = 4, threshold: float = 0.5
    ) -> list[dict[str, Any]]:
        """Search the user's personal knowledge. Returns ``[{content, similarity}]``."""
        outcome = await self._retriever.search(
            query,
            entity_types=[PERSONAL_KNOWLEDGE],
            user_id=user_id,
            include_user_content=True,
            include_general_content=False,
            limit=limit,
            threshold=threshold,
        )
        records = render_outcome(
            outcome,
            no_results_message=f"No se encontró información relevante para el usuario {user_id}",
        )
        return [{"content": r.content, "similarity": r.similarity} for r in records]

    async def search_general_knowledge(
        self, query: str, category: str | None = None, limit: int = 4
    ) -> list[dict[str, Any]]:
        """Search general financial knowledge. Returns ``[{content, similarity, category, source}]``."""
        outcome = await self._retriever.search(
            query,
            entity_types=[GENERAL_KNOWLEDGE],
            include_user_content=False,
            include_general_content=True,
            metadata_filters={"category": category} if category and category != "general" else None,
            limit=limit,
            threshold=0.1,
        )
        suffix = f" para la categoría {category}" if category else ""
        records = render_outcome(
            outcome,
            no_results_message=GENERAL_NO_RESULTS_MESSAGE + suffix,
            error_prefix=GENERAL_ERROR_PREFIX,
        )
        return [
            {
                "content": r.content,
                "similarity": r.similarity,
                "category": (r.metadata or {}).get("category", category or "general"),
                "source": (r.metadata or {}).get("source"),
            }
            for r in records
        ]

    async def search_all_financial_knowledge(
        self, query: str, user_id: str, **limits: Any
    ) -> list[SearchResult]:
        """Combined search. May be empty; a total failure yields one error record."""
        outcome = await self._retriever.search_all_financial_knowledge(query, user_id, **limits)
        if outcome.error is not None:
            return [error_record(outcome.error, FINANCIAL_ERROR_PREFIX)]
        return list(outcome.results)

    async def get_combined_financial_knowledge(
        self,
        query: str,
        user_id: str,
        personal_limit: int = 2,
        general_limit: int = 3,
        goals_limit: int = 2,
        category: str | None = None,
        include_personal: bool = True,
        include_general: bool = True,
        include_goals: bool = True,
    ) -> list[dict[str, Any]]:
        """Combined search with include switches and a ``type`` label per record."""
        records = await self.search_all_financial_knowledge(
            query,
            user_id,
            personal_limit=personal_limit if include_personal else 0,
            general_limit=general_limit if include_general else 0,
            goals_limit=goals_limit if include_goals else 0,
            category=category,
        )
        return [
            {
                "content": r.content,
                "similarity": r.similarity,
                "type": _POOL_LABELS.get(r.entity_type, "error" if r.entity_type == "error" else "unknown"),
                "entity_type": r.entity_type,
                "entity_id": r.entity_id,
                "metadata": r.metadata,
            }
            for r in records
        ]
