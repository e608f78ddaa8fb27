"""Knowledge retriever: ingest + single-pool search + combined multi-pool search.

Ingest (``add_knowledge``):
  validate → chunk → one batched embed → one atomic insert. Errors propagate.

Search (``search``):
  embed the query → filtered store query. Provider/storage failures are caught,
  logged, and returned inside the ``SearchOutcome`` instead of raised.

Combined search (``search_all_financial_knowledge``):
  personal knowledge, personal goals and general knowledge are queried
  concurrently, each with its own limit (0 skips the pool). The merged list
  keeps only ``similarity > merge_threshold`` (0.5) and is sorted best-first.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

from finknow.db.models import KnowledgeChunk, SearchFilters, SearchResult
from finknow.db.store import KnowledgeStore
from finknow.errors import ProviderError, RetrievalError, StorageError, ValidationError
from finknow.ingest.chunker import SentenceChunker
from finknow.ingest.embedder import Embedder
from finknow.pools import (
    GENERAL_KNOWLEDGE,
    PERSONAL_GOALS,
    PERSONAL_KNOWLEDGE,
    validate_filters,
    validate_metadata,
    validate_pool,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetrieverConfig:
    """Search defaults for the retriever.

    Attributes:
        limit: Row limit for ``search`` when the caller gives none.
        threshold: Per-pool similarity threshold (strict ``>``).
        merge_threshold: Final gate applied to the combined, merged list.
        personal_limit: Combined search — personal knowledge rows.
        goals_limit: Combined search — personal goal rows.
        general_limit: Combined search — general knowledge rows.
        store_timeout: Seconds before a store call fails with StorageError.
    """

    limit: int = 5
    threshold: float = 0.1
    merge_threshold: float = 0.5
    personal_limit: int = 2
    goals_limit: int = 2
    general_limit: int = 3
    store_timeout: float = 10.0


@dataclass
class IngestResult:
    """Outcome of one ``add_knowledge`` call."""

    embeddings_count: int


@dataclass
class SearchOutcome:
    """Ranked results, or the error that prevented the search.

    An ok outcome may be empty; rendering "nothing found" is the caller's job.
    """

    results: list[SearchResult] = field(default_factory=list)
    error: RetrievalError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class KnowledgeRetriever:
    """Compose chunker, embedder and store into ingest and search operations.

    Holds no per-request state; concurrent calls are safe.

    Args:
        chunker: Text segmenter used at ingest.
        embedder: Embedding provider client.
        store: Initialised knowledge store.
        config: Search defaults.
    """

    def __init__(
        self,
        chunker: SentenceChunker,
        embedder: Embedder,
        store: KnowledgeStore,
        config: RetrieverConfig | None = None,
    ) -> None:
        self._chunker = chunker
        self._embedder = embedder
        self._store = store
        self._config = config or RetrieverConfig()

    @property
    def store(self) -> KnowledgeStore:
        return self._store

    @property
    def config(self) -> RetrieverConfig:
        return self._config

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    async def add_knowledge(
        self,
        entity_type: str,
        entity_id: str,
        content: str,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> IngestResult:
        """Chunk, embed and store *content* under one parent entity.

        Not idempotent: calling twice with the same content stores two sets.

        Raises:
            ValidationError: Empty content, bad entity fields or metadata.
            ProviderError: Embedding failed; nothing was stored.
            StorageError: Insert failed; nothing was stored.
        """
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("content must be a non-empty string")
        if not isinstance(entity_id, str) or not entity_id.strip():
            raise ValidationError("entity_id must be a non-empty string")
        validate_pool(entity_type)
        metadata = validate_metadata(entity_type, metadata)

        chunks = self._chunker.chunk(content)
        pairs = await self._embedder.embed_many(chunks)

        records = [
            KnowledgeChunk(
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                content=text,
                embedding=tuple(vector),
                metadata=metadata,
            )
            for text, vector in pairs
        ]
        await self._store_call(self._store.insert, records)

        logger.info(
            "Stored %d chunk(s) for %s/%s (user=%s)",
            len(records), entity_type, entity_id, user_id,
        )
        return IngestResult(embeddings_count=len(records))

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        entity_types: Sequence[str] | None = None,
        user_id: str | None = None,
        include_user_content: bool = True,
        include_general_content: bool = True,
        metadata_filters: dict[str, Any] | None = None,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> SearchOutcome:
        """Similarity search over the selected pools.

        Raises:
            ValidationError: Empty query, malformed pool names or metadata filters.
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("query must be a non-empty string")
        limit = self._config.limit if limit is None else limit
        threshold = self._config.threshold if threshold is None else threshold
        filters = SearchFilters(
            entity_types=[validate_pool(t) for t in entity_types] if entity_types else None,
            user_id=user_id,
            include_user_content=include_user_content,
            include_general_content=include_general_content,
            metadata=validate_filters(metadata_filters),
        )

        try:
            vector = await self._embedder.embed_one(query)
            results = await self._store_call(
                self._store.query, vector, filters, limit, threshold
            )
        except (ProviderError, StorageError) as exc:
            logger.exception("Knowledge search failed for %r", query[:50])
            return SearchOutcome(error=RetrievalError(str(exc), cause=exc))

        logger.debug(
            "Search %r over %s: %d result(s)", query[:50], filters.entity_types or "all pools", len(results)
        )
        return SearchOutcome(results=results)

    async def search_all_financial_knowledge(
        self,
        query: str,
        user_id: str,
        *,
        personal_limit: int | None = None,
        general_limit: int | None = None,
        goals_limit: int | None = None,
        category: str | None = None,
    ) -> SearchOutcome:
        """Query the three financial pools concurrently and merge the results.

        A pool whose search fails is logged and left out; the outcome carries
        an error only when every queried pool failed.
        """
        cfg = self._config
        personal_limit = cfg.personal_limit if personal_limit is None else personal_limit
        goals_limit = cfg.goals_limit if goals_limit is None else goals_limit
        general_limit = cfg.general_limit if general_limit is None else general_limit

        user_only = {"user_id": user_id, "include_user_content": True, "include_general_content": False}
        plans: list[tuple[str, int, dict[str, Any]]] = [
            (PERSONAL_KNOWLEDGE, personal_limit, user_only),
            (PERSONAL_GOALS, goals_limit, user_only),
            (
                GENERAL_KNOWLEDGE,
                general_limit,
                {
                    "include_user_content": False,
                    "include_general_content": True,
                    "metadata_filters": {"category": category} if category else None,
                },
            ),
        ]
        active = [(pool, limit, kwargs) for pool, limit, kwargs in plans if limit > 0]
        if not active:
            return SearchOutcome()

        outcomes = await asyncio.gather(
            *(
                self.search(query, entity_types=[pool], limit=limit, **kwargs)
                for pool, limit, kwargs in active
            )
        )

        merged: list[SearchResult] = []
        errors: list[RetrievalError] = []
        for (pool, _, _), outcome in zip(active, outcomes):
            if outcome.error is not None:
                logger.warning("Pool %s left out of combined search: %s", pool, outcome.error)
                errors.append(outcome.error)
                continue
            merged.extend(outcome.results)

        if len(errors) == len(active):
            return SearchOutcome(error=errors[0])

        merged = [r for r in merged if r.similarity > cfg.merge_threshold]
        merged.sort(key=lambda r: r.similarity, reverse=True)

        logger.info(
            "Combined search: %d result(s) %s",
            len(merged), dict(Counter(r.entity_type for r in merged)),
        )
        return SearchOutcome(results=merged)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def delete_entity(self, entity_type: str, entity_id: str) -> int:
        """Cascade-delete the chunks of one parent entity. Returns chunks removed."""
        return await self._store_call(self._store.delete_entity, entity_type, entity_id)

    async def clear(self) -> int:
        """Drop every stored chunk (environment reset)."""
        return await self._store_call(self._store.clear)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _store_call(self, fn: Callable[..., T], *args: Any) -> T:
        """Run a blocking store method in a worker thread under the store timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args), timeout=self._config.store_timeout
            )
        except asyncio.TimeoutError as exc:
            raise StorageError(
                f"Knowledge store call timed out after {self._config.store_timeout:g}s"
            ) from exc
