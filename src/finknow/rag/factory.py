"""Build a wired retriever from configuration.

The embedding client and store connection are constructed here and injected;
nothing is held in module-level state.
"""

from __future__ import annotations

from pathlib import Path

from finknow.config import FinknowConfig
from finknow.db.connection import Database
from finknow.db.store import KnowledgeStore
from finknow.ingest.chunker import SentenceChunker
from finknow.ingest.embedder import Embedder, EmbeddingConfig
from finknow.rag.retriever import KnowledgeRetriever, RetrieverConfig
from finknow.rag.tools import KnowledgeTools


def build_store(config: FinknowConfig, db_path: Path | str | None = None) -> KnowledgeStore:
    """Open (and initialise) the knowledge store described by *config*."""
    db = Database(db_path or config.database.path, timeout=config.database.timeout)
    store = KnowledgeStore(
        db,
        embedding_model=config.embedding.model,
        dimensions=config.embedding.dimensions,
        candidate_window=config.retrieval.candidate_window,
    )
    store.initialize()
    return store


def build_retriever(
    config: FinknowConfig, db_path: Path | str | None = None
) -> KnowledgeRetriever:
    """Wire chunker, embedder and store from *config*."""
    ch = config.chunking
    r = config.retrieval
    return KnowledgeRetriever(
        chunker=SentenceChunker(
            short_text_chars=ch.short_text_chars,
            max_chunk_chars=ch.max_chunk_chars,
            min_fragment_chars=ch.min_fragment_chars,
        ),
        embedder=Embedder(
            EmbeddingConfig(
                model=config.embedding.model,
                dimensions=config.embedding.dimensions,
                timeout=config.embedding.timeout,
            )
        ),
        store=build_store(config, db_path),
        config=RetrieverConfig(
            limit=r.limit,
            threshold=r.threshold,
            merge_threshold=r.merge_threshold,
            personal_limit=r.personal_limit,
            goals_limit=r.goals_limit,
            general_limit=r.general_limit,
            store_timeout=config.database.timeout,
        ),
    )


def build_tools(config: FinknowConfig, db_path: Path | str | None = None) -> KnowledgeTools:
    """Caller-facing adapters over a freshly wired retriever."""
    return KnowledgeTools(build_retriever(config, db_path))
