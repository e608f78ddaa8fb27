"""finknow database layer."""

from finknow.db.connection import Database
from finknow.db.migrations import MIGRATIONS, initialize, run_migrations
from finknow.db.models import KnowledgeChunk, SearchFilters, SearchResult
from finknow.db.store import KnowledgeStore
from finknow.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "KnowledgeChunk",
    "KnowledgeStore",
    "MIGRATIONS",
    "SearchFilters",
    "SearchResult",
    "ensure_vec_table",
    "initialize",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
