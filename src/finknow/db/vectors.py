"""Per-model sqlite-vec index management.

One ``vec0`` virtual table per embedding model, using cosine distance. The
``vector_indexes`` registry pins each table's dimensionality so vectors of a
different size are never written to, or compared against, an existing index.
"""

from __future__ import annotations

import re
import sqlite3


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_knowledge_{model_slug}"


def registered_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the dimensionality recorded for *table*, or None if unregistered."""
    row = conn.execute(
        "SELECT dimensions FROM vector_indexes WHERE table_name = ?", (table,)
    ).fetchone()
    return row[0] if row else None


def ensure_vec_table(
    conn: sqlite3.Connection, model: str, dimensions: int
) -> str:
    """Create the cosine vec table for *model* if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec loaded, schema initialised).
        model: LiteLLM embedding model string.
        dimensions: Embedding vector dimensions (e.g. 1536).

    Returns:
        The table name (vec_knowledge_{slug}).

    Raises:
        ValueError: On bad dimensions, or when the table already exists with a
            different dimensionality.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    slug = model_to_slug(model)
    table = vec_table_name(slug)

    existing = registered_dimensions(conn, table)
    if existing is not None:
        if existing != dimensions:
            raise ValueError(
                f"Vector index '{table}' stores {existing}-dimensional embeddings; "
                f"refusing to use it with {dimensions} dimensions."
            )
        return table

    conn.execute(
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {table} "
        f"USING vec0(embedding float[{dimensions}] distance_metric=cosine)"
    )
    conn.execute(
        "INSERT INTO vector_indexes (table_name, embedding_model, dimensions) VALUES (?, ?, ?)",
        (table, model, dimensions),
    )
    conn.commit()
    return table
