"""Knowledge store: chunk persistence + filtered cosine search over sqlite-vec.

Rows live in ``knowledge_chunks``; vectors live in the model's ``vec0`` table
under the same rowid. A query asks the vec index for the nearest candidates,
then applies the pool / ownership / metadata filters and the similarity
threshold to those candidates. When the filters leave fewer than ``limit``
rows, the candidate window is widened (x4) until it covers the whole index or
its farthest candidate is already below the threshold. A window pinned at the
sqlite-vec ``k`` ceiling falls back to an exact cosine scan over the rows that
pass the filters.

Every public method opens its own connection, so the store can be driven from
worker threads (``asyncio.to_thread``) without sharing a sqlite3 handle.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

from finknow.db.connection import Database
from finknow.db.migrations import initialize
from finknow.db.models import KnowledgeChunk, SearchFilters, SearchResult
from finknow.db.vectors import ensure_vec_table, model_to_slug, vec_table_name
from finknow.errors import StorageError

logger = logging.getLogger(__name__)

# sqlite-vec rejects KNN queries with k above this value.
_MAX_KNN_K = 4096
_WIDEN_FACTOR = 4


class KnowledgeStore:
    """Data access layer for knowledge chunks and their embeddings.

    Args:
        db: Database handle (path + connection factory).
        embedding_model: Model whose vec index this store reads and writes.
        dimensions: Fixed embedding dimensionality of that model.
        candidate_window: Initial KNN window for filtered queries.
    """

    def __init__(
        self,
        db: Database,
        embedding_model: str,
        dimensions: int,
        candidate_window: int = 64,
    ) -> None:
        self._db = db
        self._model = embedding_model
        self._dimensions = dimensions
        self._candidate_window = max(1, candidate_window)
        self._table = vec_table_name(model_to_slug(embedding_model))

    @property
    def table(self) -> str:
        return self._table

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def initialize(self) -> str:
        """Create the schema and this model's vec index (idempotent).

        Raises:
            StorageError: If the database cannot be opened or the existing index
                was created with a different dimensionality.
        """
        try:
            with self._connection() as conn:
                initialize(conn)
                return ensure_vec_table(conn, self._model, self._dimensions)
        except (sqlite3.Error, ValueError) as exc:
            raise StorageError(f"Cannot initialise knowledge store: {exc}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, chunks: Sequence[KnowledgeChunk]) -> int:
        """Insert *chunks* and their vectors in one transaction.

        Returns:
            Number of chunks written.

        Raises:
            StorageError: If any chunk is malformed or the database rejects it.
                Nothing is persisted in that case.
        """
        chunks = list(chunks)
        if not chunks:
            return 0
        for chunk in chunks:
            self._check_chunk(chunk)

        try:
            with self._connection() as conn:
                with conn:
                    for chunk in chunks:
                        cur = conn.execute(
                            """
                            INSERT INTO knowledge_chunks
                                (id, entity_type, entity_id, user_id, content,
                                 metadata, embedding_model, created_at)
                            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                            """,
                            (
                                chunk.id,
                                chunk.entity_type,
                                chunk.entity_id,
                                chunk.user_id,
                                chunk.content,
                                json.dumps(chunk.metadata) if chunk.metadata is not None else None,
                                self._model,
                                chunk.created_at,
                            ),
                        )
                        conn.execute(
                            f"INSERT INTO {self._table}(rowid, embedding) VALUES (?, ?)",
                            (cur.lastrowid, json.dumps(list(chunk.embedding))),
                        )
        except sqlite3.Error as exc:
            raise StorageError(f"Insert of {len(chunks)} chunk(s) failed: {exc}") from exc

        return len(chunks)

    def delete_entity(self, entity_type: str, entity_id: str) -> int:
        """Delete every chunk (and vector) of one parent entity.

        This is the cascade hook the owning record's lifecycle calls on removal.

        Returns:
            Number of chunks deleted (0 if the entity had none).
        """
        try:
            with self._connection() as conn:
                with conn:
                    rowids = [
                        r[0]
                        for r in conn.execute(
                            "SELECT rowid FROM knowledge_chunks WHERE entity_type = ? AND entity_id = ?",
                            (entity_type, entity_id),
                        ).fetchall()
                    ]
                    if not rowids:
                        return 0
                    placeholders = ",".join("?" * len(rowids))
                    for table in _vec_tables(conn):
                        conn.execute(
                            f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                            rowids,
                        )
                    conn.execute(
                        f"DELETE FROM knowledge_chunks WHERE rowid IN ({placeholders})",  # noqa: S608
                        rowids,
                    )
        except sqlite3.Error as exc:
            raise StorageError(f"Delete of {entity_type}/{entity_id} failed: {exc}") from exc

        logger.info("Deleted %d chunk(s) of %s/%s", len(rowids), entity_type, entity_id)
        return len(rowids)

    def clear(self) -> int:
        """Remove every chunk and vector (environment reset). Returns chunks deleted."""
        try:
            with self._connection() as conn:
                with conn:
                    total = conn.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()[0]
                    for table in _vec_tables(conn):
                        conn.execute(f"DELETE FROM [{table}]")  # noqa: S608
                    conn.execute("DELETE FROM knowledge_chunks")
        except sqlite3.Error as exc:
            raise StorageError(f"Clear failed: {exc}") from exc

        logger.info("Cleared knowledge store (%d chunks)", total)
        return total

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        query_vector: Sequence[float],
        filters: SearchFilters | None = None,
        limit: int = 5,
        threshold: float = 0.1,
    ) -> list[SearchResult]:
        """Return rows with ``similarity > threshold`` matching *filters*, best-first.

        Raises:
            StorageError: Wrong vector dimensionality or database failure.
        """
        filters = filters or SearchFilters()
        if limit <= 0:
            return []
        vector = self._check_vector(query_vector)

        where, params = _build_where(filters)
        if where is None:
            return []

        results: list[SearchResult] = []
        try:
            with self._connection() as conn:
                total = conn.execute(f"SELECT COUNT(*) FROM {self._table}").fetchone()[0]
                ceiling = min(total, _MAX_KNN_K)
                window = min(max(self._candidate_window, limit), ceiling)
                payload = json.dumps(vector)

                while window > 0:
                    candidates = conn.execute(
                        f"""
                        SELECT rowid, distance FROM {self._table}
                        WHERE embedding MATCH ? AND k = ?
                        ORDER BY distance
                        """,
                        (payload, window),
                    ).fetchall()
                    results = _hydrate(conn, candidates, where, params, threshold)

                    if len(results) >= limit:
                        break
                    if candidates and 1.0 - candidates[-1]["distance"] <= threshold:
                        break
                    if window >= ceiling:
                        if total > ceiling:
                            results = self._scan_filtered(
                                conn, payload, where, params, limit, threshold
                            )
                        break
                    window = min(window * _WIDEN_FACTOR, ceiling)
                    logger.debug(
                        "Widening KNN window to %d (%d/%d rows after filters)",
                        window, len(results), limit,
                    )
        except sqlite3.Error as exc:
            raise StorageError(f"Knowledge query failed: {exc}") from exc

        return results[:limit]

    def count(
        self,
        entity_type: str | None = None,
        user_id: str | None = None,
        entity_id: str | None = None,
    ) -> int:
        """Count chunks, optionally restricted by pool, owner and parent entity."""
        sql = "SELECT COUNT(*) FROM knowledge_chunks WHERE 1 = 1"
        params: list[Any] = []
        if entity_type is not None:
            sql += " AND entity_type = ?"
            params.append(entity_type)
        if entity_id is not None:
            sql += " AND entity_id = ?"
            params.append(entity_id)
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        try:
            with self._connection() as conn:
                return conn.execute(sql, params).fetchone()[0]
        except sqlite3.Error as exc:
            raise StorageError(f"Count failed: {exc}") from exc

    def pool_counts(self) -> dict[str, int]:
        """Return ``{entity_type: chunk count}`` for every non-empty pool."""
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    "SELECT entity_type, COUNT(*) AS n FROM knowledge_chunks "
                    "GROUP BY entity_type ORDER BY entity_type"
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Count failed: {exc}") from exc
        return {r["entity_type"]: r["n"] for r in rows}

    def list_entity_chunks(self, entity_type: str, entity_id: str) -> list[KnowledgeChunk]:
        """Return the chunks of one entity in insertion order, with their vectors."""
        try:
            with self._connection() as conn:
                rows = conn.execute(
                    f"""
                    SELECT c.id, c.entity_type, c.entity_id, c.user_id, c.content,
                           c.metadata, c.created_at, vec_to_json(v.embedding) AS embedding
                    FROM knowledge_chunks c
                    JOIN {self._table} v ON v.rowid = c.rowid
                    WHERE c.entity_type = ? AND c.entity_id = ?
                    ORDER BY c.rowid
                    """,
                    (entity_type, entity_id),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Lookup of {entity_type}/{entity_id} failed: {exc}") from exc
        return [_row_to_chunk(r) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._db.connect()
        try:
            yield conn
        finally:
            conn.close()

    def _scan_filtered(
        self,
        conn: sqlite3.Connection,
        payload: str,
        where: str,
        params: list[Any],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Exact cosine scan over the rows passing *where*.

        Used once the KNN window is pinned at the sqlite-vec ``k`` ceiling, where
        rows matching the filters may rank below every candidate the index returns.
        """
        logger.debug("KNN window at k ceiling; scanning filtered rows exactly")
        candidates = conn.execute(
            f"""
            SELECT c.rowid AS rowid, vec_distance_cosine(v.embedding, ?) AS distance
            FROM knowledge_chunks c
            JOIN {self._table} v ON v.rowid = c.rowid
            WHERE {where}
            ORDER BY distance
            LIMIT ?
            """,  # noqa: S608
            [payload, *params, limit],
        ).fetchall()
        return _hydrate(conn, candidates, where, params, threshold)

    def _check_vector(self, vector: Sequence[float]) -> list[float]:
        values = [float(v) for v in vector]
        if len(values) != self._dimensions:
            raise StorageError(
                f"Vector has {len(values)} dimensions; index '{self._table}' "
                f"expects {self._dimensions}."
            )
        if not all(math.isfinite(v) for v in values):
            raise StorageError("Vector contains NaN or infinite values.")
        return values

    def _check_chunk(self, chunk: KnowledgeChunk) -> None:
        for name in ("id", "entity_type", "entity_id", "content"):
            value = getattr(chunk, name)
            if not isinstance(value, str) or not value.strip():
                raise StorageError(f"Chunk field '{name}' is missing or empty.")
        self._check_vector(chunk.embedding)


# ------------------------------------------------------------------
# Query helpers
# ------------------------------------------------------------------


def _json_path(key: str) -> str:
    return '$."' + key.replace('"', '\\"') + '"'


def _build_where(filters: SearchFilters) -> tuple[str | None, list[Any]]:
    """Translate *filters* into a SQL predicate. ``None`` means "matches nothing"."""
    clauses: list[str] = []
    params: list[Any] = []

    if filters.entity_types:
        clauses.append(f"entity_type IN ({','.join('?' * len(filters.entity_types))})")
        params.extend(filters.entity_types)

    owner: list[str] = []
    if filters.include_user_content and filters.user_id is not None:
        owner.append("user_id = ?")
        params.append(filters.user_id)
    if filters.include_general_content:
        owner.append("user_id IS NULL")
    if not owner:
        return None, []
    clauses.append("(" + " OR ".join(owner) + ")")

    for key, value in filters.metadata.items():
        clauses.append("json_extract(metadata, ?) = ?")
        params.extend([_json_path(key), value])

    return " AND ".join(clauses), params


def _hydrate(
    conn: sqlite3.Connection,
    candidates: list[sqlite3.Row],
    where: str,
    params: list[Any],
    threshold: float,
) -> list[SearchResult]:
    """Load candidate rows that pass *where* and the threshold, best-first."""
    distances = {row["rowid"]: row["distance"] for row in candidates}
    if not distances:
        return []

    placeholders = ",".join("?" * len(distances))
    rows = conn.execute(
        f"""
        SELECT rowid, content, entity_type, entity_id, user_id, metadata
        FROM knowledge_chunks
        WHERE rowid IN ({placeholders}) AND {where}
        """,  # noqa: S608
        [*distances, *params],
    ).fetchall()

    hits: list[SearchResult] = []
    for row in rows:
        similarity = 1.0 - distances[row["rowid"]]
        if similarity > threshold:
            hits.append(
                SearchResult(
                    content=row["content"],
                    similarity=similarity,
                    entity_type=row["entity_type"],
                    entity_id=row["entity_id"],
                    user_id=row["user_id"],
                    metadata=json.loads(row["metadata"]) if row["metadata"] else None,
                )
            )
    hits.sort(key=lambda h: h.similarity, reverse=True)
    return hits


def _vec_tables(conn: sqlite3.Connection) -> list[str]:
    return [
        r[0]
        for r in conn.execute("SELECT table_name FROM vector_indexes").fetchall()
    ]


def _row_to_chunk(row: sqlite3.Row) -> KnowledgeChunk:
    return KnowledgeChunk(
        id=row["id"],
        entity_type=row["entity_type"],
        entity_id=row["entity_id"],
        user_id=row["user_id"],
        content=row["content"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else None,
        embedding=tuple(json.loads(row["embedding"])),
        created_at=row["created_at"],
    )
