"""Forward-only migration runner for the knowledge store schema.

Vec tables (vec_knowledge_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS knowledge_chunks (
    id              TEXT PRIMARY KEY,
    entity_type     TEXT NOT NULL CHECK (length(entity_type) > 0),
    entity_id       TEXT NOT NULL CHECK (length(entity_id) > 0),
    user_id         TEXT,
    content         TEXT NOT NULL CHECK (length(content) > 0),
    metadata        TEXT CHECK (metadata IS NULL OR json_valid(metadata)),
    embedding_model TEXT NOT NULL,
    created_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chunks_entity ON knowledge_chunks (entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_chunks_user_entity ON knowledge_chunks (user_id, entity_type);

CREATE TABLE IF NOT EXISTS vector_indexes (
    table_name      TEXT PRIMARY KEY,
    embedding_model TEXT NOT NULL,
    dimensions      INTEGER NOT NULL CHECK (dimensions > 0),
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]

CURRENT_VERSION = MIGRATIONS[-1][0]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)
