"""Tests for the forward-only migration runner."""

from __future__ import annotations

import sqlite3

import pytest

from finknow.db.connection import Database
from finknow.db.migrations import CURRENT_VERSION, MIGRATIONS, initialize, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


def _index_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND name = ?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION == MIGRATIONS[-1][0]
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    initialize(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables and indexes ---

def test_creates_tables_and_indexes(tmp_db):
    assert _table_exists(tmp_db, "knowledge_chunks")
    assert _table_exists(tmp_db, "vector_indexes")
    assert _index_exists(tmp_db, "idx_chunks_entity")
    assert _index_exists(tmp_db, "idx_chunks_user_entity")


# --- Constraints ---

def _insert(conn, **overrides):
    row = {
        "id": "c1",
        "entity_type": "personal_knowledge",
        "entity_id": "e1",
        "user_id": None,
        "content": "texto",
        "metadata": None,
        "embedding_model": "test/embed-4",
        "created_at": "2026-01-01T00:00:00+00:00",
    }
    row.update(overrides)
    conn.execute(
        "INSERT INTO knowledge_chunks (id, entity_type, entity_id, user_id, content, "
        "metadata, embedding_model, created_at) VALUES (:id, :entity_type, :entity_id, "
        ":user_id, :content, :metadata, :embedding_model, :created_at)",
        row,
    )


def test_empty_content_rejected(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        _insert(tmp_db, content="")


def test_invalid_metadata_json_rejected(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        _insert(tmp_db, metadata="{not json")


def test_valid_metadata_json_accepted(tmp_db):
    _insert(tmp_db, metadata='{"category": "ahorro"}')
    value = tmp_db.execute(
        "SELECT json_extract(metadata, '$.category') FROM knowledge_chunks"
    ).fetchone()[0]
    assert value == "ahorro"
