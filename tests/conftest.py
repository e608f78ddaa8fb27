"""Shared pytest fixtures."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from finknow.db.connection import Database
from finknow.db.migrations import initialize
from finknow.db.store import KnowledgeStore
from finknow.ingest.chunker import SentenceChunker
from finknow.rag.retriever import KnowledgeRetriever

TEST_MODEL = "test/embed-4"
TEST_DIMS = 4


class FakeEmbedder:
    """Stand-in for Embedder: looks vectors up by text, records every call."""

    def __init__(self, dimensions: int = TEST_DIMS) -> None:
        self.vectors: dict[str, Sequence[float]] = {}
        self.default: list[float] = [0.0] * (dimensions - 1) + [1.0]
        self.error: Exception | None = None
        self.calls: list[list[str]] = []

    def _lookup(self, text: str) -> list[float]:
        return list(self.vectors.get(text, self.default))

    async def embed_one(self, text: str) -> list[float]:
        self.calls.append([text])
        if self.error is not None:
            raise self.error
        return self._lookup(text)

    async def embed_many(self, texts: Sequence[str]) -> list[tuple[str, list[float]]]:
        texts = list(texts)
        self.calls.append(texts)
        if self.error is not None:
            raise self.error
        return [(t, self._lookup(t)) for t in texts]


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    """Never read the developer's ~/.finknow/config.yaml or FINKNOW_* env vars."""
    monkeypatch.setattr("finknow.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    monkeypatch.delenv("FINKNOW_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("FINKNOW_DB", raising=False)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".finknow.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_path) -> KnowledgeStore:
    """Initialised 4-dimensional knowledge store in tmp_path."""
    s = KnowledgeStore(Database(tmp_path / "store.db"), TEST_MODEL, TEST_DIMS)
    s.initialize()
    return s


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def retriever(store, fake_embedder) -> KnowledgeRetriever:
    return KnowledgeRetriever(SentenceChunker(), fake_embedder, store)
