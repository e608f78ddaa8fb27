"""Tests for the LiteLLM embedding client."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from finknow.errors import MissingApiKeyError, ProviderError
from finknow.ingest.embedder import Embedder, EmbeddingConfig, normalize_query, validate_api_key


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _response(*vectors, with_index: bool = False):
    data = []
    for i, v in enumerate(vectors):
        item = {"embedding": list(v)}
        if with_index:
            item["index"] = i
        data.append(item)
    return SimpleNamespace(data=data)


def _embedder(dimensions: int = 3, timeout: float = 5.0) -> Embedder:
    return Embedder(EmbeddingConfig(model="openai/text-embedding-3-small", dimensions=dimensions, timeout=timeout))


# ------------------------------------------------------------------
# EmbeddingConfig defaults
# ------------------------------------------------------------------


def test_embedding_config_defaults():
    cfg = EmbeddingConfig()
    assert cfg.model == "openai/text-embedding-3-small"
    assert cfg.dimensions == 1536
    assert cfg.timeout == 30.0


# ------------------------------------------------------------------
# embed_one / embed_many
# ------------------------------------------------------------------


def test_embed_one_returns_vector():
    mock = AsyncMock(return_value=_response([0.1, 0.2, 0.3]))
    with patch("finknow.ingest.embedder.litellm.aembedding", mock):
        vector = asyncio.run(_embedder().embed_one("hola"))

    assert vector == [0.1, 0.2, 0.3]
    mock.assert_awaited_once()
    assert mock.call_args.kwargs["model"] == "openai/text-embedding-3-small"
    assert mock.call_args.kwargs["input"] == ["hola"]


def test_embed_one_replaces_literal_backslash_n():
    mock = AsyncMock(return_value=_response([0.1, 0.2, 0.3]))
    with patch("finknow.ingest.embedder.litellm.aembedding", mock):
        asyncio.run(_embedder().embed_one("línea uno\\nlínea dos"))
    assert mock.call_args.kwargs["input"] == ["línea uno línea dos"]


def test_embed_many_is_one_batched_call():
    mock = AsyncMock(return_value=_response([1, 0, 0], [0, 1, 0]))
    with patch("finknow.ingest.embedder.litellm.aembedding", mock):
        pairs = asyncio.run(_embedder().embed_many(["a", "b"]))

    assert pairs == [("a", [1, 0, 0]), ("b", [0, 1, 0])]
    assert mock.await_count == 1
    assert mock.call_args.kwargs["input"] == ["a", "b"]


def test_embed_many_orders_by_index():
    response = SimpleNamespace(
        data=[{"index": 1, "embedding": [0, 1, 0]}, {"index": 0, "embedding": [1, 0, 0]}]
    )
    with patch("finknow.ingest.embedder.litellm.aembedding", AsyncMock(return_value=response)):
        pairs = asyncio.run(_embedder().embed_many(["a", "b"]))
    assert pairs == [("a", [1, 0, 0]), ("b", [0, 1, 0])]


def test_embed_many_accepts_object_items():
    response = SimpleNamespace(data=[SimpleNamespace(index=0, embedding=[0.5, 0.5, 0.0])])
    with patch("finknow.ingest.embedder.litellm.aembedding", AsyncMock(return_value=response)):
        pairs = asyncio.run(_embedder().embed_many(["a"]))
    assert pairs == [("a", [0.5, 0.5, 0.0])]


def test_embed_many_empty_makes_no_call():
    mock = AsyncMock()
    with patch("finknow.ingest.embedder.litellm.aembedding", mock):
        assert asyncio.run(_embedder().embed_many([])) == []
    mock.assert_not_awaited()


# ------------------------------------------------------------------
# Failures → ProviderError
# ------------------------------------------------------------------


def test_provider_exception_wrapped():
    mock = AsyncMock(side_effect=RuntimeError("rate limited"))
    with patch("finknow.ingest.embedder.litellm.aembedding", mock):
        with pytest.raises(ProviderError, match="rate limited"):
            asyncio.run(_embedder().embed_one("hola"))


def test_timeout_raises_provider_error():
    async def _slow(**kwargs):
        await asyncio.sleep(1)

    with patch("finknow.ingest.embedder.litellm.aembedding", _slow):
        with pytest.raises(ProviderError, match="timed out"):
            asyncio.run(_embedder(timeout=0.01).embed_one("hola"))


def test_wrong_dimensions_rejected():
    with patch(
        "finknow.ingest.embedder.litellm.aembedding",
        AsyncMock(return_value=_response([0.1, 0.2])),
    ):
        with pytest.raises(ProviderError, match="2-dimensional"):
            asyncio.run(_embedder(dimensions=3).embed_one("hola"))


def test_wrong_vector_count_rejected():
    with patch(
        "finknow.ingest.embedder.litellm.aembedding",
        AsyncMock(return_value=_response([1, 0, 0])),
    ):
        with pytest.raises(ProviderError, match="1 embeddings for 2"):
            asyncio.run(_embedder().embed_many(["a", "b"]))


def test_malformed_response_rejected():
    with patch(
        "finknow.ingest.embedder.litellm.aembedding",
        AsyncMock(return_value=SimpleNamespace()),
    ):
        with pytest.raises(ProviderError, match="Malformed"):
            asyncio.run(_embedder().embed_one("hola"))


# ------------------------------------------------------------------
# Sync variant
# ------------------------------------------------------------------


def test_embed_one_sync_passes_timeout():
    mock_embedding = MagicMock()
    mock_embedding.data = [{"embedding": [0.1, 0.2, 0.3]}]
    with patch("finknow.ingest.embedder.litellm.embedding", return_value=mock_embedding) as m:
        vector = _embedder(timeout=7.0).embed_one_sync("hola")
    assert vector == [0.1, 0.2, 0.3]
    assert m.call_args.kwargs["timeout"] == 7.0


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def test_normalize_query():
    assert normalize_query("a\\nb\\nc") == "a b c"
    assert normalize_query("sin saltos") == "sin saltos"


def test_validate_api_key_missing(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(MissingApiKeyError) as exc_info:
        validate_api_key("openai/text-embedding-3-small")
    assert exc_info.value.env_var == "OPENAI_API_KEY"
    assert exc_info.value.provider == "openai"


def test_validate_api_key_present(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    validate_api_key("openai/text-embedding-3-small")


def test_validate_api_key_local_provider_needs_none(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    validate_api_key("ollama/nomic-embed-text")
