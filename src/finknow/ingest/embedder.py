"""LiteLLM embedding client.

``embed_one`` embeds a single query string; ``embed_many`` embeds all chunks of
one ingest in a single batched call and pairs each vector with its source
text. Any provider failure, timeout, or malformed response raises
``ProviderError`` — a batch never succeeds partially. Retries are the
caller's decision.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import litellm

from finknow.errors import MissingApiKeyError, ProviderError

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,  # Local, no key required
}


@dataclass
class EmbeddingConfig:
    """Embedding provider settings."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    timeout: float = 30.0


def validate_api_key(model: str) -> None:
    """Raise MissingApiKeyError if the provider of *model* needs a key that is unset."""
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var is None:
        return
    if not os.getenv(env_var):
        raise MissingApiKeyError(provider, env_var)


def normalize_query(text: str) -> str:
    """Replace literal backslash-n sequences (serialized newlines) with spaces."""
    return text.replace("\\n", " ")


class Embedder:
    """Turn text into fixed-dimension vectors through ``litellm``.

    Args:
        config: Model, expected dimensionality, and per-call timeout.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self._config = config or EmbeddingConfig()

    @property
    def config(self) -> EmbeddingConfig:
        return self._config

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single string (backslash-n sequences become spaces)."""
        vectors = await self._aembed([normalize_query(text)])
        return vectors[0]

    async def embed_many(self, texts: Sequence[str]) -> list[tuple[str, list[float]]]:
        """Embed *texts* in one call. Returns ``(text, vector)`` pairs in input order."""
        texts = list(texts)
        if not texts:
            return []
        vectors = await self._aembed(texts)
        return list(zip(texts, vectors))

    def embed_one_sync(self, text: str) -> list[float]:
        """Blocking variant of :meth:`embed_one` for scripts and the CLI."""
        try:
            response = litellm.embedding(
                model=self._config.model,
                input=[normalize_query(text)],
                timeout=self._config.timeout,
            )
        except Exception as exc:
            raise ProviderError(f"Embedding request failed: {exc}") from exc
        return self._vectors(response, expected=1)[0]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _aembed(self, inputs: list[str]) -> list[list[float]]:
        try:
            response = await asyncio.wait_for(
                litellm.aembedding(model=self._config.model, input=inputs),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderError(
                f"Embedding request timed out after {self._config.timeout:g}s"
            ) from exc
        except Exception as exc:
            raise ProviderError(f"Embedding request failed: {exc}") from exc

        vectors = self._vectors(response, expected=len(inputs))
        logger.debug("Embedded %d input(s) with %s", len(inputs), self._config.model)
        return vectors

    def _vectors(self, response: Any, expected: int) -> list[list[float]]:
        """Extract vectors from a LiteLLM response, checking count and size."""
        try:
            items = list(response.data)
            if items and all(_field(item, "index") is not None for item in items):
                items.sort(key=lambda item: _field(item, "index"))
            vectors = [list(_field(item, "embedding")) for item in items]
        except (AttributeError, KeyError, TypeError) as exc:
            raise ProviderError(f"Malformed embedding response: {exc}") from exc

        if len(vectors) != expected:
            raise ProviderError(
                f"Provider returned {len(vectors)} embeddings for {expected} input(s)."
            )
        for vector in vectors:
            if len(vector) != self._config.dimensions:
                raise ProviderError(
                    f"Provider returned a {len(vector)}-dimensional vector; "
                    f"expected {self._config.dimensions}."
                )
        return vectors


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)
