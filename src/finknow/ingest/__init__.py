"""finknow ingest pipeline — sentence chunker and embedding client."""

from finknow.ingest.chunker import SentenceChunker, chunk_text
from finknow.ingest.embedder import Embedder, EmbeddingConfig, validate_api_key

__all__ = [
    "Embedder",
    "EmbeddingConfig",
    "SentenceChunker",
    "chunk_text",
    "validate_api_key",
]
