"""Sentence chunker — short text passthrough, sentence packing, comma fallback.

Rules, in order:
  1. Trim. Fewer than ``short_text_chars`` characters → one chunk.
  2. Split after ``.``/``!``/``?`` + whitespace when the next character is an
     uppercase letter (ASCII or Á É Í Ó Ú Ñ). Abbreviations followed by a
     lowercase word are not boundaries.
  3. Exactly one sentence → split on ", " instead and keep fragments longer
     than ``min_fragment_chars``.
  4. Otherwise pack sentences greedily while ``len(acc) + len(sentence)`` stays
     under ``max_chunk_chars``. A sentence is never split.
"""

from __future__ import annotations

import re

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+(?=[A-ZÁÉÍÓÚÑ])")
_COMMA_BOUNDARY = re.compile(r",\s+")


class SentenceChunker:
    """Split free-form text into segments sized for embedding.

    Pure and deterministic: identical input always yields identical output, in
    input order.
    """

    def __init__(
        self,
        short_text_chars: int = 200,
        max_chunk_chars: int = 300,
        min_fragment_chars: int = 10,
    ) -> None:
        if short_text_chars < 1 or max_chunk_chars < 1:
            raise ValueError("chunk sizes must be >= 1")
        if min_fragment_chars < 0:
            raise ValueError("min_fragment_chars must be >= 0")
        self.short_text_chars = short_text_chars
        self.max_chunk_chars = max_chunk_chars
        self.min_fragment_chars = min_fragment_chars

    def chunk(self, text: str) -> list[str]:
        text = text.strip()
        if not text:
            return []
        if len(text) < self.short_text_chars:
            return [text]

        sentences = self.split_sentences(text)
        if len(sentences) == 1:
            fragments = self._split_commas(text)
            # nothing survived the length filter: keep the sentence whole
            return fragments or [text]

        return [c for c in self._pack(sentences) if c]

    @staticmethod
    def split_sentences(text: str) -> list[str]:
        """Split *text* on sentence boundaries; trimmed, empties dropped."""
        return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]

    def _split_commas(self, text: str) -> list[str]:
        return [
            f.strip()
            for f in _COMMA_BOUNDARY.split(text)
            if len(f.strip()) > self.min_fragment_chars
        ]

    def _pack(self, sentences: list[str]) -> list[str]:
        chunks: list[str] = []
        current = ""
        for sentence in sentences:
            if not current:
                current = sentence
            elif len(current) + len(sentence) < self.max_chunk_chars:
                current += " " + sentence
            else:
                chunks.append(current)
                current = sentence
        if current:
            chunks.append(current)
        return chunks


def chunk_text(text: str) -> list[str]:
    """Chunk *text* with the default thresholds (200 / 300 / 10)."""
    return SentenceChunker().chunk(text)
