"""Tests for SentenceChunker."""

from __future__ import annotations

import pytest

from finknow.ingest.chunker import SentenceChunker, chunk_text


@pytest.fixture
def chunker():
    return SentenceChunker()


# ------------------------------------------------------------------
# Short text / empty input
# ------------------------------------------------------------------


def test_short_text_is_one_trimmed_chunk(chunker):
    assert chunker.chunk("  Mi sueldo es 1.200.000.  ") == ["Mi sueldo es 1.200.000."]


def test_short_text_with_sentences_not_split(chunker):
    text = "Ahorro 10%. Pago deudas. Invierto poco."
    assert chunker.chunk(text) == [text]


@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
def test_empty_input_yields_no_chunks(chunker, text):
    assert chunker.chunk(text) == []


# ------------------------------------------------------------------
# Sentence packing
# ------------------------------------------------------------------


def _sentence(n: int, start: str = "A") -> str:
    """A sentence of exactly *n* characters, ending in a period."""
    return start + "x" * (n - 2) + "."


def test_sentences_packed_under_max(chunker):
    sentences = [_sentence(100, c) for c in "ABCDE"]
    chunks = chunker.chunk(" ".join(sentences))

    # 100 + 100 < 300 fits, a third sentence would reach 201 + 100 >= 300
    assert chunks == [
        f"{sentences[0]} {sentences[1]}",
        f"{sentences[2]} {sentences[3]}",
        sentences[4],
    ]
    assert all(len(c) <= 300 for c in chunks)


def test_long_sentence_is_never_split(chunker):
    long = _sentence(400, "L")
    chunks = chunker.chunk(f"{long} {_sentence(50, 'B')}")
    assert chunks[0] == long


def test_order_preserved_and_nothing_lost(chunker):
    sentences = [_sentence(90, c) for c in "ABCDEFG"]
    chunks = chunker.chunk(" ".join(sentences))
    assert " ".join(chunks) == " ".join(sentences)


def test_accented_uppercase_starts_sentence():
    text = "Primero ahorra. Ésta es la segunda. Ñandú cierra."
    assert SentenceChunker.split_sentences(text) == [
        "Primero ahorra.",
        "Ésta es la segunda.",
        "Ñandú cierra.",
    ]


def test_lowercase_after_period_is_not_a_boundary():
    assert SentenceChunker.split_sentences("Pagué 3 cuotas aprox. el mes pasado.") == [
        "Pagué 3 cuotas aprox. el mes pasado."
    ]


@pytest.mark.parametrize("mark", ["!", "?"])
def test_other_terminators(mark):
    assert SentenceChunker.split_sentences(f"Hola{mark} Chao.") == [f"Hola{mark}", "Chao."]


# ------------------------------------------------------------------
# Comma fallback
# ------------------------------------------------------------------


def test_single_long_sentence_splits_on_commas(chunker):
    parts = [
        "gasto mucho en transporte público cada semana",
        "ok",
        "también en comida rápida cuando salgo tarde del trabajo",
        "y en suscripciones que casi no uso pero sigo pagando",
        "además de algunos regalos para la familia",
    ]
    text = ", ".join(parts) + " " + "y" * 20
    chunks = chunker.chunk(text)

    assert "ok" not in chunks  # fragments of <= 10 chars are dropped
    assert chunks[0] == parts[0]
    assert len(chunks) == 4


def test_comma_fallback_with_no_surviving_fragment_keeps_text():
    chunker = SentenceChunker(short_text_chars=5, min_fragment_chars=10)
    text = "uno, dos, tres"
    assert chunker.chunk(text) == [text]


# ------------------------------------------------------------------
# Config / module helper
# ------------------------------------------------------------------


def test_custom_thresholds():
    chunker = SentenceChunker(short_text_chars=10, max_chunk_chars=40)
    chunks = chunker.chunk("Primera frase aquí. Segunda frase aquí. Tercera frase aquí.")
    assert chunks == ["Primera frase aquí. Segunda frase aquí.", "Tercera frase aquí."]


def test_invalid_thresholds_rejected():
    with pytest.raises(ValueError):
        SentenceChunker(max_chunk_chars=0)


def test_deterministic(chunker):
    text = " ".join(_sentence(120, c) for c in "ABCD")
    assert chunker.chunk(text) == chunker.chunk(text)


def test_chunk_text_uses_defaults():
    assert chunk_text("Hola.") == ["Hola."]
