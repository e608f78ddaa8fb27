"""End-to-end scenario: one personal fact, queried through the caller-facing tools."""

from __future__ import annotations

import asyncio

import pytest

from finknow.pools import PERSONAL_KNOWLEDGE
from finknow.rag.tools import NO_RESULTS_MESSAGE, KnowledgeTools

FACT = "Gasté 12990 en el supermercado ayer."
QUESTION = "¿Cuánto gasté en el supermercado?"


@pytest.fixture
def tools(retriever, fake_embedder):
    fake_embedder.vectors[FACT] = [0.9, 0.1, 0.3, 0.0]
    # Close to the fact, but clearly not a near-duplicate (cosine ~0.93)
    fake_embedder.vectors[QUESTION] = [0.8, 0.4, 0.2, 0.1]
    return KnowledgeTools(retriever)


def test_ingest_short_fact_is_one_chunk(tools, store):
    result = asyncio.run(tools.retriever.add_knowledge(PERSONAL_KNOWLEDGE, "r1", FACT, user_id="u1"))
    assert result.embeddings_count == 1
    assert [c.content for c in store.list_entity_chunks(PERSONAL_KNOWLEDGE, "r1")] == [FACT]


def test_question_finds_the_fact(tools):
    asyncio.run(tools.retriever.add_knowledge(PERSONAL_KNOWLEDGE, "r1", FACT, user_id="u1"))

    records = asyncio.run(tools.search(QUESTION, user_id="u1", threshold=0.5))
    assert len(records) >= 1
    assert records[0].content == FACT
    assert records[0].similarity > 0.5


def test_strict_threshold_yields_placeholder(tools):
    asyncio.run(tools.retriever.add_knowledge(PERSONAL_KNOWLEDGE, "r1", FACT, user_id="u1"))

    records = asyncio.run(tools.search(QUESTION, user_id="u1", threshold=0.99))
    assert len(records) == 1
    assert records[0].content == NO_RESULTS_MESSAGE
    assert records[0].similarity == 0


def test_fact_is_its_own_best_match(tools):
    asyncio.run(tools.retriever.add_knowledge(PERSONAL_KNOWLEDGE, "r1", FACT, user_id="u1"))

    records = asyncio.run(tools.search(FACT, user_id="u1"))
    assert records[0].content == FACT
    assert records[0].similarity == pytest.approx(1.0, abs=1e-5)
