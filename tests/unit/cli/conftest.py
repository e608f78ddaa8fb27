"""CLI fixtures: a project dir with a 4-dim config and a patched embedding provider."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest
import yaml

# Deterministic 4-dim vectors: texts containing a keyword point along its axis.
_AXES = {"ahorro": 0, "deuda": 1, "sueldo": 2}


def fake_vector(text: str) -> list[float]:
    vector = [0.0, 0.0, 0.0, 0.0]
    for keyword, axis in _AXES.items():
        if keyword in text.lower():
            vector[axis] = 1.0
    if not any(vector):
        vector[3] = 1.0
    return vector


async def _fake_aembedding(model, input, **kwargs):
    return SimpleNamespace(
        data=[{"index": i, "embedding": fake_vector(text)} for i, text in enumerate(input)]
    )


@pytest.fixture
def project(tmp_path, monkeypatch):
    """cwd = tmp project with finknow.yaml (4 dims); OPENAI_API_KEY set; provider patched."""
    (tmp_path / "finknow.yaml").write_text(
        yaml.dump({"embedding": {"model": "openai/text-embedding-3-small", "dimensions": 4}}),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    with patch("finknow.ingest.embedder.litellm.aembedding", _fake_aembedding):
        yield tmp_path
