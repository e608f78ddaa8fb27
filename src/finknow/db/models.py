"""Domain models for the knowledge store."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class KnowledgeChunk:
    """One stored chunk: verbatim text, its vector, and its owning entity.

    Frozen: an update is a new chunk, never an in-place change.
    """

    entity_type: str
    entity_id: str
    content: str
    embedding: tuple[float, ...]
    user_id: str | None = None
    metadata: dict[str, Any] | None = None
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_utcnow)


@dataclass
class SearchResult:
    """A ranked hit. ``similarity`` is ``1 - cosine distance``."""

    content: str
    similarity: float
    entity_type: str
    entity_id: str
    user_id: str | None = None
    metadata: dict[str, Any] | None = None


@dataclass
class SearchFilters:
    """Conjunctive filters for a store query.

    Attributes:
        entity_types: Pools to search; None or empty means every pool.
        user_id: Caller identity used by the ownership filter.
        include_user_content: Allow rows with ``user_id == user_id``.
        include_general_content: Allow rows with no owner.
        metadata: Exact-match predicates on keys of the row's metadata.
    """

    entity_types: list[str] | None = None
    user_id: str | None = None
    include_user_content: bool = True
    include_general_content: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
