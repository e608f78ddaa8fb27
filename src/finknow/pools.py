"""Knowledge pools and their metadata contracts.

A pool is the ``entity_type`` tag on a stored chunk. The three built-in pools
carry a fixed, caller-agreed metadata shape that is validated before anything
is written; caller-defined pools accept any flat map of scalar values.
"""

from __future__ import annotations

import re
from typing import Any

from finknow.errors import ValidationError

PERSONAL_KNOWLEDGE = "personal_knowledge"
PERSONAL_GOALS = "personal_financial_goals"
GENERAL_KNOWLEDGE = "general_financial_knowledge"

BUILTIN_POOLS: tuple[str, ...] = (PERSONAL_KNOWLEDGE, PERSONAL_GOALS, GENERAL_KNOWLEDGE)

GOAL_STATUSES: frozenset[str] = frozenset(["active", "completed", "paused", "cancelled"])
CATEGORIES: frozenset[str] = frozenset(
    ["ahorro", "credito", "presupuesto", "inversiones", "deudas", "general"]
)

_POOL_NAME_RE = re.compile(r"[a-z][a-z0-9_]*")
_SCALARS = (str, int, float, bool, type(None))

# key -> (allowed python types, required)
_SCHEMAS: dict[str, dict[str, tuple[tuple[type, ...], bool]]] = {
    PERSONAL_KNOWLEDGE: {
        "type": ((str,), False),
    },
    PERSONAL_GOALS: {
        "type": ((str,), False),
        "goal_type": ((str,), True),
        "status": ((str,), True),
        "target_amount": ((int, float, type(None)), False),
    },
    GENERAL_KNOWLEDGE: {
        "type": ((str,), False),
        "category": ((str,), True),
        "source": ((str, type(None)), False),
    },
}

_TYPE_TAGS: dict[str, str] = {
    PERSONAL_KNOWLEDGE: "personal_knowledge",
    PERSONAL_GOALS: "personal_goal",
    GENERAL_KNOWLEDGE: "general_financial",
}


def validate_pool(entity_type: str) -> str:
    """Return *entity_type* if it is a usable pool name, else raise ValidationError."""
    if not isinstance(entity_type, str) or not _POOL_NAME_RE.fullmatch(entity_type):
        raise ValidationError(
            f"Invalid entity type {entity_type!r}: use lowercase letters, digits and '_'."
        )
    return entity_type


def validate_metadata(entity_type: str, metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    """Check *metadata* against the contract of *entity_type*.

    Built-in pools get their ``type`` tag filled in when missing. Returns a new
    dict (or None when no metadata was given for a pool without required keys).

    Raises:
        ValidationError: Unknown key, wrong value type, bad enum value, or a
            required key missing.
    """
    validate_pool(entity_type)
    schema = _SCHEMAS.get(entity_type)

    if metadata is None:
        if schema and any(required for _, required in schema.values()):
            missing = sorted(k for k, (_, req) in schema.items() if req)
            raise ValidationError(
                f"Metadata for '{entity_type}' is required (keys: {', '.join(missing)})."
            )
        return None

    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be a mapping of str to scalar values")

    for key, value in metadata.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"metadata keys must be non-empty strings, got {key!r}")
        if not isinstance(value, _SCALARS):
            raise ValidationError(
                f"metadata['{key}'] must be a scalar, got {type(value).__name__}"
            )

    if schema is None:
        return dict(metadata)

    unknown = set(metadata) - set(schema)
    if unknown:
        raise ValidationError(
            f"Unknown metadata keys for '{entity_type}': {', '.join(sorted(unknown))}"
        )

    for key, (types, required) in schema.items():
        if key not in metadata:
            if required:
                raise ValidationError(f"metadata['{key}'] is required for '{entity_type}'")
            continue
        value = metadata[key]
        # bool is an int subclass; numeric fields must not accept it
        if isinstance(value, bool) and bool not in types:
            raise ValidationError(f"metadata['{key}'] has an invalid type")
        if not isinstance(value, types):
            raise ValidationError(f"metadata['{key}'] has an invalid type")

    if entity_type == PERSONAL_GOALS and metadata["status"] not in GOAL_STATUSES:
        raise ValidationError(
            f"Invalid goal status {metadata['status']!r}; expected one of "
            f"{', '.join(sorted(GOAL_STATUSES))}."
        )
    if entity_type == GENERAL_KNOWLEDGE and metadata["category"] not in CATEGORIES:
        raise ValidationError(
            f"Invalid category {metadata['category']!r}; expected one of "
            f"{', '.join(sorted(CATEGORIES))}."
        )

    result = dict(metadata)
    result.setdefault("type", _TYPE_TAGS[entity_type])
    return result


def validate_filters(filters: dict[str, Any] | None) -> dict[str, Any]:
    """Metadata equality filters: flat str keys, scalar non-null values."""
    if not filters:
        return {}
    for key, value in filters.items():
        if not isinstance(key, str) or not key:
            raise ValidationError(f"metadata filter keys must be non-empty strings, got {key!r}")
        if value is None or not isinstance(value, _SCALARS):
            raise ValidationError(f"metadata filter '{key}' must be a non-null scalar")
    return dict(filters)


def goal_progress(current_amount: float | str | None, target_amount: float | str | None) -> float:
    """Percentage of *target_amount* reached, capped at 100. No or zero target → 0."""
    if target_amount in (None, ""):
        return 0.0
    current = float(current_amount or 0)
    target = float(target_amount)
    if target == 0:
        return 0.0
    return min(current / target * 100, 100.0)
