"""Tests for pool names, metadata contracts and goal progress."""

from __future__ import annotations

import pytest

from finknow.errors import ValidationError
from finknow.pools import (
    GENERAL_KNOWLEDGE,
    PERSONAL_GOALS,
    PERSONAL_KNOWLEDGE,
    goal_progress,
    validate_filters,
    validate_metadata,
    validate_pool,
)


# ------------------------------------------------------------------
# validate_pool
# ------------------------------------------------------------------


@pytest.mark.parametrize("name", [PERSONAL_KNOWLEDGE, GENERAL_KNOWLEDGE, "budget_notes", "x1"])
def test_valid_pool_names(name):
    assert validate_pool(name) == name


@pytest.mark.parametrize("name", ["", "Personal", "1pool", "pool-name", "pool name", None])
def test_invalid_pool_names(name):
    with pytest.raises(ValidationError):
        validate_pool(name)


# ------------------------------------------------------------------
# validate_metadata — built-in pools
# ------------------------------------------------------------------


def test_personal_knowledge_without_metadata_is_none():
    assert validate_metadata(PERSONAL_KNOWLEDGE, None) is None


def test_personal_knowledge_type_tag_filled():
    assert validate_metadata(PERSONAL_KNOWLEDGE, {}) == {"type": "personal_knowledge"}


def test_goal_metadata_accepted_and_tagged():
    meta = validate_metadata(
        PERSONAL_GOALS, {"goal_type": "ahorro", "status": "active", "target_amount": 1500000}
    )
    assert meta == {
        "goal_type": "ahorro",
        "status": "active",
        "target_amount": 1500000,
        "type": "personal_goal",
    }


def test_goal_metadata_does_not_mutate_input():
    original = {"goal_type": "ahorro", "status": "active"}
    validate_metadata(PERSONAL_GOALS, original)
    assert "type" not in original


def test_goal_requires_metadata():
    with pytest.raises(ValidationError, match="required"):
        validate_metadata(PERSONAL_GOALS, None)


def test_goal_missing_status_rejected():
    with pytest.raises(ValidationError, match="status"):
        validate_metadata(PERSONAL_GOALS, {"goal_type": "ahorro"})


def test_goal_bad_status_rejected():
    with pytest.raises(ValidationError, match="status"):
        validate_metadata(PERSONAL_GOALS, {"goal_type": "ahorro", "status": "archived"})


def test_goal_bool_amount_rejected():
    with pytest.raises(ValidationError, match="target_amount"):
        validate_metadata(
            PERSONAL_GOALS, {"goal_type": "ahorro", "status": "active", "target_amount": True}
        )


def test_general_category_enum():
    meta = validate_metadata(GENERAL_KNOWLEDGE, {"category": "ahorro", "source": "CMF"})
    assert meta["type"] == "general_financial"

    with pytest.raises(ValidationError, match="category"):
        validate_metadata(GENERAL_KNOWLEDGE, {"category": "crypto"})


def test_unknown_key_rejected_for_builtin_pool():
    with pytest.raises(ValidationError, match="Unknown metadata keys"):
        validate_metadata(GENERAL_KNOWLEDGE, {"category": "ahorro", "author": "x"})


# ------------------------------------------------------------------
# validate_metadata — custom pools
# ------------------------------------------------------------------


def test_custom_pool_accepts_any_scalars():
    meta = {"a": 1, "b": "x", "c": None, "d": 2.5, "e": False}
    assert validate_metadata("budget_notes", meta) == meta


def test_custom_pool_rejects_nested_values():
    with pytest.raises(ValidationError, match="scalar"):
        validate_metadata("budget_notes", {"tags": ["a", "b"]})


# ------------------------------------------------------------------
# validate_filters
# ------------------------------------------------------------------


def test_filters_none_is_empty():
    assert validate_filters(None) == {}


def test_filters_reject_null_and_nested():
    with pytest.raises(ValidationError):
        validate_filters({"category": None})
    with pytest.raises(ValidationError):
        validate_filters({"category": {"$in": ["a"]}})


# ------------------------------------------------------------------
# goal_progress
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "current,target,expected",
    [
        (500_000, 1_000_000, 50.0),
        (2_000_000, 1_000_000, 100.0),
        ("250", "1000", 25.0),
        (None, 1000, 0.0),
        (100, 0, 0.0),
        (100, None, 0.0),
    ],
)
def test_goal_progress(current, target, expected):
    assert goal_progress(current, target) == pytest.approx(expected)
