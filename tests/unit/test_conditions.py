"""Tests for condition utilities."""

from __future__ import annotations

from unittest.mock import patch

from uptimerobot_operator.constants import COND_DELETING, COND_ERROR, COND_READY, COND_SYNCED
from uptimerobot_operator.utils.conditions import (
    get_condition,
    is_condition_true,
    set_condition,
    set_deleting_condition,
    set_error_condition,
    set_ready_condition,
    set_synced_condition,
)


class TestSetCondition:
    """Test cases for set_condition."""

    def test_appends_new_condition(self):
        """Test that a new condition type is appended with all fields."""
        conditions = []

        set_condition(conditions, COND_READY, "True", "ReconcileSuccess", "ok", observed_generation=3)

        assert len(conditions) == 1
        cond = conditions[0]
        assert cond["type"] == COND_READY
        assert cond["status"] == "True"
        assert cond["reason"] == "ReconcileSuccess"
        assert cond["message"] == "ok"
        assert cond["observedGeneration"] == 3
        assert cond["lastTransitionTime"]

    def test_one_entry_per_type(self):
        """Test that setting the same type twice keeps a single entry."""
        conditions = []

        set_condition(conditions, COND_READY, "True", "A", "first", 1)
        set_condition(conditions, COND_READY, "False", "B", "second", 2)

        assert len(conditions) == 1
        assert conditions[0]["status"] == "False"
        assert conditions[0]["reason"] == "B"
        assert conditions[0]["message"] == "second"
        assert conditions[0]["observedGeneration"] == 2

    def test_unchanged_triple_keeps_transition_time(self):
        """Test that only observedGeneration moves when nothing else changed."""
        conditions = []
        with patch("uptimerobot_operator.utils.conditions._now", return_value="2024-01-01T00:00:00Z"):
            set_condition(conditions, COND_SYNCED, "True", "SyncSuccess", "ok", 1)
        with patch("uptimerobot_operator.utils.conditions._now", return_value="2024-06-01T00:00:00Z"):
            set_condition(conditions, COND_SYNCED, "True", "SyncSuccess", "ok", 2)

        assert conditions[0]["lastTransitionTime"] == "2024-01-01T00:00:00Z"
        assert conditions[0]["observedGeneration"] == 2

    def test_changed_message_updates_transition_time(self):
        """Test that a message change counts as a transition."""
        conditions = []
        with patch("uptimerobot_operator.utils.conditions._now", return_value="2024-01-01T00:00:00Z"):
            set_condition(conditions, COND_ERROR, "True", "APIError", "boom", 1)
        with patch("uptimerobot_operator.utils.conditions._now", return_value="2024-06-01T00:00:00Z"):
            set_condition(conditions, COND_ERROR, "True", "APIError", "different boom", 1)

        assert conditions[0]["lastTransitionTime"] == "2024-06-01T00:00:00Z"

    def test_preserves_order_of_first_appearance(self):
        """Test that conditions keep the order they were first set in."""
        conditions = []

        set_ready_condition(conditions, True, "R", "m", 1)
        set_synced_condition(conditions, True, "S", "m", 1)
        set_error_condition(conditions, False, "R", "", 1)
        set_ready_condition(conditions, False, "R2", "m2", 2)

        assert [c["type"] for c in conditions] == [COND_READY, COND_SYNCED, COND_ERROR]


class TestConditionHelpers:
    """Test cases for the typed condition helpers."""

    def test_ready_and_error_are_independent(self):
        """Test that Ready and Error can both be False."""
        conditions = []

        set_ready_condition(conditions, False, "ReconcileError", "waiting", 1)
        set_error_condition(conditions, False, "ReconcileSuccess", "", 1)

        assert not is_condition_true(conditions, COND_READY)
        assert not is_condition_true(conditions, COND_ERROR)

    def test_deleting_is_always_true(self):
        """Test that the Deleting condition is True whatever the reason."""
        conditions = []

        set_deleting_condition(conditions, "Error", "Cleanup failed: boom", 4)

        cond = get_condition(conditions, COND_DELETING)
        assert cond["status"] == "True"
        assert cond["reason"] == "Error"

    def test_get_condition_missing(self):
        """Test that an absent condition is None, not False."""
        assert get_condition([], COND_SYNCED) is None
        assert is_condition_true([], COND_SYNCED) is False
