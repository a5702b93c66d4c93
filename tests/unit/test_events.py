"""Tests for Kubernetes event utilities."""

from __future__ import annotations

from unittest.mock import patch

from uptimerobot_operator.utils.events import (
    KopfEventRecorder,
    emit_event,
    emit_reconcile_failed,
    emit_reconcile_started,
    emit_validate_failed,
)


class TestEmitEvent:
    """Test cases for event emission."""

    @patch("uptimerobot_operator.utils.events.kopf.event")
    def test_emit_event_normal(self, mock_event):
        """Test emitting a normal event."""
        meta = {"name": "web", "namespace": "default"}

        emit_event(meta, "Created", "monitor created")

        mock_event.assert_called_once_with(meta, reason="Created", message="monitor created", type="Normal")

    @patch("uptimerobot_operator.utils.events.kopf.event")
    def test_reconcile_events(self, mock_event):
        """Test the reconcile and validation helpers."""
        meta = {"name": "web"}

        emit_reconcile_started(meta)
        emit_reconcile_failed(meta, "boom")
        emit_validate_failed(meta, "bad spec")

        calls = [(c.kwargs["reason"], c.kwargs["type"]) for c in mock_event.call_args_list]
        assert calls == [
            ("ReconcileStarted", "Normal"),
            ("ReconcileFailed", "Warning"),
            ("ValidateFailed", "Warning"),
        ]


class TestKopfEventRecorder:
    """Test cases for KopfEventRecorder."""

    @patch("uptimerobot_operator.utils.events.kopf.event")
    def test_record_sanitizes(self, mock_event):
        """Test that recorded messages are sanitized."""
        body = {"metadata": {"name": "slack"}}

        KopfEventRecorder(body).record("CleanupError", "failed: https://hooks.slack.com/services/T/B/C", "Warning")

        kwargs = mock_event.call_args.kwargs
        assert kwargs["message"] == "failed: https://hooks.slack.com/services/[REDACTED]"
        assert kwargs["type"] == "Warning"

    @patch("uptimerobot_operator.utils.events.kopf.event", side_effect=RuntimeError("no loop"))
    def test_record_swallows_failures(self, mock_event):
        """Test that event posting failures never propagate."""
        KopfEventRecorder({}).record("CleanupSuccess", "done")

        mock_event.assert_called_once()
