"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import kopf

from ..constants import (
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
)
from .errors import sanitize_error_message

logger = logging.getLogger(__name__)


def emit_event(
    meta: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        meta: Resource body or metadata the event refers to
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        meta,
        reason=reason,
        message=message,
        type=type_,
    )


class EventRecorder(Protocol):
    """Best-effort sink for operator-visible notices."""

    def record(self, reason: str, message: str, type_: str = "Normal") -> None:
        ...


class KopfEventRecorder:
    """EventRecorder that posts events for one object through kopf.

    Events are telemetry: failures to post are logged and swallowed.
    """

    def __init__(self, body: dict[str, Any]):
        self.body = body

    def record(self, reason: str, message: str, type_: str = "Normal") -> None:
        try:
            emit_event(self.body, reason, sanitize_error_message(message), type_=type_)
        except Exception as e:
            logger.debug(f"Failed to post event {reason}: {e}")


def emit_reconcile_started(meta: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(meta, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(meta: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(meta, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_failed(meta: dict[str, Any], message: str) -> None:
    """Emit validation failed event."""
    emit_event(meta, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")
