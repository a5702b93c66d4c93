"""Utilities for managing Kubernetes status conditions.

Conditions are kept as an ordered list of plain dicts, the shape the API
server stores them in::

    {"type", "status", "reason", "message", "lastTransitionTime", "observedGeneration"}

There is at most one entry per type. Entries are never removed: an absent
``Synced`` condition means a sync was never attempted, which is different
from ``Synced=False``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import COND_DELETING, COND_ERROR, COND_READY, COND_SYNCED


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def set_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Upsert a condition by type.

    When the existing (status, reason, message) triple is unchanged only
    ``observedGeneration`` is refreshed and ``lastTransitionTime`` is kept.
    Otherwise the triple and the transition time are overwritten. New types
    are appended, so the order of first appearance is preserved.

    Args:
        conditions: List of existing conditions, updated in place
        condition_type: Type of condition
        status: Status of condition ("True", "False", "Unknown")
        reason: Reason for the condition
        message: Human-readable message
        observed_generation: Generation of the desired state that produced it

    Returns:
        The same list, for chaining
    """
    for existing in conditions:
        if existing.get("type") != condition_type:
            continue
        if (
            existing.get("status") != status
            or existing.get("reason") != reason
            or existing.get("message") != message
        ):
            existing["status"] = status
            existing["reason"] = reason
            existing["message"] = message
            existing["lastTransitionTime"] = _now()
        if observed_generation is not None:
            existing["observedGeneration"] = observed_generation
        return conditions

    new_condition: dict[str, Any] = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": _now(),
    }
    if observed_generation is not None:
        new_condition["observedGeneration"] = observed_generation
    conditions.append(new_condition)
    return conditions


def _bool_status(value: bool) -> str:
    return "True" if value else "False"


def set_ready_condition(
    conditions: list[dict[str, Any]],
    ready: bool,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Ready condition."""
    return set_condition(conditions, COND_READY, _bool_status(ready), reason, message, observed_generation)


def set_synced_condition(
    conditions: list[dict[str, Any]],
    synced: bool,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Synced condition."""
    return set_condition(conditions, COND_SYNCED, _bool_status(synced), reason, message, observed_generation)


def set_error_condition(
    conditions: list[dict[str, Any]],
    has_error: bool,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Error condition."""
    return set_condition(conditions, COND_ERROR, _bool_status(has_error), reason, message, observed_generation)


def set_deleting_condition(
    conditions: list[dict[str, Any]],
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Deleting condition, which is always True once deletion started."""
    return set_condition(conditions, COND_DELETING, "True", reason, message, observed_generation)


def get_condition(conditions: list[dict[str, Any]], condition_type: str) -> dict[str, Any] | None:
    for cond in conditions:
        if cond.get("type") == condition_type:
            return cond
    return None


def is_condition_true(conditions: list[dict[str, Any]], condition_type: str) -> bool:
    cond = get_condition(conditions, condition_type)
    return cond is not None and cond.get("status") == "True"
