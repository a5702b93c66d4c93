"""Maintenance window payloads."""

from __future__ import annotations

import math
from typing import Any

from ..utils.durations import parse_duration

INTERVAL_ONCE = "once"


def duration_minutes(value: Any) -> int:
    """Whole minutes, rounded up, at least one."""
    seconds = parse_duration(value, 0) or 0
    return max(1, int(math.ceil(seconds / 60)))


def build_maintenance_window_payload(spec: dict[str, Any], monitor_ids: list[int]) -> dict[str, Any]:
    """Build the create/update body. ``date`` is only valid for one-off windows."""
    auto_add = bool(spec.get("autoAddMonitors", False))
    payload: dict[str, Any] = {
        "name": spec.get("name", ""),
        "autoAddMonitors": auto_add,
        "interval": spec.get("interval", ""),
        "time": spec.get("startTime", ""),
        "duration": duration_minutes(spec.get("duration")),
    }
    if spec.get("days"):
        payload["days"] = list(spec["days"])
    if not auto_add:
        payload["monitorIds"] = list(monitor_ids)
    if spec.get("interval") == INTERVAL_ONCE and spec.get("startDate"):
        payload["date"] = spec["startDate"]
    return payload
