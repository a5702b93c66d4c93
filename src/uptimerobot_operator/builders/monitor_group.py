"""Monitor group payloads."""

from __future__ import annotations

from typing import Any


def build_monitor_group_payload(spec: dict[str, Any], monitor_ids: list[int]) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": spec.get("friendlyName", ""),
        "monitorIds": list(monitor_ids),
    }
    if spec.get("pullFromGroups"):
        payload["groupIds"] = list(spec["pullFromGroups"])
    return payload
