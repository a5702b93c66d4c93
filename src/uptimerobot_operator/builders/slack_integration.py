"""Slack integration payloads and drift comparison.

Integrations cannot be edited in place; a drifted integration is deleted
and created again.
"""

from __future__ import annotations

from typing import Any

INTEGRATION_TYPE_SLACK = "Slack"
DEFAULT_NOTIFICATIONS_FOR = "UpAndDown"
DEFAULT_WEBHOOK_URL_KEY = "webhookURL"


def build_slack_integration_data(integration: dict[str, Any], webhook_url: str) -> dict[str, Any]:
    return {
        "friendlyName": integration.get("friendlyName", ""),
        "enableNotificationsFor": integration.get("enableNotificationsFor") or DEFAULT_NOTIFICATIONS_FOR,
        "sslExpirationReminder": bool(integration.get("sslExpirationReminder", False)),
        "webhookURL": webhook_url,
        "customValue": integration.get("customValue", ""),
    }


def build_slack_integration_payload(data: dict[str, Any]) -> dict[str, Any]:
    return {"type": INTEGRATION_TYPE_SLACK, "data": data}


def integration_matches(existing: dict[str, Any], desired: dict[str, Any]) -> bool:
    """Compare an integration record from the API with the desired data."""
    return (
        (existing.get("type") or "") == INTEGRATION_TYPE_SLACK
        and (existing.get("friendlyName") or "") == desired["friendlyName"]
        and (existing.get("enableNotificationsFor") or "") == desired["enableNotificationsFor"]
        and bool(existing.get("sslExpirationReminder", False)) == desired["sslExpirationReminder"]
        and (existing.get("value") or "") == desired["webhookURL"]
        and (existing.get("customValue") or "") == desired["customValue"]
    )
