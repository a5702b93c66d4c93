"""Monitor payloads and heartbeat URL construction."""

from __future__ import annotations

import os
import re
from typing import Any

from ..constants import DEFAULT_HEARTBEAT_BASE_URL
from ..utils.durations import parse_duration

# Spec type name -> API type name
MONITOR_TYPES = {
    "HTTPS": "HTTP",
    "Keyword": "Keyword",
    "Ping": "Ping",
    "Port": "Port",
    "Heartbeat": "Heartbeat",
    "DNS": "DNS",
}
_API_TO_SPEC = {api.upper(): spec for spec, api in MONITOR_TYPES.items()}

HTTP_METHODS = ("HEAD", "GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
AUTH_TYPES = {"Basic": "HTTP_BASIC", "Digest": "DIGEST"}
POST_TYPES = {"KeyValue": "KEY_VALUE", "RawData": "RAW_JSON"}
KEYWORD_TYPES = {"Exists": "ALERT_EXISTS", "NotExists": "ALERT_NOT_EXISTS"}
DNS_RECORD_TYPES = ("a", "aaaa", "cname", "mx", "ns", "txt", "srv", "ptr", "soa", "spf")

DEFAULT_GRACE_PERIOD = 60
MAX_GRACE_PERIOD = 86400
MONITOR_PAUSED = 0
MONITOR_RUNNING = 1

_PREFIXED_HEARTBEAT_KEY = re.compile(r"^m\d+-")


def monitor_type_to_api(spec_type: str | None) -> str:
    return MONITOR_TYPES.get(spec_type or "", "HTTP")


def monitor_type_from_api(api_type: str | None) -> str:
    """Map an API type (``HTTP``, ``HEARTBEAT``...) back to the spec name."""
    return _API_TO_SPEC.get((api_type or "").upper(), "HTTPS")


def _seconds(value: Any, default: float = 0) -> int:
    return int(parse_duration(value, default) or 0)


def grace_period_seconds(values: dict[str, Any]) -> int:
    grace = _seconds(values.get("gracePeriod"), DEFAULT_GRACE_PERIOD)
    return max(0, min(grace, MAX_GRACE_PERIOD))


def contacts_payload(contacts: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert resolved contacts to ``assignedAlertContacts`` entries.

    Contacts without an ID are skipped. Threshold is in seconds, recurrence
    in whole minutes.
    """
    result = []
    for contact in contacts:
        contact_id = str(contact.get("id") or "")
        if not contact_id:
            continue
        threshold = max(_seconds(contact.get("threshold")), 0)
        recurrence = int(round((parse_duration(contact.get("recurrence"), 0) or 0) / 60))
        result.append(
            {
                "alertContactId": contact_id,
                "threshold": threshold,
                "recurrence": recurrence,
            }
        )
    return result


def build_monitor_payload(
    values: dict[str, Any],
    contacts: list[dict[str, Any]] | None = None,
    update: bool = False,
) -> dict[str, Any]:
    """Build the create (POST) or update (PATCH) body for a monitor.

    Args:
        values: ``spec.monitor`` with auth credentials already resolved
        contacts: Resolved contacts (id, threshold, recurrence)
        update: Build the PATCH body, which never carries the URL of DNS
            and Heartbeat monitors
    """
    monitor_type = values.get("type") or "HTTPS"
    method = (values.get("method") or "HEAD").upper()
    if method not in HTTP_METHODS:
        method = "HEAD"

    interval = values.get("interval")
    if interval is None and monitor_type == "Heartbeat":
        interval = (values.get("heartbeat") or {}).get("interval")

    payload: dict[str, Any] = {
        "friendly_name": values.get("name", ""),
        "interval": _seconds(interval),
        "timeout": _seconds(values.get("timeout")),
        "grace_period": grace_period_seconds(values),
        "http_method": method,
    }
    if update:
        if monitor_type not in ("DNS", "Heartbeat"):
            payload["url"] = values.get("url", "")
    else:
        payload["url"] = values.get("url", "")
        payload["type"] = monitor_type_to_api(monitor_type)

    auth = values.get("auth")
    if auth:
        payload["http_auth_type"] = AUTH_TYPES.get(auth.get("type", ""), "NONE")
        payload["http_username"] = auth.get("username", "")
        payload["http_password"] = auth.get("password", "")

    post = values.get("post")
    if post and method not in ("HEAD", "GET"):
        payload["post_type"] = POST_TYPES.get(post.get("postType") or post.get("type") or "", "KEY_VALUE")
        payload["post_value"] = post.get("value", "")

    keyword = values.get("keyword")
    if monitor_type == "Keyword" and keyword:
        payload["keyword_type"] = KEYWORD_TYPES.get(keyword.get("type", ""), "ALERT_EXISTS")
        payload["keyword_case_type"] = 1 if keyword.get("caseSensitive") else 0
        payload["keyword_value"] = keyword.get("value", "")

    port = values.get("port")
    if monitor_type == "Port" and port:
        payload["port"] = int(port.get("number", 0))

    dns = values.get("dns")
    if monitor_type == "DNS" and dns:
        records = {key.upper(): dns[key] for key in DNS_RECORD_TYPES if dns.get(key)}
        config: dict[str, Any] = {"dnsRecords": records}
        if dns.get("sslExpirationPeriodDays"):
            config["sslExpirationPeriodDays"] = dns["sslExpirationPeriodDays"]
        payload["config"] = config

    if monitor_type == "Heartbeat":
        payload["config"] = {}

    payload["assignedAlertContacts"] = contacts_payload(contacts or [])

    optional = {
        "tags": "tagNames",
        "customHttpHeaders": "customHttpHeaders",
        "successHttpResponseCodes": "successHttpResponseCodes",
    }
    for spec_key, api_key in optional.items():
        if values.get(spec_key):
            payload[api_key] = values[spec_key]
    for flag in (
        "checkSSLErrors",
        "sslExpirationReminder",
        "domainExpirationReminder",
        "followRedirections",
        "responseTimeThreshold",
        "groupId",
    ):
        if values.get(flag) is not None:
            payload[flag] = values[flag]
    if values.get("region"):
        payload["regionalData"] = values["region"]
    if values.get("maintenanceWindowIds"):
        payload["maintenanceWindowsIds"] = values["maintenanceWindowIds"]

    return payload


def desired_monitor_status(values: dict[str, Any]) -> int:
    status = values.get("status")
    if status is None:
        return MONITOR_RUNNING
    if isinstance(status, str):
        return MONITOR_PAUSED if status.strip().lower() in ("0", "paused") else MONITOR_RUNNING
    return MONITOR_PAUSED if int(status) == MONITOR_PAUSED else MONITOR_RUNNING


# Heartbeat URLs


def normalize_heartbeat_base_url(base_url: str | None) -> str:
    trimmed = (base_url or "").strip()
    if not trimmed:
        return DEFAULT_HEARTBEAT_BASE_URL
    if not trimmed.startswith(("http://", "https://")):
        trimmed = "https://" + trimmed
    return trimmed.rstrip("/")


def configured_heartbeat_base_url() -> str:
    return normalize_heartbeat_base_url(os.getenv("UPTIMEROBOT_HEARTBEAT_BASE_URL"))


def is_prefixed_heartbeat_key(value: str) -> bool:
    """True for tokens already shaped ``m<digits>-<rest>``."""
    return bool(_PREFIXED_HEARTBEAT_KEY.match(value))


def build_heartbeat_url(base_url: str | None, monitor_id: str | None, token: str | None) -> str:
    """Turn the token the API returns for heartbeat monitors into a full URL."""
    trimmed = (token or "").strip()
    if not trimmed:
        return ""
    if trimmed.startswith(("http://", "https://")):
        return trimmed
    base = normalize_heartbeat_base_url(base_url)
    if is_prefixed_heartbeat_key(trimmed):
        return f"{base}/{trimmed}"
    if monitor_id:
        return f"{base}/m{monitor_id}-{trimmed}"
    return f"{base}/{trimmed}"
