"""Synchronous client for the UptimeRobot v3 REST API."""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

import httpx
from httpx_retries import Retry, RetryTransport

from ... import metrics
from ...utils.rate_limit import rate_limit_uptimerobot
from .base import ConflictError, NotFoundError, UptimeRobotAPIError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.uptimerobot.com/v3"


def api_base_url() -> str:
    return os.getenv("UPTIME_ROBOT_API", "").rstrip("/") or DEFAULT_API_URL


@dataclass(frozen=True)
class RetryPolicy:
    total: int = 5
    backoff_factor: float = 1.0
    max_backoff_wait: float = 60.0
    respect_retry_after_header: bool = True
    allowed_methods: frozenset[str] = field(
        default_factory=lambda: frozenset({"DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"})
    )
    status_forcelist: frozenset[int] = field(default_factory=lambda: frozenset({429, 500, 502, 503, 504}))
    retry_on_exceptions: tuple[type[httpx.HTTPError], ...] = (
        httpx.TimeoutException,
        httpx.NetworkError,
        httpx.RemoteProtocolError,
    )
    backoff_jitter: float = 1.0

    def build(self) -> Retry:
        return Retry(
            total=self.total,
            backoff_factor=self.backoff_factor,
            max_backoff_wait=self.max_backoff_wait,
            respect_retry_after_header=self.respect_retry_after_header,
            allowed_methods=tuple(self.allowed_methods),
            status_forcelist=tuple(self.status_forcelist),
            retry_on_exceptions=self.retry_on_exceptions,
            backoff_jitter=self.backoff_jitter,
        )


def parse_existing_id(body: Any) -> str | None:
    """Extract the ID of the existing entity from a 409 body.

    Looks at a top-level ``id``, then ``data.id`` and ``monitor.id``.
    """
    if not isinstance(body, dict):
        return None
    candidates = [body.get("id")]
    for nested in ("data", "monitor"):
        inner = body.get(nested)
        if isinstance(inner, dict):
            candidates.append(inner.get("id"))
    for value in candidates:
        if isinstance(value, bool):
            continue
        if isinstance(value, int) and value > 0:
            return str(value)
        if isinstance(value, str) and value.strip().isdigit() and int(value) > 0:
            return value.strip()
    return None


class UptimeRobotClient:
    """Client for one UptimeRobot account.

    Transport errors and retryable statuses are retried by the transport;
    whatever is left surfaces as UptimeRobotAPIError (NotFoundError and
    ConflictError for 404 and 409).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        timeout: float = 30.0,
        retry: RetryPolicy | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = (base_url or api_base_url()).rstrip("/")
        retry_transport = RetryTransport(
            retry=(retry or RetryPolicy()).build(),
            transport=transport or httpx.HTTPTransport(),
        )
        self._http = httpx.Client(
            base_url=self.base_url + "/",
            timeout=timeout,
            transport=retry_transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "Cache-Control": "no-cache",
            },
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "UptimeRobotClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # Transport

    def _request(self, method: str, path: str, operation: str, payload: Any = None) -> Any:
        start_time = time.time()
        result = "error"
        try:
            response = rate_limit_uptimerobot(self._http.request)(method, path, json=payload)
        except httpx.HTTPError as e:
            metrics.api_call_total.labels(api_type="uptimerobot", operation=operation, result="error").inc()
            raise UptimeRobotAPIError(f"{method} {path} failed: {e}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="uptimerobot", operation=operation).observe(duration)

        try:
            body = response.json() if response.content else None
        except json.JSONDecodeError:
            body = response.text

        if response.is_success:
            result = "success"
        elif response.status_code == 404:
            result = "not_found"
        elif response.status_code == 409:
            result = "conflict"
        elif response.status_code == 429:
            metrics.rate_limit_hits_total.labels(api_type="uptimerobot").inc()
        metrics.api_call_total.labels(api_type="uptimerobot", operation=operation, result=result).inc()

        if response.is_success:
            if isinstance(body, str):
                raise UptimeRobotAPIError(
                    f"{method} {path}: unexpected non-JSON response", status=response.status_code, body=body
                )
            return body

        message = f"{method} {path}: {response.status_code} {response.reason_phrase} - {response.text}"
        if response.status_code == 404:
            raise NotFoundError(message, status=404, body=body)
        if response.status_code == 409:
            raise ConflictError(message, body=body, existing_id=parse_existing_id(body))
        raise UptimeRobotAPIError(message, status=response.status_code, body=body)

    def _list(self, path: str, operation: str) -> list[dict[str, Any]]:
        """GET a collection, following ``nextLink`` until the last page."""
        items: list[dict[str, Any]] = []
        next_path: str | None = path
        while next_path:
            body = self._request("GET", next_path, operation)
            if isinstance(body, list):
                items.extend(body)
                break
            body = body or {}
            items.extend(body.get("data") or [])
            link = body.get("nextLink")
            if not link:
                break
            if not link.startswith("http"):
                link = urljoin(self.base_url + "/", link.lstrip("/"))
            next_path = link
        return items

    def _delete(self, path: str, operation: str) -> None:
        try:
            self._request("DELETE", path, operation)
        except NotFoundError:
            logger.debug(f"{path} already deleted")

    # Monitors

    def create_monitor(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "monitors", "create_monitor", payload) or {}

    def get_monitor(self, monitor_id: str) -> dict[str, Any]:
        return self._request("GET", f"monitors/{monitor_id}", "get_monitor") or {}

    def update_monitor(self, monitor_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("PATCH", f"monitors/{monitor_id}", "update_monitor", payload) or {}

    def delete_monitor(self, monitor_id: str) -> None:
        self._delete(f"monitors/{monitor_id}", "delete_monitor")

    def list_monitors(self) -> list[dict[str, Any]]:
        return self._list("monitors", "list_monitors")

    def pause_monitor(self, monitor_id: str) -> None:
        self._request("POST", f"monitors/{monitor_id}/pause", "pause_monitor")

    def start_monitor(self, monitor_id: str) -> None:
        self._request("POST", f"monitors/{monitor_id}/start", "start_monitor")

    # Maintenance windows

    def create_maintenance_window(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "maintenance-windows", "create_maintenance_window", payload) or {}

    def get_maintenance_window(self, window_id: str) -> dict[str, Any]:
        return self._request("GET", f"maintenance-windows/{window_id}", "get_maintenance_window") or {}

    def update_maintenance_window(self, window_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return (
            self._request("PATCH", f"maintenance-windows/{window_id}", "update_maintenance_window", payload) or {}
        )

    def delete_maintenance_window(self, window_id: str) -> None:
        self._delete(f"maintenance-windows/{window_id}", "delete_maintenance_window")

    def list_maintenance_windows(self) -> list[dict[str, Any]]:
        return self._list("maintenance-windows", "list_maintenance_windows")

    # Monitor groups

    def create_monitor_group(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "monitor-groups", "create_monitor_group", payload) or {}

    def get_monitor_group(self, group_id: str) -> dict[str, Any]:
        return self._request("GET", f"monitor-groups/{group_id}", "get_monitor_group") or {}

    def update_monitor_group(self, group_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("PATCH", f"monitor-groups/{group_id}", "update_monitor_group", payload) or {}

    def delete_monitor_group(self, group_id: str) -> None:
        self._delete(f"monitor-groups/{group_id}", "delete_monitor_group")

    def list_monitor_groups(self) -> list[dict[str, Any]]:
        return self._list("monitor-groups", "list_monitor_groups")

    # Integrations

    def create_integration(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "integrations", "create_integration", payload) or {}

    def list_integrations(self) -> list[dict[str, Any]]:
        return self._list("integrations", "list_integrations")

    def delete_integration(self, integration_id: str | int) -> None:
        self._delete(f"integrations/{integration_id}", "delete_integration")

    # Account

    def get_alert_contacts(self) -> list[dict[str, Any]]:
        body = self._request("GET", "user/alert-contacts", "get_alert_contacts")
        if isinstance(body, dict):
            return body.get("data") or []
        return body or []

    def find_contact_id(self, friendly_name: str) -> str:
        """Return the ID of the alert contact with the given name.

        Raises:
            NotFoundError: No contact has that name
        """
        for contact in self.get_alert_contacts():
            name = contact.get("friendlyName", contact.get("friendly_name"))
            if name is not None and name == friendly_name:
                return str(contact.get("id"))
        raise NotFoundError(f"alert contact {friendly_name!r} not found", status=404)

    def get_account_details(self) -> str:
        """Return the e-mail address of the account owning the API key."""
        body = self._request("GET", "user/me", "get_account_details") or {}
        return body.get("email") or (body.get("user") or {}).get("email", "")
