"""Errors raised by the UptimeRobot API client."""

from __future__ import annotations

from typing import Any


class UptimeRobotAPIError(Exception):
    """Error response (or transport failure) from the UptimeRobot API.

    ``status`` is None when no HTTP response was received.
    """

    def __init__(self, message: str, status: int | None = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


class NotFoundError(UptimeRobotAPIError):
    """The addressed entity does not exist (HTTP 404)."""


class ConflictError(UptimeRobotAPIError):
    """The entity already exists (HTTP 409).

    ``existing_id`` is set when the response body names the existing entity.
    """

    def __init__(self, message: str, body: Any = None, existing_id: str | None = None):
        super().__init__(message, status=409, body=body)
        self.existing_id = existing_id
