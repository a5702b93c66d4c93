"""UptimeRobot v3 API client."""

from .base import ConflictError, NotFoundError, UptimeRobotAPIError
from .client import RetryPolicy, UptimeRobotClient

__all__ = [
    "ConflictError",
    "NotFoundError",
    "RetryPolicy",
    "UptimeRobotAPIError",
    "UptimeRobotClient",
]
