"""Client-side rate limiting for Kubernetes and UptimeRobot API calls."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from kubernetes.client.exceptions import ApiException

from .. import metrics

_F = TypeVar("_F", bound=Callable[..., Any])


class _MinIntervalLimiter:
    """Spaces calls at least 1/rate seconds apart across all handler threads."""

    def __init__(self, per_second: float):
        self.min_interval = 1.0 / per_second if per_second > 0 else 0.0
        self._last_call = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            delay = self._last_call + self.min_interval - now
            if delay > 0:
                time.sleep(delay)
            self._last_call = time.monotonic()


_k8s_limiter = _MinIntervalLimiter(float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0")))
_uptimerobot_limiter = _MinIntervalLimiter(float(os.getenv("UPTIMEROBOT_RATE_LIMIT_PER_SECOND", "5.0")))


def _limited(limiter: _MinIntervalLimiter) -> Callable[[_F], _F]:
    def decorator(func: _F) -> _F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            limiter.wait()
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


rate_limit_k8s = _limited(_k8s_limiter)
rate_limit_k8s.__doc__ = "Rate limit Kubernetes API calls (K8S_RATE_LIMIT_PER_SECOND)."

rate_limit_uptimerobot = _limited(_uptimerobot_limiter)
rate_limit_uptimerobot.__doc__ = "Rate limit UptimeRobot API calls (UPTIMEROBOT_RATE_LIMIT_PER_SECOND)."


def handle_rate_limit_error(e: Exception, attempt: int = 0, max_retries: int = 3) -> bool:
    """Sleep and return True when e is a Kubernetes rate-limit error worth retrying.

    Args:
        e: Exception raised by the Kubernetes client
        attempt: Number of retries already made for this call
        max_retries: Maximum number of retries

    Returns:
        True if the caller should retry, False otherwise
    """
    if not isinstance(e, ApiException):
        return False
    if e.status == 429 or (e.status == 503 and "rate limit" in str(e).lower()):
        metrics.rate_limit_hits_total.labels(api_type="k8s").inc()
        if attempt < max_retries:
            # 1s, 2s, 4s
            time.sleep(2 ** attempt)
            return True
    return False
