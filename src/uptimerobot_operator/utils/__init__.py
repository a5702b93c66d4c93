"""Utility functions for the UptimeRobot Operator."""

from .cache import (
    get_cached_object,
    invalidate_cache,
    make_cache_key,
    set_cached_object,
)
from .conditions import (
    get_condition,
    is_condition_true,
    set_condition,
    set_deleting_condition,
    set_error_condition,
    set_ready_condition,
    set_synced_condition,
)
from .events import emit_event
from .rate_limit import handle_rate_limit_error, rate_limit_k8s, rate_limit_uptimerobot
from .secrets import get_secret_value

__all__ = [
    "set_condition",
    "set_ready_condition",
    "set_synced_condition",
    "set_error_condition",
    "set_deleting_condition",
    "get_condition",
    "is_condition_true",
    "emit_event",
    "get_secret_value",
    "get_cached_object",
    "set_cached_object",
    "invalidate_cache",
    "make_cache_key",
    "rate_limit_k8s",
    "rate_limit_uptimerobot",
    "handle_rate_limit_error",
]
