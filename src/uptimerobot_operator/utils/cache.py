"""TTL cache for Kubernetes objects that are read on every reconcile (Accounts, API keys)."""

from __future__ import annotations

import os
import threading
import time
from typing import Any, Optional

_cache: dict[str, tuple[Any, float]] = {}
_lock = threading.Lock()
_cache_ttl: float = float(os.getenv("K8S_CACHE_TTL_SECONDS", "30.0"))


def get_cached_object(key: str) -> Optional[Any]:
    """Return the cached object for key, or None when absent or expired."""
    with _lock:
        entry = _cache.get(key)
        if entry is None:
            return None
        obj, stored_at = entry
        if time.monotonic() - stored_at > _cache_ttl:
            del _cache[key]
            return None
        return obj


def set_cached_object(key: str, obj: Any) -> None:
    with _lock:
        _cache[key] = (obj, time.monotonic())


def invalidate_cache(pattern: Optional[str] = None) -> None:
    """Drop every entry, or only those whose key contains pattern."""
    with _lock:
        if pattern is None:
            _cache.clear()
            return
        for key in [k for k in _cache if pattern in k]:
            del _cache[key]


def make_cache_key(kind: str, namespace: str | None, name: str) -> str:
    """Build a cache key; cluster-scoped objects use "-" as namespace."""
    return f"{kind}:{namespace or '-'}:{name}"
