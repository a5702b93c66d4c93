"""Reconciliation and finalization engine shared by every resource kind."""

from .finalizer import CleanupResult, FinalizerCleanup, compute_cleanup_backoff
from .record import ExternalEntity, ManagedRecord
from .resolver import MatchQuery, normalize_key, resolve_duplicate
from .sync import ResourceAdapter, SyncEngine, SyncOutcome

__all__ = [
    "CleanupResult",
    "FinalizerCleanup",
    "compute_cleanup_backoff",
    "ExternalEntity",
    "ManagedRecord",
    "MatchQuery",
    "normalize_key",
    "resolve_duplicate",
    "ResourceAdapter",
    "SyncEngine",
    "SyncOutcome",
]
