"""Deletion-time cleanup of the external side effect of a record.

The cleanup either completes, is skipped on request, or is abandoned once a
timeout has elapsed. A record under deletion must never be blocked forever,
so the timeout path gives up on the external delete and lets the finalizer
go; the Warning event is how operators learn about it.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from kubernetes.client.exceptions import ApiException

from .. import metrics
from ..constants import (
    ANNOTATION_CLEANUP_START_TIME,
    ANNOTATION_SKIP_CLEANUP,
    EVENT_REASON_CLEANUP_ERROR,
    EVENT_REASON_CLEANUP_SKIPPED,
    EVENT_REASON_CLEANUP_SUCCESS,
    EVENT_REASON_CLEANUP_TIMEOUT,
    REASON_CLEANUP_ERROR,
    REASON_CLEANUP_SKIPPED,
    REASON_CLEANUP_SUCCESS,
    REASON_CLEANUP_TIMEOUT,
)
from ..utils.conditions import set_deleting_condition
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder
from .record import ManagedRecord

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_TIMEOUT = float(os.getenv("CLEANUP_TIMEOUT_SECONDS", "600"))
MIN_BACKOFF = 30.0
MAX_BACKOFF = 300.0
_MAX_SHIFT = 10

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def compute_cleanup_backoff(elapsed: float, timeout: float) -> float:
    """Delay before the next cleanup attempt.

    Grows with the share of the timeout already spent: 30s at the start,
    doubling per third of the timeout, never above 5 minutes.
    """
    if timeout <= 0:
        ratio = 1.0
    else:
        ratio = max(elapsed, 0.0) / timeout
    shift = min(int(math.floor(ratio * 3 + 0.5)), _MAX_SHIFT)
    return min(MIN_BACKOFF * (2 ** shift), MAX_BACKOFF)


def format_duration(seconds: float) -> str:
    """Render seconds the way durations appear in events, e.g. ``1m30s``."""
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{secs}s"


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class CleanupResult:
    """Outcome of one cleanup attempt."""

    success: bool = False
    force_remove: bool = False
    requeue_after: float | None = None
    message: str = ""
    reason: str = ""

    @property
    def remove_finalizer(self) -> bool:
        return self.success or self.force_remove


class FinalizerCleanup:
    """Runs a cleanup action for a record that carries a deletion marker.

    Args:
        store: RecordStore used to persist the cleanup-start annotation and
            the Deleting condition
        recorder: Optional event sink
        timeout: Seconds after the first attempt at which cleanup is abandoned
        now: Clock, injectable for tests
    """

    def __init__(
        self,
        store,
        recorder: EventRecorder | None = None,
        timeout: float | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.recorder = recorder
        self.timeout = DEFAULT_CLEANUP_TIMEOUT if timeout is None else timeout
        self._now = now or (lambda: datetime.now(timezone.utc))

    def run(self, record: ManagedRecord, action: Callable[[], None]) -> CleanupResult:
        start = self._cleanup_start(record)

        if record.annotations.get(ANNOTATION_SKIP_CLEANUP, "").strip().lower() == "true":
            message = "Cleanup skipped due to skip-cleanup annotation"
            result = CleanupResult(force_remove=True, message=message, reason=REASON_CLEANUP_SKIPPED)
            self._finish(record, result, EVENT_REASON_CLEANUP_SKIPPED, "Warning")
            return result

        try:
            action()
        except Exception as e:
            error = sanitize_exception(e)
            elapsed = (self._now() - start).total_seconds()
            if elapsed >= self.timeout:
                message = (
                    f"Cleanup timed out after {format_duration(self.timeout)}, force-removing finalizer "
                    f"(external resource may remain): {error}"
                )
                result = CleanupResult(force_remove=True, message=message, reason=REASON_CLEANUP_TIMEOUT)
                self._finish(record, result, EVENT_REASON_CLEANUP_TIMEOUT, "Warning")
                return result

            delay = compute_cleanup_backoff(elapsed, self.timeout)
            message = f"Cleanup failed: {error} (will retry in {format_duration(delay)})"
            result = CleanupResult(requeue_after=delay, message=message, reason=REASON_CLEANUP_ERROR)
            self._finish(record, result, EVENT_REASON_CLEANUP_ERROR, "Warning")
            return result

        result = CleanupResult(success=True, message="Cleanup completed successfully", reason=REASON_CLEANUP_SUCCESS)
        self._finish(record, result, EVENT_REASON_CLEANUP_SUCCESS, "Normal")
        return result

    def _cleanup_start(self, record: ManagedRecord) -> datetime:
        existing = record.annotations.get(ANNOTATION_CLEANUP_START_TIME)
        if existing:
            return parse_timestamp(existing) or self._now()

        now = self._now()
        stored = self.store.set_annotation_once(
            record, ANNOTATION_CLEANUP_START_TIME, now.strftime(TIME_FORMAT)
        )
        return parse_timestamp(stored) or now

    def _finish(self, record: ManagedRecord, result: CleanupResult, event_reason: str, event_type: str) -> None:
        metrics.cleanup_total.labels(kind=record.kind, result=result.reason.lower()).inc()
        set_deleting_condition(record.conditions, result.reason, result.message, record.generation)
        try:
            self.store.write_status(record, {"conditions": record.conditions})
        except ApiException as e:
            logger.warning(
                f"Failed to record Deleting condition on {record.kind} {record.name}: {sanitize_exception(e)}"
            )
        if self.recorder is not None:
            self.recorder.record(event_reason, result.message, type_=event_type)
