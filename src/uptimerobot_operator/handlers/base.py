"""Base handler class with common functionality for all CRD handlers."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, NoReturn

import kopf
from kubernetes import client

from .. import metrics
from ..constants import (
    DEFAULT_SYNC_INTERVAL,
    FINALIZER,
    REASON_RECONCILE_ERROR,
    REASON_RECONCILE_SUCCESS,
    REASON_SYNC_ERROR,
    REASON_SYNC_SUCCESS,
)
from ..engine.finalizer import CleanupResult, FinalizerCleanup, parse_timestamp
from ..engine.record import ManagedRecord
from ..engine.store import RecordStore
from ..exceptions import AccountResolutionError, TransientAPIFailure, ValidationFailure
from ..logging import log_resource_event
from ..services.uptimerobot import UptimeRobotClient
from ..utils.conditions import set_error_condition, set_ready_condition, set_synced_condition
from ..utils.durations import parse_duration
from ..utils.errors import sanitize_exception
from ..utils.events import (
    KopfEventRecorder,
    emit_reconcile_failed,
    emit_reconcile_started,
    emit_validate_failed,
)
from .shared import build_client, get_core_client, get_record_store

CONTROLLER_NAME = "uptimerobot-operator"


class BaseHandler:
    """Base class for all CRD handlers with common functionality."""

    def __init__(self, kind: str):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind (e.g., "Monitor", "Account")
        """
        self.kind = kind
        self.logger = logging.getLogger(__name__)
        # uid -> generation whose validation failed; the timer leaves these alone
        self._blocked: dict[str, int] = {}
        self._blocked_lock = threading.Lock()

    def _get_resource_context(self, meta: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": meta.get("name", "unknown"),
            "namespace": meta.get("namespace") or "",
            "uid": meta.get("uid", "unknown"),
        }

    def _log(self, level: int, meta: dict[str, Any], message: str, event: str, reason: str, **kwargs: Any) -> None:
        ctx = self._get_resource_context(meta)
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=ctx["name"],
            namespace=ctx["namespace"],
            uid=ctx["uid"],
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured log message."""
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "warning",
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        """Log a warning-level structured log message."""
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured log message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception to include sanitized error details
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
        self._log(logging.ERROR, meta, message, event, reason, **log_data)

    # Failure handling

    def handle_account_error(
        self,
        record: ManagedRecord,
        store: RecordStore,
        error: AccountResolutionError,
    ) -> NoReturn:
        """Surface an Account/API key failure and retry later.

        Raises:
            kopf.TemporaryError: Always
        """
        message = str(error)
        self.log_warning(record.meta, message, reason=error.reason)
        record.status["ready"] = False
        set_ready_condition(record.conditions, False, error.reason, message, record.generation)
        set_error_condition(record.conditions, True, error.reason, message, record.generation)
        record.status["observedGeneration"] = record.generation
        store.write_status(
            record,
            {
                "ready": False,
                "conditions": record.conditions,
                "observedGeneration": record.generation,
            },
        )
        emit_reconcile_failed(record.meta, message)
        raise kopf.TemporaryError(message, delay=30)

    def handle_validation_error(
        self,
        record: ManagedRecord,
        store: RecordStore | None,
        message: str,
        write_status: bool = True,
    ) -> NoReturn:
        """Surface a validation failure. It is not retried until the record changes.

        Raises:
            kopf.PermanentError: Always
        """
        self.log_error(record.meta, message, reason="ValidationFailed")
        if write_status and store is not None:
            record.status["ready"] = False
            set_ready_condition(record.conditions, False, REASON_RECONCILE_ERROR, message, record.generation)
            set_error_condition(record.conditions, True, REASON_RECONCILE_ERROR, message, record.generation)
            store.write_status(
                record,
                {
                    "ready": False,
                    "conditions": record.conditions,
                    "observedGeneration": record.generation,
                },
            )
        emit_validate_failed(record.meta, message)
        self.mark_blocked(record)
        metrics.reconcile_total.labels(kind=self.kind, result="failed").inc()
        raise kopf.PermanentError(message)

    def run_protected(self, record: ManagedRecord, store: RecordStore, fn: Callable[[], Any]) -> Any:
        """Run an engine step and map engine errors to kopf errors."""
        try:
            result = fn()
        except ValidationFailure as e:
            self.handle_validation_error(record, store, str(e), write_status=False)
        except TransientAPIFailure as e:
            raise kopf.TemporaryError(str(e), delay=e.delay or 60) from e
        except AccountResolutionError as e:
            self.handle_account_error(record, store, e)
        self.clear_blocked(record)
        return result

    def fail_dependency(
        self,
        record: ManagedRecord,
        store: RecordStore,
        reason: str,
        message: str,
        delay: float = 30,
    ) -> NoReturn:
        """Report a missing in-cluster dependency (Secret, Contact, Monitor) and retry later.

        Raises:
            kopf.TemporaryError: Always
        """
        self.log_warning(record.meta, message, reason=reason)
        self.mark_failure(record, store, reason, message, message, synced=None)
        raise kopf.TemporaryError(message, delay=delay)

    def open_client(self, record: ManagedRecord, store: RecordStore, core: client.CoreV1Api) -> UptimeRobotClient:
        """Build the API client for the record's Account, surfacing resolution failures."""
        try:
            return build_client(store, core, record.spec)
        except AccountResolutionError as e:
            self.handle_account_error(record, store, e)

    def mark_blocked(self, record: ManagedRecord) -> None:
        with self._blocked_lock:
            self._blocked[record.uid] = record.generation

    def clear_blocked(self, record: ManagedRecord) -> None:
        with self._blocked_lock:
            self._blocked.pop(record.uid, None)

    def is_blocked(self, record: ManagedRecord) -> bool:
        with self._blocked_lock:
            return self._blocked.get(record.uid) == record.generation

    def should_resync(self, record: ManagedRecord, now: datetime | None = None) -> bool:
        """Whether a periodic timer run should sync this record now.

        A record is left alone while its ``spec.syncInterval`` has not elapsed
        since ``status.lastSynced``, or while a validation failure of the
        current generation is pending.
        """
        if record.being_deleted or self.is_blocked(record):
            return False
        last_synced = parse_timestamp(record.status.get("lastSynced"))
        if last_synced is None or record.status.get("observedGeneration") != record.generation:
            return True
        try:
            interval = parse_duration(record.spec.get("syncInterval"), None)
        except ValueError:
            interval = None
        if interval is None:
            interval = parse_duration(DEFAULT_SYNC_INTERVAL)
        now = now or datetime.now(timezone.utc)
        return (now - last_synced).total_seconds() >= interval

    # Status

    def mark_success(
        self,
        record: ManagedRecord,
        store: RecordStore,
        fields: dict[str, Any] | None = None,
    ) -> None:
        """Write the success triple plus kind-specific status fields."""
        gen = record.generation
        record.status.update(fields or {})
        record.status["ready"] = True
        record.status["observedGeneration"] = gen
        set_ready_condition(
            record.conditions, True, REASON_RECONCILE_SUCCESS, f"{self.kind} reconciled successfully", gen
        )
        set_synced_condition(record.conditions, True, REASON_SYNC_SUCCESS, "Successfully synced with UptimeRobot", gen)
        set_error_condition(record.conditions, False, REASON_RECONCILE_SUCCESS, "", gen)
        store.write_status(
            record,
            {
                **(fields or {}),
                "ready": True,
                "observedGeneration": gen,
                "conditions": record.conditions,
            },
        )
        self.update_resource_status(record, True)

    def mark_failure(
        self,
        record: ManagedRecord,
        store: RecordStore,
        reason: str,
        message: str,
        error_text: str,
        synced: bool | None = False,
    ) -> None:
        """Write Ready=False and Error=True; Synced is left alone when synced is None."""
        gen = record.generation
        record.status["ready"] = False
        set_ready_condition(record.conditions, False, reason, message, gen)
        if synced is not None:
            set_synced_condition(
                record.conditions, synced, REASON_SYNC_SUCCESS if synced else REASON_SYNC_ERROR, message, gen
            )
        set_error_condition(record.conditions, True, reason, error_text, gen)
        store.write_status(
            record,
            {"ready": False, "observedGeneration": gen, "conditions": record.conditions},
        )
        self.update_resource_status(record, False)

    # Finalizer

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Ensure finalizer is present in metadata."""
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER not in finalizers:
            finalizers.append(FINALIZER)
            patch.metadata["finalizers"] = finalizers

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Remove finalizer from metadata."""
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER in finalizers:
            finalizers.remove(FINALIZER)
            patch.metadata["finalizers"] = finalizers if finalizers else None

    def finalize(
        self,
        record: ManagedRecord,
        body: dict[str, Any],
        store: RecordStore,
        patch: kopf.Patch,
        action: Callable[[], None],
    ) -> CleanupResult:
        """Run the cleanup orchestrator and drop the finalizer when it allows.

        Raises:
            kopf.TemporaryError: Cleanup failed and should be retried after the backoff
        """
        if FINALIZER not in record.finalizers:
            return CleanupResult(success=True, message="finalizer already removed")

        cleanup = FinalizerCleanup(store, recorder=KopfEventRecorder(body))
        result = cleanup.run(record, action)
        if result.remove_finalizer:
            level = self.log_warning if result.force_remove else self.log_info
            level(record.meta, result.message, event="deletion", reason=result.reason)
            self.remove_finalizer(body.get("metadata", {}), patch)
            self.clear_blocked(record)
            return result

        self.log_warning(record.meta, result.message, event="deletion", reason=result.reason)
        raise kopf.TemporaryError(result.message, delay=result.requeue_after)

    def delete_external(
        self,
        body: dict[str, Any],
        patch: kopf.Patch,
        delete_fn: Callable[[UptimeRobotClient, str], None],
        require_ready: bool = True,
    ) -> CleanupResult:
        """Finalize a record; its external entity is deleted only with ``spec.prune``."""
        record = ManagedRecord.from_body(self.kind, body)
        store = get_record_store()
        self.log_info(record.meta, f"{self.kind} is being deleted", event="deletion", reason="Deletion")

        def cleanup() -> None:
            if not record.spec.get("prune") or not record.external_id:
                return
            if require_ready and not record.ready:
                return
            with build_client(store, get_core_client(), record.spec) as client:
                delete_fn(client, record.external_id)

        return self.finalize(record, body, store, patch, cleanup)

    # Metrics

    def reconcile_with_metrics(
        self,
        meta: dict[str, Any],
        reconcile_fn: Callable[[], None],
    ) -> None:
        """Execute reconciliation with metrics and error handling.

        Args:
            meta: Kubernetes resource metadata
            reconcile_fn: Function to execute for reconciliation
        """
        emit_reconcile_started(meta)
        metrics.reconcile_total.labels(kind=self.kind, result="started").inc()

        start_time = time.time()
        try:
            reconcile_fn()
            metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
        except kopf.PermanentError:
            raise
        except Exception as e:
            sanitized_error = sanitize_exception(e)
            metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
            self.log_error(meta, "Reconciliation failed", error=e, reason="ReconciliationFailed")
            emit_reconcile_failed(meta, f"Reconciliation failed: {sanitized_error}")
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(duration)

    def update_resource_status(self, record: ManagedRecord, ready: bool) -> None:
        """Count the readiness observed at the end of a reconciliation."""
        metrics.resource_status_total.labels(kind=self.kind, status="ready" if ready else "not_ready").inc()
