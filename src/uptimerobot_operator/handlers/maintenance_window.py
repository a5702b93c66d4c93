"""Handler for MaintenanceWindow CRD."""

from __future__ import annotations

import os
from typing import Any

import kopf

from ..builders.maintenance_window import build_maintenance_window_payload
from ..constants import API_GROUP_VERSION, KIND_MAINTENANCE_WINDOW
from ..engine.record import ExternalEntity, ManagedRecord
from ..engine.resolver import MatchQuery
from ..engine.sync import SyncEngine
from ..services.uptimerobot import UptimeRobotAPIError, UptimeRobotClient
from ..tracing import trace_span
from ..utils.events import KopfEventRecorder
from .base import BaseHandler
from .shared import get_core_client, get_record_store, resolve_monitor_ids


def window_entity(body: dict[str, Any], fallback_id: str = "") -> ExternalEntity:
    return ExternalEntity(id=str(body.get("id") or fallback_id), name=body.get("name"), raw=body)


class MaintenanceWindowAdapter:
    """Sync adapter for UptimeRobot maintenance windows."""

    kind = KIND_MAINTENANCE_WINDOW
    noun = "maintenance window"
    status_fields = ("monitorCount",)

    def __init__(self, client: UptimeRobotClient, monitor_ids: list[int]):
        self.client = client
        self.monitor_ids = monitor_ids

    def desired_type(self, record: ManagedRecord) -> None:
        return None

    def match_query(self, record: ManagedRecord) -> MatchQuery:
        return MatchQuery(name=record.spec.get("name") or None)

    def create(self, record: ManagedRecord) -> ExternalEntity:
        body = self.client.create_maintenance_window(build_maintenance_window_payload(record.spec, self.monitor_ids))
        entity = window_entity(body)
        if not entity.id:
            raise UptimeRobotAPIError("create maintenance window response carried no ID")
        return entity

    def update(self, record: ManagedRecord, entity_id: str) -> ExternalEntity:
        body = self.client.update_maintenance_window(
            entity_id, build_maintenance_window_payload(record.spec, self.monitor_ids)
        )
        return window_entity(body, fallback_id=entity_id)

    def get(self, entity_id: str) -> ExternalEntity:
        return window_entity(self.client.get_maintenance_window(entity_id), fallback_id=entity_id)

    def delete(self, entity_id: str) -> None:
        self.client.delete_maintenance_window(entity_id)

    def list(self) -> list[ExternalEntity]:
        return [window_entity(body) for body in self.client.list_maintenance_windows()]

    def apply_status(self, record: ManagedRecord, entity: ExternalEntity) -> None:
        monitor_ids = entity.raw.get("monitorIds")
        record.status["monitorCount"] = len(monitor_ids if monitor_ids is not None else self.monitor_ids)


class MaintenanceWindowHandler(BaseHandler):
    """Handler for MaintenanceWindow resources."""

    def __init__(self):
        super().__init__(KIND_MAINTENANCE_WINDOW)

    def reconcile(self, body: dict[str, Any]) -> None:
        """Reconcile MaintenanceWindow resource."""
        record = ManagedRecord.from_body(KIND_MAINTENANCE_WINDOW, body)
        store = get_record_store()

        with trace_span(
            "reconcile_maintenance_window", kind=KIND_MAINTENANCE_WINDOW, attributes={"window.name": record.name}
        ):
            monitor_ids = resolve_monitor_ids(store, record.namespace, record.spec.get("monitorRefs") or [])
            with self.open_client(record, store, get_core_client()) as client:
                engine = SyncEngine(MaintenanceWindowAdapter(client, monitor_ids), store, KopfEventRecorder(body))
                self.run_protected(record, store, lambda: engine.sync(record))
            self.update_resource_status(record, record.ready)

    def needs_resync(self, body: dict[str, Any]) -> bool:
        """Resync when the syncInterval elapsed or the set of ready referenced Monitors changed."""
        record = ManagedRecord.from_body(KIND_MAINTENANCE_WINDOW, body)
        if self.should_resync(record):
            return True
        if record.being_deleted or self.is_blocked(record) or record.spec.get("autoAddMonitors"):
            return False
        monitor_ids = resolve_monitor_ids(get_record_store(), record.namespace, record.spec.get("monitorRefs") or [])
        return len(monitor_ids) != record.status.get("monitorCount")


# Global handler instance
_handler = MaintenanceWindowHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_MAINTENANCE_WINDOW)
@kopf.on.update(API_GROUP_VERSION, KIND_MAINTENANCE_WINDOW)
@kopf.on.resume(API_GROUP_VERSION, KIND_MAINTENANCE_WINDOW)
def handle_maintenance_window(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle MaintenanceWindow resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.timer(API_GROUP_VERSION, KIND_MAINTENANCE_WINDOW, interval=int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300")))
def resync_maintenance_window(
    body: dict[str, Any],
    meta: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Periodically resync a MaintenanceWindow."""
    if _handler.needs_resync(body):
        _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.on.delete(API_GROUP_VERSION, KIND_MAINTENANCE_WINDOW)
def handle_maintenance_window_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle MaintenanceWindow resource deletion."""
    _handler.delete_external(body, patch, lambda client, window_id: client.delete_maintenance_window(window_id))
