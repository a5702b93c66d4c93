"""Handler for MonitorGroup CRD."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any

import kopf

from ..builders.monitor_group import build_monitor_group_payload
from ..constants import API_GROUP_VERSION, KIND_MONITOR_GROUP
from ..engine.record import ExternalEntity, ManagedRecord
from ..engine.resolver import MatchQuery
from ..engine.sync import SyncEngine
from ..services.uptimerobot import UptimeRobotAPIError, UptimeRobotClient
from ..tracing import trace_span
from ..utils.events import KopfEventRecorder
from .base import BaseHandler
from .shared import get_core_client, get_record_store, resolve_monitor_ids


def group_entity(body: dict[str, Any], fallback_id: str = "") -> ExternalEntity:
    return ExternalEntity(id=str(body.get("id") or fallback_id), name=body.get("name"), raw=body)


class MonitorGroupAdapter:
    """Sync adapter for UptimeRobot monitor groups."""

    kind = KIND_MONITOR_GROUP
    noun = "monitor group"
    status_fields = ("monitorCount", "lastReconciled")

    def __init__(self, client: UptimeRobotClient, monitor_ids: list[int]):
        self.client = client
        self.monitor_ids = monitor_ids

    def desired_type(self, record: ManagedRecord) -> None:
        return None

    def match_query(self, record: ManagedRecord) -> MatchQuery:
        return MatchQuery(name=record.spec.get("friendlyName") or None)

    def create(self, record: ManagedRecord) -> ExternalEntity:
        entity = group_entity(self.client.create_monitor_group(build_monitor_group_payload(record.spec, self.monitor_ids)))
        if not entity.id:
            raise UptimeRobotAPIError("create monitor group response carried no ID")
        return entity

    def update(self, record: ManagedRecord, entity_id: str) -> ExternalEntity:
        body = self.client.update_monitor_group(entity_id, build_monitor_group_payload(record.spec, self.monitor_ids))
        return group_entity(body, fallback_id=entity_id)

    def get(self, entity_id: str) -> ExternalEntity:
        return group_entity(self.client.get_monitor_group(entity_id), fallback_id=entity_id)

    def delete(self, entity_id: str) -> None:
        self.client.delete_monitor_group(entity_id)

    def list(self) -> list[ExternalEntity]:
        return [group_entity(body) for body in self.client.list_monitor_groups()]

    def apply_status(self, record: ManagedRecord, entity: ExternalEntity) -> None:
        record.status["monitorCount"] = len(self.monitor_ids)
        record.status["lastReconciled"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MonitorGroupHandler(BaseHandler):
    """Handler for MonitorGroup resources."""

    def __init__(self):
        super().__init__(KIND_MONITOR_GROUP)

    def reconcile(self, body: dict[str, Any]) -> None:
        """Reconcile MonitorGroup resource."""
        record = ManagedRecord.from_body(KIND_MONITOR_GROUP, body)
        store = get_record_store()

        with trace_span("reconcile_monitor_group", kind=KIND_MONITOR_GROUP, attributes={"group.name": record.name}):
            monitor_ids = resolve_monitor_ids(store, record.namespace, record.spec.get("monitors") or [])
            with self.open_client(record, store, get_core_client()) as client:
                engine = SyncEngine(MonitorGroupAdapter(client, monitor_ids), store, KopfEventRecorder(body))
                self.run_protected(record, store, lambda: engine.sync(record))
            self.update_resource_status(record, record.ready)

    def needs_resync(self, body: dict[str, Any]) -> bool:
        """Resync when the syncInterval elapsed or the set of ready referenced Monitors changed."""
        record = ManagedRecord.from_body(KIND_MONITOR_GROUP, body)
        if self.should_resync(record):
            return True
        if record.being_deleted or self.is_blocked(record):
            return False
        monitor_ids = resolve_monitor_ids(get_record_store(), record.namespace, record.spec.get("monitors") or [])
        return len(monitor_ids) != record.status.get("monitorCount")


# Global handler instance
_handler = MonitorGroupHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_MONITOR_GROUP)
@kopf.on.update(API_GROUP_VERSION, KIND_MONITOR_GROUP)
@kopf.on.resume(API_GROUP_VERSION, KIND_MONITOR_GROUP)
def handle_monitor_group(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle MonitorGroup resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.timer(API_GROUP_VERSION, KIND_MONITOR_GROUP, interval=int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300")))
def resync_monitor_group(
    body: dict[str, Any],
    meta: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Periodically resync a MonitorGroup."""
    if _handler.needs_resync(body):
        _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.on.delete(API_GROUP_VERSION, KIND_MONITOR_GROUP)
def handle_monitor_group_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle MonitorGroup resource deletion."""
    _handler.delete_external(body, patch, lambda client, group_id: client.delete_monitor_group(group_id))
