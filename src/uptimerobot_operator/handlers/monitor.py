"""Handler for Monitor CRD."""

from __future__ import annotations

import copy
import os
from typing import Any

import kopf
from kubernetes import client as k8s_client

from ..builders.monitor import (
    MONITOR_PAUSED,
    MONITOR_RUNNING,
    build_heartbeat_url,
    build_monitor_payload,
    configured_heartbeat_base_url,
    desired_monitor_status,
    monitor_type_from_api,
)
from ..constants import (
    API_GROUP_VERSION,
    KIND_MONITOR,
    REASON_API_ERROR,
    REASON_RECONCILE_ERROR,
    REASON_SECRET_NOT_FOUND,
)
from ..engine.ownership import find_adopter
from ..engine.publisher import SideEffectPublisher
from ..engine.record import ExternalEntity, ManagedRecord
from ..engine.resolver import MatchQuery
from ..engine.store import RecordStore
from ..engine.sync import SyncEngine, SyncOutcome
from ..exceptions import ValidationFailure
from ..services.uptimerobot import UptimeRobotAPIError, UptimeRobotClient
from ..tracing import trace_span
from ..utils.errors import sanitize_exception
from ..utils.events import KopfEventRecorder
from ..utils.secrets import get_secret_value
from .base import BaseHandler
from .shared import build_client, get_contact, get_core_client, get_record_store

HEARTBEAT = "Heartbeat"


def monitor_entity(body: dict[str, Any], fallback_id: str = "") -> ExternalEntity:
    """Convert a monitor payload from the API into an ExternalEntity."""
    api_type = body.get("type")
    return ExternalEntity(
        id=str(body.get("id") or fallback_id),
        type=monitor_type_from_api(api_type) if api_type else None,
        key=body.get("url"),
        name=body.get("friendlyName", body.get("friendly_name")),
        raw=body,
    )


class MonitorAdapter:
    """Sync adapter for UptimeRobot monitors."""

    kind = KIND_MONITOR
    noun = "monitor"
    status_fields = ("heartbeatURL",)

    def __init__(self, client: UptimeRobotClient, values: dict[str, Any], contacts: list[dict[str, Any]]):
        self.client = client
        self.values = values
        self.contacts = contacts

    def desired_type(self, record: ManagedRecord) -> str:
        return self.values.get("type") or "HTTPS"

    def match_query(self, record: ManagedRecord) -> MatchQuery:
        return MatchQuery(key=self.values.get("url") or None, name=self.values.get("name") or None)

    def create(self, record: ManagedRecord) -> ExternalEntity:
        entity = monitor_entity(self.client.create_monitor(build_monitor_payload(self.values, self.contacts)))
        if not entity.id:
            raise UptimeRobotAPIError("create monitor response carried no monitor ID")
        return entity

    def update(self, record: ManagedRecord, entity_id: str) -> ExternalEntity:
        body = self.client.update_monitor(
            entity_id, build_monitor_payload(self.values, self.contacts, update=True)
        )
        return monitor_entity(body, fallback_id=entity_id)

    def get(self, entity_id: str) -> ExternalEntity:
        return monitor_entity(self.client.get_monitor(entity_id), fallback_id=entity_id)

    def delete(self, entity_id: str) -> None:
        self.client.delete_monitor(entity_id)

    def list(self) -> list[ExternalEntity]:
        return [monitor_entity(body) for body in self.client.list_monitors()]

    def apply_status(self, record: ManagedRecord, entity: ExternalEntity) -> None:
        if self.desired_type(record) != HEARTBEAT:
            record.status["heartbeatURL"] = None
            return
        # The API returns the heartbeat token in the url field
        token = entity.key or ""
        if token:
            record.status["heartbeatURL"] = build_heartbeat_url(configured_heartbeat_base_url(), entity.id, token)


class MonitorHandler(BaseHandler):
    """Handler for Monitor resources."""

    def __init__(self):
        super().__init__(KIND_MONITOR)

    def resolve_contacts(self, record: ManagedRecord, store: RecordStore) -> list[dict[str, Any]]:
        """Resolve ``spec.contacts`` to alert contact IDs; waits for Contacts without one."""
        contacts = []
        for ref in record.spec.get("contacts") or []:
            name = ref.get("name", "") or ""
            try:
                contact = get_contact(store, name)
            except LookupError as e:
                self.fail_dependency(record, store, REASON_RECONCILE_ERROR, f"Failed to get contact: {e}")
            if not contact.external_id:
                self.log_info(record.meta, f"Contact {contact.name} not ready yet, requeuing", reason="Waiting")
                raise kopf.TemporaryError(f"contact {contact.name} has no ID yet", delay=2)
            contacts.append(
                {
                    "id": contact.external_id,
                    "threshold": ref.get("threshold"),
                    "recurrence": ref.get("recurrence"),
                }
            )
        return contacts

    def resolve_values(self, record: ManagedRecord, store: RecordStore, core: k8s_client.CoreV1Api) -> dict[str, Any]:
        """Return ``spec.monitor`` with HTTP auth credentials read from their Secret."""
        values = copy.deepcopy(record.spec.get("monitor") or {})
        auth = values.get("auth")
        if not auth or not auth.get("secretName"):
            return values

        try:
            auth["username"] = get_secret_value(core, record.namespace, auth["secretName"], auth.get("usernameKey", ""))
            if auth.get("passwordKey"):
                auth["password"] = get_secret_value(core, record.namespace, auth["secretName"], auth["passwordKey"])
        except ValueError as e:
            self.fail_dependency(record, store, REASON_SECRET_NOT_FOUND, f"Failed to get monitor auth: {e}")
        return values

    def reconcile(self, body: dict[str, Any]) -> None:
        """Reconcile Monitor resource."""
        record = ManagedRecord.from_body(KIND_MONITOR, body)
        store = get_record_store()
        core = get_core_client()

        with trace_span("reconcile_monitor", kind=KIND_MONITOR, attributes={"monitor.name": record.name}):
            contacts = self.resolve_contacts(record, store)
            values = self.resolve_values(record, store, core)

            with self.open_client(record, store, core) as client:
                adapter = MonitorAdapter(client, values, contacts)
                engine = SyncEngine(adapter, store, KopfEventRecorder(body))
                outcome = self.run_protected(record, store, lambda: engine.sync(record))
                self.apply_monitor_status(record, store, client, values, outcome)

            self.publish_heartbeat_url(record, store, core)
            self.update_resource_status(record, record.ready)

    def apply_monitor_status(
        self,
        record: ManagedRecord,
        store: RecordStore,
        client: UptimeRobotClient,
        values: dict[str, Any],
        outcome: SyncOutcome,
    ) -> None:
        """Pause or start the monitor so it matches ``spec.monitor.status``."""
        desired = desired_monitor_status(values)
        current = MONITOR_RUNNING if outcome.created or outcome.recreated else record.status.get("status")
        if current == desired:
            if record.status.get("status") != desired:
                record.status["status"] = desired
                store.write_status(record, {"status": desired})
            return

        action = "pause" if desired == MONITOR_PAUSED else "start"
        try:
            if desired == MONITOR_PAUSED:
                client.pause_monitor(record.external_id)
            else:
                client.start_monitor(record.external_id)
        except UptimeRobotAPIError as e:
            error_text = sanitize_exception(e)
            message = f"Failed to {action} monitor: {error_text}"
            self.log_error(record.meta, message, error=e, reason=REASON_API_ERROR)
            self.mark_failure(record, store, REASON_API_ERROR, message, error_text)
            raise kopf.TemporaryError(message, delay=60) from e

        record.status["status"] = desired
        store.write_status(record, {"status": desired})

    def publish_heartbeat_url(self, record: ManagedRecord, store: RecordStore, core: k8s_client.CoreV1Api) -> None:
        """Publish the heartbeat URL into the Secret or ConfigMap named by ``spec.heartbeatURLPublish``."""
        publisher = SideEffectPublisher(core)
        is_heartbeat = (record.spec.get("monitor") or {}).get("type") == HEARTBEAT
        heartbeat_url = (record.status.get("heartbeatURL") or "") if is_heartbeat else ""

        try:
            changed = publisher.publish(record, heartbeat_url, record.spec.get("heartbeatURLPublish"))
        except (ValidationFailure, k8s_client.exceptions.ApiException) as e:
            error_text = sanitize_exception(e)
            message = f"Failed to reconcile heartbeat URL publish target: {error_text}"
            self.log_error(record.meta, message, error=e, reason=REASON_RECONCILE_ERROR)
            # The monitor itself is synced; only Ready and Error change
            self.mark_failure(record, store, REASON_RECONCILE_ERROR, message, error_text, synced=None)
            if isinstance(e, ValidationFailure):
                self.mark_blocked(record)
                raise kopf.PermanentError(message) from e
            raise kopf.TemporaryError(message, delay=30) from e

        if changed:
            store.write_status(record, {field: record.status.get(field) for field in publisher.status_fields})

    def delete(self, body: dict[str, Any], patch: kopf.Patch) -> None:
        """Handle Monitor resource deletion."""
        record = ManagedRecord.from_body(KIND_MONITOR, body)
        store = get_record_store()
        self.log_info(record.meta, "Monitor is being deleted", event="deletion", reason="Deletion")

        def cleanup() -> None:
            if not (record.spec.get("prune") and record.ready and record.external_id):
                return
            adopter = find_adopter(store, record)
            if adopter is not None:
                self.log_info(
                    record.meta,
                    f"Monitor {record.external_id} is managed by {adopter.name}, skipping deletion from UptimeRobot",
                    event="deletion",
                    reason="Adopted",
                )
                return
            with build_client(store, get_core_client(), record.spec) as client:
                client.delete_monitor(record.external_id)

        self.finalize(record, body, store, patch, cleanup)


# Global handler instance
_handler = MonitorHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_MONITOR)
@kopf.on.update(API_GROUP_VERSION, KIND_MONITOR)
@kopf.on.resume(API_GROUP_VERSION, KIND_MONITOR)
def handle_monitor(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Monitor resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.timer(API_GROUP_VERSION, KIND_MONITOR, interval=int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300")))
def resync_monitor(
    body: dict[str, Any],
    meta: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Periodically resync a Monitor once its syncInterval has elapsed."""
    if _handler.should_resync(ManagedRecord.from_body(KIND_MONITOR, body)):
        _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.on.delete(API_GROUP_VERSION, KIND_MONITOR)
def handle_monitor_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Monitor resource deletion."""
    _handler.delete(body, patch)
