"""Handler for SlackIntegration CRD.

Integrations have no edit endpoint: a drifted integration is deleted and
created again, which gives it a new ID.
"""

from __future__ import annotations

import os
from typing import Any

import kopf
from kubernetes import client as k8s_client

from ..builders.slack_integration import (
    DEFAULT_WEBHOOK_URL_KEY,
    INTEGRATION_TYPE_SLACK,
    build_slack_integration_data,
    build_slack_integration_payload,
    integration_matches,
)
from ..constants import API_GROUP_VERSION, KIND_SLACK_INTEGRATION, REASON_SECRET_NOT_FOUND
from ..engine.record import ExternalEntity, ManagedRecord
from ..engine.resolver import MatchQuery
from ..engine.store import RecordStore
from ..engine.sync import SyncEngine
from ..exceptions import ValidationFailure
from ..services.uptimerobot import NotFoundError, UptimeRobotAPIError, UptimeRobotClient
from ..tracing import trace_span
from ..utils.events import KopfEventRecorder
from ..utils.secrets import get_secret_value
from .base import BaseHandler
from .shared import get_core_client, get_record_store


def integration_entity(body: dict[str, Any], fallback_id: str = "") -> ExternalEntity:
    return ExternalEntity(
        id=str(body.get("id") or fallback_id),
        type=body.get("type"),
        name=body.get("friendlyName"),
        raw=body,
    )


def parse_integration_id(entity_id: str) -> int:
    try:
        return int(entity_id)
    except (TypeError, ValueError) as e:
        raise ValidationFailure(f'invalid status.id "{entity_id}"') from e


class SlackIntegrationAdapter:
    """Sync adapter for Slack integrations."""

    kind = KIND_SLACK_INTEGRATION
    noun = "integration"
    status_fields: tuple[str, ...] = ()

    def __init__(self, client: UptimeRobotClient, data: dict[str, Any]):
        self.client = client
        self.data = data

    def desired_type(self, record: ManagedRecord) -> str:
        return INTEGRATION_TYPE_SLACK

    def match_query(self, record: ManagedRecord) -> MatchQuery:
        return MatchQuery(name=self.data["friendlyName"] or None)

    def _find(self, integration_id: int) -> dict[str, Any]:
        for body in self.client.list_integrations():
            if str(body.get("id")) == str(integration_id):
                return body
        raise NotFoundError(f"integration {integration_id} not found", status=404)

    def create(self, record: ManagedRecord) -> ExternalEntity:
        entity = integration_entity(self.client.create_integration(build_slack_integration_payload(self.data)))
        if not entity.id:
            raise UptimeRobotAPIError("create integration response carried no ID")
        return entity

    def update(self, record: ManagedRecord, entity_id: str) -> ExternalEntity:
        integration_id = parse_integration_id(entity_id)
        existing = self._find(integration_id)
        if integration_matches(existing, self.data):
            return integration_entity(existing)
        self.client.delete_integration(integration_id)
        return self.create(record)

    def get(self, entity_id: str) -> ExternalEntity:
        return integration_entity(self._find(parse_integration_id(entity_id)))

    def delete(self, entity_id: str) -> None:
        self.client.delete_integration(parse_integration_id(entity_id))

    def list(self) -> list[ExternalEntity]:
        return [integration_entity(body) for body in self.client.list_integrations()]

    def apply_status(self, record: ManagedRecord, entity: ExternalEntity) -> None:
        pass


class SlackIntegrationHandler(BaseHandler):
    """Handler for SlackIntegration resources."""

    def __init__(self):
        super().__init__(KIND_SLACK_INTEGRATION)

    def resolve_webhook_url(self, record: ManagedRecord, store: RecordStore, core: k8s_client.CoreV1Api) -> str:
        integration = record.spec.get("integration") or {}
        webhook_url = (integration.get("webhookURL") or "").strip()
        if webhook_url:
            return webhook_url

        secret_name = (integration.get("secretName") or "").strip()
        if not secret_name:
            self.handle_validation_error(record, store, "integration must specify webhookURL or secretName")
        key = integration.get("webhookURLKey") or DEFAULT_WEBHOOK_URL_KEY
        try:
            webhook_url = get_secret_value(core, record.namespace, secret_name, key).strip()
        except ValueError as e:
            self.fail_dependency(record, store, REASON_SECRET_NOT_FOUND, f"Failed to get webhook URL: {e}")
        if not webhook_url:
            self.fail_dependency(
                record, store, REASON_SECRET_NOT_FOUND, f"Key '{key}' in secret '{secret_name}' is empty"
            )
        return webhook_url

    def reconcile(self, body: dict[str, Any]) -> None:
        """Reconcile SlackIntegration resource."""
        record = ManagedRecord.from_body(KIND_SLACK_INTEGRATION, body)
        store = get_record_store()
        core = get_core_client()

        with trace_span(
            "reconcile_slack_integration", kind=KIND_SLACK_INTEGRATION, attributes={"integration.name": record.name}
        ):
            webhook_url = self.resolve_webhook_url(record, store, core)
            data = build_slack_integration_data(record.spec.get("integration") or {}, webhook_url)
            with self.open_client(record, store, core) as client:
                engine = SyncEngine(SlackIntegrationAdapter(client, data), store, KopfEventRecorder(body))
                self.run_protected(record, store, lambda: engine.sync(record))
            self.update_resource_status(record, record.ready)


# Global handler instance
_handler = SlackIntegrationHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_SLACK_INTEGRATION)
@kopf.on.update(API_GROUP_VERSION, KIND_SLACK_INTEGRATION)
@kopf.on.resume(API_GROUP_VERSION, KIND_SLACK_INTEGRATION)
def handle_slack_integration(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle SlackIntegration resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.timer(API_GROUP_VERSION, KIND_SLACK_INTEGRATION, interval=int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "300")))
def resync_slack_integration(
    body: dict[str, Any],
    meta: dict[str, Any],
    **kwargs: Any,
) -> None:
    """Periodically resync a SlackIntegration once its syncInterval has elapsed."""
    if _handler.should_resync(ManagedRecord.from_body(KIND_SLACK_INTEGRATION, body)):
        _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.on.delete(API_GROUP_VERSION, KIND_SLACK_INTEGRATION)
def handle_slack_integration_delete(
    body: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle SlackIntegration resource deletion."""
    _handler.delete_external(
        body,
        patch,
        lambda client, integration_id: client.delete_integration(parse_integration_id(integration_id)),
        require_ready=False,
    )
