"""Handler for Contact CRD."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import API_GROUP_VERSION, KIND_CONTACT, REASON_API_ERROR
from ..engine.record import ManagedRecord
from ..exceptions import AccountResolutionError
from ..services.uptimerobot import UptimeRobotAPIError
from ..tracing import trace_span
from ..utils.errors import sanitize_exception
from .base import BaseHandler
from .shared import build_client, get_core_client, get_record_store


class ContactHandler(BaseHandler):
    """Handler for Contact resources.

    A Contact points at an existing alert contact. Its ID is resolved once
    per generation: taken from ``spec.contact.id`` or looked up by name.
    """

    def __init__(self):
        super().__init__(KIND_CONTACT)

    def reconcile(self, body: dict[str, Any]) -> None:
        """Reconcile Contact resource."""
        record = ManagedRecord.from_body(KIND_CONTACT, body)
        if record.external_id and record.status.get("observedGeneration") == record.generation:
            return

        store = get_record_store()
        contact = record.spec.get("contact") or {}

        with trace_span("reconcile_contact", kind=KIND_CONTACT, attributes={"contact.name": record.name}):
            contact_id = str(contact.get("id") or "").strip()
            if not contact_id:
                contact_name = (contact.get("name") or "").strip()
                if not contact_name:
                    self.handle_validation_error(record, store, "contact must specify either id or name")

                try:
                    with build_client(store, get_core_client(), record.spec) as client:
                        contact_id = client.find_contact_id(contact_name)
                except AccountResolutionError as e:
                    self.handle_account_error(record, store, e)
                except UptimeRobotAPIError as e:
                    error_text = sanitize_exception(e)
                    message = f"Failed to find contact: {error_text}"
                    self.log_error(record.meta, message, error=e, reason=REASON_API_ERROR)
                    self.mark_failure(record, store, REASON_API_ERROR, message, error_text)
                    raise kopf.TemporaryError(message, delay=60) from e

            self.clear_blocked(record)
            self.mark_success(record, store, {"id": contact_id})
            self.log_info(record.meta, f"Resolved alert contact {contact_id}", reason="Resolved")

    def delete(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Handle Contact resource deletion."""
        self.log_info(meta, "Contact is being deleted", event="deletion", reason="Deletion")
        # Alert contacts are never deleted in UptimeRobot
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = ContactHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_CONTACT)
@kopf.on.update(API_GROUP_VERSION, KIND_CONTACT)
@kopf.on.resume(API_GROUP_VERSION, KIND_CONTACT)
def handle_contact(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Contact resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.on.delete(API_GROUP_VERSION, KIND_CONTACT)
def handle_contact_delete(
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Contact resource deletion."""
    _handler.delete(meta, patch)
