"""Handler for Account CRD."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import API_GROUP_VERSION, KIND_ACCOUNT, REASON_API_ERROR
from ..engine.record import ManagedRecord
from ..exceptions import AccountResolutionError
from ..services.uptimerobot import UptimeRobotAPIError, UptimeRobotClient
from ..tracing import trace_span
from ..utils.cache import invalidate_cache
from ..utils.errors import sanitize_exception
from .base import BaseHandler
from .shared import get_api_key, get_core_client, get_record_store


class AccountHandler(BaseHandler):
    """Handler for Account resources.

    An Account only verifies that its API key works and records the e-mail
    address of the account behind it.
    """

    def __init__(self):
        super().__init__(KIND_ACCOUNT)

    def reconcile(self, body: dict[str, Any]) -> None:
        """Reconcile Account resource."""
        record = ManagedRecord.from_body(KIND_ACCOUNT, body)
        store = get_record_store()

        with trace_span("reconcile_account", kind=KIND_ACCOUNT, attributes={"account.name": record.name}):
            # Accounts and keys are cached by name; a changed Account must be re-read
            invalidate_cache(f"{KIND_ACCOUNT}:")
            invalidate_cache("ApiKey:")

            try:
                api_key = get_api_key(get_core_client(), record)
            except AccountResolutionError as e:
                self.handle_account_error(record, store, e)

            try:
                with UptimeRobotClient(api_key) as client:
                    email = client.get_account_details()
            except UptimeRobotAPIError as e:
                error_text = sanitize_exception(e)
                message = f"Failed to get account details: {error_text}"
                self.log_error(record.meta, message, error=e, reason=REASON_API_ERROR)
                self.mark_failure(record, store, REASON_API_ERROR, message, error_text)
                raise kopf.TemporaryError(message, delay=60) from e

            self.mark_success(record, store, {"email": email})
            self.log_info(record.meta, "Account verified", reason="Verified")

    def delete(self, body: dict[str, Any], meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Handle Account resource deletion."""
        self.log_info(meta, "Account is being deleted", event="deletion", reason="Deletion")
        invalidate_cache(f"{KIND_ACCOUNT}:")
        # Nothing exists in UptimeRobot for an Account itself
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = AccountHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_ACCOUNT)
@kopf.on.update(API_GROUP_VERSION, KIND_ACCOUNT)
@kopf.on.resume(API_GROUP_VERSION, KIND_ACCOUNT)
def handle_account(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Account resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(meta, lambda: _handler.reconcile(body))


@kopf.on.delete(API_GROUP_VERSION, KIND_ACCOUNT)
def handle_account_delete(
    body: dict[str, Any],
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Account resource deletion."""
    _handler.delete(body, meta, patch)
