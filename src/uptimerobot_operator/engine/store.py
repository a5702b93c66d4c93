"""Access to managed records through the Kubernetes custom objects API."""

from __future__ import annotations

import logging
import time
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from .. import metrics
from ..constants import API_GROUP, API_VERSION, FIELD_MANAGER, PLURALS
from ..utils.rate_limit import rate_limit_k8s
from .record import ManagedRecord

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


class RecordStore:
    """Reads records and writes the fields the operator owns.

    Status and annotation writes are merge patches carrying the
    ``resourceVersion`` they were computed against. On a 409 the latest
    version is re-read and only the owned fields are applied again, so
    concurrent edits to other fields are never regressed.
    """

    def __init__(self, api: client.CustomObjectsApi):
        self.api = api

    def _call(self, operation: str, fn, **kwargs: Any) -> Any:
        start_time = time.time()
        try:
            result = rate_limit_k8s(fn)(**kwargs)
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return result
        except ApiException:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)

    def get(self, kind: str, name: str, namespace: str | None = None) -> ManagedRecord | None:
        """Return the record, or None if it does not exist."""
        try:
            if namespace:
                obj = self._call(
                    "get_record",
                    self.api.get_namespaced_custom_object,
                    group=API_GROUP,
                    version=API_VERSION,
                    namespace=namespace,
                    plural=PLURALS[kind],
                    name=name,
                )
            else:
                obj = self._call(
                    "get_record",
                    self.api.get_cluster_custom_object,
                    group=API_GROUP,
                    version=API_VERSION,
                    plural=PLURALS[kind],
                    name=name,
                )
        except ApiException as e:
            if e.status == 404:
                return None
            raise
        return ManagedRecord.from_body(kind, obj)

    def list(self, kind: str, namespace: str | None = None) -> list[ManagedRecord]:
        if namespace:
            resp = self._call(
                "list_records",
                self.api.list_namespaced_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=PLURALS[kind],
            )
        else:
            resp = self._call(
                "list_records",
                self.api.list_cluster_custom_object,
                group=API_GROUP,
                version=API_VERSION,
                plural=PLURALS[kind],
            )
        return [ManagedRecord.from_body(kind, item) for item in resp.get("items", [])]

    def _patch(self, record: ManagedRecord, body: dict[str, Any], status: bool) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "group": API_GROUP,
            "version": API_VERSION,
            "plural": PLURALS[record.kind],
            "name": record.name,
            "body": body,
            "field_manager": FIELD_MANAGER,
        }
        if record.namespace:
            kwargs["namespace"] = record.namespace
            fn = (
                self.api.patch_namespaced_custom_object_status
                if status
                else self.api.patch_namespaced_custom_object
            )
        else:
            fn = self.api.patch_cluster_custom_object_status if status else self.api.patch_cluster_custom_object
        return self._call("patch_status" if status else "patch_record", fn, **kwargs)

    def _refresh(self, record: ManagedRecord) -> bool:
        latest = self.get(record.kind, record.name, record.namespace)
        if latest is None:
            return False
        record.resource_version = latest.resource_version
        record.annotations = latest.annotations
        return True

    def write_status(
        self,
        record: ManagedRecord,
        fields: dict[str, Any],
        max_attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> None:
        """Merge the given status fields into the stored record.

        A None value removes the field. Does nothing if the record is gone.
        """
        for attempt in range(max_attempts):
            body: dict[str, Any] = {"status": fields}
            if record.resource_version:
                body["metadata"] = {"resourceVersion": record.resource_version}
            try:
                obj = self._patch(record, body, status=True)
            except ApiException as e:
                if e.status == 404:
                    logger.debug(f"{record.kind} {record.name} disappeared before its status was written")
                    return
                if e.status != 409 or attempt == max_attempts - 1:
                    raise
                logger.debug(f"Conflict writing status of {record.kind} {record.name}, retrying")
                if not self._refresh(record):
                    return
                continue
            record.resource_version = (obj.get("metadata") or {}).get("resourceVersion", record.resource_version)
            return

    def set_annotation_once(
        self,
        record: ManagedRecord,
        key: str,
        value: str,
        max_attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> str:
        """Set an annotation unless it already has a value.

        Returns:
            The value stored on the record afterwards (ours or the existing one)
        """
        for attempt in range(max_attempts):
            existing = record.annotations.get(key)
            if existing:
                return existing
            body: dict[str, Any] = {"metadata": {"annotations": {key: value}}}
            if record.resource_version:
                body["metadata"]["resourceVersion"] = record.resource_version
            try:
                obj = self._patch(record, body, status=False)
            except ApiException as e:
                if e.status != 409 or attempt == max_attempts - 1:
                    raise
                if not self._refresh(record):
                    return value
                continue
            meta = obj.get("metadata") or {}
            record.resource_version = meta.get("resourceVersion", record.resource_version)
            record.annotations = dict(meta.get("annotations") or {key: value})
            return record.annotations.get(key, value)
        return value
