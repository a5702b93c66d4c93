"""Publishing a derived value into a Secret or ConfigMap owned by a record."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from ..constants import DEFAULT_PUBLISH_KEY, FIELD_MANAGER, PUBLISH_TYPE_CONFIGMAP, PUBLISH_TYPE_SECRET
from ..exceptions import PublishTargetNotManagedError, ValidationFailure
from ..utils.rate_limit import rate_limit_k8s
from ..utils.secrets import decode_secret_value, encode_secret_value
from .record import ManagedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishTarget:
    type: str
    name: str
    key: str


def resolve_target(record: ManagedRecord, config: dict[str, Any]) -> PublishTarget:
    """Apply defaults to a publish config: Secret ``<record>-heartbeat-url`` key ``heartbeatURL``."""
    return PublishTarget(
        type=config.get("type") or PUBLISH_TYPE_SECRET,
        name=(config.get("name") or "").strip() or f"{record.name}-heartbeat-url",
        key=(config.get("key") or "").strip() or DEFAULT_PUBLISH_KEY,
    )


def is_controlled_by(obj: Any, uid: str) -> bool:
    for ref in (obj.metadata.owner_references or []):
        if ref.controller and ref.uid == uid:
            return True
    return False


class SideEffectPublisher:
    """Keeps one generated object per record in sync with a computed value.

    The record's status remembers which object it published to under
    ``<prefix>Type``, ``<prefix>Name`` and ``<prefix>Key``; those fields are
    the only way the publisher finds objects to clean up later.
    """

    def __init__(
        self,
        core: client.CoreV1Api,
        status_prefix: str = "heartbeatURLPublishTarget",
        label: str = "heartbeat URL",
    ):
        self.core = core
        self.status_prefix = status_prefix
        self.label = label

    @property
    def status_fields(self) -> tuple[str, str, str]:
        p = self.status_prefix
        return (f"{p}Type", f"{p}Name", f"{p}Key")

    def current_target(self, record: ManagedRecord) -> PublishTarget | None:
        type_field, name_field, key_field = self.status_fields
        name = (record.status.get(name_field) or "").strip()
        type_ = record.status.get(type_field) or ""
        key = (record.status.get(key_field) or "").strip()
        if not (name or type_ or key):
            return None
        return PublishTarget(type=type_, name=name, key=key)

    def publish(self, record: ManagedRecord, value: str, config: dict[str, Any] | None) -> bool:
        """Reconcile the target object. Returns True if status fields changed.

        Raises:
            PublishTargetNotManagedError: The target exists and is not controlled by the record
            ValidationFailure: Unknown target type
        """
        if not value or config is None:
            return self.cleanup(record)

        target = resolve_target(record, config)
        if target.type not in (PUBLISH_TYPE_SECRET, PUBLISH_TYPE_CONFIGMAP):
            raise ValidationFailure(f"unsupported {self.label} publish type {target.type!r}")

        current = self.current_target(record)
        previous_key = ""
        if current is not None:
            if current.name and (current.type != target.type or current.name != target.name):
                self._delete_owned(record, current.type, current.name)
            else:
                previous_key = current.key

        self._upsert(record, target, previous_key, value)

        type_field, name_field, key_field = self.status_fields
        new_fields = {type_field: target.type, name_field: target.name, key_field: target.key}
        changed = any(record.status.get(k) != v for k, v in new_fields.items())
        record.status.update(new_fields)
        return changed

    def cleanup(self, record: ManagedRecord) -> bool:
        """Delete the previously published object, if owned, and forget it."""
        current = self.current_target(record)
        if current is None:
            return False
        if current.name:
            self._delete_owned(record, current.type, current.name)
        for field in self.status_fields:
            record.status[field] = None
        return True

    # Kubernetes object access

    def _read(self, type_: str, name: str, namespace: str) -> Any | None:
        read = (
            self.core.read_namespaced_secret
            if type_ == PUBLISH_TYPE_SECRET
            else self.core.read_namespaced_config_map
        )
        try:
            return rate_limit_k8s(read)(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def _delete_owned(self, record: ManagedRecord, type_: str, name: str) -> None:
        if type_ not in (PUBLISH_TYPE_SECRET, PUBLISH_TYPE_CONFIGMAP):
            logger.info(f"Skipping {self.label} publish cleanup for unknown target type {type_!r} ({name})")
            return
        obj = self._read(type_, name, record.namespace)
        if obj is None or not is_controlled_by(obj, record.uid):
            return
        delete = (
            self.core.delete_namespaced_secret
            if type_ == PUBLISH_TYPE_SECRET
            else self.core.delete_namespaced_config_map
        )
        try:
            rate_limit_k8s(delete)(name=name, namespace=record.namespace)
        except ApiException as e:
            if e.status != 404:
                raise
        logger.debug(f"Deleted {type_} {record.namespace}/{name} previously published by {record.name}")

    def _upsert(self, record: ManagedRecord, target: PublishTarget, previous_key: str, value: str) -> None:
        namespace = record.namespace
        obj = self._read(target.type, target.name, namespace)

        if obj is None:
            self._create(record, target, value)
            return

        if not is_controlled_by(obj, record.uid):
            raise PublishTargetNotManagedError(
                f'refusing to publish {self.label} to existing {target.type} "{target.name}": '
                f'object is not managed by {record.kind} "{record.name}"'
            )

        is_secret = target.type == PUBLISH_TYPE_SECRET
        data = dict(obj.data or {})
        current_value = data.get(target.key)
        if is_secret and current_value is not None:
            current_value = decode_secret_value(current_value)

        patch: dict[str, Any] = {}
        if current_value != value:
            patch[target.key] = encode_secret_value(value) if is_secret else value
        if previous_key and previous_key != target.key and previous_key in data:
            patch[previous_key] = None
        if not patch:
            return

        body = {"data": patch}
        if is_secret:
            rate_limit_k8s(self.core.patch_namespaced_secret)(
                name=target.name, namespace=namespace, body=body, field_manager=FIELD_MANAGER
            )
        else:
            rate_limit_k8s(self.core.patch_namespaced_config_map)(
                name=target.name, namespace=namespace, body=body, field_manager=FIELD_MANAGER
            )
        logger.debug(f"Updated {target.type} {namespace}/{target.name} key {target.key} for {record.name}")

    def _create(self, record: ManagedRecord, target: PublishTarget, value: str) -> None:
        owner = record.controller_reference()
        metadata = client.V1ObjectMeta(
            name=target.name,
            namespace=record.namespace,
            owner_references=[
                client.V1OwnerReference(
                    api_version=owner["apiVersion"],
                    kind=owner["kind"],
                    name=owner["name"],
                    uid=owner["uid"],
                    controller=True,
                    block_owner_deletion=True,
                )
            ],
        )
        if target.type == PUBLISH_TYPE_SECRET:
            body = client.V1Secret(
                metadata=metadata,
                type="Opaque",
                data={target.key: encode_secret_value(value)},
            )
            rate_limit_k8s(self.core.create_namespaced_secret)(
                namespace=record.namespace, body=body, field_manager=FIELD_MANAGER
            )
        else:
            body = client.V1ConfigMap(metadata=metadata, data={target.key: value})
            rate_limit_k8s(self.core.create_namespaced_config_map)(
                namespace=record.namespace, body=body, field_manager=FIELD_MANAGER
            )
        logger.debug(f"Created {target.type} {record.namespace}/{target.name} for {record.name}")
