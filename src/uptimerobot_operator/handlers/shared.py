"""Shared utilities for handlers."""

from __future__ import annotations

import logging
import os
import time
from typing import Any

from kubernetes import client

from .. import metrics
from ..constants import (
    DEFAULT_OPERATOR_NAMESPACE,
    KIND_ACCOUNT,
    KIND_CONTACT,
    KIND_MONITOR,
    REASON_RECONCILE_ERROR,
    REASON_SECRET_NOT_FOUND,
)
from ..engine.record import ManagedRecord
from ..engine.store import RecordStore
from ..exceptions import AccountResolutionError
from ..services.uptimerobot import UptimeRobotClient
from ..utils.cache import get_cached_object, make_cache_key, set_cached_object
from ..utils.rate_limit import handle_rate_limit_error
from ..utils.secrets import get_secret_value

logger = logging.getLogger(__name__)


def operator_namespace() -> str:
    return os.getenv("OPERATOR_NAMESPACE", DEFAULT_OPERATOR_NAMESPACE)


def _load_config() -> None:
    from kubernetes import config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client.

    Returns:
        CustomObjectsApi instance
    """
    _load_config()
    return client.CustomObjectsApi()


def get_core_client() -> client.CoreV1Api:
    """Get Kubernetes CoreV1Api client for Secrets and ConfigMaps."""
    _load_config()
    return client.CoreV1Api()


def get_record_store() -> RecordStore:
    return RecordStore(get_k8s_client())


def _select_default(records: list[ManagedRecord], kind: str) -> ManagedRecord:
    defaults = [r for r in records if r.spec.get("isDefault")]
    if not defaults:
        raise LookupError(f"no default {kind.lower()}")
    if len(defaults) > 1:
        raise LookupError(f"more than 1 default {kind.lower()} found")
    return defaults[0]


def get_record_with_cache(
    store: RecordStore,
    kind: str,
    name: str,
    operation: str,
    attempt: int = 0,
) -> ManagedRecord:
    """Get a cluster-scoped record by name, or the default one when name is empty.

    Args:
        store: Record store
        kind: Record kind (Account or Contact)
        name: Record name; empty selects the single record with ``spec.isDefault``
        operation: Operation label for API call metrics
        attempt: Rate-limit retries already made

    Returns:
        The record

    Raises:
        LookupError: The named record does not exist, or the default is missing or ambiguous
        client.exceptions.ApiException: API error
    """
    cache_key = make_cache_key(kind, None, name or "<default>")
    cached = get_cached_object(cache_key)
    if cached is not None:
        metrics.api_call_total.labels(api_type="k8s", operation=operation, result="cache_hit").inc()
        return cached

    start_time = time.time()
    try:
        if name:
            record = store.get(kind, name)
            if record is None:
                raise LookupError(f'{kind.lower()} "{name}" not found')
        else:
            record = _select_default(store.list(kind), kind)
        set_cached_object(cache_key, record)
        return record
    except client.exceptions.ApiException as e:
        if handle_rate_limit_error(e, attempt=attempt):
            return get_record_with_cache(store, kind, name, operation, attempt + 1)
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)


def get_account(store: RecordStore, name: str) -> ManagedRecord:
    """Resolve an Account by name; an empty name means the default Account.

    Raises:
        AccountResolutionError: Account missing or ambiguous
    """
    try:
        return get_record_with_cache(store, KIND_ACCOUNT, name, "get_account")
    except (LookupError, client.exceptions.ApiException) as e:
        raise AccountResolutionError(f"Failed to get account: {e}", REASON_RECONCILE_ERROR) from e


def get_api_key(core: client.CoreV1Api, account: ManagedRecord) -> str:
    """Read the Account's API key from its Secret in the operator namespace.

    Raises:
        AccountResolutionError: Secret or key missing, or the key is blank
    """
    ref = account.spec.get("apiKeySecretRef") or {}
    namespace = operator_namespace()
    cache_key = make_cache_key("ApiKey", namespace, f"{ref.get('name', '')}/{ref.get('key', '')}")
    cached = get_cached_object(cache_key)
    if cached is not None:
        return cached

    try:
        api_key = get_secret_value(core, namespace, ref.get("name", ""), ref.get("key", "")).strip()
        if not api_key:
            raise ValueError(f"key '{ref.get('key', '')}' in secret '{ref.get('name', '')}' is empty")
    except (ValueError, client.exceptions.ApiException) as e:
        raise AccountResolutionError(f"Failed to get API key: {e}", REASON_SECRET_NOT_FOUND) from e

    set_cached_object(cache_key, api_key)
    return api_key


def build_client(store: RecordStore, core: client.CoreV1Api, spec: dict[str, Any]) -> UptimeRobotClient:
    """Build an API client for the Account referenced by ``spec.account.name``.

    Raises:
        AccountResolutionError: Account or API key cannot be resolved
    """
    account_name = (spec.get("account") or {}).get("name", "") or ""
    account = get_account(store, account_name)
    return UptimeRobotClient(get_api_key(core, account))


def get_contact(store: RecordStore, name: str) -> ManagedRecord:
    """Resolve a Contact by name; an empty name means the default Contact.

    Contacts are not cached: a Monitor waits for a Contact's ID to appear.

    Raises:
        LookupError: Contact missing or ambiguous
    """
    if name:
        record = store.get(KIND_CONTACT, name)
        if record is None:
            raise LookupError(f'contact "{name}" not found')
        return record
    return _select_default(store.list(KIND_CONTACT), KIND_CONTACT)


def resolve_monitor_ids(store: RecordStore, namespace: str | None, refs: list[dict[str, Any]]) -> list[int]:
    """Resolve Monitor references to numeric UptimeRobot IDs.

    Monitors that are missing, not ready yet, or hold a non-numeric ID are
    skipped; they are picked up by a later resync.
    """
    ids = []
    for ref in refs or []:
        name = (ref or {}).get("name", "")
        if not name:
            continue
        monitor = store.get(KIND_MONITOR, name, namespace)
        if monitor is None:
            logger.info(f"Referenced Monitor {namespace}/{name} not found, skipping")
            continue
        if not monitor.ready or not monitor.external_id:
            logger.info(f"Referenced Monitor {namespace}/{name} is not ready, skipping")
            continue
        try:
            ids.append(int(monitor.external_id))
        except ValueError:
            logger.warning(f"Referenced Monitor {namespace}/{name} has invalid ID {monitor.external_id!r}, skipping")
    return ids
