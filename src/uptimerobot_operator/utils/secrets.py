"""Utilities for reading Kubernetes Secrets and encoding their values."""

from __future__ import annotations

import base64

from kubernetes import client


def encode_secret_value(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("utf-8")


def decode_secret_value(value: str | bytes) -> str:
    """Decode a value from Secret.data (base64) into text."""
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return base64.b64decode(value).decode("utf-8")


def get_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
) -> str:
    """Get a decoded value from a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key in the secret

    Returns:
        Secret value

    Raises:
        ValueError: If secret or key not found
    """
    try:
        secret = api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ValueError(f"Secret '{secret_name}' not found in namespace '{namespace}'") from e
        raise

    data = secret.data or {}
    if key not in data:
        raise ValueError(f"Key '{key}' not found in secret '{secret_name}'")
    return decode_secret_value(data[key])
