"""In-memory view of a managed custom resource and of its external counterpart."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..constants import API_GROUP_VERSION, COND_READY
from ..utils.conditions import is_condition_true


@dataclass
class ManagedRecord:
    """Desired state plus observed status of one custom resource.

    The status dict is a private copy: the engine mutates it and hands the
    owned fields to the record store.
    """

    kind: str
    name: str
    namespace: str | None
    uid: str
    generation: int = 0
    resource_version: str | None = None
    deletion_timestamp: str | None = None
    finalizers: list[str] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    spec: dict[str, Any] = field(default_factory=dict)
    status: dict[str, Any] = field(default_factory=dict)
    api_version: str = API_GROUP_VERSION

    @classmethod
    def from_body(cls, kind: str, body: Mapping[str, Any]) -> "ManagedRecord":
        """Build a record from a kopf body or a raw custom object dict."""
        meta = body.get("metadata") or {}
        return cls(
            kind=kind,
            name=meta.get("name", ""),
            namespace=meta.get("namespace"),
            uid=meta.get("uid", ""),
            generation=int(meta.get("generation") or 0),
            resource_version=meta.get("resourceVersion"),
            deletion_timestamp=meta.get("deletionTimestamp"),
            finalizers=list(meta.get("finalizers") or []),
            annotations=dict(meta.get("annotations") or {}),
            labels=dict(meta.get("labels") or {}),
            spec=copy.deepcopy(dict(body.get("spec") or {})),
            status=copy.deepcopy(dict(body.get("status") or {})),
            api_version=body.get("apiVersion", API_GROUP_VERSION),
        )

    @property
    def conditions(self) -> list[dict[str, Any]]:
        return self.status.setdefault("conditions", [])

    @property
    def external_id(self) -> str:
        return str(self.status.get("id") or "")

    @property
    def ready(self) -> bool:
        return bool(self.status.get("ready"))

    @property
    def being_deleted(self) -> bool:
        return bool(self.deletion_timestamp)

    @property
    def account_name(self) -> str:
        return (self.spec.get("account") or {}).get("name", "") or ""

    @property
    def meta(self) -> dict[str, Any]:
        """Metadata dict in the shape handlers and loggers expect."""
        return {
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.uid,
            "generation": self.generation,
        }

    def is_ready_condition_true(self) -> bool:
        return is_condition_true(self.status.get("conditions") or [], COND_READY)

    def controller_reference(self) -> dict[str, Any]:
        """Owner reference that makes this record the controller of a child object."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


@dataclass
class ExternalEntity:
    """The counterpart object inside UptimeRobot.

    ``key`` is the canonical address used for duplicate detection (a URL for
    monitors) and ``name`` the display name. ``raw`` keeps the API payload.
    """

    id: str
    type: str | None = None
    key: str | None = None
    name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
