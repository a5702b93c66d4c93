"""Create / adopt / update / recreate protocol shared by every synced kind.

A kind plugs in through a ResourceAdapter; the engine owns the decision
procedure, the Ready/Synced/Error triple and the status checkpoints.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, NoReturn, Protocol

from .. import metrics
from ..constants import (
    ANNOTATION_ADOPT_ID,
    EVENT_REASON_ADOPTED,
    EVENT_REASON_CREATED,
    EVENT_REASON_RECREATED,
    EVENT_REASON_UPDATED,
    REASON_API_ERROR,
    REASON_RECONCILE_ERROR,
    REASON_RECONCILE_SUCCESS,
    REASON_SYNC_ERROR,
    REASON_SYNC_SUCCESS,
)
from ..exceptions import TransientAPIFailure, ValidationFailure
from ..services.uptimerobot.base import ConflictError, NotFoundError, UptimeRobotAPIError
from ..tracing import trace_span
from ..utils.conditions import set_error_condition, set_ready_condition, set_synced_condition
from ..utils.errors import sanitize_exception
from ..utils.events import EventRecorder
from .record import ExternalEntity, ManagedRecord
from .resolver import MatchQuery, resolve_duplicate
from .store import RecordStore

logger = logging.getLogger(__name__)

# Status fields written by the engine for every kind.
ENGINE_STATUS_FIELDS = ("ready", "id", "type", "lastSynced", "observedGeneration", "conditions")


class ResourceAdapter(Protocol):
    """What a kind must provide to be synced by the engine.

    ``update`` raises NotFoundError when the entity is gone, ``create``
    raises ConflictError on a duplicate, ``get`` raises NotFoundError.
    """

    kind: str
    noun: str
    status_fields: tuple[str, ...]

    def desired_type(self, record: ManagedRecord) -> str | None:
        ...

    def match_query(self, record: ManagedRecord) -> MatchQuery:
        ...

    def create(self, record: ManagedRecord) -> ExternalEntity:
        ...

    def update(self, record: ManagedRecord, entity_id: str) -> ExternalEntity:
        ...

    def get(self, entity_id: str) -> ExternalEntity:
        ...

    def delete(self, entity_id: str) -> None:
        ...

    def list(self) -> list[ExternalEntity]:
        ...

    def apply_status(self, record: ManagedRecord, entity: ExternalEntity) -> None:
        """Copy kind-specific observed fields from the entity into record.status."""
        ...


@dataclass
class SyncOutcome:
    entity: ExternalEntity
    created: bool = False
    adopted: bool = False
    recreated: bool = False


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class SyncEngine:
    """Drives one record towards its desired state in the external service."""

    def __init__(
        self,
        adapter: ResourceAdapter,
        store: RecordStore,
        recorder: EventRecorder | None = None,
    ):
        self.adapter = adapter
        self.store = store
        self.recorder = recorder

    @property
    def kind(self) -> str:
        return self.adapter.kind

    def sync(self, record: ManagedRecord) -> SyncOutcome:
        """Run the protocol for one record.

        Raises:
            ValidationFailure: The record must be changed before it can sync
            TransientAPIFailure: The external service failed; retry later
        """
        with trace_span(f"sync_{self.kind.lower()}", kind=self.kind, attributes={"record.name": record.name}):
            try:
                return self._sync(record)
            except ValidationFailure as e:
                self._mark_invalid(record, str(e))
                raise

    def _sync(self, record: ManagedRecord) -> SyncOutcome:
        if self._type_changed(record):
            self._delete_for_type_change(record)

        adopt_id = (record.annotations.get(ANNOTATION_ADOPT_ID) or "").strip()
        if adopt_id and not record.ready and adopt_id != record.external_id:
            return self._adopt(record, adopt_id)
        if record.external_id:
            return self._update(record)
        return self._create(record)

    # Transitions

    def _type_changed(self, record: ManagedRecord) -> bool:
        desired = self.adapter.desired_type(record)
        observed = record.status.get("type")
        return bool(record.external_id and desired and observed and observed != desired)

    def _delete_for_type_change(self, record: ManagedRecord) -> None:
        entity_id = record.external_id
        logger.info(
            f"{self.kind} {record.name}: type changed from {record.status.get('type')} "
            f"to {self.adapter.desired_type(record)}, recreating {self.adapter.noun} {entity_id}"
        )
        try:
            self.adapter.delete(entity_id)
        except NotFoundError:
            pass
        except UptimeRobotAPIError as e:
            self._fail_transient(record, f"delete {self.adapter.noun} for type change", e)

        record.status.update({"id": None, "type": None, "ready": False})
        self._checkpoint(record)
        metrics.sync_operations_total.labels(kind=self.kind, operation="type_change", result="success").inc()

    def _adopt(self, record: ManagedRecord, adopt_id: str) -> SyncOutcome:
        noun = self.adapter.noun
        logger.info(f"{self.kind} {record.name}: adopting existing {noun} {adopt_id}")
        try:
            entity = self.adapter.get(adopt_id)
        except NotFoundError as e:
            raise ValidationFailure(f"cannot adopt {noun}: {noun} with ID {adopt_id} not found") from e
        except UptimeRobotAPIError as e:
            self._fail_transient(record, f"get {noun} for adoption", e)

        desired = self.adapter.desired_type(record)
        if desired and entity.type and entity.type != desired:
            raise ValidationFailure(
                f"cannot adopt {noun}: type mismatch - existing {noun} is {entity.type} "
                f"but spec defines {desired}"
            )

        record.status.update({"id": adopt_id, "type": desired, "ready": True})
        self.adapter.apply_status(record, entity)
        self._checkpoint(record)
        metrics.adoption_total.labels(kind=self.kind, source="annotation").inc()

        try:
            updated = self.adapter.update(record, adopt_id)
        except UptimeRobotAPIError as e:
            self._fail_transient(record, f"edit adopted {noun}", e)

        self._mark_synced(record, updated, "adopt")
        self._record(EVENT_REASON_ADOPTED, f"Adopted existing {noun} {adopt_id}")
        return SyncOutcome(entity=updated, adopted=True)

    def _update(self, record: ManagedRecord) -> SyncOutcome:
        noun = self.adapter.noun
        entity_id = record.external_id
        try:
            entity = self.adapter.update(record, entity_id)
        except NotFoundError:
            logger.info(f"{self.kind} {record.name}: {noun} {entity_id} vanished, recreating")
            metrics.drift_recovered_total.labels(kind=self.kind).inc()
            record.status.update({"id": None, "ready": False})
            outcome = self._create(record, announce=False)
            outcome.recreated = True
            self._record(EVENT_REASON_RECREATED, f"Recreated {noun} {outcome.entity.id} (previous {entity_id} was gone)")
            return outcome
        except UptimeRobotAPIError as e:
            self._fail_transient(record, f"edit {noun}", e)

        self._mark_synced(record, entity, "update")
        self._record(EVENT_REASON_UPDATED, f"Updated {noun} {entity.id}")
        return SyncOutcome(entity=entity)

    def _create(self, record: ManagedRecord, announce: bool = True) -> SyncOutcome:
        noun = self.adapter.noun
        try:
            entity = self.adapter.create(record)
        except ConflictError as e:
            return self._adopt_duplicate(record, e)
        except UptimeRobotAPIError as e:
            self._fail_transient(record, f"create {noun}", e)

        self._mark_synced(record, entity, "create")
        if announce:
            self._record(EVENT_REASON_CREATED, f"Created {noun} {entity.id}")
        return SyncOutcome(entity=entity, created=True)

    def _adopt_duplicate(self, record: ManagedRecord, conflict: ConflictError) -> SyncOutcome:
        noun = self.adapter.noun
        match = None
        if conflict.existing_id:
            try:
                match = self.adapter.get(conflict.existing_id)
            except NotFoundError:
                logger.info(f"{self.kind} {record.name}: conflicting {noun} {conflict.existing_id} gone, searching")
            except UptimeRobotAPIError:
                match = ExternalEntity(id=conflict.existing_id)
        if match is None:
            try:
                entities = self.adapter.list()
            except UptimeRobotAPIError as e:
                self._fail_transient(record, f"list {noun}s after duplicate conflict", e)
            match = resolve_duplicate(entities, self.adapter.match_query(record))
            if match is None:
                self._fail_transient(
                    record,
                    f"create {noun}",
                    conflict,
                    detail="duplicate exists but no unique existing match was found",
                )

        logger.info(f"{self.kind} {record.name}: create conflicted, taking over existing {noun} {match.id}")
        metrics.adoption_total.labels(kind=self.kind, source="conflict").inc()
        record.status.update({"id": match.id, "type": self.adapter.desired_type(record), "ready": True})
        self.adapter.apply_status(record, match)
        self._checkpoint(record)

        try:
            entity = self.adapter.update(record, match.id)
        except UptimeRobotAPIError as e:
            self._fail_transient(record, f"edit adopted {noun}", e)

        self._mark_synced(record, entity, "create")
        self._record(EVENT_REASON_ADOPTED, f"Adopted existing {noun} {entity.id} after duplicate conflict")
        return SyncOutcome(entity=entity, created=False, adopted=True)

    # Status

    def owned_fields(self, record: ManagedRecord) -> dict[str, Any]:
        fields = ENGINE_STATUS_FIELDS + tuple(self.adapter.status_fields)
        return {name: record.status.get(name) for name in fields}

    def _checkpoint(self, record: ManagedRecord) -> None:
        record.status["observedGeneration"] = record.generation
        self.store.write_status(record, self.owned_fields(record))

    def _mark_synced(self, record: ManagedRecord, entity: ExternalEntity, operation: str) -> None:
        gen = record.generation
        record.status.update(
            {
                "ready": True,
                "id": entity.id,
                "type": self.adapter.desired_type(record),
                "lastSynced": _now(),
            }
        )
        self.adapter.apply_status(record, entity)
        set_ready_condition(
            record.conditions, True, REASON_RECONCILE_SUCCESS, f"{self.kind} reconciled successfully", gen
        )
        set_synced_condition(record.conditions, True, REASON_SYNC_SUCCESS, "Successfully synced with UptimeRobot", gen)
        set_error_condition(record.conditions, False, REASON_RECONCILE_SUCCESS, "", gen)
        self._checkpoint(record)
        metrics.sync_operations_total.labels(kind=self.kind, operation=operation, result="success").inc()

    def _mark_invalid(self, record: ManagedRecord, message: str) -> None:
        gen = record.generation
        record.status["ready"] = False
        set_ready_condition(record.conditions, False, REASON_RECONCILE_ERROR, message, gen)
        set_error_condition(record.conditions, True, REASON_RECONCILE_ERROR, message, gen)
        self._checkpoint(record)
        metrics.sync_operations_total.labels(kind=self.kind, operation="validate", result="failed").inc()

    def _fail_transient(
        self,
        record: ManagedRecord,
        action: str,
        error: Exception,
        detail: str | None = None,
    ) -> NoReturn:
        """Record a transient failure on the record and raise it.

        The stored external identity is kept so the next attempt can update
        instead of creating a second entity.
        """
        gen = record.generation
        error_text = detail or sanitize_exception(error)
        message = f"Failed to {action}: {error_text}"
        record.status["ready"] = False
        set_ready_condition(record.conditions, False, REASON_API_ERROR, message, gen)
        set_synced_condition(record.conditions, False, REASON_SYNC_ERROR, message, gen)
        set_error_condition(record.conditions, True, REASON_API_ERROR, error_text, gen)
        self._checkpoint(record)
        metrics.sync_operations_total.labels(kind=self.kind, operation=action.split()[0], result="failed").inc()
        raise TransientAPIFailure(message) from error

    def _record(self, reason: str, message: str) -> None:
        if self.recorder is not None:
            self.recorder.record(reason, message)
