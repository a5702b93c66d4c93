"""Tests for the create / adopt / update / recreate protocol."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock

import pytest

from uptimerobot_operator.constants import ANNOTATION_ADOPT_ID, COND_ERROR, COND_READY, COND_SYNCED
from uptimerobot_operator.engine.record import ExternalEntity, ManagedRecord
from uptimerobot_operator.engine.resolver import MatchQuery
from uptimerobot_operator.engine.sync import SyncEngine
from uptimerobot_operator.exceptions import TransientAPIFailure, ValidationFailure
from uptimerobot_operator.services.uptimerobot import ConflictError, NotFoundError, UptimeRobotAPIError
from uptimerobot_operator.utils.conditions import get_condition


class FakeAdapter:
    """In-memory external service with a single entity type."""

    kind = "Monitor"
    noun = "monitor"
    status_fields = ("heartbeatURL",)

    def __init__(self, desired="HTTPS"):
        self.desired = desired
        self.entities: dict[str, ExternalEntity] = {}
        self.next_id = 100
        self.calls: list[tuple] = []
        self.create_error: Exception | None = None
        self.update_error: Exception | None = None
        self.delete_error: Exception | None = None

    def desired_type(self, record):
        return self.desired

    def match_query(self, record):
        return MatchQuery(key="https://example.com", name="web")

    def create(self, record):
        self.calls.append(("create",))
        if self.create_error is not None:
            raise self.create_error
        entity = ExternalEntity(id=str(self.next_id), type=self.desired, key="https://example.com", name="web")
        self.next_id += 1
        self.entities[entity.id] = entity
        return entity

    def update(self, record, entity_id):
        self.calls.append(("update", entity_id))
        if self.update_error is not None:
            raise self.update_error
        if entity_id not in self.entities:
            raise NotFoundError("monitor not found", status=404)
        return self.entities[entity_id]

    def get(self, entity_id):
        self.calls.append(("get", entity_id))
        if entity_id not in self.entities:
            raise NotFoundError("monitor not found", status=404)
        return self.entities[entity_id]

    def delete(self, entity_id):
        self.calls.append(("delete", entity_id))
        if self.delete_error is not None:
            raise self.delete_error
        self.entities.pop(entity_id, None)

    def list(self):
        self.calls.append(("list",))
        return list(self.entities.values())

    def apply_status(self, record, entity):
        record.status["heartbeatURL"] = None


def make_record(status=None, annotations=None, generation=1) -> ManagedRecord:
    return ManagedRecord(
        kind="Monitor",
        name="web",
        namespace="default",
        uid="uid-1",
        generation=generation,
        annotations=dict(annotations or {}),
        spec={"monitor": {"type": "HTTPS"}},
        status=dict(status or {}),
    )


def status_of(record, cond_type):
    return get_condition(record.conditions, cond_type)["status"]


class TestCreate:
    """Test cases for the create path."""

    def test_create_when_no_identity(self):
        """Test that a record without an ID creates exactly one entity."""
        adapter = FakeAdapter()
        store = MagicMock()
        recorder = Mock()
        record = make_record()

        outcome = SyncEngine(adapter, store, recorder).sync(record)

        assert outcome.created
        assert record.status["id"] == "100"
        assert record.status["ready"] is True
        assert record.status["type"] == "HTTPS"
        assert record.status["observedGeneration"] == 1
        assert record.status["lastSynced"]
        assert status_of(record, COND_READY) == "True"
        assert status_of(record, COND_SYNCED) == "True"
        assert status_of(record, COND_ERROR) == "False"
        assert get_condition(record.conditions, COND_READY)["message"] == "Monitor reconciled successfully"
        assert [c[0] for c in adapter.calls] == ["create"]
        recorder.record.assert_called_once_with("Created", "Created monitor 100")

    def test_create_failure_is_transient(self):
        """Test that an API error on create sets the failure triple."""
        adapter = FakeAdapter()
        adapter.create_error = UptimeRobotAPIError("server error", status=500)
        store = MagicMock()
        record = make_record()

        with pytest.raises(TransientAPIFailure, match="Failed to create monitor: server error"):
            SyncEngine(adapter, store).sync(record)

        assert record.status["ready"] is False
        assert status_of(record, COND_READY) == "False"
        assert status_of(record, COND_SYNCED) == "False"
        assert status_of(record, COND_ERROR) == "True"
        assert get_condition(record.conditions, COND_READY)["reason"] == "APIError"
        assert get_condition(record.conditions, COND_SYNCED)["reason"] == "SyncError"
        store.write_status.assert_called()


class TestUpdate:
    """Test cases for the update path."""

    def test_update_existing_identity(self):
        """Test that a stored ID is updated in place."""
        adapter = FakeAdapter()
        adapter.entities["5"] = ExternalEntity(id="5", type="HTTPS")
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})

        outcome = SyncEngine(adapter, MagicMock()).sync(record)

        assert not outcome.created
        assert record.status["id"] == "5"
        assert adapter.calls == [("update", "5")]

    def test_recreate_when_entity_vanished(self):
        """Test that a vanished entity is recreated and the new ID stored."""
        adapter = FakeAdapter()
        recorder = Mock()
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})

        outcome = SyncEngine(adapter, MagicMock(), recorder).sync(record)

        assert outcome.recreated
        assert record.status["id"] == "100"
        assert record.status["ready"] is True
        assert adapter.calls == [("update", "5"), ("create",)]
        recorder.record.assert_called_once()
        assert recorder.record.call_args.args[0] == "Recreated"

    def test_update_error_keeps_identity(self):
        """Test that a transient failure never clears the stored ID."""
        adapter = FakeAdapter()
        adapter.entities["5"] = ExternalEntity(id="5", type="HTTPS")
        adapter.update_error = UptimeRobotAPIError("timeout")
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})

        with pytest.raises(TransientAPIFailure, match="Failed to edit monitor"):
            SyncEngine(adapter, MagicMock()).sync(record)

        assert record.status["id"] == "5"
        assert record.status["ready"] is False

    def test_resync_is_idempotent(self):
        """Test that two syncs of an unchanged record only update."""
        adapter = FakeAdapter()
        engine = SyncEngine(adapter, MagicMock())
        record = make_record()

        engine.sync(record)
        engine.sync(record)

        assert [c[0] for c in adapter.calls] == ["create", "update"]
        assert len(adapter.entities) == 1


class TestTypeChange:
    """Test cases for type changes."""

    def test_type_change_deletes_then_creates(self):
        """Test that a changed type replaces the entity."""
        adapter = FakeAdapter(desired="Keyword")
        adapter.entities["5"] = ExternalEntity(id="5", type="HTTPS")
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})

        SyncEngine(adapter, MagicMock()).sync(record)

        assert adapter.calls == [("delete", "5"), ("create",)]
        assert record.status["id"] == "100"
        assert record.status["type"] == "Keyword"

    def test_type_change_tolerates_missing_entity(self):
        """Test that a NotFound on the type-change delete is success."""
        adapter = FakeAdapter(desired="Keyword")
        adapter.delete_error = NotFoundError("gone", status=404)
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})

        SyncEngine(adapter, MagicMock()).sync(record)

        assert record.status["id"] == "100"

    def test_type_change_delete_error_is_transient(self):
        """Test that a failed type-change delete keeps the old identity."""
        adapter = FakeAdapter(desired="Keyword")
        adapter.delete_error = UptimeRobotAPIError("boom", status=500)
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})

        with pytest.raises(TransientAPIFailure, match="delete monitor for type change"):
            SyncEngine(adapter, MagicMock()).sync(record)

        assert record.status["id"] == "5"
        assert ("create",) not in adapter.calls

    def test_type_change_retried_after_failed_delete(self):
        """Test that a retry after a failed delete still replaces the entity."""
        adapter = FakeAdapter(desired="Keyword")
        adapter.entities["5"] = ExternalEntity(id="5", type="HTTPS")
        adapter.delete_error = UptimeRobotAPIError("boom", status=500)
        record = make_record({"id": "5", "ready": True, "type": "HTTPS"})
        engine = SyncEngine(adapter, MagicMock())

        with pytest.raises(TransientAPIFailure):
            engine.sync(record)
        assert record.status["ready"] is False

        adapter.delete_error = None
        adapter.calls.clear()
        engine.sync(record)

        assert adapter.calls == [("delete", "5"), ("create",)]
        assert record.status["id"] == "100"
        assert record.status["type"] == "Keyword"

    def test_type_change_while_not_ready(self):
        """Test that a changed type is detected even when Ready is false."""
        adapter = FakeAdapter(desired="Keyword")
        adapter.entities["5"] = ExternalEntity(id="5", type="HTTPS")
        record = make_record({"id": "5", "ready": False, "type": "HTTPS"})

        SyncEngine(adapter, MagicMock()).sync(record)

        assert adapter.calls == [("delete", "5"), ("create",)]


class TestAdoption:
    """Test cases for annotation-driven adoption."""

    def test_adopt_existing(self):
        """Test that the adopt annotation takes over the named entity."""
        adapter = FakeAdapter()
        adapter.entities["42"] = ExternalEntity(id="42", type="HTTPS")
        recorder = Mock()
        record = make_record(annotations={ANNOTATION_ADOPT_ID: "42"})

        outcome = SyncEngine(adapter, MagicMock(), recorder).sync(record)

        assert outcome.adopted
        assert record.status["id"] == "42"
        assert record.status["ready"] is True
        assert adapter.calls == [("get", "42"), ("update", "42")]
        assert ("create",) not in adapter.calls
        recorder.record.assert_called_once_with("Adopted", "Adopted existing monitor 42")

    def test_adopt_missing_is_validation_failure(self):
        """Test that adopting an unknown ID fails without creating anything."""
        adapter = FakeAdapter()
        store = MagicMock()
        record = make_record(annotations={ANNOTATION_ADOPT_ID: "42"})

        with pytest.raises(ValidationFailure, match="cannot adopt monitor: monitor with ID 42 not found"):
            SyncEngine(adapter, store).sync(record)

        assert adapter.calls == [("get", "42")]
        assert record.status["ready"] is False
        assert get_condition(record.conditions, COND_READY)["reason"] == "ReconcileError"
        assert get_condition(record.conditions, COND_SYNCED) is None
        assert status_of(record, COND_ERROR) == "True"

    def test_adopt_type_mismatch(self):
        """Test that adopting an entity of another type fails."""
        adapter = FakeAdapter(desired="HTTPS")
        adapter.entities["42"] = ExternalEntity(id="42", type="Heartbeat")
        record = make_record(annotations={ANNOTATION_ADOPT_ID: "42"})

        with pytest.raises(ValidationFailure) as exc_info:
            SyncEngine(adapter, MagicMock()).sync(record)

        assert str(exc_info.value) == (
            "cannot adopt monitor: type mismatch - existing monitor is Heartbeat but spec defines HTTPS"
        )
        assert ("update", "42") not in adapter.calls

    def test_adopt_ignored_when_ready_with_same_id(self):
        """Test that an already adopted record simply updates."""
        adapter = FakeAdapter()
        adapter.entities["42"] = ExternalEntity(id="42", type="HTTPS")
        record = make_record({"id": "42", "ready": True, "type": "HTTPS"}, annotations={ANNOTATION_ADOPT_ID: "42"})

        SyncEngine(adapter, MagicMock()).sync(record)

        assert adapter.calls == [("update", "42")]


class TestDuplicateConflict:
    """Test cases for create conflicts."""

    def test_conflict_with_existing_id(self):
        """Test that an ID carried by the conflict is adopted."""
        adapter = FakeAdapter()
        adapter.entities["77"] = ExternalEntity(id="77", type="HTTPS")
        adapter.create_error = ConflictError("duplicate", existing_id="77")
        record = make_record()

        outcome = SyncEngine(adapter, MagicMock()).sync(record)

        assert outcome.adopted
        assert record.status["id"] == "77"
        assert ("update", "77") in adapter.calls

    def test_conflict_resolved_from_listing(self):
        """Test that a conflict without an ID falls back to the resolver."""
        adapter = FakeAdapter()
        adapter.entities["77"] = ExternalEntity(id="77", type="HTTPS", key="https://example.com/", name="web")
        adapter.create_error = ConflictError("duplicate")
        record = make_record()

        SyncEngine(adapter, MagicMock()).sync(record)

        assert record.status["id"] == "77"
        assert ("list",) in adapter.calls

    def test_conflict_without_unique_match_is_transient(self):
        """Test that an ambiguous duplicate is retried, never guessed."""
        adapter = FakeAdapter()
        adapter.entities["77"] = ExternalEntity(id="77", key="https://example.com", name="web")
        adapter.entities["78"] = ExternalEntity(id="78", key="https://example.com", name="web")
        adapter.create_error = ConflictError("duplicate")
        record = make_record()

        with pytest.raises(TransientAPIFailure, match="no unique existing match"):
            SyncEngine(adapter, MagicMock()).sync(record)

        assert not record.status.get("id")

    def test_conflict_with_stale_id_falls_back_to_listing(self):
        """Test that a conflict ID that no longer exists is not adopted."""
        adapter = FakeAdapter()
        adapter.entities["77"] = ExternalEntity(id="77", type="HTTPS", key="https://example.com", name="web")
        adapter.create_error = ConflictError("duplicate", existing_id="13")
        record = make_record()

        SyncEngine(adapter, MagicMock()).sync(record)

        assert record.status["id"] == "77"
        assert adapter.calls[:3] == [("create",), ("get", "13"), ("list",)]

    def test_conflict_with_stale_id_and_no_match_is_transient(self):
        """Test that a stale conflict ID with no listing match is retried."""
        adapter = FakeAdapter()
        adapter.create_error = ConflictError("duplicate", existing_id="13")
        record = make_record()

        with pytest.raises(TransientAPIFailure, match="no unique existing match"):
            SyncEngine(adapter, MagicMock()).sync(record)

        assert not record.status.get("id")


class TestOwnedFields:
    """Test cases for the status fields written by the engine."""

    def test_owned_fields_include_adapter_fields(self):
        """Test that only engine and adapter fields are written."""
        record = make_record({"id": "1", "ready": True, "unrelated": "x"})

        fields = SyncEngine(FakeAdapter(), MagicMock()).owned_fields(record)

        assert "heartbeatURL" in fields
        assert "id" in fields
        assert "unrelated" not in fields

    def test_checkpoint_stamps_generation(self):
        """Test that every status write carries the record's generation."""
        store = MagicMock()
        record = make_record(generation=7)

        SyncEngine(FakeAdapter(), store).sync(record)

        for call in store.write_status.call_args_list:
            assert call.args[1]["observedGeneration"] == 7
