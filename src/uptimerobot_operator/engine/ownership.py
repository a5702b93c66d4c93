"""Cross-record ownership queries over the record store."""

from __future__ import annotations

from ..constants import ANNOTATION_ADOPT_ID
from .record import ManagedRecord
from .store import RecordStore


def is_adopter(candidate: ManagedRecord, external_id: str) -> bool:
    """A record adopts an ID when it announces it or holds it while ready."""
    if candidate.annotations.get(ANNOTATION_ADOPT_ID) == external_id:
        return True
    return candidate.ready and candidate.external_id == external_id


def find_adopter(store: RecordStore, record: ManagedRecord) -> ManagedRecord | None:
    """Return another live record that has taken over ``record``'s external entity.

    Only records of the same kind in the same namespace using the same
    Account are considered: different accounts may reuse the same IDs.
    """
    external_id = record.external_id
    if not external_id:
        return None

    for other in store.list(record.kind, record.namespace):
        if other.uid == record.uid or other.being_deleted:
            continue
        if other.account_name != record.account_name:
            continue
        if is_adopter(other, external_id):
            return other
    return None
