"""Duplicate/adoption resolution against a snapshot of external entities.

The resolver is a pure function over an explicit listing: records racing to
create the same entity each take their own snapshot, so there is no shared
state to keep coherent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .record import ExternalEntity


@dataclass(frozen=True)
class MatchQuery:
    """What a record would look like in the external listing."""

    key: str | None = None
    name: str | None = None


def normalize_key(value: str | None) -> str:
    """Trim whitespace and one trailing slash so ``https://a.com/`` equals ``https://a.com``."""
    if not value:
        return ""
    trimmed = value.strip()
    if trimmed.endswith("/"):
        trimmed = trimmed[:-1]
    return trimmed


def resolve_duplicate(
    entities: Iterable[ExternalEntity],
    query: MatchQuery,
) -> ExternalEntity | None:
    """Find the unique entity the query refers to, or None.

    1. With a primary key: entities whose normalized key matches, and whose
       name matches too when both names are non-empty. A single match wins.
    2. Otherwise, with a display name: the entity with exactly that name, if
       there is exactly one.

    A key without a name never matches on its own; ambiguity is never
    resolved by picking one.
    """
    candidates = list(entities)
    key = normalize_key(query.key)
    name = (query.name or "").strip()

    if key and name:
        by_key = [
            e
            for e in candidates
            if normalize_key(e.key) == key and (not e.name or e.name == name)
        ]
        if len(by_key) == 1:
            return by_key[0]
        if len(by_key) > 1:
            return None

    if name:
        by_name = [e for e in candidates if e.name == name]
        if len(by_name) == 1:
            return by_name[0]

    return None
