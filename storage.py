"""Persistence backends for competency records.

The tracker only needs ``load``/``save`` keyed by an opaque track key; these
stores map a :class:`TrackKey` to a storage id and hold the JSON encoding of
each :class:`~schemas.CompetencyRecord`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from typing import Dict, NamedTuple, Optional, Protocol

from pydantic import ValidationError

import db
from schemas import CompetencyRecord

logger = logging.getLogger(__name__)

OVERVIEW_SCOPE = "*"


class PersistenceError(RuntimeError):
    """Raised when a store cannot read or write a record."""


class TrackKey(NamedTuple):
    """Composite identity of one independently tracked competency."""

    player_id: str
    instrument: str
    key: str

    @classmethod
    def for_overview(cls, player_id: str) -> "TrackKey":
        return cls(player_id, OVERVIEW_SCOPE, OVERVIEW_SCOPE)

    @property
    def storage_id(self) -> str:
        return f"{self.player_id}:{self.instrument}:{self.key}"

    def __str__(self) -> str:
        return self.storage_id


class ProficiencyStore(Protocol):
    def load(self, track_key: TrackKey) -> Optional[CompetencyRecord]:
        ...

    def save(self, track_key: TrackKey, record: CompetencyRecord) -> None:
        ...


def _decode(track_key: TrackKey, payload: Optional[str]) -> Optional[CompetencyRecord]:
    if payload is None:
        return None
    try:
        return CompetencyRecord.from_json(payload)
    except (ValidationError, ValueError) as exc:
        logger.warning("Discarding corrupt competency record for %s: %s", track_key, exc)
        return None


class InMemoryProficiencyStore:
    """Dictionary-backed store holding the JSON encoding of each record."""

    def __init__(self) -> None:
        self._payloads: Dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, track_key: TrackKey) -> Optional[CompetencyRecord]:
        with self._lock:
            payload = self._payloads.get(track_key.storage_id)
        return _decode(track_key, payload)

    def save(self, track_key: TrackKey, record: CompetencyRecord) -> None:
        payload = record.to_json()
        with self._lock:
            self._payloads[track_key.storage_id] = payload

    def raw_payload(self, track_key: TrackKey) -> Optional[str]:
        return self._payloads.get(track_key.storage_id)

    def put_raw(self, track_key: TrackKey, payload: str) -> None:
        with self._lock:
            self._payloads[track_key.storage_id] = payload

    def __len__(self) -> int:
        return len(self._payloads)


class SQLiteProficiencyStore:
    """Store backed by the ``competency_records`` table."""

    def load(self, track_key: TrackKey) -> Optional[CompetencyRecord]:
        try:
            payload = db.get_competency_payload(track_key.storage_id)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not load {track_key}: {exc}") from exc
        return _decode(track_key, payload)

    def save(self, track_key: TrackKey, record: CompetencyRecord) -> None:
        try:
            db.upsert_competency_payload(track_key.storage_id, track_key.player_id, record.to_json())
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not save {track_key}: {exc}") from exc


__all__ = [
    "InMemoryProficiencyStore",
    "OVERVIEW_SCOPE",
    "PersistenceError",
    "ProficiencyStore",
    "SQLiteProficiencyStore",
    "TrackKey",
]
