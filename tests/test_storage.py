import json
import sqlite3
from datetime import datetime, timezone

import pytest

import db
from schemas import SESSION_HISTORY_LIMIT, CompetencyRecord, SessionRecord
from storage import InMemoryProficiencyStore, PersistenceError, SQLiteProficiencyStore, TrackKey

KEY = TrackKey("alice", "Eb", "F")


def _record(sessions=1):
    moment = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    history = [
        SessionRecord(
            timestamp=moment,
            raw_accuracy=0.75,
            raw_performance=0.6,
            weighted_performance=0.15,
            difficulty_tier="basic",
            competency_after=0.31,
            session_mode="learning",
        )
        for _ in range(sessions)
    ]
    return CompetencyRecord(
        competency=0.31,
        last_practice_timestamp=moment,
        session_history=history,
        notes_covered={"G4", "A4"},
        created_at=moment,
    )


def test_track_key_identity():
    assert KEY.storage_id == "alice:Eb:F"
    assert str(KEY) == "alice:Eb:F"
    assert TrackKey.for_overview("bob") == TrackKey("bob", "*", "*")
    assert {KEY: 1}[TrackKey("alice", "Eb", "F")] == 1


def test_record_json_uses_document_layout():
    payload = json.loads(_record().to_json())
    assert set(payload) == {"competency", "lastPracticeTimestamp", "sessionHistory", "notesCovered", "createdAt"}
    assert payload["notesCovered"] == ["A4", "G4"]
    assert payload["sessionHistory"][0]["rawAccuracy"] == 0.75
    assert payload["sessionHistory"][0]["sessionMode"] == "learning"


def test_record_history_is_capped_on_load():
    record = _record(sessions=SESSION_HISTORY_LIMIT + 5)
    assert len(record.session_history) == SESSION_HISTORY_LIMIT
    restored = CompetencyRecord.from_json(record.to_json())
    assert len(restored.session_history) == SESSION_HISTORY_LIMIT


def test_record_rejects_out_of_range_competency():
    with pytest.raises(ValueError):
        CompetencyRecord(competency=1.5)


def test_in_memory_store_round_trip():
    store = InMemoryProficiencyStore()
    assert store.load(KEY) is None
    store.save(KEY, _record())
    loaded = store.load(KEY)
    assert loaded.competency == pytest.approx(0.31)
    assert loaded.notes_covered == {"G4", "A4"}
    assert len(store) == 1


def test_sqlite_store_round_trip(temp_db):
    store = SQLiteProficiencyStore()
    assert store.load(KEY) is None
    store.save(KEY, _record())
    updated = _record()
    updated.competency = 0.5
    store.save(KEY, updated)

    assert store.load(KEY).competency == pytest.approx(0.5)
    rows = db._query("SELECT track_id, player_id FROM competency_records")
    assert [(row["track_id"], row["player_id"]) for row in rows] == [("alice:Eb:F", "alice")]


def test_sqlite_store_discards_corrupt_payload(temp_db):
    db.upsert_competency_payload(KEY.storage_id, "alice", '{"competency": "lots"}')
    assert SQLiteProficiencyStore().load(KEY) is None


def test_prefixed_payload_is_discarded_not_recovered():
    store = InMemoryProficiencyStore()
    store.put_raw(KEY, "record: " + _record().to_json())
    assert store.load(KEY) is None


def test_sqlite_errors_become_persistence_errors(temp_db, monkeypatch):
    def broken(*_args, **_kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(db, "get_competency_payload", broken)
    monkeypatch.setattr(db, "upsert_competency_payload", broken)
    store = SQLiteProficiencyStore()
    with pytest.raises(PersistenceError):
        store.load(KEY)
    with pytest.raises(PersistenceError):
        store.save(KEY, _record())
