import asyncio
import json
from typing import Optional
from urllib.parse import urlencode

import pytest

import app
from storage import PersistenceError


async def _call_app(method: str, path: str, *, payload: Optional[dict] = None, query: Optional[dict] = None):
    body = b""
    headers = [(b"host", b"testserver")]
    if payload is not None:
        body = json.dumps(payload).encode("utf-8")
        headers.extend(
            [
                (b"content-type", b"application/json"),
                (b"content-length", str(len(body)).encode()),
            ]
        )
    query_string = urlencode(query or {}, doseq=True).encode()
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method.upper(),
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "scheme": "http",
        "query_string": query_string,
        "headers": headers,
        "client": ("testclient", 12345),
        "server": ("testserver", 80),
        "state": {},
    }

    messages = []

    async def receive():
        nonlocal body
        if body:
            chunk, body = body, b""
            return {"type": "http.request", "body": chunk, "more_body": False}
        return {"type": "http.disconnect"}

    async def send(message):
        messages.append(message)

    await app.app(scope, receive, send)
    status = 500
    body_bytes = b""
    for message in messages:
        if message["type"] == "http.response.start":
            status = message["status"]
        elif message["type"] == "http.response.body":
            body_bytes += message.get("body", b"")
    data = json.loads(body_bytes.decode("utf-8") or "{}")
    return status, data


def _post(path: str, payload: dict) -> tuple[int, dict]:
    return asyncio.run(_call_app("POST", path, payload=payload))


def _get(path: str, query: Optional[dict] = None) -> tuple[int, dict]:
    return asyncio.run(_call_app("GET", path, query=query))


def _session_payload(**overrides):
    payload = {
        "user_id": "alice",
        "instrument": "Bb",
        "key": "C",
        "mode": "learning",
        "level": "intermediate",
        "correct_count": 16,
        "total_count": 20,
        "note_times": [1.0, 1.5, 2.0],
        "notes_practiced": ["C4", "D4", "E4"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def _no_remote(monkeypatch):
    monkeypatch.delenv("SCORES_REMOTE_URL", raising=False)
    monkeypatch.delenv("TRANSPOSITION_ENABLED", raising=False)


def test_post_session_updates_track_overview_and_score_log(temp_db):
    status, data = _post("/sessions", _session_payload())
    assert status == 200
    assert data["track"]["competency"] > 0.2
    assert data["track"]["persisted"] is True
    assert data["track"]["metrics"]["avg_speed_seconds"] == pytest.approx(1.5)
    assert data["overview"]["competency"] > 0.0
    assert data["score"] == {
        "displayScore": 80,
        "proficiencyScore": pytest.approx(80 * 1.5),
        "stars": 3,
        "correctCount": 16,
        "totalQuestions": 20,
    }
    assert data["score_id"] is not None

    status, track = _get("/players/alice/tracks/Bb/C")
    assert status == 200
    assert track["total_sessions"] == 1
    assert track["notes_covered_count"] == 3
    assert track["display_score"] == data["track"]["display_score"]

    status, overview = _get("/players/alice/overview")
    assert status == 200
    assert overview["total_sessions"] == 1

    status, scores = _get("/players/alice/scores")
    assert status == 200
    assert len(scores["scores"]) == 1
    logged = scores["scores"][0]
    assert logged["percentage"] == 80
    assert logged["proficiencyScore"] == data["track"]["display_score"]
    assert logged["instrument"] == "Bb"


def test_marathon_session_logs_lives(temp_db):
    status, data = _post(
        "/sessions",
        _session_payload(mode="marathon", correct_count=12, total_count=15, end_reason="out_of_lives"),
    )
    assert status == 200
    assert data["score"]["displayScore"] == 1200
    assert data["score"]["totalAnswers"] == 15
    _, scores = _get("/players/alice/scores")
    assert scores["scores"][0]["livesLost"] == 3
    assert scores["scores"][0]["endReason"] == "out_of_lives"


def test_player_tier_selects_scorer(temp_db):
    status, data = _post("/sessions", _session_payload(correct_count=14, player_tier="advanced"))
    assert status == 200
    assert data["score"]["stars"] == 1
    status, data = _post("/sessions", _session_payload(player_tier="grandmaster"))
    assert status == 400


def test_invalid_sessions_are_rejected(temp_db):
    status, _ = _post("/sessions", _session_payload(instrument="Tuba"))
    assert status == 404
    status, _ = _post("/sessions", _session_payload(mode="zen"))
    assert status == 400
    status, _ = _post("/sessions", _session_payload(correct_count=-1))
    assert status == 422
    _, scores = _get("/players/alice/scores")
    assert scores["scores"] == []


def test_track_matrix_and_default(temp_db):
    _post("/sessions", _session_payload(instrument="Bb", key="Bb"))

    status, data = _get("/players/alice/tracks")
    assert status == 200
    assert data["tracks"]["Bb"]["Bb"] is None
    assert data["tracks"]["C"]["A"]["display_score"] == 20
    assert len(data["tracks"]) == 4
    assert all(len(row) == 9 for row in data["tracks"].values())

    status, default = _get("/players/alice/tracks/default")
    assert status == 200
    assert default["total_sessions"] == 1
    assert default["band"]["name"]


def test_unknown_track_is_404(temp_db):
    status, _ = _get("/players/alice/tracks/Bb/Q")
    assert status == 404
    status, _ = _get("/players/alice/tracks/Bb/Q/trend")
    assert status == 404


def test_trend_endpoint(temp_db):
    _post("/sessions", _session_payload(key="F", correct_count=10))
    status, data = _get("/players/alice/tracks/Bb/F/trend", {"days": 7})
    assert status == 200
    assert data["days"] == 7
    assert len(data["points"]) == 1
    assert data["points"][0]["accuracy_percent"] == 50
    assert data["points"][0]["session_mode"] == "learning"


def test_store_outage_maps_to_503(temp_db, monkeypatch):
    def offline(_track_key):
        raise PersistenceError("offline")

    monkeypatch.setattr(app.store, "load", offline)
    status, data = _get("/players/alice/tracks/default")
    assert status == 503
    status, _ = _post("/sessions", _session_payload())
    assert status == 503


def test_overview_outage_records_nothing(temp_db, monkeypatch):
    load = app.store.load

    def overview_offline(track_key):
        if track_key.instrument == "*":
            raise PersistenceError("offline")
        return load(track_key)

    monkeypatch.setattr(app.store, "load", overview_offline)
    for _ in range(2):
        status, _ = _post("/sessions", _session_payload())
        assert status == 503

    status, track = _get("/players/alice/tracks/Bb/C")
    assert status == 200
    assert track["total_sessions"] == 0
    _, scores = _get("/players/alice/scores")
    assert scores["scores"] == []


def test_overview_is_not_difficulty_weighted(temp_db):
    status, data = _post("/sessions", _session_payload(level="basic", correct_count=20))
    assert status == 200
    assert data["overview"]["weighted_performance"] == pytest.approx(data["overview"]["raw_performance"])
    assert data["track"]["weighted_performance"] == pytest.approx(data["track"]["raw_performance"] * 0.25)


def test_negative_speed_is_rejected(temp_db):
    status, _ = _post("/sessions", _session_payload(avg_speed_seconds=-1.5))
    assert status == 422


def test_trend_accepts_very_large_windows(temp_db):
    _post("/sessions", _session_payload(key="G"))
    status, data = _get("/players/alice/tracks/Bb/G/trend", {"days": 1_000_000})
    assert status == 200
    assert len(data["points"]) == 1


def test_bands_endpoint():
    status, data = _get("/bands")
    assert status == 200
    assert [band["name"] for band in data["bands"]] == [
        "Early Learning",
        "Developing",
        "Functional",
        "Independent",
        "Mastered",
    ]
    assert data["bands"][4]["min_score"] == pytest.approx(0.8)
