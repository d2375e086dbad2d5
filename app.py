# app.py — NoteQuest proficiency service
# - Records finished practice sessions per (instrument, key) track
# - Serves headline, matrix, overview and trend views of a player's competency
# - Logs score documents locally with optional remote forwarding

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

import db
import score_log
from engines.competency import CompetencyTracker
from engines.performance import average_note_time, resolve_player_tier, to_display_score
from engines.scoring import create_scorer
from engines.transposition import TranspositionTrackRegistry, UnknownTrackError
from env_validation import default_player_tier, total_possible_notes
from proficiency_bands import load_bands
from schemas import ScoreDocument, SessionInput
from storage import PersistenceError, SQLiteProficiencyStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        # Validate environment variables first
        from env_validation import validate_environment
        validate_environment()

        db.init()
        logger.info(
            "Proficiency service ready (notes=%s, default tier=%s)",
            tracker.total_possible_notes,
            default_player_tier(),
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="NoteQuest Proficiency", version="1.0.0", lifespan=_lifespan)

BANDS = load_bands()
store = SQLiteProficiencyStore()
tracker = CompetencyTracker(store, total_possible_notes=total_possible_notes(), bands=BANDS)


# ---------- Bodies ----------
class SessionBody(BaseModel):
    user_id: str = Field(min_length=1)
    instrument: str
    key: str
    mode: str = "learning"
    level: str = "basic"
    correct_count: int = Field(ge=0)
    total_count: int = Field(ge=0)
    avg_speed_seconds: Optional[float] = Field(default=None, ge=0)
    note_times: Optional[List[float]] = None
    notes_practiced: List[str] = Field(default_factory=list)
    interval_ms: int = Field(default=2000, gt=0)
    lives: int = Field(default=3, ge=0)
    end_reason: Optional[str] = None
    player_tier: Optional[str] = None


# ---------- Helpers ----------
def _registry(player: str, player_tier: Optional[str]) -> TranspositionTrackRegistry:
    try:
        tier = resolve_player_tier(player_tier or default_player_tier())
        return TranspositionTrackRegistry(tracker, player, player_tier=tier)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _unavailable(exc: PersistenceError) -> HTTPException:
    logger.error("Competency store unavailable: %s", exc)
    return HTTPException(status_code=503, detail="Competency store unavailable")


def _session_input(body: SessionBody) -> SessionInput:
    avg_speed = body.avg_speed_seconds
    if avg_speed is None and body.note_times:
        avg_speed = average_note_time(body.note_times)
    return SessionInput(
        correct_count=body.correct_count,
        total_count=body.total_count,
        avg_speed_seconds=avg_speed,
        notes_practiced=set(body.notes_practiced),
        difficulty_tier=body.level,
        session_mode=body.mode,
    )


# ---------- Sessions ----------
@app.post("/sessions")
def record_session(body: SessionBody):
    registry = _registry(body.user_id, body.player_tier)
    try:
        scorer = create_scorer(
            body.mode,
            registry.player_tier,
            difficulty=body.level,
            total_questions=body.total_count,
            interval_ms=body.interval_ms,
            lives=body.lives,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    for _ in range(min(body.correct_count, body.total_count)):
        scorer.mark_correct()
    for _ in range(max(0, body.total_count - body.correct_count)):
        scorer.mark_incorrect()
    summary = scorer.summary()

    session = _session_input(body)
    try:
        outcome, overview = registry.record_session_with_overview(body.instrument, body.key, session)
    except UnknownTrackError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc

    percentage = to_display_score(session.accuracy)
    document = ScoreDocument(
        user_id=body.user_id,
        mode=scorer.mode,
        level=scorer.difficulty,
        score=body.correct_count,
        total=body.total_count,
        percentage=percentage,
        display_score=summary.display_score,
        proficiency_score=outcome.display_score,
        stars=summary.stars,
        instrument=body.instrument,
        key=body.key,
        avg_speed=outcome.metrics.avg_speed_seconds,
        notes_covered=len(session.notes_practiced),
        lives_lost=getattr(scorer, "lives_lost", None),
        end_reason=body.end_reason,
    )
    score_id = None
    try:
        score_id = score_log.record_score(document)
    except sqlite3.Error as exc:
        logger.exception("Failed to log score for %s: %s", body.user_id, exc)

    return {
        "track": outcome.as_dict(),
        "overview": overview.as_dict(),
        "score": summary.as_dict(),
        "score_id": score_id,
    }


# ---------- Tracks ----------
@app.get("/players/{player}/tracks")
def get_all_tracks(player: str, player_tier: Optional[str] = None):
    registry = _registry(player, player_tier)
    try:
        matrix = registry.get_all_tracks()
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return {
        "player": player,
        "tracks": {
            instrument: {key: (snapshot.as_dict() if snapshot else None) for key, snapshot in row.items()}
            for instrument, row in matrix.items()
        },
    }


@app.get("/players/{player}/tracks/default")
def get_default_track(player: str, player_tier: Optional[str] = None):
    registry = _registry(player, player_tier)
    try:
        return registry.get_default_track().as_dict()
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


@app.get("/players/{player}/tracks/{instrument}/{key}")
def get_track(player: str, instrument: str, key: str, player_tier: Optional[str] = None):
    registry = _registry(player, player_tier)
    try:
        return registry.get_current_competency(instrument, key).as_dict()
    except UnknownTrackError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


@app.get("/players/{player}/tracks/{instrument}/{key}/trend")
def get_track_trend(player: str, instrument: str, key: str, days: int = Query(default=30, ge=0)):
    registry = _registry(player, None)
    try:
        points = registry.get_trend(instrument, key, days=days)
    except UnknownTrackError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise _unavailable(exc) from exc
    return {"days": days, "points": [point.as_dict() for point in points]}


@app.get("/players/{player}/overview")
def get_overview(player: str):
    registry = _registry(player, None)
    try:
        return registry.get_overview().as_dict()
    except PersistenceError as exc:
        raise _unavailable(exc) from exc


# ---------- Scores & bands ----------
@app.get("/players/{player}/scores")
def get_scores(player: str, limit: int = Query(default=100, ge=1, le=500)):
    return {"player": player, "scores": score_log.list_scores(player, limit=limit)}


@app.get("/bands")
def get_bands():
    return {"bands": [dict(band.as_dict(), min_score=band.min_score) for band in tracker.bands]}
