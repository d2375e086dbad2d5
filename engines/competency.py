"""Competency tracking for a single practice track.

A track is anything the player's proficiency is followed for independently,
identified by an opaque, hashable key. For every completed session the tracker
loads the persisted record, measures coverage and consistency against it,
evaluates and difficulty-weights the session, decays the stored competency for
the days since the previous session, blends the new evidence in and persists
the result. Reads project the decayed value for display without writing.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence

from engines.performance import (
    DEFAULT_AVG_SPEED_SECONDS,
    EvaluationTier,
    PerformanceMetrics,
    consistency_score,
    coverage_ratio,
    evaluate,
    resolve_tier,
    to_display_score,
    weighted_performance,
)
from engines.temporal import decay, decay_then_smooth, whole_days_between
from env_validation import DEFAULT_TOTAL_POSSIBLE_NOTES
from proficiency_bands import BANDS, BandRegistry, ProficiencyBand
from schemas import SESSION_HISTORY_LIMIT, CompetencyRecord, SessionInput, SessionRecord, utcnow
from storage import PersistenceError, ProficiencyStore

_LOGGER = logging.getLogger(__name__)

# The current session plus this many previous ones feed the consistency measure.
CONSISTENCY_HISTORY = 9


@dataclass
class CompetencySnapshot:
    """Read-only view of a track as it would be displayed right now."""

    competency: float
    display_score: int
    band: ProficiencyBand
    days_since_last_practice: int
    total_sessions: int
    notes_covered_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "competency": self.competency,
            "display_score": self.display_score,
            "band": self.band.as_dict(),
            "days_since_last_practice": self.days_since_last_practice,
            "total_sessions": self.total_sessions,
            "notes_covered_count": self.notes_covered_count,
        }


@dataclass
class SessionOutcome:
    """Result of recording one session against a track."""

    competency: float
    display_score: int
    band: ProficiencyBand
    weighted_performance: float
    raw_performance: float
    metrics: PerformanceMetrics
    days_elapsed: int
    persisted: bool = True
    persistence_error: Optional[str] = None
    record: Optional[CompetencyRecord] = field(default=None, repr=False)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "competency": self.competency,
            "display_score": self.display_score,
            "band": self.band.as_dict(),
            "weighted_performance": self.weighted_performance,
            "raw_performance": self.raw_performance,
            "metrics": self.metrics.as_dict(),
            "days_elapsed": self.days_elapsed,
            "persisted": self.persisted,
            "persistence_error": self.persistence_error,
        }


@dataclass(frozen=True)
class TrackUpdate:
    """One track a session is folded into, and how."""

    track_key: Hashable
    tier: EvaluationTier | str | None = None
    weight_by_difficulty: bool = True


@dataclass
class TrendPoint:
    timestamp: datetime
    display_score: int
    accuracy_percent: int
    session_mode: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "display_score": self.display_score,
            "accuracy_percent": self.accuracy_percent,
            "session_mode": self.session_mode,
        }


class CompetencyTracker:
    """Owns one persisted :class:`CompetencyRecord` per track key.

    Parameters
    ----------
    store:
        Persistence collaborator providing ``load`` and ``save``.
    tier:
        Default evaluation tier; every call may override it.
    total_possible_notes:
        Size of the note vocabulary, the fixed coverage denominator.
    bands:
        Band table used to label competency values.
    clock:
        Callable returning the current instant (UTC).
    """

    def __init__(
        self,
        store: ProficiencyStore,
        *,
        tier: EvaluationTier | str = EvaluationTier.STANDARD,
        total_possible_notes: int = DEFAULT_TOTAL_POSSIBLE_NOTES,
        bands: Optional[BandRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.tier = resolve_tier(tier)
        self.total_possible_notes = int(total_possible_notes)
        self.bands = bands or BANDS
        self._clock = clock or utcnow
        self._lock = threading.Lock()

    # ----- public API --------------------------------------------------
    def record_session(
        self,
        track_key: Hashable,
        session: SessionInput,
        *,
        tier: EvaluationTier | str | None = None,
        weight_by_difficulty: bool = True,
    ) -> SessionOutcome:
        """Fold one completed session into the track's competency.

        With ``weight_by_difficulty`` off the raw evaluation is blended in
        directly, ignoring the session's difficulty tier.
        """

        update = TrackUpdate(track_key, tier=tier, weight_by_difficulty=weight_by_difficulty)
        return self.record_session_on_tracks(session, [update])[0]

    def record_session_on_tracks(
        self,
        session: SessionInput,
        updates: Sequence[TrackUpdate],
    ) -> List[SessionOutcome]:
        """Fold one session into several tracks as a unit.

        Every record is loaded before any is saved, so a failing load leaves
        all tracks untouched. Save failures are reported per outcome.
        """

        with self._lock:
            now = self._now()
            records = [self._load(update.track_key, now) for update in updates]
            outcomes = []
            for update, record in zip(updates, records):
                outcome = self._fold(update, record, session, now)
                self._persist(update.track_key, outcome)
                outcomes.append(outcome)
        return outcomes

    def get_current_competency(
        self,
        track_key: Hashable,
        *,
        tier: EvaluationTier | str | None = None,
    ) -> CompetencySnapshot:
        """Project the competency as it would display now; never writes."""

        tier = resolve_tier(tier or self.tier)
        now = self._now()
        record = self._load(track_key, now)
        days_since = whole_days_between(record.last_practice_timestamp, now)
        competency = decay(record.competency, days_since, tier)
        return CompetencySnapshot(
            competency=competency,
            display_score=to_display_score(competency),
            band=self.bands.band_for(competency),
            days_since_last_practice=days_since,
            total_sessions=len(record.session_history),
            notes_covered_count=len(record.notes_covered),
        )

    def get_trend(self, track_key: Hashable, days: int = 30) -> List[TrendPoint]:
        """Sessions recorded within the last ``days`` days, oldest first."""

        now = self._now()
        record = self._load(track_key, now)
        try:
            cutoff = now - timedelta(days=max(0, days))
        except OverflowError:
            cutoff = datetime.min.replace(tzinfo=timezone.utc)
        points = []
        for entry in record.session_history:
            timestamp = entry.timestamp
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
            if timestamp < cutoff:
                continue
            points.append(
                TrendPoint(
                    timestamp=timestamp,
                    display_score=to_display_score(entry.competency_after),
                    accuracy_percent=to_display_score(entry.raw_accuracy),
                    session_mode=entry.session_mode,
                )
            )
        return points

    # ----- helpers -----------------------------------------------------
    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=timezone.utc)
        return now

    def _fold(
        self,
        update: TrackUpdate,
        record: CompetencyRecord,
        session: SessionInput,
        now: datetime,
    ) -> SessionOutcome:
        tier = resolve_tier(update.tier or self.tier)
        days_elapsed = whole_days_between(record.last_practice_timestamp, now)

        accuracy = session.accuracy
        notes_covered = set(record.notes_covered) | set(session.notes_practiced)
        coverage = coverage_ratio(len(notes_covered), self.total_possible_notes)
        recent = [entry.raw_accuracy for entry in record.session_history[-CONSISTENCY_HISTORY:]]
        consistency = consistency_score(recent + [accuracy])

        avg_speed = session.avg_speed_seconds
        if avg_speed is None or not math.isfinite(avg_speed) or avg_speed <= 0:
            avg_speed = DEFAULT_AVG_SPEED_SECONDS

        metrics = PerformanceMetrics(
            accuracy=accuracy,
            avg_speed_seconds=avg_speed,
            coverage=coverage,
            consistency=consistency,
        )
        raw_performance = evaluate(metrics, tier)
        if update.weight_by_difficulty:
            weighted = weighted_performance(raw_performance, session.difficulty_tier)
            # The weighted result stands in for accuracy when blending.
            blended_metrics = PerformanceMetrics(
                accuracy=weighted,
                avg_speed_seconds=avg_speed,
                coverage=coverage,
                consistency=consistency,
            )
            current = evaluate(blended_metrics, tier)
        else:
            weighted = raw_performance
            current = raw_performance
        competency = decay_then_smooth(record.competency, current, days_elapsed, tier)

        _LOGGER.debug(
            "Session for %s: accuracy=%.2f speed=%.2fs coverage=%.2f consistency=%.2f "
            "days=%s raw=%.3f weighted=%.3f (%s) -> %.3f",
            update.track_key,
            accuracy,
            avg_speed,
            coverage,
            consistency,
            days_elapsed,
            raw_performance,
            weighted,
            session.difficulty_tier if update.weight_by_difficulty else "unweighted",
            competency,
        )

        entry = SessionRecord(
            timestamp=now,
            raw_accuracy=accuracy,
            raw_performance=raw_performance,
            weighted_performance=weighted,
            difficulty_tier=session.difficulty_tier,
            competency_after=competency,
            session_mode=session.session_mode,
            avg_speed_seconds=avg_speed,
        )
        updated = record.model_copy(deep=True)
        updated.session_history = (list(record.session_history) + [entry])[-SESSION_HISTORY_LIMIT:]
        updated.notes_covered = notes_covered
        updated.competency = competency
        updated.last_practice_timestamp = now

        return SessionOutcome(
            competency=competency,
            display_score=to_display_score(competency),
            band=self.bands.band_for(competency),
            weighted_performance=weighted,
            raw_performance=raw_performance,
            metrics=metrics,
            days_elapsed=days_elapsed,
            record=updated,
        )

    def _persist(self, track_key: Hashable, outcome: SessionOutcome) -> None:
        try:
            self.store.save(track_key, outcome.record)
        except PersistenceError as exc:
            outcome.persisted = False
            outcome.persistence_error = str(exc)
            _LOGGER.warning("Competency for %s computed but not persisted: %s", track_key, exc)

    def _load(self, track_key: Hashable, now: datetime) -> CompetencyRecord:
        record = self.store.load(track_key)
        if record is None:
            _LOGGER.info("Seeding new competency record for %s", track_key)
            return CompetencyRecord.seed(now)
        return record


__all__ = [
    "CompetencySnapshot",
    "CompetencyTracker",
    "SessionOutcome",
    "TrackUpdate",
    "TrendPoint",
]
