"""Per-(instrument, key) fan-out of the competency tracker.

Every combination of instrument and transposition key is tracked as its own
record so practice in one combination never lifts the score of another.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence, Tuple

from engines.competency import CompetencySnapshot, CompetencyTracker, SessionOutcome, TrackUpdate, TrendPoint
from engines.performance import EvaluationTier, PlayerTier, resolve_player_tier, tier_for_player
from schemas import SessionInput
from storage import TrackKey

logger = logging.getLogger(__name__)

INSTRUMENTS: Sequence[str] = ("Bb", "C", "D", "Eb")
KEYS: Sequence[str] = ("A", "Bb", "H", "C", "D", "Eb", "E", "F", "G")
DEFAULT_COMBINATION = ("Bb", "Bb")


class UnknownTrackError(ValueError):
    """Raised for an (instrument, key) pair outside the supported matrix."""


class TranspositionTrackRegistry:
    """Competency tracks of one player across the instrument x key matrix.

    The per-combination tracks are evaluated with the tier derived from the
    player's tier; the overview track always uses the standard tier and
    blends sessions in without difficulty weighting.
    """

    def __init__(
        self,
        tracker: CompetencyTracker,
        player_id: str,
        *,
        player_tier: PlayerTier | str = PlayerTier.BEGINNER,
    ) -> None:
        if not player_id:
            raise ValueError("player_id is required")
        self.tracker = tracker
        self.player_id = player_id
        self.player_tier = resolve_player_tier(player_tier)

    @property
    def evaluation_tier(self) -> EvaluationTier:
        return tier_for_player(self.player_tier)

    def track_key(self, instrument: str, key: str) -> TrackKey:
        if instrument not in INSTRUMENTS or key not in KEYS:
            raise UnknownTrackError(f"Unknown track {instrument}/{key}")
        return TrackKey(self.player_id, instrument, key)

    @property
    def overview_key(self) -> TrackKey:
        return TrackKey.for_overview(self.player_id)

    def record_session(self, instrument: str, key: str, session: SessionInput) -> SessionOutcome:
        track = self.track_key(instrument, key)
        outcome = self.tracker.record_session(track, session, tier=self.evaluation_tier)
        logger.info(
            "Recorded %s session on %s: competency %.3f (%s)",
            session.session_mode,
            track,
            outcome.competency,
            outcome.band.name,
        )
        return outcome

    def record_overview(self, session: SessionInput) -> SessionOutcome:
        """Fold a session into the overview track, unweighted by difficulty."""

        return self.tracker.record_session(
            self.overview_key,
            session,
            tier=EvaluationTier.STANDARD,
            weight_by_difficulty=False,
        )

    def record_session_with_overview(
        self, instrument: str, key: str, session: SessionInput
    ) -> Tuple[SessionOutcome, SessionOutcome]:
        """Record a session on its track and on the overview in one step.

        Both records are loaded before either is saved, so a store that cannot
        read one of them leaves both unchanged.
        """

        track = self.track_key(instrument, key)
        outcome, overview = self.tracker.record_session_on_tracks(
            session,
            [
                TrackUpdate(track, tier=self.evaluation_tier),
                TrackUpdate(self.overview_key, tier=EvaluationTier.STANDARD, weight_by_difficulty=False),
            ],
        )
        logger.info(
            "Recorded %s session on %s: competency %.3f (%s), overview %.3f",
            session.session_mode,
            track,
            outcome.competency,
            outcome.band.name,
            overview.competency,
        )
        return outcome, overview

    def get_current_competency(self, instrument: str, key: str) -> CompetencySnapshot:
        return self.tracker.get_current_competency(self.track_key(instrument, key), tier=self.evaluation_tier)

    def get_trend(self, instrument: str, key: str, days: int = 30) -> list[TrendPoint]:
        return self.tracker.get_trend(self.track_key(instrument, key), days=days)

    def get_overview(self) -> CompetencySnapshot:
        return self.tracker.get_current_competency(self.overview_key, tier=EvaluationTier.STANDARD)

    def get_all_tracks(self) -> Dict[str, Dict[str, Optional[CompetencySnapshot]]]:
        """Snapshot of every combination; the native (diagonal) entries are ``None``."""

        matrix: Dict[str, Dict[str, Optional[CompetencySnapshot]]] = {}
        for instrument in INSTRUMENTS:
            row: Dict[str, Optional[CompetencySnapshot]] = {}
            for key in KEYS:
                if instrument == key:
                    row[key] = None
                    continue
                row[key] = self.get_current_competency(instrument, key)
            matrix[instrument] = row
        return matrix

    def get_default_track(self) -> CompetencySnapshot:
        instrument, key = DEFAULT_COMBINATION
        return self.get_current_competency(instrument, key)


__all__ = [
    "DEFAULT_COMBINATION",
    "INSTRUMENTS",
    "KEYS",
    "TranspositionTrackRegistry",
    "UnknownTrackError",
]
