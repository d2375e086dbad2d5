"""Session performance evaluation.

Turns the metrics of one completed practice session (accuracy, answer speed,
note coverage and session-to-session consistency) into a single performance
value in ``[0, 1]``. The evaluator is a pure function of its arguments: the
evaluation tier is always passed in explicitly.

Three tiers exist:

``lenient``
    Beginner players. Accuracy dominates, speed is judged against a relaxed
    5 second baseline and the result is boosted by 30% to reward early
    progress.
``standard``
    Overview tracking. Balanced weighting over all four metrics against a
    3 second baseline.
``mastery``
    Advanced players. Coverage and consistency are ignored so that every
    session stands on its own; excellent results (>= 0.85) get a 15% boost.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

DEFAULT_AVG_SPEED_SECONDS = 2.0
NEUTRAL_METRIC = 0.5
CONSISTENCY_STDDEV_CEILING = 0.3

# CEFR-style difficulty weights; performance at harder tiers counts for more.
CEFR_LEVEL_WEIGHTS: Dict[str, float] = {
    "basic": 1.0,  # A1
    "beginner": 1.5,  # A2
    "intermediate": 2.5,  # B1/B2
    "advanced": 4.0,  # C1/C2
}
MAX_CEFR_WEIGHT = max(CEFR_LEVEL_WEIGHTS.values())


class EvaluationTier(str, Enum):
    LENIENT = "lenient"
    STANDARD = "standard"
    MASTERY = "mastery"


class PlayerTier(str, Enum):
    BEGINNER = "beginner"
    ADVANCED = "advanced"


@dataclass(frozen=True)
class TierProfile:
    """Weights and temporal parameters for one evaluation tier."""

    weights: Mapping[str, float]
    baseline_speed: float
    boost_factor: float = 1.0
    boost_threshold: float = 0.0
    decay_rate: float = 0.02
    learning_rate: float = 0.15


TIER_PROFILES: Dict[EvaluationTier, TierProfile] = {
    EvaluationTier.LENIENT: TierProfile(
        weights={"accuracy": 0.70, "speed": 0.10, "coverage": 0.15, "consistency": 0.05},
        baseline_speed=5.0,
        boost_factor=1.3,
        boost_threshold=0.0,
        decay_rate=0.01,
        learning_rate=0.40,
    ),
    EvaluationTier.STANDARD: TierProfile(
        weights={"accuracy": 0.50, "speed": 0.20, "coverage": 0.20, "consistency": 0.10},
        baseline_speed=3.0,
        decay_rate=0.02,
        learning_rate=0.15,
    ),
    EvaluationTier.MASTERY: TierProfile(
        weights={"accuracy": 0.80, "speed": 0.20},
        baseline_speed=3.0,
        boost_factor=1.15,
        boost_threshold=0.85,
        decay_rate=0.02,
        learning_rate=0.70,
    ),
}


@dataclass
class PerformanceMetrics:
    """Raw metrics describing one practice session."""

    accuracy: float
    avg_speed_seconds: float = DEFAULT_AVG_SPEED_SECONDS
    coverage: float = NEUTRAL_METRIC
    consistency: float = NEUTRAL_METRIC

    def as_dict(self) -> Dict[str, float]:
        return {
            "accuracy": self.accuracy,
            "avg_speed_seconds": self.avg_speed_seconds,
            "coverage": self.coverage,
            "consistency": self.consistency,
        }


# ---------------------------------------------------------------------------
# Clamping helpers
# ---------------------------------------------------------------------------


def clamp_unit(value: Any) -> float:
    """Clamp ``value`` into ``[0, 1]``; non-numeric or NaN input maps to 0."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(1.0, number))


def clamp_non_negative(value: Any) -> float:
    """Clamp ``value`` to ``[0, inf)``; non-numeric or NaN input maps to 0."""

    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, number)


# ---------------------------------------------------------------------------
# Tier resolution
# ---------------------------------------------------------------------------


def resolve_tier(tier: EvaluationTier | str | None) -> EvaluationTier:
    if tier is None:
        return EvaluationTier.STANDARD
    if isinstance(tier, EvaluationTier):
        return tier
    try:
        return EvaluationTier(str(tier).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unknown evaluation tier: {tier}") from exc


def resolve_player_tier(player_tier: PlayerTier | str) -> PlayerTier:
    if isinstance(player_tier, PlayerTier):
        return player_tier
    try:
        return PlayerTier(str(player_tier).strip().lower())
    except ValueError as exc:
        raise ValueError(f"Unknown player tier: {player_tier}") from exc


def tier_for_player(player_tier: PlayerTier | str) -> EvaluationTier:
    """Map a player tier onto the evaluation tier used for its sessions."""

    if resolve_player_tier(player_tier) is PlayerTier.ADVANCED:
        return EvaluationTier.MASTERY
    return EvaluationTier.LENIENT


def tier_profile(tier: EvaluationTier | str | None) -> TierProfile:
    return TIER_PROFILES[resolve_tier(tier)]


# ---------------------------------------------------------------------------
# Metric builders
# ---------------------------------------------------------------------------


def normalized_speed(avg_speed_seconds: float, baseline_seconds: float) -> float:
    """Return 1 for instant answers, falling linearly to 0 at ``baseline_seconds``."""

    if baseline_seconds <= 0:
        return 0.0
    speed = clamp_non_negative(avg_speed_seconds)
    return clamp_unit(1.0 - speed / baseline_seconds)


def coverage_ratio(unique_notes: int, total_possible_notes: int) -> float:
    """Fraction of the note vocabulary practiced; neutral when the vocabulary is unknown."""

    if not total_possible_notes or total_possible_notes <= 0:
        return NEUTRAL_METRIC
    return min(max(unique_notes, 0) / total_possible_notes, 1.0)


def consistency_score(recent_accuracies: Sequence[float]) -> float:
    """Map the spread of recent accuracies to a stability score.

    A population standard deviation of 0 scores 1.0; 0.3 or more scores 0.
    Fewer than two data points are not yet measurable and score neutral.
    """

    values = [clamp_unit(v) for v in recent_accuracies or ()]
    if len(values) < 2:
        return NEUTRAL_METRIC
    spread = statistics.pstdev(values)
    return max(0.0, 1.0 - spread / CONSISTENCY_STDDEV_CEILING)


def average_note_time(note_times: Iterable[float]) -> float:
    """Mean seconds per answered note, or the default when nothing was timed."""

    times = [clamp_non_negative(t) for t in note_times]
    if not times:
        return DEFAULT_AVG_SPEED_SECONDS
    return sum(times) / len(times)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def evaluate(metrics: PerformanceMetrics | Mapping[str, Any], tier: EvaluationTier | str | None = None) -> float:
    """Combine session metrics into a performance value in ``[0, 1]``."""

    if isinstance(metrics, Mapping):
        metrics = PerformanceMetrics(
            accuracy=metrics.get("accuracy", 0.0),
            avg_speed_seconds=metrics.get("avg_speed_seconds", DEFAULT_AVG_SPEED_SECONDS),
            coverage=metrics.get("coverage", NEUTRAL_METRIC),
            consistency=metrics.get("consistency", NEUTRAL_METRIC),
        )

    profile = tier_profile(tier)
    components = {
        "accuracy": clamp_unit(metrics.accuracy),
        "speed": normalized_speed(metrics.avg_speed_seconds, profile.baseline_speed),
        "coverage": clamp_unit(metrics.coverage),
        "consistency": clamp_unit(metrics.consistency),
    }
    performance = sum(weight * components[name] for name, weight in profile.weights.items())

    if profile.boost_factor != 1.0 and performance >= profile.boost_threshold:
        performance = min(performance * profile.boost_factor, 1.0)

    return clamp_unit(performance)


def cefr_weight(difficulty: Optional[str]) -> float:
    return CEFR_LEVEL_WEIGHTS.get(str(difficulty or "").strip().lower(), 1.0)


def cefr_weighted_score(raw_performance: float, difficulty: Optional[str]) -> float:
    """Raw performance scaled by its difficulty weight (before normalisation)."""

    return clamp_unit(raw_performance) * cefr_weight(difficulty)


def weighted_performance(raw_performance: float, difficulty: Optional[str]) -> float:
    """Rescale raw performance so a perfect run at the hardest tier maps to 1.0."""

    return clamp_unit(cefr_weighted_score(raw_performance, difficulty) / MAX_CEFR_WEIGHT)


def to_display_score(competency: float) -> int:
    return int(math.floor(clamp_unit(competency) * 100 + 0.5))


def from_display_score(display_score: float) -> float:
    return clamp_unit(display_score / 100)


__all__ = [
    "CEFR_LEVEL_WEIGHTS",
    "DEFAULT_AVG_SPEED_SECONDS",
    "EvaluationTier",
    "PerformanceMetrics",
    "PlayerTier",
    "TIER_PROFILES",
    "TierProfile",
    "average_note_time",
    "cefr_weight",
    "cefr_weighted_score",
    "clamp_non_negative",
    "clamp_unit",
    "consistency_score",
    "coverage_ratio",
    "evaluate",
    "from_display_score",
    "normalized_speed",
    "resolve_player_tier",
    "resolve_tier",
    "tier_for_player",
    "tier_profile",
    "to_display_score",
    "weighted_performance",
]
