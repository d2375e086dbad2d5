"""Per-session scorers for the learning, marathon and speed game modes.

Each mode has a beginner and an advanced variant that differ only in their
star thresholds. ``create_scorer`` selects the variant for a (mode, tier) pair.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Tuple, Type

from engines.base import BaseSessionScorer, ScoreSummary
from engines.performance import PlayerTier, resolve_player_tier
from env_validation import default_player_tier

logger = logging.getLogger(__name__)

POINTS_PER_CORRECT = 100
SPEED_PENALTY_PER_WRONG = 50
MARATHON_PROFICIENCY_CAP = 30
DEFAULT_LIVES = 3
DEFAULT_TOTAL_QUESTIONS = 20
DEFAULT_INTERVAL_MS = 2000


# ----- learning ---------------------------------------------------------
class LearningModeScorer(BaseSessionScorer):
    """Fixed question count; only correct answers count."""

    mode = "learning"
    mode_weight = 1.0
    secondary_name = "totalQuestions"

    def __init__(self, difficulty: str = "basic", total_questions: int = DEFAULT_TOTAL_QUESTIONS) -> None:
        super().__init__(difficulty)
        self.total_questions = max(0, int(total_questions))

    def mark_incorrect(self) -> None:
        # Wrong attempts do not change a learning score.
        return None

    def accuracy_percent(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.correct_count / self.total_questions * 100

    def display_score(self) -> int:
        return math.floor(self.accuracy_percent() + 0.5)

    def proficiency_score(self) -> float:
        return self.accuracy_percent() * self.level_weight * self.mode_weight

    def secondary_count(self) -> int:
        return self.total_questions


class BeginnerLearningScorer(LearningModeScorer):
    def stars(self) -> int:
        accuracy = self.accuracy_percent()
        if accuracy >= 80:
            return 3
        if accuracy >= 60:
            return 2
        return 1


class AdvancedLearningScorer(LearningModeScorer):
    def stars(self) -> int:
        accuracy = self.accuracy_percent()
        if accuracy >= 90:
            return 3
        if accuracy > 70:
            return 2
        return 1


# ----- marathon ---------------------------------------------------------
class MarathonModeScorer(BaseSessionScorer):
    """Open-ended run limited by a lives budget.

    Proficiency only looks at the first ``MARATHON_PROFICIENCY_CAP`` answers so
    long runs do not outrank short ones on volume alone.
    """

    mode = "marathon"
    mode_weight = 1.2
    secondary_name = "totalAnswers"

    def __init__(self, difficulty: str = "basic", lives: int = DEFAULT_LIVES) -> None:
        super().__init__(difficulty)
        self.starting_lives = max(0, int(lives))
        self.total_answers = 0
        self.lives_lost = 0

    def mark_correct(self) -> None:
        super().mark_correct()
        self.total_answers += 1

    def mark_incorrect(self) -> None:
        self.total_answers += 1
        if self.lives_lost < self.starting_lives:
            self.lives_lost += 1

    @property
    def lives_remaining(self) -> int:
        return self.starting_lives - self.lives_lost

    @property
    def is_out_of_lives(self) -> bool:
        return self.lives_remaining <= 0

    def display_score(self) -> int:
        return self.correct_count * POINTS_PER_CORRECT

    def proficiency_score(self) -> float:
        considered = min(self.total_answers, MARATHON_PROFICIENCY_CAP)
        if considered == 0:
            return 0.0
        capped_correct = min(self.correct_count, MARATHON_PROFICIENCY_CAP)
        accuracy = capped_correct / considered * 100
        return accuracy * self.level_weight * self.mode_weight

    def secondary_count(self) -> int:
        return self.total_answers

    def reset(self) -> None:
        super().reset()
        self.total_answers = 0
        self.lives_lost = 0


class BeginnerMarathonScorer(MarathonModeScorer):
    def stars(self) -> int:
        points = self.display_score()
        if points >= 1000:
            return 3
        if points >= 500:
            return 2
        return 1


class AdvancedMarathonScorer(MarathonModeScorer):
    def stars(self) -> int:
        points = self.display_score()
        if points >= 2000:
            return 3
        if points > 1000:
            return 2
        return 1


# ----- speed ------------------------------------------------------------
class SpeedModeScorer(BaseSessionScorer):
    """Fixed time per note; timeouts are reported as incorrect answers.

    Star thresholds are defined for a one second interval and scale with
    ``1000 / interval_ms``.
    """

    mode = "speed"
    mode_weight = 1.5
    secondary_name = "wrongAnswers"
    two_star_points = 1500
    three_star_points = 2500

    def __init__(self, difficulty: str = "basic", interval_ms: int = DEFAULT_INTERVAL_MS) -> None:
        super().__init__(difficulty)
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        self.interval_ms = interval_ms
        self.wrong_count = 0

    def mark_incorrect(self) -> None:
        self.wrong_count += 1

    @property
    def scale_factor(self) -> float:
        return 1000 / self.interval_ms

    def star_thresholds(self) -> Tuple[float, float]:
        return (self.two_star_points * self.scale_factor, self.three_star_points * self.scale_factor)

    def display_score(self) -> int:
        return self.correct_count * POINTS_PER_CORRECT

    def proficiency_score(self) -> float:
        raw = max(0, self.correct_count * POINTS_PER_CORRECT - self.wrong_count * SPEED_PENALTY_PER_WRONG)
        return raw * self.level_weight * self.mode_weight

    def secondary_count(self) -> int:
        return self.wrong_count

    def reset(self) -> None:
        super().reset()
        self.wrong_count = 0


class BeginnerSpeedScorer(SpeedModeScorer):
    def stars(self) -> int:
        points = self.display_score()
        two_star, three_star = self.star_thresholds()
        if points >= three_star:
            return 3
        if points >= two_star:
            return 2
        return 1


class AdvancedSpeedScorer(SpeedModeScorer):
    two_star_points = 3000
    three_star_points = 5000

    def stars(self) -> int:
        points = self.display_score()
        two_star, three_star = self.star_thresholds()
        if points >= three_star:
            return 3
        if points > two_star:
            return 2
        return 1


# ----- factory ----------------------------------------------------------
SCORERS: Dict[Tuple[str, PlayerTier], Type[BaseSessionScorer]] = {
    ("learning", PlayerTier.BEGINNER): BeginnerLearningScorer,
    ("learning", PlayerTier.ADVANCED): AdvancedLearningScorer,
    ("marathon", PlayerTier.BEGINNER): BeginnerMarathonScorer,
    ("marathon", PlayerTier.ADVANCED): AdvancedMarathonScorer,
    ("speed", PlayerTier.BEGINNER): BeginnerSpeedScorer,
    ("speed", PlayerTier.ADVANCED): AdvancedSpeedScorer,
}


def create_scorer(
    mode: str,
    player_tier: PlayerTier | str,
    *,
    difficulty: str = "basic",
    total_questions: int = DEFAULT_TOTAL_QUESTIONS,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    lives: int = DEFAULT_LIVES,
) -> BaseSessionScorer:
    """Build the scorer for ``mode`` and ``player_tier``.

    Raises ``ValueError`` for an unknown mode or tier.
    """

    tier = resolve_player_tier(player_tier)
    normalized_mode = str(mode).strip().lower()
    scorer_cls = SCORERS.get((normalized_mode, tier))
    if scorer_cls is None:
        raise ValueError(f"Unknown session mode: {mode}")
    logger.debug("Creating %s scorer for %s players at %s", normalized_mode, tier.value, difficulty)
    if issubclass(scorer_cls, LearningModeScorer):
        return scorer_cls(difficulty, total_questions=total_questions)
    if issubclass(scorer_cls, MarathonModeScorer):
        return scorer_cls(difficulty, lives=lives)
    return scorer_cls(difficulty, interval_ms=interval_ms)


def create_scorer_for_settings(mode: str, **options) -> BaseSessionScorer:
    """Build a scorer for the player tier configured in the environment."""

    return create_scorer(mode, default_player_tier(), **options)


__all__ = [
    "AdvancedLearningScorer",
    "AdvancedMarathonScorer",
    "AdvancedSpeedScorer",
    "BeginnerLearningScorer",
    "BeginnerMarathonScorer",
    "BeginnerSpeedScorer",
    "ScoreSummary",
    "create_scorer",
    "create_scorer_for_settings",
]
