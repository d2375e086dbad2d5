from dataclasses import dataclass
from typing import Any, Dict

LEVEL_WEIGHTS: Dict[str, float] = {
    "basic": 1.0,
    "beginner": 1.2,
    "intermediate": 1.5,
    "advanced": 2.0,
}


@dataclass
class ScoreSummary:
    display_score: int
    proficiency_score: float
    stars: int
    correct_count: int
    secondary_name: str
    secondary_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "displayScore": self.display_score,
            "proficiencyScore": self.proficiency_score,
            "stars": self.stars,
            "correctCount": self.correct_count,
            self.secondary_name: self.secondary_count,
        }


class BaseSessionScorer:
    """Accumulates one game session's answers.

    Subclasses define the display score, star rating and proficiency
    contribution of their mode.
    """

    mode: str = ""
    mode_weight: float = 1.0
    secondary_name: str = ""

    def __init__(self, difficulty: str = "basic") -> None:
        self.difficulty = str(difficulty or "basic").strip().lower()
        self.correct_count = 0

    @property
    def level_weight(self) -> float:
        return LEVEL_WEIGHTS.get(self.difficulty, 1.0)

    def mark_correct(self) -> None:
        self.correct_count += 1

    def mark_incorrect(self) -> None:
        raise NotImplementedError

    def display_score(self) -> int:
        raise NotImplementedError

    def stars(self) -> int:
        raise NotImplementedError

    def proficiency_score(self) -> float:
        raise NotImplementedError

    def secondary_count(self) -> int:
        raise NotImplementedError

    def reset(self) -> None:
        self.correct_count = 0

    def summary(self) -> ScoreSummary:
        return ScoreSummary(
            display_score=self.display_score(),
            proficiency_score=self.proficiency_score(),
            stars=self.stars(),
            correct_count=self.correct_count,
            secondary_name=self.secondary_name,
            secondary_count=self.secondary_count(),
        )
