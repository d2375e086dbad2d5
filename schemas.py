"""Pydantic schemas for persisted competency records, session input and score documents."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

__all__ = [
    "SESSION_HISTORY_LIMIT",
    "SEED_COMPETENCY",
    "CompetencyRecord",
    "ScoreDocument",
    "SessionInput",
    "SessionRecord",
    "utcnow",
]

SESSION_HISTORY_LIMIT = 30
SEED_COMPETENCY = 0.2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionInput(BaseModel):
    """Telemetry for one completed practice session."""

    correct_count: int = Field(ge=0, description="Correct answers in the session.")
    total_count: int = Field(ge=0, description="Answers given (or questions asked) in the session.")
    avg_speed_seconds: Optional[float] = Field(
        default=None,
        ge=0.0,
        description="Mean seconds per answered note; missing, zero or non-finite falls back to the default.",
    )
    notes_practiced: Set[str] = Field(
        default_factory=set,
        description="Distinct note identifiers shown during the session.",
    )
    difficulty_tier: str = Field(default="basic", description="basic, beginner, intermediate or advanced.")
    session_mode: str = Field(default="learning", description="learning, marathon or speed.")

    @field_validator("difficulty_tier", "session_mode")
    @classmethod
    def _normalise_label(cls, value: str) -> str:
        return str(value).strip().lower()

    @field_validator("avg_speed_seconds", mode="before")
    @classmethod
    def _drop_non_finite_speed(cls, value: Any) -> Any:
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value

    @property
    def accuracy(self) -> float:
        if self.total_count <= 0:
            return 0.0
        return min(self.correct_count / self.total_count, 1.0)


class SessionRecord(BaseModel):
    """Immutable entry in a track's session history."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: datetime
    raw_accuracy: float = Field(alias="rawAccuracy", ge=0.0, le=1.0)
    raw_performance: float = Field(alias="rawPerformance", ge=0.0, le=1.0)
    weighted_performance: float = Field(alias="weightedPerformance", ge=0.0, le=1.0)
    difficulty_tier: str = Field(alias="difficultyTier")
    competency_after: float = Field(alias="competencyAfter", ge=0.0, le=1.0)
    session_mode: str = Field(alias="sessionMode")
    avg_speed_seconds: Optional[float] = Field(default=None, alias="avgSpeedSeconds")


class CompetencyRecord(BaseModel):
    """Persisted competency state for one track.

    The JSON encoding (``to_json``) uses the camelCase field names of the
    reference document layout.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    competency: float = Field(default=SEED_COMPETENCY, ge=0.0, le=1.0)
    last_practice_timestamp: datetime = Field(default_factory=utcnow, alias="lastPracticeTimestamp")
    session_history: List[SessionRecord] = Field(default_factory=list, alias="sessionHistory")
    notes_covered: Set[str] = Field(default_factory=set, alias="notesCovered")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    @field_validator("session_history")
    @classmethod
    def _cap_history(cls, value: List[SessionRecord]) -> List[SessionRecord]:
        if len(value) > SESSION_HISTORY_LIMIT:
            return list(value[-SESSION_HISTORY_LIMIT:])
        return value

    @field_serializer("notes_covered")
    def _serialize_notes(self, value: Set[str]) -> List[str]:
        return sorted(value)

    @classmethod
    def seed(cls, now: Optional[datetime] = None) -> "CompetencyRecord":
        moment = now or utcnow()
        return cls(
            competency=SEED_COMPETENCY,
            last_practice_timestamp=moment,
            created_at=moment,
        )

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, text: str) -> "CompetencyRecord":
        return cls.model_validate_json(text)


class ScoreDocument(BaseModel):
    """Summary of one finished game, as logged and forwarded to the score store."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    mode: str
    level: str
    score: int = Field(ge=0)
    total: int = Field(ge=0)
    percentage: int = Field(ge=0)
    display_score: int = Field(alias="displayScore", ge=0)
    proficiency_score: int = Field(alias="proficiencyScore", ge=0, le=100)
    stars: int = Field(ge=1, le=3)
    instrument: str
    key: str
    timestamp: datetime = Field(default_factory=utcnow)
    completed: bool = True
    avg_speed: Optional[float] = Field(default=None, alias="avgSpeed", ge=0.0)
    notes_covered: Optional[int] = Field(default=None, alias="notesCovered", ge=0)
    lives_lost: Optional[int] = Field(default=None, alias="livesLost", ge=0)
    end_reason: Optional[str] = Field(default=None, alias="endReason")

    def as_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
