"""Time decay and exponential smoothing of competency values."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from engines.performance import EvaluationTier, clamp_unit, tier_profile


def decay_rate(tier: EvaluationTier | str | None = None) -> float:
    return tier_profile(tier).decay_rate


def learning_rate(tier: EvaluationTier | str | None = None) -> float:
    return tier_profile(tier).learning_rate


def decay(
    competency: float,
    days_elapsed: float,
    tier: EvaluationTier | str | None = None,
    *,
    rate: Optional[float] = None,
) -> float:
    """Exponentially decay ``competency`` over ``days_elapsed`` days.

    Non-positive elapsed time leaves the value untouched.
    """

    if days_elapsed is None or days_elapsed <= 0:
        return competency
    effective_rate = decay_rate(tier) if rate is None else max(0.0, float(rate))
    return competency * math.exp(-effective_rate * days_elapsed)


def smooth(prior: float, current: float, alpha: float) -> float:
    """Blend ``current`` into ``prior`` with weight ``alpha`` (EMA step)."""

    if prior == current:
        return prior
    alpha = clamp_unit(alpha)
    return prior * (1.0 - alpha) + current * alpha


def decay_then_smooth(
    prior: float,
    current: float,
    days_elapsed: float,
    tier: EvaluationTier | str | None = None,
) -> float:
    """Discount stale history for absence, then blend in the new evidence."""

    decayed = decay(clamp_unit(prior), days_elapsed, tier)
    return clamp_unit(smooth(decayed, clamp_unit(current), learning_rate(tier)))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def whole_days_between(earlier: Optional[datetime], later: datetime) -> int:
    """Whole days from ``earlier`` to ``later``; never negative."""

    if earlier is None:
        return 0
    seconds = (_as_utc(later) - _as_utc(earlier)).total_seconds()
    if seconds <= 0:
        return 0
    return int(seconds // 86400)


__all__ = [
    "decay",
    "decay_rate",
    "decay_then_smooth",
    "learning_rate",
    "smooth",
    "whole_days_between",
]
