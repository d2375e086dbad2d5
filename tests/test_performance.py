import math

import pytest

from engines.performance import (
    CEFR_LEVEL_WEIGHTS,
    EvaluationTier,
    PerformanceMetrics,
    PlayerTier,
    TIER_PROFILES,
    average_note_time,
    cefr_weighted_score,
    clamp_non_negative,
    clamp_unit,
    consistency_score,
    coverage_ratio,
    evaluate,
    from_display_score,
    normalized_speed,
    resolve_player_tier,
    resolve_tier,
    tier_for_player,
    to_display_score,
    weighted_performance,
)


@pytest.mark.parametrize("value, expected", [(-0.5, 0.0), (0.3, 0.3), (1.7, 1.0), (float("nan"), 0.0), ("abc", 0.0), (None, 0.0)])
def test_clamp_unit(value, expected):
    assert clamp_unit(value) == expected


def test_clamp_non_negative():
    assert clamp_non_negative(-3) == 0.0
    assert clamp_non_negative(4.5) == 4.5
    assert clamp_non_negative(float("nan")) == 0.0


def test_tier_weights_sum_to_one():
    for profile in TIER_PROFILES.values():
        assert sum(profile.weights.values()) == pytest.approx(1.0)


def test_tier_resolution():
    assert resolve_tier(None) is EvaluationTier.STANDARD
    assert resolve_tier(" Mastery ") is EvaluationTier.MASTERY
    assert tier_for_player("beginner") is EvaluationTier.LENIENT
    assert tier_for_player(PlayerTier.ADVANCED) is EvaluationTier.MASTERY
    assert resolve_player_tier("ADVANCED") is PlayerTier.ADVANCED
    with pytest.raises(ValueError):
        resolve_tier("expert")
    with pytest.raises(ValueError):
        tier_for_player("expert")


def test_normalized_speed_is_linear_and_clamped():
    assert normalized_speed(0.0, 3.0) == 1.0
    assert normalized_speed(1.5, 3.0) == pytest.approx(0.5)
    assert normalized_speed(6.0, 3.0) == 0.0
    assert normalized_speed(-2.0, 3.0) == 1.0


def test_coverage_ratio():
    assert coverage_ratio(9, 36) == pytest.approx(0.25)
    assert coverage_ratio(50, 36) == 1.0
    assert coverage_ratio(3, 0) == 0.5


def test_consistency_score():
    assert consistency_score([]) == 0.5
    assert consistency_score([0.8]) == 0.5
    assert consistency_score([0.7, 0.7, 0.7]) == pytest.approx(1.0)
    # population stddev of [0.5, 0.8] is 0.15
    assert consistency_score([0.5, 0.8]) == pytest.approx(0.5)
    assert consistency_score([0.0, 1.0]) == 0.0


def test_average_note_time():
    assert average_note_time([]) == 2.0
    assert average_note_time([1.0, 2.0, 3.0]) == pytest.approx(2.0)


def test_standard_tier_weighted_sum():
    metrics = PerformanceMetrics(accuracy=0.8, avg_speed_seconds=1.5, coverage=0.25, consistency=1.0)
    expected = 0.5 * 0.8 + 0.2 * 0.5 + 0.2 * 0.25 + 0.1 * 1.0
    assert evaluate(metrics, EvaluationTier.STANDARD) == pytest.approx(expected)


def test_lenient_tier_always_boosts():
    metrics = PerformanceMetrics(accuracy=0.5, avg_speed_seconds=2.5, coverage=0.5, consistency=0.5)
    assert evaluate(metrics, "lenient") == pytest.approx(0.5 * 1.3)


def test_mastery_tier_ignores_coverage_and_boosts_high_results():
    low = {"accuracy": 0.5, "avg_speed_seconds": 1.5, "coverage": 1.0, "consistency": 1.0}
    assert evaluate(low, "mastery") == pytest.approx(0.5)
    low["coverage"] = 0.0
    low["consistency"] = 0.0
    assert evaluate(low, "mastery") == pytest.approx(0.5)

    assert evaluate({"accuracy": 0.9, "avg_speed_seconds": 3.0}, "mastery") == pytest.approx(0.72)
    boosted = {"accuracy": 0.9, "avg_speed_seconds": 0.9}
    assert evaluate(boosted, "mastery") == pytest.approx(0.86 * 1.15)
    assert evaluate({"accuracy": 1.0, "avg_speed_seconds": 0.0}, "mastery") == 1.0


@pytest.mark.parametrize("tier", list(EvaluationTier))
def test_evaluate_stays_in_unit_interval(tier):
    for accuracy in (-1.0, 0.0, 0.4, 1.0, 3.0):
        for speed in (-5.0, 0.0, 2.0, 10.0):
            for extra in (-1.0, 0.5, 2.0):
                metrics = PerformanceMetrics(accuracy, speed, extra, extra)
                assert 0.0 <= evaluate(metrics, tier) <= 1.0


def test_cefr_weighting_equivalence():
    assert CEFR_LEVEL_WEIGHTS["intermediate"] == 2.5 * CEFR_LEVEL_WEIGHTS["basic"]
    assert cefr_weighted_score(1.0, "basic") == pytest.approx(1.0)
    assert cefr_weighted_score(0.4, "intermediate") == pytest.approx(1.0)
    assert weighted_performance(1.0, "basic") == pytest.approx(weighted_performance(0.4, "intermediate"))
    assert weighted_performance(1.0, "advanced") == 1.0
    assert weighted_performance(0.8, "unknown") == pytest.approx(0.2)


def test_display_score_rounds_half_up():
    assert to_display_score(0.2) == 20
    assert to_display_score(0.125) == 13
    assert to_display_score(0.994) == 99
    assert to_display_score(1.4) == 100
    assert from_display_score(47) == pytest.approx(0.47)
    assert math.isclose(from_display_score(to_display_score(0.63)), 0.63)
