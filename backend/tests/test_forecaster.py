from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from studypulse.config import AnalyticsTuning
from studypulse.errors import InsufficientDataError, ValidationError
from studypulse.forecaster import (
    RANK_FALLBACK,
    cycle_phase,
    data_completeness,
    forecast,
    forecast_rank,
    project_bio_rhythm,
    rank_for_marks,
    recent_test_performance,
)
from studypulse.records import AggregateSnapshot, TestRecord, TrendResult

TUNING = AnalyticsTuning()
START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _tests(*scores: float) -> list[TestRecord]:
    return [
        TestRecord(test_id=f"mock-{index}", taken_at=START + timedelta(days=7 * index), score=score)
        for index, score in enumerate(scores)
    ]


def _empty_snapshot() -> AggregateSnapshot:
    return AggregateSnapshot(period="lifetime", period_key="all")


def _session_snapshot() -> AggregateSnapshot:
    return AggregateSnapshot(
        period="lifetime",
        period_key="all",
        mean_focus=80.0,
        accuracy_rate=70.0,
        accuracy_samples=100,
        consistency=50.0,
        volume_score=40.0,
        source_counts={"goal": 0, "test": 0, "session": 3, "checklist": 0},
    )


def test_rising_scores_forecast_above_previous_test() -> None:
    result = forecast(_empty_snapshot(), None, _tests(580, 610, 640), tuning=TUNING)

    assert result.most_likely_value == pytest.approx(622.86, abs=0.01)
    assert result.most_likely_value > 610
    assert result.confidence_level == pytest.approx(0.25)
    assert result.confidence_range_low < result.most_likely_value < result.confidence_range_high
    assert result.scale_max == 720
    assert result.generated_at == START + timedelta(days=14)


def test_forecast_without_tests_has_zero_confidence_and_widest_range() -> None:
    result = forecast(_session_snapshot(), None, [], tuning=TUNING)

    # accuracy 70 at weight 0.3 plus (50 + 40) / 2 at weight 0.2
    assert result.most_likely_value == pytest.approx(432.0)
    assert result.confidence_level == 0.0
    assert result.confidence_range_low == pytest.approx(324.0)
    assert result.confidence_range_high == pytest.approx(540.0)
    assert "tests" not in result.components
    assert result.components["focus"] == 80.0


def test_forecast_with_no_data_at_all() -> None:
    result = forecast(_empty_snapshot(), None, [], tuning=TUNING)
    assert result.most_likely_value == 0.0
    assert result.confidence_level == 0.0
    assert result.generated_at == datetime(1970, 1, 1, tzinfo=timezone.utc)


def test_forecast_is_monotonic_in_latest_score() -> None:
    lower = forecast(_empty_snapshot(), None, _tests(500, 550), tuning=TUNING)
    higher = forecast(_empty_snapshot(), None, _tests(500, 600), tuning=TUNING)
    assert higher.most_likely_value > lower.most_likely_value


def test_forecast_ignores_input_order() -> None:
    tests = _tests(520, 600, 560)
    forward = forecast(_session_snapshot(), None, tests, tuning=TUNING)
    backward = forecast(_session_snapshot(), None, list(reversed(tests)), tuning=TUNING)
    assert forward == backward


def test_trend_nudges_the_point_estimate() -> None:
    base = forecast(_empty_snapshot(), None, _tests(600), tuning=TUNING)
    improving = forecast(_empty_snapshot(), TrendResult(direction="improving"), _tests(600), tuning=TUNING)
    declining = forecast(_empty_snapshot(), TrendResult(direction="declining"), _tests(600), tuning=TUNING)
    assert improving.most_likely_value == pytest.approx(base.most_likely_value + 14.4)
    assert declining.most_likely_value == pytest.approx(base.most_likely_value - 14.4)
    assert improving.trend_direction == "improving"


def test_single_test_uses_ceiling_range() -> None:
    result = forecast(_empty_snapshot(), None, _tests(360), tuning=TUNING)
    assert result.confidence_range_low == pytest.approx(360 - 108)
    assert result.confidence_range_high == pytest.approx(360 + 108)


def test_forecast_rejects_invalid_test() -> None:
    with pytest.raises(ValidationError):
        forecast(_empty_snapshot(), None, _tests(800), tuning=TUNING)


def test_recent_performance_weights_newest_test_most() -> None:
    assert recent_test_performance([50.0, 100.0], tuning=TUNING) == pytest.approx(250.0 / 3)
    with pytest.raises(InsufficientDataError) as excinfo:
        recent_test_performance([], tuning=TUNING)
    assert excinfo.value.category == "tests"


def test_data_completeness_counts_present_categories() -> None:
    snapshot = _session_snapshot()
    assert data_completeness(snapshot, 0, 80.0) == 0.0
    assert data_completeness(snapshot, 2) == pytest.approx(0.5)
    assert data_completeness(snapshot, 2, 80.0) == pytest.approx(0.75)


def test_rank_table_interpolation() -> None:
    assert rank_for_marks(720) == 1
    assert rank_for_marks(715) == 50
    assert rank_for_marks(705) == 325
    assert rank_for_marks(350) == 3_400_000
    assert rank_for_marks(120) == RANK_FALLBACK


def test_forecast_rank_maps_range_bounds() -> None:
    result = forecast(_empty_snapshot(), None, _tests(580, 610, 640), tuning=TUNING)
    rank = forecast_rank(result)
    assert rank.best_rank <= rank.most_likely_rank <= rank.worst_rank
    assert rank.confidence_level == result.confidence_level


@pytest.mark.parametrize(
    "offset, phase, cycle_day",
    [(0, "menstrual", 1), (5, "follicular", 6), (13, "ovulation", 14), (16, "luteal", 17), (28, "menstrual", 1)],
)
def test_cycle_phase_boundaries(offset: int, phase: str, cycle_day: int) -> None:
    start = date(2025, 1, 1)
    assert cycle_phase(start, start + timedelta(days=offset)) == (phase, cycle_day)


def test_cycle_phase_rejects_implausible_cycle() -> None:
    with pytest.raises(ValidationError):
        cycle_phase(date(2025, 1, 1), date(2025, 1, 2), cycle_length=15)


def test_bio_rhythm_without_history_uses_profile() -> None:
    projection = project_bio_rhythm(date(2025, 1, 1), date(2025, 1, 8), tuning=TUNING)
    assert projection.phase == "follicular"
    assert projection.focus.most_likely_value == 9.0
    assert projection.focus.confidence_level == 0.5
    assert projection.energy.most_likely_value == 8.0
    assert projection.energy.scale_max == 10.0


def test_bio_rhythm_scales_measured_focus() -> None:
    projection = project_bio_rhythm(
        date(2025, 1, 1),
        date(2025, 1, 8),
        focus_history=[6.0, 6.0],
        tuning=TUNING,
    )
    assert projection.focus.most_likely_value == pytest.approx(7.2)
    assert projection.focus.confidence_range_low == pytest.approx(7.0)
    assert projection.focus.confidence_range_high == pytest.approx(7.4)
    assert projection.focus.confidence_level == 1.0


def test_bio_rhythm_rejects_out_of_range_focus() -> None:
    with pytest.raises(ValidationError):
        project_bio_rhythm(date(2025, 1, 1), date(2025, 1, 8), focus_history=[11.0], tuning=TUNING)
