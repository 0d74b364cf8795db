from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from studypulse.aggregation import aggregate, aggregate_series, period_key_for, study_streak
from studypulse.config import AnalyticsTuning
from studypulse.errors import ValidationError
from studypulse.records import ActivityRecord, SessionRecord

TUNING = AnalyticsTuning()


def _at(day: int, hour: int = 9) -> datetime:
    return datetime(2025, 3, day, hour, 0, tzinfo=timezone.utc)


def _goal(day: int, questions: float, subject: str = "physics") -> ActivityRecord:
    return ActivityRecord(
        source_type="goal",
        subject_tag=subject,
        timestamp=_at(day),
        raw_value=questions,
        raw_unit="questions",
    )


def _session(day: int, focus: float, efficiency: float, attempted: int, correct: int, minutes: float = 90) -> SessionRecord:
    return SessionRecord(
        session_id=f"s-{day}-{focus}",
        subject_tag="chemistry",
        started_at=_at(day, 18),
        duration_minutes=minutes,
        focus_score=focus,
        efficiency_score=efficiency,
        questions_attempted=attempted,
        questions_correct=correct,
    )


def _records() -> list[ActivityRecord]:
    records = [_goal(3, 300), _goal(3, 300, "biology"), _goal(4, 100)]
    records.extend(_session(3, 8, 6, attempted=50, correct=40).to_activity_records())
    records.extend(_session(5, 6, 8, attempted=150, correct=90, minutes=30).to_activity_records())
    return records


def test_period_keys_cover_every_granularity() -> None:
    moment = datetime(2025, 3, 4, 23, 30, tzinfo=timezone.utc)
    assert period_key_for(moment, "day") == "2025-03-04"
    assert period_key_for(moment, "week") == "2025-W10"
    assert period_key_for(moment, "month") == "2025-03"
    assert period_key_for(moment, "lifetime") == "all"
    assert period_key_for(moment, "day", timezone_name="Asia/Kolkata") == "2025-03-05"


def test_weekly_snapshot_means_and_totals() -> None:
    snapshot = aggregate(_records(), "week", "2025-W10", tuning=TUNING)

    assert snapshot.period == "week"
    assert snapshot.mean_focus == pytest.approx(70.0)
    assert snapshot.mean_efficiency == pytest.approx(70.0)
    # goal questions 700 plus session questions 200
    assert snapshot.total_volume == pytest.approx(900.0)
    # 130 correct of 200 attempted, weighted by attempts
    assert snapshot.accuracy_rate == pytest.approx(65.0)
    assert snapshot.accuracy_samples == 200
    assert snapshot.operational_hours == pytest.approx(2.0)
    assert snapshot.active_days == 3
    assert snapshot.consistency == pytest.approx(round(3 / 7 * 100, 2))
    assert snapshot.source_counts["goal"] == 3
    assert snapshot.source_counts["session"] == 10


def test_volume_score_caps_each_day_at_target() -> None:
    snapshot = aggregate(_records(), "week", "2025-W10", tuning=TUNING)
    # day 3: 650 questions -> capped at 100; day 4: 100 -> 20; day 5: 150 -> 30
    assert snapshot.volume_score == pytest.approx(50.0)


def test_records_outside_the_bucket_are_ignored() -> None:
    snapshot = aggregate(_records(), "day", "2025-03-04", tuning=TUNING)
    assert snapshot.record_count == 1
    assert snapshot.total_volume == pytest.approx(100.0)
    assert snapshot.mean_focus == 0.0
    assert snapshot.consistency == 100.0


def test_empty_period_returns_all_zero_snapshot() -> None:
    snapshot = aggregate([], "month", "2025-04", tuning=TUNING)
    assert snapshot.mean_focus == 0.0
    assert snapshot.mean_efficiency == 0.0
    assert snapshot.total_volume == 0.0
    assert snapshot.accuracy_rate == 0.0
    assert snapshot.consistency == 0.0
    assert snapshot.record_count == 0
    assert snapshot.last_activity_at is None


def test_aggregation_is_deterministic_and_order_independent() -> None:
    records = _records()
    first = aggregate(records, "lifetime", "all", tuning=TUNING)
    second = aggregate(list(reversed(records)), "lifetime", "all", tuning=TUNING)
    again = aggregate(records, "lifetime", "all", tuning=TUNING)
    assert first == second == again
    assert first.model_dump() == second.model_dump()


def test_invalid_record_rejects_the_whole_aggregation() -> None:
    bad = ActivityRecord(source_type="test", timestamp=_at(1), raw_value=800, raw_unit="marks")
    with pytest.raises(ValidationError):
        aggregate([*_records(), bad], "week", "2025-W10", tuning=TUNING)


@pytest.mark.parametrize(
    ("period", "key"),
    [("week", "2025-10"), ("month", "2025-13"), ("day", "2025-02-30"), ("lifetime", "2025"), ("year", "2025")],
)
def test_malformed_period_keys_are_rejected(period: str, key: str) -> None:
    with pytest.raises(ValidationError):
        aggregate([], period, key, tuning=TUNING)  # type: ignore[arg-type]


def test_lifetime_consistency_spans_first_to_last_active_day() -> None:
    snapshot = aggregate(_records(), "lifetime", "all", tuning=TUNING)
    assert snapshot.active_days == 3
    assert snapshot.consistency == pytest.approx(100.0)
    assert snapshot.last_activity_at == _at(5, 18)


def test_lifetime_consistency_counts_inactivity_up_to_as_of() -> None:
    records = [_goal(day, 50) for day in (1, 2, 3)]
    as_of = _at(3, 12) + timedelta(days=150)

    snapshot = aggregate(records, "lifetime", "all", tuning=TUNING, as_of=as_of)

    assert snapshot.active_days == 3
    assert snapshot.consistency == pytest.approx(round(3 / 153 * 100.0, 2))
    assert study_streak(records, as_of, tuning=TUNING) == 0


def test_series_is_ordered_by_period_key() -> None:
    records = [_goal(3, 100), _goal(17, 200), _goal(10, 150)]
    series = aggregate_series(records, "week", tuning=TUNING)
    assert [snapshot.period_key for snapshot in series] == ["2025-W10", "2025-W11", "2025-W12"]
    assert [snapshot.total_volume for snapshot in series] == [100.0, 150.0, 200.0]


def test_study_streak_counts_back_from_as_of() -> None:
    records = [_goal(day, 50) for day in (1, 2, 3, 4, 6, 7)]
    assert study_streak(records, _at(7, 20), tuning=TUNING) == 2
    assert study_streak(records, _at(8, 8), tuning=TUNING) == 2
    assert study_streak(records, _at(5, 8), tuning=TUNING) == 4
    assert study_streak(records, _at(10) + timedelta(days=1), tuning=TUNING) == 0
