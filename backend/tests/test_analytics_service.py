from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from studypulse.analytics import (
    compute_bio_rhythm,
    compute_forecast,
    compute_recommendations,
    compute_retention,
    compute_snapshot,
    compute_study_patterns,
    compute_subject_progress,
)
from studypulse.cache import SnapshotCache, record_fingerprint
from studypulse.config import AnalyticsTuning
from studypulse.fetcher import StudyDataBundle
from studypulse.records import (
    ActivityRecord,
    CompletionUnit,
    RetentionSample,
    SessionRecord,
    TestRecord,
)
from studypulse.telemetry import TelemetryEvent, clear_listeners, register_listener

TUNING = AnalyticsTuning()
NOW = datetime(2025, 4, 10, 20, 0, tzinfo=timezone.utc)


@pytest.fixture()
def events():
    captured: list[TelemetryEvent] = []
    register_listener(captured.append)
    yield captured
    clear_listeners()


def _goal(day_offset: int, questions: float) -> ActivityRecord:
    return ActivityRecord(
        source_type="goal",
        timestamp=NOW - timedelta(days=day_offset),
        raw_value=questions,
        raw_unit="questions",
    )


def _bundle() -> StudyDataBundle:
    sessions = tuple(
        SessionRecord(
            session_id=f"s{index}",
            subject_tag="chemistry",
            started_at=NOW - timedelta(days=index, hours=2),
            duration_minutes=90,
            focus_score=7.5,
            efficiency_score=7.0,
            questions_attempted=40,
            questions_correct=30,
        )
        for index in range(3)
    )
    tests = tuple(
        TestRecord(test_id=f"t{index}", taken_at=NOW - timedelta(days=21 - 7 * index), score=score)
        for index, score in enumerate((540, 570, 600))
    )
    chapter = CompletionUnit.create("c1", "chemistry", lectures=2).with_entry("lectures", 0).with_entry("drills", 0)
    return StudyDataBundle(
        goal_records=(_goal(0, 250), _goal(1, 500), _goal(2, 500)),
        completion_units=(chapter,),
        test_records=tests,
        session_records=sessions,
        retention_samples=(
            RetentionSample(item_id="r1", subject_tag="chemistry", created_at=NOW - timedelta(days=10), retention_score=0.6),
        ),
        fetched_at=NOW,
    )


def test_empty_period_snapshot_is_all_zero(events) -> None:
    snapshot = compute_snapshot([], "week", "2025-W10", tuning=TUNING)

    assert snapshot.accuracy_rate == 0.0
    assert snapshot.total_volume == 0.0
    assert snapshot.consistency == 0.0
    assert snapshot.record_count == 0
    assert events[-1].name == "analytics_snapshot_computed"
    assert events[-1].payload["cached"] is False


def test_snapshot_cache_serves_identical_record_sets(events) -> None:
    cache = SnapshotCache()
    records = _bundle().activity_records()

    first = compute_snapshot(records, "lifetime", "all", tuning=TUNING, cache=cache)
    second = compute_snapshot(list(reversed(records)), "lifetime", "all", tuning=TUNING, cache=cache)

    assert first == second
    assert len(cache) == 1
    assert [event.payload["cached"] for event in events] == [False, True]

    assert cache.invalidate(record_fingerprint(records)) == 1
    compute_snapshot(records, "lifetime", "all", tuning=TUNING, cache=cache)
    assert events[-1].payload["cached"] is False


def test_changed_records_miss_the_cache() -> None:
    cache = SnapshotCache()
    records = _bundle().activity_records()
    compute_snapshot(records, "lifetime", "all", tuning=TUNING, cache=cache)
    updated = compute_snapshot(records + [_goal(3, 100)], "lifetime", "all", tuning=TUNING, cache=cache)
    assert updated.total_volume > 0
    assert len(cache) == 2


def test_forecast_report_combines_every_source(events) -> None:
    report = compute_forecast(_bundle(), as_of=NOW, tuning=TUNING)

    assert report.forecast.confidence_level == 1.0
    assert report.low_data is False
    assert report.streak_days == 3
    assert report.forecast.generated_at == NOW
    assert report.snapshot.period == "lifetime"
    assert set(report.gaps) == {"tests", "accuracy", "consistency", "volume", "completion", "focus"}
    assert report.rank.best_rank <= report.rank.most_likely_rank
    assert events[-1].name == "analytics_forecast_computed"
    assert events[-1].payload["test_count"] == 3


def test_recommendations_flag_low_data_without_tests() -> None:
    bundle = StudyDataBundle(goal_records=(_goal(0, 100),), fetched_at=NOW)

    report = compute_recommendations(bundle, as_of=NOW, tuning=TUNING)

    assert report.confidence_level == 0.0
    assert report.low_data is True
    assert 1 <= len(report.recommendations) <= TUNING.recommendation_limit
    assert report.recommendations[0].priority == 1


def test_retention_defaults_to_fetch_time() -> None:
    curve = compute_retention(_bundle(), tuning=TUNING)
    assert curve == [(1, 0.6), (3, 0.6), (7, 0.6)]


def test_subject_progress_and_patterns() -> None:
    bundle = _bundle()

    progress = compute_subject_progress(bundle, subjects=("chemistry", "biology"), tuning=TUNING)
    assert progress.subjects["chemistry"] == 50.0
    assert progress.subjects["biology"] is None
    assert progress.chapters[0].needs_improvement is True

    patterns = compute_study_patterns(bundle, tuning=TUNING)
    assert patterns.optimal_hours[0].hour == 18
    assert patterns.velocity[0].subject_tag == "chemistry"


def test_bio_rhythm_uses_session_focus() -> None:
    projection = compute_bio_rhythm(_bundle(), date(2025, 4, 1), date(2025, 4, 15), tuning=TUNING)
    assert projection.phase == "ovulation"
    assert projection.focus.most_likely_value == 10.0
