"""Public entry points of the analytics core.

Every function here takes already-fetched collections (usually a
:class:`~studypulse.fetcher.StudyDataBundle`) plus primitive parameters and
returns plain values, so HTTP handlers, scripts and scheduled jobs can share
them. None of them touch the record source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from .aggregation import (
    LIFETIME_KEY,
    ChapterProgress,
    aggregate,
    aggregate_series,
    chapter_progress,
    period_key_for,
    study_streak,
    subject_completion,
    syllabus_completion,
)
from .cache import SnapshotCache, record_fingerprint, snapshot_key
from .config import AnalyticsTuning, get_tuning
from .fetcher import StudyDataBundle
from .forecaster import BioRhythmProjection, RankForecast, forecast, forecast_rank, project_bio_rhythm
from .recommendations import TargetBenchmark, deficit_scores, synthesize
from .records import (
    ActivityRecord,
    AggregateSnapshot,
    ForecastResult,
    Period,
    Recommendation,
    TrendResult,
)
from .telemetry import emit_event
from .trends import (
    HeatmapCell,
    OptimalHour,
    SubjectVelocity,
    analyze_trend,
    forgetting_curve,
    optimal_study_hours,
    performance_heatmap,
    study_velocity,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ForecastReport:
    forecast: ForecastResult
    rank: RankForecast
    trend: TrendResult
    snapshot: AggregateSnapshot
    gaps: Dict[str, float]
    streak_days: int
    low_data: bool


@dataclass(frozen=True)
class RecommendationReport:
    recommendations: List[Recommendation]
    confidence_level: float
    low_data: bool
    forecast: ForecastReport


@dataclass(frozen=True)
class SubjectProgressReport:
    subjects: Dict[str, Optional[float]]
    syllabus_completion: Optional[float]
    chapters: List[ChapterProgress] = field(default_factory=list)


@dataclass(frozen=True)
class StudyPatternReport:
    heatmap: List[HeatmapCell]
    optimal_hours: List[OptimalHour]
    velocity: List[SubjectVelocity]


def compute_snapshot(
    records: Sequence[ActivityRecord],
    period: Period,
    period_key: str,
    *,
    tuning: Optional[AnalyticsTuning] = None,
    cache: Optional[SnapshotCache] = None,
    as_of: Optional[datetime] = None,
) -> AggregateSnapshot:
    """Snapshot for one period; served from ``cache`` only for an identical record set."""
    resolved = tuning or get_tuning()
    key: Optional[str] = None
    if cache is not None:
        bucket = period_key
        if period == "lifetime" and as_of is not None:
            bucket = f"{period_key}@{period_key_for(as_of, 'day', timezone_name=resolved.timezone)}"
        key = snapshot_key(record_fingerprint(records), period, bucket, resolved.timezone)
        cached = cache.get(key)
        if cached is not None:
            emit_event(
                "analytics_snapshot_computed",
                period=period,
                period_key=period_key,
                record_count=cached.record_count,
                cached=True,
            )
            return cached

    snapshot = aggregate(records, period, period_key, tuning=resolved, as_of=as_of)
    if cache is not None and key is not None:
        cache.set(key, snapshot)
    emit_event(
        "analytics_snapshot_computed",
        period=period,
        period_key=period_key,
        record_count=snapshot.record_count,
        cached=False,
    )
    return snapshot


def compute_period_series(
    records: Sequence[ActivityRecord],
    period: Period,
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[AggregateSnapshot]:
    return aggregate_series(records, period, tuning=tuning or get_tuning())


def compute_trend(
    period_series: Sequence[AggregateSnapshot],
    metric: Optional[str] = None,
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> TrendResult:
    return analyze_trend(period_series, metric, tuning=tuning or get_tuning())


def compute_subject_progress(
    bundle: StudyDataBundle,
    *,
    subjects: Sequence[str] = (),
    tuning: Optional[AnalyticsTuning] = None,
) -> SubjectProgressReport:
    resolved = tuning or get_tuning()
    units = list(bundle.completion_units)
    return SubjectProgressReport(
        subjects=subject_completion(units, subjects),
        syllabus_completion=syllabus_completion(units, resolved.expected_chapter_count),
        chapters=[chapter_progress(unit) for unit in units],
    )


def _syllabus_or_none(bundle: StudyDataBundle, tuning: AnalyticsTuning) -> Optional[float]:
    if not bundle.completion_units:
        return None
    return syllabus_completion(list(bundle.completion_units), tuning.expected_chapter_count)


def compute_forecast(
    bundle: StudyDataBundle,
    benchmark: Optional[TargetBenchmark] = None,
    *,
    as_of: Optional[datetime] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> ForecastReport:
    """Lifetime snapshot, weekly trend and score/rank forecast with benchmark gaps."""
    resolved = tuning or get_tuning()
    target = benchmark or TargetBenchmark()
    records = bundle.activity_records()

    snapshot = aggregate(records, "lifetime", LIFETIME_KEY, tuning=resolved, as_of=as_of)
    trend = analyze_trend(aggregate_series(records, "week", tuning=resolved), tuning=resolved)
    result = forecast(
        snapshot,
        trend,
        list(bundle.test_records),
        completion=_syllabus_or_none(bundle, resolved),
        generated_at=as_of,
        tuning=resolved,
    )
    rank = forecast_rank(result)
    low_data = result.confidence_level < resolved.low_data_threshold
    streak = study_streak(records, as_of or result.generated_at, tuning=resolved)

    emit_event(
        "analytics_forecast_computed",
        most_likely_value=result.most_likely_value,
        confidence_level=result.confidence_level,
        test_count=len(bundle.test_records),
        trend=trend.direction,
        low_data=low_data,
    )
    return ForecastReport(
        forecast=result,
        rank=rank,
        trend=trend,
        snapshot=snapshot,
        gaps={category: round(score, 4) for category, score in deficit_scores(result, target).items()},
        streak_days=streak,
        low_data=low_data,
    )


def compute_recommendations(
    bundle: StudyDataBundle,
    benchmark: Optional[TargetBenchmark] = None,
    *,
    as_of: Optional[datetime] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> RecommendationReport:
    resolved = tuning or get_tuning()
    target = benchmark or TargetBenchmark()
    report = compute_forecast(bundle, target, as_of=as_of, tuning=resolved)
    recommendations = synthesize(report.forecast, target, tuning=resolved)
    return RecommendationReport(
        recommendations=recommendations,
        confidence_level=report.forecast.confidence_level,
        low_data=report.low_data,
        forecast=report,
    )


def compute_retention(
    bundle: StudyDataBundle,
    *,
    as_of: Optional[datetime] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[Tuple[int, float]]:
    return forgetting_curve(bundle.retention_samples, as_of=as_of or bundle.fetched_at, tuning=tuning)


def compute_study_patterns(
    bundle: StudyDataBundle,
    *,
    top_n: Optional[int] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> StudyPatternReport:
    resolved = tuning or get_tuning()
    sessions = list(bundle.session_records)
    return StudyPatternReport(
        heatmap=performance_heatmap(sessions, tuning=resolved),
        optimal_hours=optimal_study_hours(sessions, top_n=top_n, tuning=resolved),
        velocity=study_velocity(sessions, tuning=resolved),
    )


def compute_bio_rhythm(
    bundle: StudyDataBundle,
    cycle_start: date,
    target: date,
    *,
    cycle_length: int = 28,
    period_length: int = 5,
    tuning: Optional[AnalyticsTuning] = None,
) -> BioRhythmProjection:
    return project_bio_rhythm(
        cycle_start,
        target,
        focus_history=bundle.focus_history(),
        cycle_length=cycle_length,
        period_length=period_length,
        tuning=tuning,
    )


__all__ = [
    "ForecastReport",
    "RecommendationReport",
    "StudyPatternReport",
    "SubjectProgressReport",
    "compute_bio_rhythm",
    "compute_forecast",
    "compute_period_series",
    "compute_recommendations",
    "compute_retention",
    "compute_snapshot",
    "compute_study_patterns",
    "compute_subject_progress",
    "compute_trend",
]
