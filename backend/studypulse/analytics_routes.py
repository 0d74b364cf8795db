"""Analytics REST endpoints: snapshots, trends, forecasts and recommendations."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import asdict
from datetime import date, datetime, timezone
from typing import Dict, Generator, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .analytics import (
    ForecastReport,
    RecommendationReport,
    compute_bio_rhythm,
    compute_forecast,
    compute_period_series,
    compute_recommendations,
    compute_retention,
    compute_snapshot,
    compute_study_patterns,
    compute_subject_progress,
    compute_trend,
)
from .cache import snapshot_cache
from .config import Settings, get_settings, tuning_from_settings
from .errors import UpstreamFetchError, ValidationError
from .fetcher import DateRange, RecordSource, StudyDataBundle, fetch_bundle
from .narrative import NarrativeError, generate_narrative, narrative_context
from .payloads import (
    BioRhythmPayload,
    ChapterProgressPayload,
    ForecastPayload,
    HeatmapCellPayload,
    NarrativePayload,
    OptimalHourPayload,
    RankPayload,
    RecommendationsPayload,
    RetentionPayload,
    RetentionPointPayload,
    SnapshotPayload,
    StudyPatternPayload,
    SubjectProgressPayload,
    TrendPayload,
    VelocityPayload,
)
from .records import Period
from .recommendations import TargetBenchmark
from .repositories import SqlRecordSource
from .telemetry import emit_event

router = APIRouter(prefix="/api/analytics", tags=["analytics"])
logger = logging.getLogger(__name__)

MAX_WINDOW_DAYS = 3650


def get_record_source() -> RecordSource:
    return SqlRecordSource()


@contextmanager
def _analytics_errors() -> Generator[None, None, None]:
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


async def _load(
    source: RecordSource,
    settings: Settings,
    *,
    days: Optional[int] = None,
    subject_id: Optional[str] = None,
) -> StudyDataBundle:
    try:
        window = DateRange.last_days(days) if days else DateRange()
        return await fetch_bundle(source, window, subject_id=subject_id, settings=settings)
    except UpstreamFetchError as exc:
        logger.warning("Study record fetch failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


def _forecast_payload(report: ForecastReport) -> ForecastPayload:
    return ForecastPayload(
        forecast=report.forecast,
        rank=RankPayload(**asdict(report.rank)),
        trend=report.trend,
        snapshot=report.snapshot,
        gaps=dict(report.gaps),
        streak_days=report.streak_days,
        low_data=report.low_data,
    )


@router.get("/snapshot", response_model=SnapshotPayload, status_code=status.HTTP_200_OK)
async def get_snapshot(
    period: Period = Query(default="week"),
    period_key: str = Query(..., min_length=1, description="e.g. 2025-03-04, 2025-W10, 2025-03 or all"),
    days: Optional[int] = Query(default=None, ge=1, le=MAX_WINDOW_DAYS),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> SnapshotPayload:
    bundle = await _load(source, settings, days=days)
    cache = snapshot_cache if settings.snapshot_cache_enabled else None
    with _analytics_errors():
        snapshot = compute_snapshot(
            bundle.activity_records(),
            period,
            period_key,
            tuning=tuning_from_settings(settings),
            cache=cache,
            as_of=bundle.fetched_at,
        )
    return SnapshotPayload(snapshot=snapshot)


@router.get("/trend", response_model=TrendPayload, status_code=status.HTTP_200_OK)
async def get_trend(
    period: Period = Query(default="week"),
    metric: Optional[str] = Query(default=None),
    days: Optional[int] = Query(default=None, ge=1, le=MAX_WINDOW_DAYS),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> TrendPayload:
    bundle = await _load(source, settings, days=days)
    with _analytics_errors():
        tuning = tuning_from_settings(settings)
        series = compute_period_series(bundle.activity_records(), period, tuning=tuning)
        trend = compute_trend(series, metric, tuning=tuning)
    return TrendPayload(
        period=period,
        metric=metric or tuning.forecast_trend_metric,
        series=series,
        trend=trend,
    )


@router.post("/forecast", response_model=ForecastPayload, status_code=status.HTTP_200_OK)
async def post_forecast(
    benchmark: Optional[TargetBenchmark] = None,
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> ForecastPayload:
    bundle = await _load(source, settings)
    with _analytics_errors():
        report = compute_forecast(bundle, benchmark, as_of=bundle.fetched_at, tuning=tuning_from_settings(settings))
    return _forecast_payload(report)


async def _narrative(report: RecommendationReport, settings: Settings) -> Optional[NarrativePayload]:
    context = narrative_context(report)
    try:
        result = await asyncio.wait_for(
            asyncio.to_thread(generate_narrative, context, settings=settings),
            timeout=settings.narrative_timeout_seconds,
        )
    except asyncio.TimeoutError:
        emit_event("narrative_unavailable", mode=settings.narrative_mode, reason="timeout")
        return None
    except NarrativeError as exc:
        logger.warning("Narrative unavailable: %s", exc)
        return None
    return NarrativePayload(**asdict(result))


@router.post("/recommendations", response_model=RecommendationsPayload, status_code=status.HTTP_200_OK)
async def post_recommendations(
    benchmark: Optional[TargetBenchmark] = None,
    narrative: bool = Query(default=False, description="Attach generated prose when available."),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> RecommendationsPayload:
    bundle = await _load(source, settings)
    with _analytics_errors():
        report = compute_recommendations(
            bundle, benchmark, as_of=bundle.fetched_at, tuning=tuning_from_settings(settings)
        )
    return RecommendationsPayload(
        recommendations=report.recommendations,
        confidence_level=report.confidence_level,
        low_data=report.low_data,
        forecast=_forecast_payload(report.forecast),
        narrative=await _narrative(report, settings) if narrative else None,
    )


@router.get("/retention", response_model=RetentionPayload, status_code=status.HTTP_200_OK)
async def get_retention(
    subject_id: Optional[str] = Query(default=None),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> RetentionPayload:
    bundle = await _load(source, settings, subject_id=subject_id)
    as_of = bundle.fetched_at
    with _analytics_errors():
        curve = compute_retention(bundle, as_of=as_of, tuning=tuning_from_settings(settings))
    return RetentionPayload(
        as_of=as_of,
        sample_count=len(bundle.retention_samples),
        curve=[RetentionPointPayload(days_since_learned=days, retention_score=score) for days, score in curve],
    )


@router.get("/patterns", response_model=StudyPatternPayload, status_code=status.HTTP_200_OK)
async def get_study_patterns(
    days: Optional[int] = Query(default=None, ge=1, le=MAX_WINDOW_DAYS),
    top_n: Optional[int] = Query(default=None, ge=1, le=24),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> StudyPatternPayload:
    bundle = await _load(source, settings, days=days)
    with _analytics_errors():
        report = compute_study_patterns(bundle, top_n=top_n, tuning=tuning_from_settings(settings))
    return StudyPatternPayload(
        heatmap=[HeatmapCellPayload(**asdict(cell)) for cell in report.heatmap],
        optimal_hours=[OptimalHourPayload(**asdict(hour)) for hour in report.optimal_hours],
        velocity=[
            VelocityPayload(
                subject_tag=entry.subject_tag,
                session_count=entry.session_count,
                hours=entry.hours,
                questions_per_hour=entry.questions_per_hour,
                correct_per_hour=entry.correct_per_hour,
                efficiency_trend=entry.efficiency_trend,
            )
            for entry in report.velocity
        ],
    )


@router.get("/subjects", response_model=SubjectProgressPayload, status_code=status.HTTP_200_OK)
async def get_subject_progress(
    subject_id: Optional[str] = Query(default=None),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> SubjectProgressPayload:
    bundle = await _load(source, settings, subject_id=subject_id)
    report = compute_subject_progress(bundle, tuning=tuning_from_settings(settings))
    return SubjectProgressPayload(
        subjects=dict(report.subjects),
        syllabus_completion=report.syllabus_completion,
        chapters=[ChapterProgressPayload(**asdict(chapter)) for chapter in report.chapters],
    )


@router.get("/bio-rhythm", response_model=BioRhythmPayload, status_code=status.HTTP_200_OK)
async def get_bio_rhythm(
    cycle_start: date = Query(...),
    target_date: Optional[date] = Query(default=None),
    cycle_length: int = Query(default=28, ge=1),
    period_length: int = Query(default=5, ge=1),
    days: Optional[int] = Query(default=30, ge=1, le=MAX_WINDOW_DAYS),
    source: RecordSource = Depends(get_record_source),
    settings: Settings = Depends(get_settings),
) -> BioRhythmPayload:
    bundle = await _load(source, settings, days=days)
    target = target_date or datetime.now(timezone.utc).date()
    with _analytics_errors():
        projection = compute_bio_rhythm(
            bundle,
            cycle_start,
            target,
            cycle_length=cycle_length,
            period_length=period_length,
            tuning=tuning_from_settings(settings),
        )
    return BioRhythmPayload(
        target_date=target,
        phase=projection.phase,
        cycle_day=projection.cycle_day,
        energy=projection.energy,
        focus=projection.focus,
    )


@router.post("/cache/invalidate", status_code=status.HTTP_200_OK)
def invalidate_snapshot_cache(fingerprint: Optional[str] = Query(default=None)) -> Dict[str, int]:
    """Called by writers after study records change."""
    if fingerprint:
        return {"invalidated": snapshot_cache.invalidate(fingerprint)}
    removed = len(snapshot_cache)
    snapshot_cache.clear()
    return {"invalidated": removed}


__all__ = ["get_record_source", "router"]
