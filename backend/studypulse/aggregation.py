"""Aggregation engine: period snapshots and chapter/subject completion rollups."""

from __future__ import annotations

import calendar
import logging
import math
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import AnalyticsTuning, get_tuning
from .errors import ValidationError
from .normalizer import normalize
from .records import (
    SOURCE_TYPES,
    ActivityRecord,
    AggregateSnapshot,
    CompletionUnit,
    NormalizedMetric,
    Period,
)

logger = logging.getLogger(__name__)

PERIODS: Tuple[Period, ...] = ("day", "week", "month", "lifetime")
LIFETIME_KEY = "all"

CHAPTER_WEIGHTS: Dict[str, float] = {"lectures": 25.0, "drills": 35.0, "assignments": 25.0}
REVISION_WEIGHT = 15.0
REVISION_IMPROVEMENT_THRESHOLD = 6.0

_KEY_PATTERNS: Dict[str, re.Pattern[str]] = {
    "day": re.compile(r"^\d{4}-\d{2}-\d{2}$"),
    "week": re.compile(r"^(\d{4})-W(\d{2})$"),
    "month": re.compile(r"^(\d{4})-(\d{2})$"),
}


def analytics_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown analytics timezone '{name}'.") from exc


def _local(timestamp: datetime, zone: ZoneInfo) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=zone)
    return timestamp.astimezone(zone)


def _key_for_date(day: date, period: Period) -> str:
    if period == "day":
        return day.isoformat()
    if period == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "month":
        return f"{day.year}-{day.month:02d}"
    return LIFETIME_KEY


def period_key_for(timestamp: datetime, period: Period, *, timezone_name: str = "UTC") -> str:
    """Return the bucket key (``2025-03-04``, ``2025-W10``, ``2025-03`` or ``all``) for ``timestamp``."""
    _validate_period(period)
    return _key_for_date(_local(timestamp, analytics_zone(timezone_name)).date(), period)


def _validate_period(period: str) -> None:
    if period not in PERIODS:
        raise ValidationError(f"Unknown period '{period}'; expected one of {', '.join(PERIODS)}.")


def _period_length_days(period: Period, period_key: str) -> Optional[int]:
    """Days covered by a calendar bucket; ``None`` for lifetime, which spans the data."""
    if period == "lifetime":
        if period_key != LIFETIME_KEY:
            raise ValidationError(f"Lifetime period key must be '{LIFETIME_KEY}', got '{period_key}'.")
        return None
    match = _KEY_PATTERNS[period].match(period_key)
    if match is None:
        raise ValidationError(f"Malformed {period} key '{period_key}'.")
    try:
        if period == "day":
            date.fromisoformat(period_key)
            return 1
        if period == "week":
            date.fromisocalendar(int(match.group(1)), int(match.group(2)), 1)
            return 7
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise ValueError(f"month {month}")
        return calendar.monthrange(year, month)[1]
    except ValueError as exc:
        raise ValidationError(f"Malformed {period} key '{period_key}': {exc}") from exc


def _canonical_order(record: ActivityRecord, zone: ZoneInfo) -> tuple:
    return (
        _local(record.timestamp, zone),
        record.source_type,
        record.raw_unit,
        record.subject_tag,
        record.raw_value,
        record.sample_size or 0,
    )


def _mean(values: Sequence[float]) -> float:
    return math.fsum(values) / len(values) if values else 0.0


def aggregate(
    records: Iterable[ActivityRecord],
    period: Period,
    period_key: str,
    *,
    tuning: Optional[AnalyticsTuning] = None,
    as_of: Optional[datetime] = None,
) -> AggregateSnapshot:
    """Recompute the snapshot for one period bucket from scratch.

    Every record is normalized (and therefore validated) before bucketing, so a
    single out-of-domain record rejects the whole call. Records outside the
    bucket are ignored. An empty bucket yields an all-zero snapshot. Records
    are processed in a canonical order, so the result does not depend on the
    order of ``records``.

    Lifetime consistency spans from the first active day to ``as_of`` (or to
    the last active day when ``as_of`` is not given), so inactivity since the
    last session lowers it.
    """
    resolved = tuning or get_tuning()
    _validate_period(period)
    period_days = _period_length_days(period, period_key)
    zone = analytics_zone(resolved.timezone)

    ordered = sorted(records, key=lambda record: _canonical_order(record, zone))
    in_bucket: List[Tuple[date, NormalizedMetric]] = []
    for record in ordered:
        metric = normalize(record, tuning=resolved)
        local_day = _local(record.timestamp, zone).date()
        if _key_for_date(local_day, period) == period_key:
            in_bucket.append((local_day, metric))

    as_of_day = _local(as_of, zone).date() if as_of is not None else None
    return _snapshot(in_bucket, period, period_key, period_days, resolved, as_of_day)


def _snapshot(
    metrics: List[Tuple[date, NormalizedMetric]],
    period: Period,
    period_key: str,
    period_days: Optional[int],
    tuning: AnalyticsTuning,
    as_of_day: Optional[date] = None,
) -> AggregateSnapshot:
    by_kind: Dict[str, List[NormalizedMetric]] = defaultdict(list)
    source_counts = {source: 0 for source in SOURCE_TYPES}
    daily_volume: Dict[date, List[float]] = defaultdict(list)
    activity_days: set[date] = set()
    last_activity: Optional[datetime] = None

    for local_day, metric in metrics:
        by_kind[metric.metric].append(metric)
        source_counts[metric.source_type] += 1
        if metric.metric == "volume":
            daily_volume[local_day].append(metric.raw_value)
        if metric.source_type != "checklist":
            activity_days.add(local_day)
            last_activity = metric.timestamp

    accuracy = by_kind["accuracy"]
    accuracy_weight = math.fsum(metric.weight for metric in accuracy)
    accuracy_rate = (
        math.fsum(metric.score * metric.weight for metric in accuracy) / accuracy_weight
        if accuracy_weight > 0
        else 0.0
    )
    volume_score = _mean(
        [
            min(math.fsum(amounts) / tuning.daily_question_target, 1.0) * 100.0
            for _, amounts in sorted(daily_volume.items())
        ]
    )

    if period_days is None:
        period_days = 0
        if activity_days:
            last_day = max(activity_days) if as_of_day is None else max(max(activity_days), as_of_day)
            period_days = (last_day - min(activity_days)).days + 1
    consistency = min(len(activity_days) / period_days * 100.0, 100.0) if period_days else 0.0

    return AggregateSnapshot(
        period=period,
        period_key=period_key,
        mean_focus=round(_mean([m.score for m in by_kind["focus"]]), 2),
        mean_efficiency=round(_mean([m.score for m in by_kind["efficiency"]]), 2),
        total_volume=round(math.fsum(m.raw_value for m in by_kind["volume"]), 2),
        accuracy_rate=round(accuracy_rate, 2),
        operational_hours=round(math.fsum(m.raw_value for m in by_kind["duration"]) / 60.0, 2),
        volume_score=round(volume_score, 2),
        mean_test_score=round(_mean([m.score for m in by_kind["test"]]), 2),
        completion_rate=round(_mean([m.score for m in by_kind["completion"]]), 2),
        consistency=round(consistency, 2),
        accuracy_samples=int(accuracy_weight),
        active_days=len(activity_days),
        record_count=len(metrics),
        source_counts=source_counts,
        last_activity_at=last_activity,
    )


def aggregate_series(
    records: Iterable[ActivityRecord],
    period: Period,
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[AggregateSnapshot]:
    """Snapshots for every bucket that holds at least one record, oldest first."""
    resolved = tuning or get_tuning()
    _validate_period(period)
    zone = analytics_zone(resolved.timezone)

    buckets: Dict[str, List[Tuple[date, NormalizedMetric]]] = defaultdict(list)
    for record in sorted(records, key=lambda record: _canonical_order(record, zone)):
        metric = normalize(record, tuning=resolved)
        local_day = _local(record.timestamp, zone).date()
        buckets[_key_for_date(local_day, period)].append((local_day, metric))

    return [
        _snapshot(buckets[key], period, key, _period_length_days(period, key), resolved)
        for key in sorted(buckets)
    ]


def study_streak(
    records: Iterable[ActivityRecord],
    as_of: datetime,
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> int:
    """Consecutive active days ending at ``as_of`` (or the day before, if ``as_of`` has no activity yet)."""
    resolved = tuning or get_tuning()
    zone = analytics_zone(resolved.timezone)
    days = {
        _local(record.timestamp, zone).date() for record in records if record.source_type != "checklist"
    }
    cursor = _local(as_of, zone).date()
    if cursor not in days:
        cursor -= timedelta(days=1)
    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


@dataclass(frozen=True)
class ChapterProgress:
    chapter_id: str
    subject_tag: str
    name: str
    completion: float
    lectures_pct: Optional[float]
    drills_pct: Optional[float]
    assignments_pct: Optional[float]
    hard_set_pct: Optional[float]
    revision_score: Optional[float]
    needs_improvement: bool


def _fraction(entries: Sequence[bool]) -> Optional[float]:
    if not entries:
        return None
    return sum(1 for entry in entries if entry) / len(entries)


def chapter_completion(unit: CompletionUnit) -> float:
    """Weighted chapter completion in percent.

    Empty checklists and an unset (or zero) revision score drop out and the
    remaining weights are renormalized. A chapter with nothing to count is 0.
    """
    weighted = 0.0
    total_weight = 0.0
    for name, weight in CHAPTER_WEIGHTS.items():
        fraction = _fraction(unit.checklist(name))  # type: ignore[arg-type]
        if fraction is None:
            continue
        weighted += weight * fraction
        total_weight += weight
    if unit.revision_score:
        weighted += REVISION_WEIGHT * unit.revision_score / 10.0
        total_weight += REVISION_WEIGHT
    if total_weight == 0:
        return 0.0
    return round(weighted / total_weight * 100.0, 2)


def chapter_progress(unit: CompletionUnit) -> ChapterProgress:
    def pct(entries: Sequence[bool]) -> Optional[float]:
        fraction = _fraction(entries)
        return None if fraction is None else round(fraction * 100.0, 2)

    return ChapterProgress(
        chapter_id=unit.chapter_id,
        subject_tag=unit.subject_tag,
        name=unit.name,
        completion=chapter_completion(unit),
        lectures_pct=pct(unit.lectures),
        drills_pct=pct(unit.drills),
        assignments_pct=pct(unit.assignments),
        hard_set_pct=pct(unit.hard_set),
        revision_score=unit.revision_score,
        needs_improvement=(unit.revision_score or 0.0) < REVISION_IMPROVEMENT_THRESHOLD,
    )


def subject_completion(
    units: Iterable[CompletionUnit],
    subjects: Iterable[str] = (),
) -> Dict[str, Optional[float]]:
    """Mean chapter completion per subject; subjects without chapters map to ``None``."""
    grouped: Dict[str, List[float]] = {subject: [] for subject in subjects}
    for unit in units:
        grouped.setdefault(unit.subject_tag, []).append(chapter_completion(unit))
    return {
        subject: (round(_mean(values), 2) if values else None)
        for subject, values in sorted(grouped.items())
    }


def syllabus_completion(
    units: Sequence[CompletionUnit],
    expected_chapters: Optional[int] = None,
) -> Optional[float]:
    """Total progress over the expected chapter count, or ``None`` when nothing is expected."""
    expected = len(units) if expected_chapters is None else expected_chapters
    if expected <= 0:
        return None
    total = math.fsum(chapter_completion(unit) / 100.0 for unit in units)
    return round(min(total / expected * 100.0, 100.0), 2)


def completion_records(units: Iterable[CompletionUnit]) -> List[ActivityRecord]:
    """Express chapters as checklist activity records carrying their completion percentage."""
    return [
        ActivityRecord(
            source_type="checklist",
            subject_tag=unit.subject_tag,
            timestamp=unit.updated_at,
            raw_value=chapter_completion(unit),
            raw_unit="percent",
        )
        for unit in units
    ]


__all__ = [
    "CHAPTER_WEIGHTS",
    "ChapterProgress",
    "LIFETIME_KEY",
    "PERIODS",
    "REVISION_IMPROVEMENT_THRESHOLD",
    "REVISION_WEIGHT",
    "aggregate",
    "analytics_zone",
    "aggregate_series",
    "chapter_completion",
    "chapter_progress",
    "completion_records",
    "period_key_for",
    "study_streak",
    "subject_completion",
    "syllabus_completion",
]
