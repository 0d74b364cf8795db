"""Trend, retention and study-pattern analysis over snapshots and session logs."""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from .aggregation import analytics_zone
from .config import AnalyticsTuning, get_tuning
from .errors import ValidationError
from .normalizer import normalize
from .records import AggregateSnapshot, RetentionSample, SessionRecord, TrendResult

logger = logging.getLogger(__name__)

TrendScale = Literal["percent", "ten_point"]


def _logged_volume(snapshot: AggregateSnapshot) -> bool:
    return snapshot.has_source("goal") or snapshot.has_source("session")


# A snapshot only contributes to a metric's trend when it holds data for that metric.
_METRIC_PRESENT: Dict[str, Callable[[AggregateSnapshot], bool]] = {
    "mean_focus": lambda snapshot: snapshot.has_source("session"),
    "mean_efficiency": lambda snapshot: snapshot.has_source("session"),
    "total_volume": _logged_volume,
    "accuracy_rate": lambda snapshot: snapshot.accuracy_samples > 0,
    "operational_hours": lambda snapshot: snapshot.has_source("session"),
    "volume_score": _logged_volume,
    "mean_test_score": lambda snapshot: snapshot.has_source("test"),
    "completion_rate": lambda snapshot: snapshot.has_source("checklist"),
    "consistency": lambda snapshot: snapshot.active_days > 0,
}

TREND_METRICS: Tuple[str, ...] = tuple(_METRIC_PRESENT)

SECONDS_PER_DAY = 86400.0


def analyze_values(
    values: Sequence[float],
    *,
    scale: TrendScale = "percent",
    tuning: Optional[AnalyticsTuning] = None,
) -> TrendResult:
    """Half-split trend: mean of the recent half against the earlier half.

    With an odd number of values the middle one belongs to neither half. On
    the ten-point scale the threshold is an absolute point difference; on the
    percent scale it is the relative change against the earlier mean.
    """
    resolved = tuning or get_tuning()
    count = len(values)
    half = count // 2
    if half == 0:
        return TrendResult(sample_count=count)

    earlier = math.fsum(values[:half]) / half
    recent = math.fsum(values[count - half:]) / half
    difference = recent - earlier

    if scale == "ten_point":
        change = difference
        threshold = resolved.trend_threshold_points
    elif earlier > 0:
        change = difference / earlier * 100.0
        threshold = resolved.trend_threshold_percent
    else:
        change = difference
        threshold = 0.0

    if change > threshold:
        direction = "improving"
    elif change < -threshold:
        direction = "declining"
    else:
        direction = "stable"

    return TrendResult(
        direction=direction,
        magnitude=round(difference, 2),
        recent_mean=round(recent, 2),
        earlier_mean=round(earlier, 2),
        sample_count=count,
    )


def analyze_trend(
    snapshots: Iterable[AggregateSnapshot],
    metric: Optional[str] = None,
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> TrendResult:
    """Trend of one snapshot metric across a period series, ordered by period key.

    Periods without data for ``metric`` are skipped rather than read as zero.
    """
    resolved = tuning or get_tuning()
    field = metric or resolved.forecast_trend_metric
    present = _METRIC_PRESENT.get(field)
    if present is None:
        raise ValidationError(f"Unknown trend metric '{field}'.")
    ordered = sorted(
        (snapshot for snapshot in snapshots if present(snapshot)),
        key=lambda snapshot: snapshot.period_key,
    )
    values = [float(getattr(snapshot, field)) for snapshot in ordered]
    return analyze_values(values, scale="percent", tuning=resolved)


def _as_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def forgetting_curve(
    items: Iterable[RetentionSample],
    *,
    as_of: Optional[datetime] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[Tuple[int, float]]:
    """Mean retention for each day offset, over items at least that old.

    Offsets nothing qualifies for are left out of the curve.
    """
    resolved = tuning or get_tuning()
    reference = _as_utc(as_of or datetime.now(timezone.utc))
    elapsed: List[Tuple[float, float]] = [
        ((reference - _as_utc(item.created_at)).total_seconds() / SECONDS_PER_DAY, item.retention_score)
        for item in items
    ]

    curve: List[Tuple[int, float]] = []
    for offset in sorted(resolved.forgetting_curve_offsets):
        scores = [score for days, score in elapsed if days >= offset]
        if scores:
            curve.append((offset, round(math.fsum(scores) / len(scores), 4)))
    return curve


@dataclass(frozen=True)
class HeatmapCell:
    weekday: int
    hour: int
    session_count: int
    total_index: float
    performance_index: float


@dataclass(frozen=True)
class OptimalHour:
    hour: int
    performance_index: float
    session_count: int


@dataclass(frozen=True)
class SubjectVelocity:
    subject_tag: str
    session_count: int
    hours: float
    questions_per_hour: float
    correct_per_hour: float
    efficiency_trend: TrendResult


def _validated(sessions: Iterable[SessionRecord], tuning: AnalyticsTuning) -> List[SessionRecord]:
    accepted: List[SessionRecord] = []
    for session in sessions:
        if session.questions_correct > session.questions_attempted:
            raise ValidationError(
                f"Session {session.session_id} reports {session.questions_correct} correct of "
                f"{session.questions_attempted} attempted."
            )
        for record in session.to_activity_records():
            normalize(record, tuning=tuning)
        accepted.append(session)
    return sorted(accepted, key=lambda session: (_as_utc(session.started_at), session.session_id))


def performance_heatmap(
    sessions: Iterable[SessionRecord],
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[HeatmapCell]:
    """Accuracy x focus per (weekday, hour) in the analytics time zone; Monday is 0."""
    resolved = tuning or get_tuning()
    zone = analytics_zone(resolved.timezone)
    totals: Dict[Tuple[int, int], List[float]] = defaultdict(list)
    for session in _validated(sessions, resolved):
        started = session.started_at
        local = started.replace(tzinfo=zone) if started.tzinfo is None else started.astimezone(zone)
        totals[(local.weekday(), local.hour)].append(session.accuracy * session.focus_score)

    cells = []
    for (weekday, hour), indices in sorted(totals.items()):
        total = math.fsum(indices)
        cells.append(
            HeatmapCell(
                weekday=weekday,
                hour=hour,
                session_count=len(indices),
                total_index=round(total, 4),
                performance_index=round(total / len(indices), 4),
            )
        )
    return cells


def optimal_study_hours(
    sessions: Iterable[SessionRecord],
    *,
    top_n: Optional[int] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[OptimalHour]:
    """Best hours of the day by mean performance index; more-observed hours win ties."""
    resolved = tuning or get_tuning()
    limit = top_n or resolved.optimal_hours_top_n
    per_hour: Dict[int, List[float]] = defaultdict(list)
    counts: Dict[int, int] = defaultdict(int)
    for cell in performance_heatmap(sessions, tuning=resolved):
        per_hour[cell.hour].append(cell.total_index)
        counts[cell.hour] += cell.session_count

    ranked = [
        OptimalHour(
            hour=hour,
            performance_index=round(math.fsum(totals) / counts[hour], 4),
            session_count=counts[hour],
        )
        for hour, totals in per_hour.items()
    ]
    ranked.sort(key=lambda entry: (-entry.performance_index, -entry.session_count, entry.hour))
    return ranked[:limit]


def study_velocity(
    sessions: Iterable[SessionRecord],
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[SubjectVelocity]:
    resolved = tuning or get_tuning()
    grouped: Dict[str, List[SessionRecord]] = defaultdict(list)
    for session in _validated(sessions, resolved):
        grouped[session.subject_tag].append(session)

    velocities = []
    for subject, entries in sorted(grouped.items()):
        hours = math.fsum(entry.duration_minutes for entry in entries) / 60.0
        attempted = sum(entry.questions_attempted for entry in entries)
        correct = sum(entry.questions_correct for entry in entries)
        velocities.append(
            SubjectVelocity(
                subject_tag=subject,
                session_count=len(entries),
                hours=round(hours, 2),
                questions_per_hour=round(attempted / hours, 2) if hours > 0 else 0.0,
                correct_per_hour=round(correct / hours, 2) if hours > 0 else 0.0,
                efficiency_trend=analyze_values(
                    [entry.efficiency_score for entry in entries],
                    scale="ten_point",
                    tuning=resolved,
                ),
            )
        )
    return velocities


__all__ = [
    "HeatmapCell",
    "OptimalHour",
    "SubjectVelocity",
    "TREND_METRICS",
    "TrendScale",
    "analyze_trend",
    "analyze_values",
    "forgetting_curve",
    "optimal_study_hours",
    "performance_heatmap",
    "study_velocity",
]
