"""Predictive forecaster: expected score, expected rank and bio-rhythm projections.

The point estimate blends three percent-scale components:

* recent test performance (recency-weighted, newest test counts most),
* the snapshot accuracy rate,
* a consistency score adjusted by the day's capped question volume.

Blend weights come from :class:`AnalyticsTuning`. Components with no backing
data drop out and the remaining weights are renormalized. The confidence
range reflects dispersion, while the confidence level only reflects how many
of the expected data categories are present.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from .config import AnalyticsTuning, get_tuning
from .errors import InsufficientDataError, ValidationError
from .normalizer import normalize
from .records import AggregateSnapshot, ForecastResult, TestRecord, TrendResult

logger = logging.getLogger(__name__)

DATA_CATEGORIES: Tuple[str, ...] = ("tests", "daily_logs", "chapter_completion", "sessions")

RANK_REFERENCE_MARKS = 720.0
RANK_FALLBACK = 3_500_000
SCORE_RANK_ANCHORS: Tuple[Tuple[int, int], ...] = (
    (720, 1), (715, 50), (710, 150), (700, 500), (690, 1_500), (680, 3_000),
    (670, 6_000), (660, 12_000), (650, 20_000), (640, 35_000), (630, 55_000),
    (620, 80_000), (610, 110_000), (600, 150_000), (590, 200_000), (580, 260_000),
    (570, 330_000), (560, 410_000), (550, 500_000), (540, 600_000), (530, 720_000),
    (520, 850_000), (510, 1_000_000), (500, 1_150_000), (490, 1_300_000), (480, 1_450_000),
    (470, 1_600_000), (460, 1_750_000), (450, 1_900_000), (440, 2_050_000), (430, 2_200_000),
    (420, 2_350_000), (410, 2_500_000), (400, 2_650_000), (390, 2_800_000), (380, 2_950_000),
    (370, 3_100_000), (360, 3_250_000), (350, 3_400_000),
)

CyclePhase = Literal["menstrual", "follicular", "ovulation", "luteal"]

# (energy, focus) on a 0-10 scale.
PHASE_PROFILES: Dict[str, Tuple[float, float]] = {
    "menstrual": (3.0, 4.0),
    "follicular": (8.0, 9.0),
    "ovulation": (10.0, 10.0),
    "luteal": (6.0, 7.0),
}
FOLLICULAR_LAST_DAY = 13
OVULATION_LAST_DAY = 16
MIN_CYCLE_LENGTH = 20
MAX_CYCLE_LENGTH = 45
MAX_PERIOD_LENGTH = 10


def _as_utc(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def _ordered_tests(tests: Sequence[TestRecord], tuning: AnalyticsTuning) -> List[TestRecord]:
    for test in tests:
        normalize(test.to_activity_record(), tuning=tuning)
    return sorted(tests, key=lambda test: (_as_utc(test.taken_at), test.test_id))


def recent_test_performance(percents: Sequence[float], *, tuning: Optional[AnalyticsTuning] = None) -> float:
    """Recency-weighted mean of the latest test percentages (oldest first in ``percents``)."""
    resolved = tuning or get_tuning()
    if not percents:
        raise InsufficientDataError("tests")
    window = list(percents)[-resolved.forecast_recent_test_window:]
    weights = [resolved.forecast_recent_test_decay ** age for age in range(len(window))]
    newest_first = list(reversed(window))
    return math.fsum(w * p for w, p in zip(weights, newest_first)) / math.fsum(weights)


def _consistency_component(snapshot: AggregateSnapshot) -> float:
    if not (snapshot.has_source("goal") or snapshot.has_source("session")):
        raise InsufficientDataError("daily_logs")
    return (snapshot.consistency + snapshot.volume_score) / 2.0


def _accuracy_component(snapshot: AggregateSnapshot) -> float:
    if snapshot.accuracy_samples <= 0:
        raise InsufficientDataError("accuracy")
    return snapshot.accuracy_rate


def data_completeness(
    snapshot: AggregateSnapshot,
    test_count: int,
    completion: Optional[float] = None,
) -> float:
    """Share of expected data categories that hold data; exactly 0 without tests."""
    if test_count <= 0:
        return 0.0
    present = {
        "tests": True,
        "daily_logs": snapshot.has_source("goal"),
        "chapter_completion": completion is not None or snapshot.has_source("checklist"),
        "sessions": snapshot.has_source("session"),
    }
    return sum(1 for category in DATA_CATEGORIES if present[category]) / len(DATA_CATEGORIES)


def _half_width(
    percents: Sequence[float],
    component_values: Sequence[float],
    tuning: AnalyticsTuning,
) -> float:
    if len(percents) < 2:
        return tuning.forecast_range_ceiling_pct
    test_variance = statistics.variance(percents) / len(percents)
    component_variance = statistics.pvariance(component_values) if len(component_values) > 1 else 0.0
    spread = tuning.forecast_z_score * math.sqrt(test_variance + component_variance)
    return min(max(spread, tuning.forecast_range_floor_pct), tuning.forecast_range_ceiling_pct)


def _default_generated_at(snapshot: AggregateSnapshot, tests: Sequence[TestRecord]) -> datetime:
    candidates = [_as_utc(test.taken_at) for test in tests]
    if snapshot.last_activity_at is not None:
        candidates.append(_as_utc(snapshot.last_activity_at))
    return max(candidates) if candidates else datetime(1970, 1, 1, tzinfo=timezone.utc)


def forecast(
    snapshot: AggregateSnapshot,
    trend: Optional[TrendResult],
    historical_tests: Sequence[TestRecord],
    *,
    completion: Optional[float] = None,
    generated_at: Optional[datetime] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> ForecastResult:
    """Expected exam score in marks, with a dispersion-based confidence range.

    Never refuses to answer: without tests the result still carries whatever
    the remaining components support, with ``confidence_level == 0`` and the
    widest range.
    """
    resolved = tuning or get_tuning()
    tests = _ordered_tests(historical_tests, resolved)
    percents = [test.percent for test in tests]
    scale_max = tests[-1].max_score if tests else resolved.test_max_marks

    components: Dict[str, float] = {}
    blend: List[Tuple[float, float]] = []
    sources = (
        ("tests", resolved.forecast_weight_tests, lambda: recent_test_performance(percents, tuning=resolved)),
        ("accuracy", resolved.forecast_weight_accuracy, lambda: _accuracy_component(snapshot)),
        ("consistency_volume", resolved.forecast_weight_consistency, lambda: _consistency_component(snapshot)),
    )
    for name, weight, compute in sources:
        try:
            value = compute()
        except InsufficientDataError as exc:
            logger.debug("Forecast component %s unavailable: %s", name, exc)
            continue
        if name == "tests":
            components["tests"] = round(value, 2)
        if weight > 0:
            blend.append((weight, value))

    if snapshot.accuracy_samples > 0:
        components["accuracy"] = snapshot.accuracy_rate
    if snapshot.has_source("goal") or snapshot.has_source("session"):
        components["consistency"] = snapshot.consistency
        components["volume"] = snapshot.volume_score
    if snapshot.has_source("session"):
        components["focus"] = snapshot.mean_focus
    if completion is not None:
        components["completion"] = completion
    elif snapshot.has_source("checklist"):
        components["completion"] = snapshot.completion_rate

    total_weight = math.fsum(weight for weight, _ in blend)
    point = math.fsum(weight * value for weight, value in blend) / total_weight if total_weight > 0 else 0.0
    if trend is not None and blend:
        if trend.direction == "improving":
            point += resolved.forecast_trend_adjustment_pct
        elif trend.direction == "declining":
            point -= resolved.forecast_trend_adjustment_pct
    point = min(max(point, 0.0), 100.0)

    half = _half_width(percents, [value for _, value in blend], resolved)
    confidence = data_completeness(snapshot, len(tests), completion)

    return ForecastResult(
        most_likely_value=round(point / 100.0 * scale_max, 2),
        confidence_range_low=round(max(point - half, 0.0) / 100.0 * scale_max, 2),
        confidence_range_high=round(min(point + half, 100.0) / 100.0 * scale_max, 2),
        confidence_level=confidence,
        generated_at=generated_at or _default_generated_at(snapshot, tests),
        scale_max=scale_max,
        trend_direction=trend.direction if trend is not None else None,
        components=components,
    )


def rank_for_marks(marks: float) -> int:
    """Expected rank for a 720-mark score, interpolated between anchor points."""
    if marks >= SCORE_RANK_ANCHORS[0][0]:
        return SCORE_RANK_ANCHORS[0][1]
    for (upper_marks, upper_rank), (lower_marks, lower_rank) in zip(SCORE_RANK_ANCHORS, SCORE_RANK_ANCHORS[1:]):
        if marks >= lower_marks:
            share = (upper_marks - marks) / (upper_marks - lower_marks)
            return int(round(upper_rank + share * (lower_rank - upper_rank)))
    return RANK_FALLBACK


@dataclass(frozen=True)
class RankForecast:
    most_likely_rank: int
    best_rank: int
    worst_rank: int
    confidence_level: float


def forecast_rank(result: ForecastResult) -> RankForecast:
    def to_reference(value: float) -> float:
        return value / result.scale_max * RANK_REFERENCE_MARKS

    return RankForecast(
        most_likely_rank=rank_for_marks(to_reference(result.most_likely_value)),
        best_rank=rank_for_marks(to_reference(result.confidence_range_high)),
        worst_rank=rank_for_marks(to_reference(result.confidence_range_low)),
        confidence_level=result.confidence_level,
    )


@dataclass(frozen=True)
class BioRhythmProjection:
    phase: CyclePhase
    cycle_day: int
    energy: ForecastResult
    focus: ForecastResult


def cycle_phase(cycle_start: date, target: date, *, cycle_length: int = 28, period_length: int = 5) -> Tuple[CyclePhase, int]:
    if not MIN_CYCLE_LENGTH <= cycle_length <= MAX_CYCLE_LENGTH:
        raise ValidationError(f"Cycle length must be within {MIN_CYCLE_LENGTH}-{MAX_CYCLE_LENGTH} days.")
    if not 1 <= period_length <= min(MAX_PERIOD_LENGTH, cycle_length - 1):
        raise ValidationError(f"Period length must be within 1-{MAX_PERIOD_LENGTH} days and shorter than the cycle.")
    cycle_day = (target - cycle_start).days % cycle_length + 1
    if cycle_day <= period_length:
        return "menstrual", cycle_day
    if cycle_day <= FOLLICULAR_LAST_DAY:
        return "follicular", cycle_day
    if cycle_day <= OVULATION_LAST_DAY:
        return "ovulation", cycle_day
    return "luteal", cycle_day


def project_bio_rhythm(
    cycle_start: date,
    target: date,
    *,
    focus_history: Sequence[float] = (),
    cycle_length: int = 28,
    period_length: int = 5,
    generated_at: Optional[datetime] = None,
    tuning: Optional[AnalyticsTuning] = None,
) -> BioRhythmProjection:
    """Phase-adjusted energy and focus (0-10) for ``target``.

    The phase profile scales the learner's mean session focus around the
    average profile. Without session history the raw profile is projected at
    half confidence. Energy has no measured baseline and always uses the profile.
    """
    resolved = tuning or get_tuning()
    for value in focus_history:
        if not 0.0 <= value <= 10.0:
            raise ValidationError(f"Focus scores must be within 0-10, got {value}.")
    phase, cycle_day = cycle_phase(cycle_start, target, cycle_length=cycle_length, period_length=period_length)
    phase_energy, phase_focus = PHASE_PROFILES[phase]
    neutral_focus = math.fsum(profile[1] for profile in PHASE_PROFILES.values()) / len(PHASE_PROFILES)
    stamp = generated_at or datetime.combine(target, time(), tzinfo=timezone.utc)

    ceiling = resolved.forecast_range_ceiling_pct / 10.0
    floor = resolved.forecast_range_floor_pct / 10.0

    def ten_point(value: float, half: float, confidence: float) -> ForecastResult:
        value = min(max(value, 0.0), 10.0)
        return ForecastResult(
            most_likely_value=round(value, 2),
            confidence_range_low=round(max(value - half, 0.0), 2),
            confidence_range_high=round(min(value + half, 10.0), 2),
            confidence_level=confidence,
            generated_at=stamp,
            scale_max=10.0,
        )

    if focus_history:
        baseline = math.fsum(focus_history) / len(focus_history)
        projected_focus = baseline * phase_focus / neutral_focus
        half = ceiling
        if len(focus_history) > 1:
            spread = resolved.forecast_z_score * statistics.stdev(focus_history) / math.sqrt(len(focus_history))
            half = min(max(spread, floor), ceiling)
        focus = ten_point(projected_focus, half, 1.0)
    else:
        focus = ten_point(phase_focus, ceiling, 0.5)

    return BioRhythmProjection(
        phase=phase,
        cycle_day=cycle_day,
        energy=ten_point(phase_energy, ceiling, 0.5),
        focus=focus,
    )


__all__ = [
    "BioRhythmProjection",
    "CyclePhase",
    "DATA_CATEGORIES",
    "PHASE_PROFILES",
    "RankForecast",
    "SCORE_RANK_ANCHORS",
    "cycle_phase",
    "data_completeness",
    "forecast",
    "forecast_rank",
    "project_bio_rhythm",
    "rank_for_marks",
    "recent_test_performance",
]
