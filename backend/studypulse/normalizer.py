"""Metric normalizer: raw activity records onto a shared 0-100 scale."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import AnalyticsTuning, get_tuning
from .errors import ValidationError
from .records import ActivityRecord, MetricKind, NormalizedMetric

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _UnitRule:
    metric: MetricKind
    upper: Callable[[ActivityRecord, AnalyticsTuning], float]
    scale: Callable[[float, ActivityRecord, AnalyticsTuning], float]


def _fixed(limit: float) -> Callable[[ActivityRecord, AnalyticsTuning], float]:
    return lambda _record, _tuning: limit


def _linear(factor: float) -> Callable[[float, ActivityRecord, AnalyticsTuning], float]:
    return lambda value, _record, _tuning: value * factor


def _test_max(record: ActivityRecord, tuning: AnalyticsTuning) -> float:
    return record.max_value or tuning.test_max_marks


def _marks(value: float, record: ActivityRecord, tuning: AnalyticsTuning) -> float:
    return value / _test_max(record, tuning) * 100.0


def _questions(value: float, _record: ActivityRecord, tuning: AnalyticsTuning) -> float:
    return min(value / tuning.daily_question_target, 1.0) * 100.0


def _minutes(value: float, _record: ActivityRecord, tuning: AnalyticsTuning) -> float:
    return min(value / tuning.daily_study_minutes_target, 1.0) * 100.0


_RULES: Dict[Tuple[str, str], _UnitRule] = {
    ("goal", "questions"): _UnitRule("volume", lambda _r, t: t.max_daily_questions, _questions),
    ("test", "marks"): _UnitRule("test", _test_max, _marks),
    ("test", "percent"): _UnitRule("test", _fixed(100.0), _linear(1.0)),
    ("session", "focus"): _UnitRule("focus", _fixed(10.0), _linear(10.0)),
    ("session", "efficiency"): _UnitRule("efficiency", _fixed(10.0), _linear(10.0)),
    ("session", "accuracy"): _UnitRule("accuracy", _fixed(100.0), _linear(1.0)),
    ("session", "minutes"): _UnitRule("duration", _fixed(1440.0), _minutes),
    ("session", "questions"): _UnitRule("volume", lambda _r, t: t.max_daily_questions, _questions),
    ("checklist", "percent"): _UnitRule("completion", _fixed(100.0), _linear(1.0)),
    ("checklist", "revision"): _UnitRule("revision", _fixed(10.0), _linear(10.0)),
}


def normalize(record: ActivityRecord, *, tuning: Optional[AnalyticsTuning] = None) -> NormalizedMetric:
    """Rescale ``record`` to 0-100.

    Values outside the declared domain of their ``(source_type, raw_unit)``
    raise :class:`ValidationError`; nothing is clamped except volume and
    duration scores, which cap at their daily target while ``raw_value``
    keeps the uncapped amount.
    """
    resolved = tuning or get_tuning()
    rule = _RULES.get((record.source_type, record.raw_unit))
    if rule is None:
        raise ValidationError(
            f"Unsupported unit '{record.raw_unit}' for source type '{record.source_type}'."
        )

    value = float(record.raw_value)
    if not math.isfinite(value):
        raise ValidationError(f"Non-finite {record.source_type} value: {record.raw_value!r}.")

    upper = rule.upper(record, resolved)
    if value < 0.0 or value > upper:
        raise ValidationError(
            f"{record.source_type}/{record.raw_unit} value {value:g} is outside the domain 0-{upper:g}."
        )

    score = min(max(rule.scale(value, record, resolved), 0.0), 100.0)
    weight = float(record.sample_size) if record.sample_size else 1.0
    return NormalizedMetric(
        source_type=record.source_type,
        subject_tag=record.subject_tag,
        timestamp=record.timestamp,
        metric=rule.metric,
        score=score,
        weight=weight,
        raw_value=value,
    )


def normalize_all(
    records: Iterable[ActivityRecord],
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[NormalizedMetric]:
    resolved = tuning or get_tuning()
    return [normalize(record, tuning=resolved) for record in records]


__all__ = [
    "normalize",
    "normalize_all",
]
