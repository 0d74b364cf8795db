"""Recommendation synthesizer: benchmark gap analysis into ranked action items."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from .config import AnalyticsTuning, get_tuning
from .records import ForecastResult, Recommendation

logger = logging.getLogger(__name__)

RECOMMENDATION_CATEGORIES: Tuple[str, ...] = (
    "tests",
    "accuracy",
    "consistency",
    "volume",
    "completion",
    "focus",
)
MAINTAIN_CATEGORY = "maintain"

_ACTIONS: Dict[str, str] = {
    "tests": (
        "Raise mock test performance from {current:.0f}% toward {benchmark:.0f}%: sit one full-length "
        "timed test a week and review every error before the next one."
    ),
    "accuracy": (
        "Lift practice accuracy from {current:.0f}% to {benchmark:.0f}% by reworking incorrect questions "
        "before starting new sets."
    ),
    "consistency": (
        "Study on more days: you were active on {current:.0f}% of days against a {benchmark:.0f}% target."
    ),
    "volume": (
        "Increase daily question volume; you are averaging {current:.0f}% of the daily target "
        "against a {benchmark:.0f}% goal."
    ),
    "completion": (
        "Close syllabus gaps: chapter completion is {current:.0f}% against {benchmark:.0f}%. "
        "Finish pending drills and assignments before adding new chapters."
    ),
    "focus": (
        "Protect session focus ({current:.0f}/100 against {benchmark:.0f}); move demanding topics "
        "into your best study hours and shorten sessions that drift."
    ),
}

_MISSING_ACTIONS: Dict[str, str] = {
    "tests": "Take a timed mock test so exam readiness can be measured.",
    "accuracy": "Log questions attempted and answered correctly in study sessions to track accuracy.",
    "consistency": "Log study activity daily so consistency can be tracked.",
    "volume": "Log daily question counts so practice volume can be tracked.",
    "completion": "Update chapter checklists so syllabus coverage can be tracked.",
    "focus": "Record focus scores for study sessions.",
}

_MAINTAIN_ACTION = "Maintain current cadence: every tracked category is at or above its benchmark."


class TargetBenchmark(BaseModel):
    """Percent-scale targets per category; ``None`` skips a category."""

    tests: Optional[float] = Field(default=85.0, ge=0.0, le=100.0)
    accuracy: Optional[float] = Field(default=85.0, ge=0.0, le=100.0)
    consistency: Optional[float] = Field(default=90.0, ge=0.0, le=100.0)
    volume: Optional[float] = Field(default=100.0, ge=0.0, le=100.0)
    completion: Optional[float] = Field(default=100.0, ge=0.0, le=100.0)
    focus: Optional[float] = Field(default=80.0, ge=0.0, le=100.0)

    def targets(self) -> Dict[str, float]:
        targets: Dict[str, float] = {}
        for category in RECOMMENDATION_CATEGORIES:
            value = getattr(self, category)
            if value is not None and value > 0:
                targets[category] = value
        return targets


def deficit_scores(forecast: ForecastResult, target: TargetBenchmark) -> Dict[str, float]:
    """Relative gap ``(benchmark - current) / benchmark`` per benchmarked category.

    A category the forecast has no data for counts as a current value of 0.
    """
    return {
        category: (benchmark - forecast.components.get(category, 0.0)) / benchmark
        for category, benchmark in target.targets().items()
    }


def _action(category: str, current: Optional[float], benchmark: float) -> str:
    if current is None:
        return _MISSING_ACTIONS[category]
    return _ACTIONS[category].format(current=current, benchmark=benchmark)


def synthesize(
    forecast: ForecastResult,
    target_benchmark: Optional[TargetBenchmark] = None,
    *,
    tuning: Optional[AnalyticsTuning] = None,
) -> List[Recommendation]:
    resolved = tuning or get_tuning()
    target = target_benchmark or TargetBenchmark()
    targets = target.targets()
    order = {category: index for index, category in enumerate(RECOMMENDATION_CATEGORIES)}

    deficits = [
        (category, score)
        for category, score in deficit_scores(forecast, target).items()
        if score > 0
    ]
    deficits.sort(key=lambda item: (-item[1], order[item[0]]))

    if not deficits:
        return [
            Recommendation(
                category=MAINTAIN_CATEGORY,
                priority=1,
                deficit_score=0.0,
                action=_MAINTAIN_ACTION,
                confidence_level=forecast.confidence_level,
            )
        ]

    recommendations = []
    for priority, (category, score) in enumerate(deficits[: resolved.recommendation_limit], start=1):
        current = forecast.components.get(category)
        recommendations.append(
            Recommendation(
                category=category,
                priority=priority,
                deficit_score=round(score, 4),
                current_value=current,
                benchmark_value=targets[category],
                action=_action(category, current, targets[category]),
                confidence_level=forecast.confidence_level,
            )
        )
    logger.debug("Synthesized %d recommendations from %d deficits", len(recommendations), len(deficits))
    return recommendations


__all__ = [
    "MAINTAIN_CATEGORY",
    "RECOMMENDATION_CATEGORIES",
    "TargetBenchmark",
    "deficit_scores",
    "synthesize",
]
