"""Optional prose summaries of analytics results via an OpenAI agent."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Dict, List, Literal, Optional

from agents import Agent, ModelSettings, Runner
from pydantic import BaseModel, Field, ValidationError

from .analytics import RecommendationReport
from .config import Settings, get_settings
from .telemetry import emit_event

logger = logging.getLogger(__name__)

NarrativeMode = Literal["off", "fallback", "primary"]


class NarrativeError(RuntimeError):
    """Raised when the narrative agent cannot produce usable prose."""


class NarrativeContext(BaseModel):
    """Numeric context handed to the text generator; it never flows back into the numbers."""

    expected_score: float
    score_range: List[float] = Field(default_factory=list)
    scale_max: float = 720.0
    expected_rank: int
    confidence_level: float = Field(ge=0.0, le=1.0)
    low_data: bool = False
    trend_direction: str = "stable"
    streak_days: int = Field(default=0, ge=0)
    gaps: Dict[str, float] = Field(default_factory=dict)
    actions: List[str] = Field(default_factory=list)


class NarrativeResponsePayload(BaseModel):
    version: str = Field(default="v1")
    headline: str = Field(..., min_length=1, max_length=160)
    summary: str = Field(..., min_length=1)
    encouragement: Optional[str] = None


@dataclass(frozen=True)
class NarrativeResult:
    headline: str
    summary: str
    encouragement: Optional[str]
    source: Literal["agent", "template"]
    latency_ms: float


def resolve_mode(settings: Settings) -> NarrativeMode:
    value = getattr(settings, "narrative_mode", "fallback")
    if value not in {"off", "fallback", "primary"}:
        return "fallback"
    return value


def narrative_context(report: RecommendationReport) -> NarrativeContext:
    forecast = report.forecast.forecast
    return NarrativeContext(
        expected_score=forecast.most_likely_value,
        score_range=[forecast.confidence_range_low, forecast.confidence_range_high],
        scale_max=forecast.scale_max,
        expected_rank=report.forecast.rank.most_likely_rank,
        confidence_level=forecast.confidence_level,
        low_data=report.low_data,
        trend_direction=report.forecast.trend.direction,
        streak_days=report.forecast.streak_days,
        gaps={category: gap for category, gap in report.forecast.gaps.items() if gap > 0},
        actions=[item.action for item in report.recommendations],
    )


_NARRATIVE_AGENTS: dict[str, Agent[None]] = {}


def _narrative_agent(model: str) -> Agent[None]:
    if model not in _NARRATIVE_AGENTS:
        instructions = (
            "You are StudyPulse's study coach. You receive a forecast of a student's exam score, rank, trend "
            "and benchmark gaps. Write a short, honest summary in plain language. Never invent numbers that are "
            "not in the context, and say clearly when the data is thin. Always respond with JSON that matches "
            "the provided schema."
        )
        _NARRATIVE_AGENTS[model] = Agent[None](
            name="StudyPulse Narrator",
            instructions=instructions,
            model=model,
            tools=[],
            model_settings=ModelSettings(store=False),
        )
    return _NARRATIVE_AGENTS[model]


def template_narrative(context: NarrativeContext) -> NarrativeResult:
    headline = f"Expected score {context.expected_score:.0f}/{context.scale_max:.0f}"
    if context.score_range:
        low, high = context.score_range[0], context.score_range[-1]
        headline += f" ({low:.0f}-{high:.0f})"
    parts = [
        f"Your recent work points to a rank around {context.expected_rank:,} and the trend is {context.trend_direction}."
    ]
    if context.low_data:
        parts.append("This estimate rests on limited data, so treat it as a rough guide.")
    if context.actions:
        parts.append(f"Focus next on: {context.actions[0]}")
    encouragement = f"{context.streak_days}-day streak, keep it going." if context.streak_days else None
    return NarrativeResult(
        headline=headline,
        summary=" ".join(parts),
        encouragement=encouragement,
        source="template",
        latency_ms=0.0,
    )


def _agent_narrative(context: NarrativeContext, settings: Settings) -> NarrativeResult:
    agent = _narrative_agent(settings.narrative_model)
    schema = NarrativeResponsePayload.model_json_schema()
    prompt = (
        "Respond strictly with JSON. Schema:\n"
        f"{json.dumps(schema, ensure_ascii=False, indent=2)}\n\n"
        "CONTEXT:\n"
        f"{json.dumps(context.model_dump(mode='json'), ensure_ascii=False, indent=2)}"
    )

    started = perf_counter()
    try:
        result = Runner.run_sync(agent, prompt, context=None)
    except Exception as exc:  # noqa: BLE001
        raise NarrativeError(f"Narrative agent call failed: {exc}") from exc

    latency_ms = round((perf_counter() - started) * 1000.0, 2)
    try:
        payload = NarrativeResponsePayload.model_validate_json(result.final_output)
    except (ValidationError, json.JSONDecodeError, TypeError) as exc:
        raise NarrativeError(f"Narrative agent returned invalid payload: {exc}") from exc

    return NarrativeResult(
        headline=payload.headline,
        summary=payload.summary,
        encouragement=payload.encouragement,
        source="agent",
        latency_ms=latency_ms,
    )


def generate_narrative(
    context: NarrativeContext,
    *,
    settings: Optional[Settings] = None,
) -> NarrativeResult:
    """Prose for ``context`` according to the configured mode.

    ``off`` always uses the template, ``fallback`` uses it when the agent
    fails, and ``primary`` raises :class:`NarrativeError` instead.
    """
    resolved = settings or get_settings()
    mode = resolve_mode(resolved)
    if mode == "off":
        return template_narrative(context)

    try:
        narrative = _agent_narrative(context, resolved)
    except NarrativeError as exc:
        emit_event("narrative_unavailable", mode=mode, reason=str(exc))
        if mode == "primary":
            raise
        logger.warning("Narrative agent unavailable, using template: %s", exc)
        return template_narrative(context)

    emit_event("narrative_generated", model=resolved.narrative_model, latency_ms=narrative.latency_ms)
    return narrative


__all__ = [
    "NarrativeContext",
    "NarrativeError",
    "NarrativeResponsePayload",
    "NarrativeResult",
    "generate_narrative",
    "narrative_context",
    "resolve_mode",
    "template_narrative",
]
