"""Pydantic response payloads for the analytics HTTP surface."""

from __future__ import annotations

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .records import AggregateSnapshot, ForecastResult, Recommendation, TrendResult


class SnapshotPayload(BaseModel):
    snapshot: AggregateSnapshot


class TrendPayload(BaseModel):
    period: str
    metric: str
    series: List[AggregateSnapshot] = Field(default_factory=list)
    trend: TrendResult


class RankPayload(BaseModel):
    most_likely_rank: int
    best_rank: int
    worst_rank: int
    confidence_level: float


class ForecastPayload(BaseModel):
    forecast: ForecastResult
    rank: RankPayload
    trend: TrendResult
    snapshot: AggregateSnapshot
    gaps: Dict[str, float] = Field(default_factory=dict)
    streak_days: int = 0
    low_data: bool = False


class NarrativePayload(BaseModel):
    headline: str
    summary: str
    encouragement: Optional[str] = None
    source: str
    latency_ms: float = 0.0


class RecommendationsPayload(BaseModel):
    recommendations: List[Recommendation] = Field(default_factory=list)
    confidence_level: float
    low_data: bool
    forecast: ForecastPayload
    narrative: Optional[NarrativePayload] = None


class RetentionPointPayload(BaseModel):
    days_since_learned: int
    retention_score: float


class RetentionPayload(BaseModel):
    as_of: datetime
    sample_count: int
    curve: List[RetentionPointPayload] = Field(default_factory=list)


class HeatmapCellPayload(BaseModel):
    weekday: int = Field(ge=0, le=6)
    hour: int = Field(ge=0, le=23)
    session_count: int
    total_index: float
    performance_index: float


class OptimalHourPayload(BaseModel):
    hour: int = Field(ge=0, le=23)
    performance_index: float
    session_count: int


class VelocityPayload(BaseModel):
    subject_tag: str
    session_count: int
    hours: float
    questions_per_hour: float
    correct_per_hour: float
    efficiency_trend: TrendResult


class StudyPatternPayload(BaseModel):
    heatmap: List[HeatmapCellPayload] = Field(default_factory=list)
    optimal_hours: List[OptimalHourPayload] = Field(default_factory=list)
    velocity: List[VelocityPayload] = Field(default_factory=list)


class ChapterProgressPayload(BaseModel):
    chapter_id: str
    subject_tag: str
    name: str
    completion: float
    lectures_pct: Optional[float] = None
    drills_pct: Optional[float] = None
    assignments_pct: Optional[float] = None
    hard_set_pct: Optional[float] = None
    revision_score: Optional[float] = None
    needs_improvement: bool = False


class SubjectProgressPayload(BaseModel):
    subjects: Dict[str, Optional[float]] = Field(default_factory=dict)
    syllabus_completion: Optional[float] = None
    chapters: List[ChapterProgressPayload] = Field(default_factory=list)


class BioRhythmPayload(BaseModel):
    target_date: date
    phase: str
    cycle_day: int
    energy: ForecastResult
    focus: ForecastResult


__all__ = [
    "BioRhythmPayload",
    "ChapterProgressPayload",
    "ForecastPayload",
    "HeatmapCellPayload",
    "NarrativePayload",
    "OptimalHourPayload",
    "RankPayload",
    "RecommendationsPayload",
    "RetentionPayload",
    "RetentionPointPayload",
    "SnapshotPayload",
    "StudyPatternPayload",
    "SubjectProgressPayload",
    "TrendPayload",
    "VelocityPayload",
]
