"""Domain records consumed and produced by the analytics pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .errors import ValidationError

SourceType = Literal["goal", "test", "session", "checklist"]
Period = Literal["day", "week", "month", "lifetime"]
MetricKind = Literal[
    "focus",
    "efficiency",
    "accuracy",
    "volume",
    "duration",
    "test",
    "completion",
    "revision",
]
ChecklistName = Literal["lectures", "drills", "assignments", "hard_set"]
TrendDirection = Literal["improving", "declining", "stable"]

SOURCE_TYPES: Tuple[SourceType, ...] = ("goal", "test", "session", "checklist")
CHECKLIST_NAMES: Tuple[ChecklistName, ...] = ("lectures", "drills", "assignments", "hard_set")
DEFAULT_TEST_MAX_MARKS = 720.0


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class ActivityRecord(_Frozen):
    """One raw logged action, exactly as the persistence layer recorded it."""

    source_type: SourceType
    subject_tag: str = Field(default="general", min_length=1)
    timestamp: datetime
    raw_value: float
    raw_unit: str
    max_value: Optional[float] = Field(default=None, gt=0)
    sample_size: Optional[int] = Field(default=None, ge=0)


class NormalizedMetric(_Frozen):
    source_type: SourceType
    subject_tag: str
    timestamp: datetime
    metric: MetricKind
    score: float = Field(ge=0.0, le=100.0)
    weight: float = Field(default=1.0, ge=0.0)
    raw_value: float


class TestRecord(_Frozen):
    """A timed mock test. Scores are marks out of ``max_score``."""

    __test__ = False

    test_id: str
    subject_tag: str = "all"
    taken_at: datetime
    score: float
    max_score: float = Field(default=DEFAULT_TEST_MAX_MARKS, gt=0)
    questions_attempted: Optional[int] = Field(default=None, ge=0)

    @property
    def percent(self) -> float:
        return self.score / self.max_score * 100.0

    def to_activity_record(self) -> ActivityRecord:
        return ActivityRecord(
            source_type="test",
            subject_tag=self.subject_tag,
            timestamp=self.taken_at,
            raw_value=self.score,
            raw_unit="marks",
            max_value=self.max_score,
            sample_size=self.questions_attempted,
        )


class SessionRecord(_Frozen):
    session_id: str
    subject_tag: str
    started_at: datetime
    duration_minutes: float = Field(ge=0)
    focus_score: float
    efficiency_score: float
    questions_attempted: int = Field(default=0, ge=0)
    questions_correct: int = Field(default=0, ge=0)

    @property
    def accuracy(self) -> float:
        """Fraction of attempted questions answered correctly; 0 when nothing was attempted."""
        if self.questions_attempted <= 0:
            return 0.0
        return self.questions_correct / self.questions_attempted

    def to_activity_records(self) -> List[ActivityRecord]:
        def record(value: float, unit: str, sample_size: Optional[int] = None) -> ActivityRecord:
            return ActivityRecord(
                source_type="session",
                subject_tag=self.subject_tag,
                timestamp=self.started_at,
                raw_value=value,
                raw_unit=unit,
                sample_size=sample_size,
            )

        records = [
            record(self.focus_score, "focus"),
            record(self.efficiency_score, "efficiency"),
            record(self.duration_minutes, "minutes"),
        ]
        if self.questions_attempted > 0:
            records.append(record(float(self.questions_attempted), "questions"))
            records.append(record(self.accuracy * 100.0, "accuracy", self.questions_attempted))
        return records


class RetentionSample(_Frozen):
    item_id: str
    subject_tag: str = "general"
    created_at: datetime
    retention_score: float = Field(ge=0.0, le=1.0)


class CompletionUnit(_Frozen):
    """A chapter: four fixed-length boolean checklists plus a revision score.

    Checklist lengths are fixed when the chapter is created. Updates go through
    :meth:`with_entry` / :meth:`with_revision`, which return a new unit and
    never resize a checklist.
    """

    chapter_id: str
    subject_tag: str
    name: str = ""
    lectures: Tuple[bool, ...] = ()
    drills: Tuple[bool, ...] = ()
    assignments: Tuple[bool, ...] = ()
    hard_set: Tuple[bool, ...] = ()
    revision_score: Optional[float] = Field(default=None, ge=0.0, le=10.0)
    updated_at: datetime = Field(default_factory=lambda: datetime(1970, 1, 1, tzinfo=timezone.utc))

    @classmethod
    def create(
        cls,
        chapter_id: str,
        subject_tag: str,
        *,
        lectures: int,
        drills: Optional[int] = None,
        assignments: int = 0,
        hard_set: int = 0,
        name: str = "",
        updated_at: Optional[datetime] = None,
    ) -> "CompletionUnit":
        """Build an empty chapter; the drill count mirrors the lecture count unless given."""
        for label, size in (("lectures", lectures), ("assignments", assignments), ("hard_set", hard_set)):
            if size < 0:
                raise ValidationError(f"{label} count must be non-negative, got {size}.")
        drill_count = lectures if drills is None else drills
        if drill_count < 0:
            raise ValidationError(f"drills count must be non-negative, got {drill_count}.")
        payload: Dict[str, object] = {
            "chapter_id": chapter_id,
            "subject_tag": subject_tag,
            "name": name,
            "lectures": (False,) * lectures,
            "drills": (False,) * drill_count,
            "assignments": (False,) * assignments,
            "hard_set": (False,) * hard_set,
        }
        if updated_at is not None:
            payload["updated_at"] = updated_at
        return cls(**payload)

    def checklist(self, name: ChecklistName) -> Tuple[bool, ...]:
        if name not in CHECKLIST_NAMES:
            raise ValidationError(f"Unknown checklist '{name}'.")
        return getattr(self, name)

    def with_entry(
        self,
        name: ChecklistName,
        index: int,
        done: bool = True,
        *,
        updated_at: Optional[datetime] = None,
    ) -> "CompletionUnit":
        entries = list(self.checklist(name))
        if index < 0 or index >= len(entries):
            raise ValidationError(
                f"Checklist '{name}' of chapter {self.chapter_id} has {len(entries)} entries; index {index} is out of range."
            )
        entries[index] = done
        update: Dict[str, object] = {name: tuple(entries)}
        if updated_at is not None:
            update["updated_at"] = updated_at
        return self.model_copy(update=update)

    def with_revision(self, score: float, *, updated_at: Optional[datetime] = None) -> "CompletionUnit":
        if not 0.0 <= score <= 10.0:
            raise ValidationError(f"Revision score must be within 0-10, got {score}.")
        update: Dict[str, object] = {"revision_score": score}
        if updated_at is not None:
            update["updated_at"] = updated_at
        return self.model_copy(update=update)


class AggregateSnapshot(_Frozen):
    """Period-scoped rollup. Percentages use the 0-100 scale."""

    period: Period
    period_key: str
    mean_focus: float = 0.0
    mean_efficiency: float = 0.0
    total_volume: float = 0.0
    accuracy_rate: float = 0.0
    operational_hours: float = 0.0
    volume_score: float = 0.0
    mean_test_score: float = 0.0
    completion_rate: float = 0.0
    consistency: float = 0.0
    accuracy_samples: int = 0
    active_days: int = 0
    record_count: int = 0
    source_counts: Dict[str, int] = Field(default_factory=lambda: {source: 0 for source in SOURCE_TYPES})
    last_activity_at: Optional[datetime] = None

    def has_source(self, source_type: SourceType) -> bool:
        return self.source_counts.get(source_type, 0) > 0


class TrendResult(_Frozen):
    direction: TrendDirection = "stable"
    magnitude: float = 0.0
    recent_mean: float = 0.0
    earlier_mean: float = 0.0
    sample_count: int = 0


class ForecastResult(_Frozen):
    most_likely_value: float
    confidence_range_low: float
    confidence_range_high: float
    confidence_level: float = Field(ge=0.0, le=1.0)
    generated_at: datetime
    scale_max: float = 100.0
    trend_direction: Optional[TrendDirection] = None
    components: Dict[str, float] = Field(default_factory=dict)


class Recommendation(_Frozen):
    category: str
    priority: int = Field(ge=1)
    deficit_score: float
    current_value: Optional[float] = None
    benchmark_value: Optional[float] = None
    action: str
    confidence_level: float = Field(ge=0.0, le=1.0)


__all__ = [
    "ActivityRecord",
    "AggregateSnapshot",
    "CHECKLIST_NAMES",
    "ChecklistName",
    "CompletionUnit",
    "DEFAULT_TEST_MAX_MARKS",
    "ForecastResult",
    "MetricKind",
    "NormalizedMetric",
    "Period",
    "Recommendation",
    "RetentionSample",
    "SOURCE_TYPES",
    "SessionRecord",
    "SourceType",
    "TestRecord",
    "TrendDirection",
    "TrendResult",
]
