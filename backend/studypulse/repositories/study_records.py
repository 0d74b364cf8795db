"""Database-backed, read-only access to study records."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from ..db.models import (
    ActivityRecordModel,
    ChapterModel,
    RetentionItemModel,
    StudySessionModel,
    TestRecordModel,
)
from ..db.session import SessionManager, session_scope
from ..errors import ValidationError
from ..fetcher import DateRange
from ..records import (
    SOURCE_TYPES,
    ActivityRecord,
    CompletionUnit,
    RetentionSample,
    SessionRecord,
    SourceType,
    TestRecord,
)


def _aware(moment: datetime) -> datetime:
    """SQLite drops tzinfo; stored timestamps are UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _within(stmt: Select[Any], column: Any, date_range: DateRange) -> Select[Any]:
    if date_range.start is not None:
        stmt = stmt.where(column >= date_range.start)
    if date_range.end is not None:
        stmt = stmt.where(column < date_range.end)
    return stmt


class StudyRecordRepository:
    """Select-only queries; the analytics core never writes study records."""

    def activity_records(self, session: Session, source_type: SourceType, date_range: DateRange) -> List[ActivityRecord]:
        if source_type not in SOURCE_TYPES:
            raise ValidationError(f"Unknown source type '{source_type}'.")
        stmt = select(ActivityRecordModel).where(ActivityRecordModel.source_type == source_type)
        stmt = _within(stmt, ActivityRecordModel.recorded_at, date_range)
        stmt = stmt.order_by(ActivityRecordModel.recorded_at, ActivityRecordModel.id)
        return [
            ActivityRecord(
                source_type=model.source_type,  # type: ignore[arg-type]
                subject_tag=model.subject_tag,
                timestamp=_aware(model.recorded_at),
                raw_value=model.raw_value,
                raw_unit=model.raw_unit,
                max_value=model.max_value,
                sample_size=model.sample_size,
            )
            for model in session.execute(stmt).scalars()
        ]

    def completion_units(self, session: Session, subject_id: Optional[str] = None) -> List[CompletionUnit]:
        stmt = select(ChapterModel)
        if subject_id:
            stmt = stmt.where(ChapterModel.subject_tag == subject_id)
        stmt = stmt.order_by(ChapterModel.subject_tag, ChapterModel.id)
        return [
            CompletionUnit(
                chapter_id=model.id,
                subject_tag=model.subject_tag,
                name=model.name,
                lectures=tuple(bool(entry) for entry in model.lectures or []),
                drills=tuple(bool(entry) for entry in model.drills or []),
                assignments=tuple(bool(entry) for entry in model.assignments or []),
                hard_set=tuple(bool(entry) for entry in model.hard_set or []),
                revision_score=model.revision_score,
                updated_at=_aware(model.updated_at),
            )
            for model in session.execute(stmt).scalars()
        ]

    def test_records(self, session: Session, limit: int) -> List[TestRecord]:
        """The ``limit`` most recent tests, oldest first."""
        stmt = (
            select(TestRecordModel)
            .order_by(TestRecordModel.taken_at.desc(), TestRecordModel.id.desc())
            .limit(limit)
        )
        models = list(session.execute(stmt).scalars())
        return [
            TestRecord(
                test_id=model.id,
                subject_tag=model.subject_tag,
                taken_at=_aware(model.taken_at),
                score=model.score,
                max_score=model.max_score,
                questions_attempted=model.questions_attempted,
            )
            for model in reversed(models)
        ]

    def session_records(self, session: Session, date_range: DateRange) -> List[SessionRecord]:
        stmt = _within(select(StudySessionModel), StudySessionModel.started_at, date_range)
        stmt = stmt.order_by(StudySessionModel.started_at, StudySessionModel.id)
        return [
            SessionRecord(
                session_id=model.id,
                subject_tag=model.subject_tag,
                started_at=_aware(model.started_at),
                duration_minutes=model.duration_minutes,
                focus_score=model.focus_score,
                efficiency_score=model.efficiency_score,
                questions_attempted=model.questions_attempted,
                questions_correct=model.questions_correct,
            )
            for model in session.execute(stmt).scalars()
        ]

    def retention_samples(self, session: Session, subject_id: Optional[str] = None) -> List[RetentionSample]:
        stmt = select(RetentionItemModel)
        if subject_id:
            stmt = stmt.where(RetentionItemModel.subject_tag == subject_id)
        stmt = stmt.order_by(RetentionItemModel.learned_at, RetentionItemModel.id)
        return [
            RetentionSample(
                item_id=model.id,
                subject_tag=model.subject_tag,
                created_at=_aware(model.learned_at),
                retention_score=model.retention_score,
            )
            for model in session.execute(stmt).scalars()
        ]


study_records = StudyRecordRepository()


class SqlRecordSource:
    """:class:`~studypulse.fetcher.RecordSource` over SQLAlchemy; one short-lived session per query."""

    def __init__(
        self,
        *,
        session_factory: Optional[SessionManager] = None,
        repository: Optional[StudyRecordRepository] = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or study_records

    def fetch_activity_records(self, source_type: SourceType, date_range: DateRange) -> List[ActivityRecord]:
        with session_scope(factory=self._session_factory) as session:
            return self._repository.activity_records(session, source_type, date_range)

    def fetch_completion_units(self, subject_id: Optional[str] = None) -> List[CompletionUnit]:
        with session_scope(factory=self._session_factory) as session:
            return self._repository.completion_units(session, subject_id)

    def fetch_test_records(self, limit: int) -> List[TestRecord]:
        with session_scope(factory=self._session_factory) as session:
            return self._repository.test_records(session, limit)

    def fetch_session_records(self, date_range: DateRange) -> List[SessionRecord]:
        with session_scope(factory=self._session_factory) as session:
            return self._repository.session_records(session, date_range)

    def fetch_retention_samples(self, subject_id: Optional[str] = None) -> List[RetentionSample]:
        with session_scope(factory=self._session_factory) as session:
            return self._repository.retention_samples(session, subject_id)


__all__ = ["SqlRecordSource", "StudyRecordRepository", "study_records"]
