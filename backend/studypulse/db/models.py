"""ORM models for the study records the analytics core reads."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


def _uuid() -> str:
    return str(uuid.uuid4())


class ActivityRecordModel(TimestampMixin, Base):
    __tablename__ = "activity_records"
    __table_args__ = (Index("ix_activity_records_source_recorded", "source_type", "recorded_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_type: Mapped[str] = mapped_column(String(16), nullable=False)
    subject_tag: Mapped[str] = mapped_column(String(64), default="general", nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    raw_value: Mapped[float] = mapped_column(Float, nullable=False)
    raw_unit: Mapped[str] = mapped_column(String(32), nullable=False)
    max_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sample_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ChapterModel(TimestampMixin, Base):
    __tablename__ = "chapters"
    __table_args__ = (Index("ix_chapters_subject_tag", "subject_tag"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    subject_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    lectures: Mapped[list[bool]] = mapped_column(JSONType, default=list, nullable=False)
    drills: Mapped[list[bool]] = mapped_column(JSONType, default=list, nullable=False)
    assignments: Mapped[list[bool]] = mapped_column(JSONType, default=list, nullable=False)
    hard_set: Mapped[list[bool]] = mapped_column(JSONType, default=list, nullable=False)
    revision_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)


class TestRecordModel(TimestampMixin, Base):
    __tablename__ = "test_records"
    __table_args__ = (Index("ix_test_records_taken_at", "taken_at"),)
    __test__ = False

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    subject_tag: Mapped[str] = mapped_column(String(64), default="all", nullable=False)
    taken_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    max_score: Mapped[float] = mapped_column(Float, default=720.0, nullable=False)
    questions_attempted: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class StudySessionModel(TimestampMixin, Base):
    __tablename__ = "study_sessions"
    __table_args__ = (Index("ix_study_sessions_started_at", "started_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    subject_tag: Mapped[str] = mapped_column(String(64), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    focus_score: Mapped[float] = mapped_column(Float, nullable=False)
    efficiency_score: Mapped[float] = mapped_column(Float, nullable=False)
    questions_attempted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    questions_correct: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class RetentionItemModel(TimestampMixin, Base):
    __tablename__ = "retention_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    subject_tag: Mapped[str] = mapped_column(String(64), default="general", nullable=False)
    learned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    retention_score: Mapped[float] = mapped_column(Float, nullable=False)


__all__ = [
    "ActivityRecordModel",
    "ChapterModel",
    "RetentionItemModel",
    "StudySessionModel",
    "TestRecordModel",
]
