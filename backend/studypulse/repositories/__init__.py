"""Read-only repositories over the study-record store."""

from .study_records import SqlRecordSource, StudyRecordRepository, study_records

__all__ = ["SqlRecordSource", "StudyRecordRepository", "study_records"]
