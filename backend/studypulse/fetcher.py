"""Concurrent, timeout-bounded reads from the study-record source."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import partial
from time import perf_counter
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .aggregation import completion_records
from .config import Settings, get_settings
from .errors import UpstreamFetchError, ValidationError
from .records import (
    ActivityRecord,
    CompletionUnit,
    RetentionSample,
    SessionRecord,
    SourceType,
    TestRecord,
)
from .telemetry import emit_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DateRange:
    """Half-open ``[start, end)`` window; either bound may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValidationError("Date range start must not be after its end.")

    @classmethod
    def last_days(cls, days: int, *, as_of: Optional[datetime] = None) -> "DateRange":
        if days <= 0:
            raise ValidationError("A date range needs at least one day.")
        end = as_of or datetime.now(timezone.utc)
        return cls(start=end - timedelta(days=days), end=end)

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


class RecordSource(Protocol):
    """Read-only query shapes offered by the persistence collaborator."""

    def fetch_activity_records(self, source_type: SourceType, date_range: DateRange) -> Sequence[ActivityRecord]:
        ...

    def fetch_completion_units(self, subject_id: Optional[str] = None) -> Sequence[CompletionUnit]:
        ...

    def fetch_test_records(self, limit: int) -> Sequence[TestRecord]:
        ...

    def fetch_session_records(self, date_range: DateRange) -> Sequence[SessionRecord]:
        ...

    def fetch_retention_samples(self, subject_id: Optional[str] = None) -> Sequence[RetentionSample]:
        ...


@dataclass(frozen=True)
class StudyDataBundle:
    """One consistent read of every source type, fetched together."""

    goal_records: Tuple[ActivityRecord, ...] = ()
    completion_units: Tuple[CompletionUnit, ...] = ()
    test_records: Tuple[TestRecord, ...] = ()
    session_records: Tuple[SessionRecord, ...] = ()
    retention_samples: Tuple[RetentionSample, ...] = ()
    date_range: DateRange = field(default_factory=DateRange)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def activity_records(self) -> List[ActivityRecord]:
        """Goal logs plus the activity records derived from tests, sessions and chapters."""
        records: List[ActivityRecord] = list(self.goal_records)
        records.extend(test.to_activity_record() for test in self.test_records)
        for session in self.session_records:
            records.extend(session.to_activity_records())
        records.extend(completion_records(self.completion_units))
        return records

    def focus_history(self) -> List[float]:
        return [session.focus_score for session in self.session_records]


async def _read(name: str, call: Callable[[], Sequence[Any]]) -> Tuple[Any, ...]:
    started = perf_counter()
    try:
        rows = await asyncio.to_thread(call)
    except UpstreamFetchError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise UpstreamFetchError(name, f"read failed: {exc}") from exc
    logger.debug("Fetched %d %s rows in %.1fms", len(rows), name, (perf_counter() - started) * 1000.0)
    return tuple(rows)


async def fetch_bundle(
    source: RecordSource,
    date_range: Optional[DateRange] = None,
    *,
    subject_id: Optional[str] = None,
    test_limit: Optional[int] = None,
    timeout_seconds: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> StudyDataBundle:
    """Read every source type concurrently, one request each.

    The whole read shares one deadline. A timeout or any failed read raises
    :class:`UpstreamFetchError`; partial results are never returned.
    """
    resolved = settings or get_settings()
    window = date_range or DateRange()
    limit = test_limit or resolved.fetch_test_limit
    timeout = timeout_seconds or resolved.fetch_timeout_seconds

    calls: Dict[str, Callable[[], Sequence[Any]]] = {
        "goal": partial(source.fetch_activity_records, "goal", window),
        "checklist": partial(source.fetch_completion_units, subject_id),
        "test": partial(source.fetch_test_records, limit),
        "session": partial(source.fetch_session_records, window),
        "retention": partial(source.fetch_retention_samples, subject_id),
    }

    started = perf_counter()
    try:
        results = await asyncio.wait_for(
            asyncio.gather(*(_read(name, call) for name, call in calls.items())),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        emit_event("upstream_fetch_failed", reason="timeout", timeout_seconds=timeout)
        raise UpstreamFetchError("record_source", f"timed out after {timeout:g}s") from exc
    except UpstreamFetchError as exc:
        emit_event("upstream_fetch_failed", reason="error", source=exc.source, detail=str(exc))
        raise

    fetched = dict(zip(calls, results))
    logger.info(
        "Fetched study data bundle in %.1fms (%s)",
        (perf_counter() - started) * 1000.0,
        ", ".join(f"{name}={len(rows)}" for name, rows in fetched.items()),
    )
    return StudyDataBundle(
        goal_records=fetched["goal"],
        completion_units=fetched["checklist"],
        test_records=fetched["test"],
        session_records=fetched["session"],
        retention_samples=fetched["retention"],
        date_range=window,
    )


def load_bundle(
    source: RecordSource,
    date_range: Optional[DateRange] = None,
    **kwargs: Any,
) -> StudyDataBundle:
    """Blocking wrapper around :func:`fetch_bundle` for scripts and jobs."""
    return asyncio.run(fetch_bundle(source, date_range, **kwargs))


__all__ = [
    "DateRange",
    "RecordSource",
    "StudyDataBundle",
    "fetch_bundle",
    "load_bundle",
]
