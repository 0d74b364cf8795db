from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from studypulse.errors import UpstreamFetchError, ValidationError
from studypulse.fetcher import DateRange, fetch_bundle, load_bundle
from studypulse.records import ActivityRecord, CompletionUnit, RetentionSample, SessionRecord, TestRecord
from studypulse.telemetry import TelemetryEvent, clear_listeners, register_listener

NOW = datetime(2025, 2, 3, 8, 0, tzinfo=timezone.utc)


class _FakeSource:
    def __init__(self, *, barrier: Optional[threading.Barrier] = None) -> None:
        self.barrier = barrier
        self.calls: list[tuple[str, object]] = []

    def _enter(self, name: str, argument: object) -> None:
        self.calls.append((name, argument))
        if self.barrier is not None:
            self.barrier.wait()

    def fetch_activity_records(self, source_type, date_range):
        self._enter("activity", (source_type, date_range))
        return [ActivityRecord(source_type="goal", timestamp=NOW, raw_value=120, raw_unit="questions")]

    def fetch_completion_units(self, subject_id=None):
        self._enter("completion", subject_id)
        return [CompletionUnit.create("c1", "physics", lectures=1)]

    def fetch_test_records(self, limit):
        self._enter("tests", limit)
        return [TestRecord(test_id="t1", taken_at=NOW, score=500)]

    def fetch_session_records(self, date_range):
        self._enter("sessions", date_range)
        return [
            SessionRecord(
                session_id="s1",
                subject_tag="physics",
                started_at=NOW,
                duration_minutes=45,
                focus_score=6,
                efficiency_score=6,
            )
        ]

    def fetch_retention_samples(self, subject_id=None):
        self._enter("retention", subject_id)
        return [RetentionSample(item_id="r1", created_at=NOW, retention_score=0.9)]


class _SlowSource(_FakeSource):
    def fetch_test_records(self, limit):
        time.sleep(0.5)
        return super().fetch_test_records(limit)


class _BrokenSource(_FakeSource):
    def fetch_session_records(self, date_range):
        raise RuntimeError("connection reset")


@pytest.fixture()
def events():
    captured: list[TelemetryEvent] = []
    register_listener(captured.append)
    yield captured
    clear_listeners()


def test_bundle_contains_every_source_type() -> None:
    window = DateRange.last_days(7, as_of=NOW)
    source = _FakeSource()

    bundle = load_bundle(source, window, subject_id="physics", test_limit=3)

    assert len(bundle.goal_records) == 1
    assert len(bundle.completion_units) == 1
    assert len(bundle.test_records) == 1
    assert len(bundle.session_records) == 1
    assert len(bundle.retention_samples) == 1
    assert bundle.date_range == window
    assert ("tests", 3) in source.calls
    assert ("completion", "physics") in source.calls
    assert ("activity", ("goal", window)) in source.calls


def test_bundle_flattens_to_activity_records() -> None:
    bundle = load_bundle(_FakeSource())
    records = bundle.activity_records()
    assert {record.source_type for record in records} == {"goal", "test", "session", "checklist"}
    assert bundle.focus_history() == [6.0]


def test_reads_run_concurrently() -> None:
    source = _FakeSource(barrier=threading.Barrier(5, timeout=2))
    bundle = asyncio.run(fetch_bundle(source, timeout_seconds=5))
    assert len(source.calls) == 5
    assert bundle.test_records[0].test_id == "t1"


def test_timeout_raises_upstream_error(events) -> None:
    with pytest.raises(UpstreamFetchError) as excinfo:
        asyncio.run(fetch_bundle(_SlowSource(), timeout_seconds=0.05))
    assert excinfo.value.source == "record_source"
    assert events[-1].name == "upstream_fetch_failed"
    assert events[-1].payload["reason"] == "timeout"


def test_failed_read_is_not_partial(events) -> None:
    with pytest.raises(UpstreamFetchError) as excinfo:
        load_bundle(_BrokenSource())
    assert excinfo.value.source == "session"
    assert "connection reset" in str(excinfo.value)
    assert events[-1].payload["source"] == "session"


def test_date_range_validation() -> None:
    with pytest.raises(ValidationError):
        DateRange(start=NOW, end=NOW - timedelta(days=1))
    with pytest.raises(ValidationError):
        DateRange.last_days(0)

    window = DateRange.last_days(2, as_of=NOW)
    assert window.contains(NOW - timedelta(days=1))
    assert not window.contains(NOW)
    assert DateRange().contains(NOW)
