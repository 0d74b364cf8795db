"""Process-local snapshot cache keyed by a fingerprint of the input record set."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Dict, Iterable, Optional

from ..records import ActivityRecord, AggregateSnapshot


def record_fingerprint(records: Iterable[ActivityRecord]) -> str:
    """Order-independent sha256 over the canonical JSON of ``records``."""
    encoded = sorted(
        json.dumps(record.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        for record in records
    )
    digest = hashlib.sha256()
    for line in encoded:
        digest.update(line.encode("utf-8"))
        digest.update(b"\n")
    return digest.hexdigest()


def snapshot_key(fingerprint: str, period: str, period_key: str, timezone_name: str) -> str:
    if not fingerprint:
        raise ValueError("Fingerprint cannot be empty when caching snapshots.")
    return f"{fingerprint}:{timezone_name}:{period}:{period_key}"


@dataclass
class _SnapshotEntry:
    snapshot: AggregateSnapshot
    fingerprint: str
    cached_at: datetime


class SnapshotCache:
    """Snapshots are only served for the exact record set they were built from."""

    def __init__(self) -> None:
        self._entries: Dict[str, _SnapshotEntry] = {}
        self._lock = RLock()

    def get(self, key: str) -> Optional[AggregateSnapshot]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        return entry.snapshot.model_copy(deep=True)

    def set(self, key: str, snapshot: AggregateSnapshot) -> None:
        fingerprint = key.split(":", 1)[0]
        with self._lock:
            self._entries[key] = _SnapshotEntry(
                snapshot=snapshot.model_copy(deep=True),
                fingerprint=fingerprint,
                cached_at=datetime.now(timezone.utc),
            )

    def invalidate(self, fingerprint: str) -> int:
        """Drop every snapshot built from ``fingerprint``; returns how many were removed."""
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.fingerprint == fingerprint]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


snapshot_cache = SnapshotCache()

__all__ = ["SnapshotCache", "record_fingerprint", "snapshot_cache", "snapshot_key"]
