"""In-memory caches shared across analytics services."""

from .snapshot_cache import SnapshotCache, record_fingerprint, snapshot_cache, snapshot_key

__all__ = ["SnapshotCache", "record_fingerprint", "snapshot_cache", "snapshot_key"]
