"""Error taxonomy shared by the analytics pipeline."""

from __future__ import annotations


class AnalyticsError(RuntimeError):
    """Base class for failures raised by the analytics core."""


class ValidationError(AnalyticsError, ValueError):
    """Raised when a raw record is malformed or outside its declared domain."""


class InsufficientDataError(AnalyticsError):
    """Raised when a required data category has no records."""

    def __init__(self, category: str, message: str | None = None) -> None:
        super().__init__(message or f"No records available for '{category}'.")
        self.category = category


class UpstreamFetchError(AnalyticsError):
    """Raised when the record source is unreachable or times out."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


__all__ = [
    "AnalyticsError",
    "InsufficientDataError",
    "UpstreamFetchError",
    "ValidationError",
]
