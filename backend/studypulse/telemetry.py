"""Analytics events: every event goes to subscribed callbacks and to one JSON log line."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from threading import Lock
from typing import Any, Callable, Dict, Tuple

logger = logging.getLogger("studypulse.telemetry")

Listener = Callable[["TelemetryEvent"], None]


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


# Replaced wholesale on every change so emitters can iterate without holding the lock.
_listeners: Tuple[Listener, ...] = ()
_lock = Lock()


def register_listener(listener: Listener) -> None:
    global _listeners
    with _lock:
        _listeners = _listeners + (listener,)


def unregister_listener(listener: Listener) -> None:
    global _listeners
    with _lock:
        _listeners = tuple(existing for existing in _listeners if existing != listener)


def clear_listeners() -> None:
    global _listeners
    with _lock:
        _listeners = ()


def emit_event(name: str, **fields: Any) -> None:
    """Deliver the event to each listener; a failing listener is logged and skipped."""
    payload = {key: _plain(value) for key, value in fields.items()}
    event = TelemetryEvent(name=name, payload=payload)

    for listener in _listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    logger.info("TELEMETRY %s", json.dumps({"event": name, **payload}, default=str))


def _plain(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, tuple):
        return list(value)
    return value


__all__ = [
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
    "unregister_listener",
]
