"""Read models and engine wiring for the tables StudyPulse aggregates over."""

from .base import Base
from .session import SessionManager, dispose_engine, engine_options, get_engine, session_scope

__all__ = [
    "Base",
    "SessionManager",
    "dispose_engine",
    "engine_options",
    "get_engine",
    "session_scope",
]
