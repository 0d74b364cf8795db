"""SQLAlchemy engine for the study-record store; the analytics core only reads from it."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator, Optional, Protocol

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class SessionManager(Protocol):
    def __call__(self) -> Session:  # pragma: no cover - protocol definition
        ...


_lock = Lock()
_engine: Optional[Engine] = None
_factory: Optional[sessionmaker[Session]] = None


def engine_options(settings: Settings) -> dict[str, object]:
    """Keyword arguments for ``create_engine``; SQLite gets no connection pool sizing."""
    if not settings.database_url:
        raise RuntimeError("STUDYPULSE_DATABASE_URL must be configured before reading study records.")

    options: dict[str, object] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if make_url(settings.database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
    else:
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return options


def get_session_factory() -> sessionmaker[Session]:
    global _engine, _factory
    with _lock:
        if _factory is None:
            settings = get_settings()
            options = engine_options(settings)
            _engine = create_engine(settings.database_url, **options)
            _factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
            logger.info("Study-record engine ready at %s", _engine.url.render_as_string(hide_password=True))
        return _factory


def get_engine() -> Engine:
    get_session_factory()
    assert _engine is not None
    return _engine


@contextmanager
def session_scope(*, factory: Optional[SessionManager] = None) -> Iterator[Session]:
    """Read-only session: whatever the caller did is rolled back on exit."""
    session = (factory or get_session_factory())()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def dispose_engine() -> None:
    global _engine, _factory
    with _lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _factory = None


__all__ = [
    "SessionManager",
    "dispose_engine",
    "engine_options",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
