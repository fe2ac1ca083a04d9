"""Engine and session helpers shared by the profile store and the SQL counter store."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from . import models  # noqa: F401  registers tables on Base.metadata
from .base import Base
from .monitoring import instrument_engine

logger = logging.getLogger(__name__)

_IN_MEMORY_URLS = frozenset({"sqlite://", "sqlite:///:memory:"})

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None
# request threads and background sync threads may race on first use
_engine_lock = threading.Lock()


def engine_options(settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine`` given the configured URL."""
    url = settings.database_url or ""
    options: Dict[str, Any] = {"echo": settings.database_echo, "future": True, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.database_pool_size, max_overflow=settings.database_max_overflow)
        return options
    options["connect_args"] = {"check_same_thread": False}
    if url in _IN_MEMORY_URLS:
        # one shared connection, otherwise every checkout sees an empty database
        options["poolclass"] = StaticPool
    return options


def _create(settings: Settings) -> Engine:
    if not settings.database_url:
        raise RuntimeError("QUIZ_DATABASE_URL must be configured before using the database.")
    engine = create_engine(settings.database_url, **engine_options(settings))
    instrument_engine(engine)
    if engine.dialect.name == "sqlite":
        # sqlite is for local runs and tests; real deployments migrate with alembic
        Base.metadata.create_all(engine)
    logger.info("Database engine ready (dialect=%s)", engine.dialect.name)
    return engine


def get_engine() -> Engine:
    global _engine, _session_factory
    with _engine_lock:
        if _engine is None:
            _engine = _create(get_settings())
            _session_factory = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        return _engine


def get_session_factory() -> sessionmaker[Session]:
    get_engine()
    if _session_factory is None:
        raise RuntimeError("Database session factory failed to initialise.")
    return _session_factory


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    """One unit of work: commit on success (unless ``commit=False``), roll back on error."""
    session = get_session_factory()()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    global _engine, _session_factory
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None


__all__ = [
    "dispose_engine",
    "engine_options",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
