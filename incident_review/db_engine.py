"""
SQLAlchemy engine and session management for the incident review system.
"""

import threading
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import Session, sessionmaker

from incident_review.constants import DEFAULT_DATABASE_URL

# Module-level engine instance (lazy-initialized)
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None
_database_url: str = DEFAULT_DATABASE_URL
_engine_lock = threading.Lock()


def configure(database_url: str) -> None:
    """Set the URL used when the engine is first created."""
    global _database_url
    _database_url = database_url


def get_engine() -> Engine:
    """Get the SQLAlchemy engine, creating it if necessary.

    Concurrent first callers wait on the lock and share one engine.
    """
    global _engine, _session_factory
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                engine = create_engine(_database_url, pool_pre_ping=True)
                _session_factory = sessionmaker(bind=engine)
                _engine = engine
    return _engine


def set_engine(engine: Engine) -> None:
    """Set a custom engine (for testing)."""
    global _engine, _session_factory
    with _engine_lock:
        _engine = engine
        _session_factory = sessionmaker(bind=engine)


def reset_engine() -> None:
    """Reset the engine to None (for testing)."""
    global _engine, _session_factory
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Session scope: commits on success, rolls back and re-raises on error.

    Blocking; code on the event loop uses it through asyncio.to_thread.
    """
    get_engine()

    session = _session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
