"""
Engine and session lifecycle for TAL Hub.

The engine is built on first use from DATABASE_URL (falling back to the
configured default) and rebuilt whenever that URL changes, which is how the
test suite points each test at its own SQLite file.
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool

from ..config import get_settings
from .models import Base

_engine = None
_engine_url = None

# Bound to the engine by get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _database_url() -> str:
    return os.environ.get("DATABASE_URL", get_settings().database_url)


def _sqlite_pragmas(dbapi_connection, connection_record):
    # Participant/message/document cascades rely on enforced foreign keys
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(database_url: str) -> Engine:
    echo = get_settings().sql_echo
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, connect_args={"check_same_thread": False}, echo=echo)
        event.listen(engine, "connect", _sqlite_pragmas)
        return engine

    # PostgreSQL
    return create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        connect_args={"connect_timeout": get_settings().db_connect_timeout},
        echo=echo,
    )


def get_engine() -> Engine:
    global _engine, _engine_url
    database_url = _database_url()
    if _engine is not None and _engine_url == database_url:
        return _engine

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(database_url)
    _engine_url = database_url
    SessionLocal.configure(bind=_engine)
    return _engine


def reset_engine():
    """Forget the current engine so the next call rebuilds it (used by tests)."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine, _engine_url = None, None
    SessionLocal.configure(bind=None)


def init_db():
    """Create any missing tables."""
    Base.metadata.create_all(bind=get_engine())


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; the caller decides when to commit."""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Unit-of-work session for code outside a request (websocket feed,
    health check, demo seed). Commits on clean exit, rolls back otherwise.
    """
    get_engine()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
