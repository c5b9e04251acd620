"""
db/session.py

Lazily created SQLAlchemy engine and session factory.

Import jobs open their own session on a worker thread, so sessions are
handed out by ``SessionLocal()`` rather than tied to the request scope.
"""

from __future__ import annotations

import threading

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import get_database_settings

_lock = threading.Lock()
_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def create_db_engine() -> Engine:
    settings = get_database_settings()
    return create_engine(
        settings.url,
        echo=settings.echo,
        pool_pre_ping=True,
        pool_recycle=settings.pool_recycle,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
    )


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    with _lock:
        if _engine is None:
            _engine = create_db_engine()
        return _engine


def _get_session_factory() -> sessionmaker:
    global _session_factory
    engine = get_engine()
    with _lock:
        if _session_factory is None:
            _session_factory = sessionmaker(
                bind=engine,
                class_=Session,
                autoflush=False,
                expire_on_commit=False,
            )
        return _session_factory


def SessionLocal() -> Session:
    """New session from the shared factory; callers close it."""
    return _get_session_factory()()
