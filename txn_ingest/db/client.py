"""SQLAlchemy engine/session helpers.

Usage
-----
from txn_ingest.db.client import get_engine, get_sessionmaker, session_scope

factory = get_sessionmaker()
with session_scope(factory) as s:
    s.execute(...)

The process-wide engine exists for entry points (the CLI). Library code takes
a ``sessionmaker`` explicitly, so tests can bind their own engine.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .models import Base

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def make_sessionmaker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session)


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return a shared SQLAlchemy engine, creating it on first use."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    url = _database_url(database_url)
    if _ENGINE is None:
        engine = create_engine(url, pool_pre_ping=True)
        _SESSION_MAKER = make_sessionmaker(engine)
        _ENGINE = engine
        _DB_URL = url
        return engine
    if _DB_URL is not None and url != _DB_URL:
        raise RuntimeError(
            "get_engine() already initialized with a different DATABASE_URL; "
            "call dispose_engine() first or avoid passing a different URL"
        )
    return _ENGINE


def get_sessionmaker(*, database_url: str | None = None) -> sessionmaker[Session]:
    get_engine(database_url=database_url)
    assert _SESSION_MAKER is not None  # bound by get_engine
    return _SESSION_MAKER


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new SQLAlchemy session bound to the shared engine."""

    return get_sessionmaker(database_url=database_url)()


def dispose_engine() -> None:
    """Drop the shared engine so the next ``get_engine`` call rebinds."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None
    _DB_URL = None


@contextmanager
def session_scope(
    session_factory: sessionmaker[Session] | None = None,
    *,
    database_url: str | None = None,
) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = (
        session_factory() if session_factory is not None else get_session(database_url=database_url)
    )
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet (tests and ``init-db``)."""

    Base.metadata.create_all(bind=engine)


__all__ = [
    "make_sessionmaker",
    "get_engine",
    "get_sessionmaker",
    "get_session",
    "dispose_engine",
    "session_scope",
    "create_schema",
]
