"""
Engine and session helpers for the tenant directory.

Engines are keyed by database URL, so a Settings object passed by a service
and the process-wide settings share one pool when they point at the same
database.
"""
from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from urlfixer.core.config import Settings, get_settings

Base = declarative_base()


def database_url(settings: Settings | None = None) -> str:
    url = ((settings or get_settings()).database_url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL must be configured to resolve tenants.")
    return url


@lru_cache
def _engine_for(url: str) -> Engine:
    return create_engine(url, future=True, pool_pre_ping=True)


@lru_cache
def _sessionmaker_for(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_engine(settings: Settings | None = None) -> Engine:
    """Engine for the database named by settings (process settings by default)."""
    return _engine_for(database_url(settings))


@contextmanager
def get_session(settings: Settings | None = None) -> Iterator[Session]:
    session: Session = _sessionmaker_for(get_engine(settings))()
    try:
        yield session
    finally:
        session.close()
