"""Session helpers for the news database."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ingestion.settings import Settings, get_settings

_ENGINE: Engine | None = None
_SESSIONMAKER: sessionmaker[Session] | None = None
_CURRENT_DSN: str | None = None


def get_engine(settings: Settings | None = None) -> Engine:
    """Return an engine memoized per DSN."""
    global _ENGINE, _SESSIONMAKER, _CURRENT_DSN

    config = settings or get_settings()
    if _ENGINE is None or _CURRENT_DSN != config.postgres_dsn:
        _ENGINE = create_engine(config.postgres_dsn, pool_pre_ping=True)
        _SESSIONMAKER = sessionmaker(bind=_ENGINE, expire_on_commit=False, autoflush=False)
        _CURRENT_DSN = config.postgres_dsn
    return _ENGINE


def get_sessionmaker(settings: Settings | None = None) -> sessionmaker[Session]:
    get_engine(settings)
    assert _SESSIONMAKER is not None  # for mypy
    return _SESSIONMAKER


def ensure_schema(settings: Settings | None = None) -> None:
    """Create missing tables (idempotent); used by local runs and tests."""
    from ingestion.db.models import Base

    Base.metadata.create_all(bind=get_engine(settings))


@contextmanager
def session_scope(settings: Settings | None = None) -> Iterator[Session]:
    """Provide a transactional scope: commit on success, rollback on error."""
    session = get_sessionmaker(settings)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
