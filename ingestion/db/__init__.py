"""Database utilities for the news pipeline."""

from .models import Base, JobRun, JobStatus, News  # noqa: F401
from .session import ensure_schema, get_engine, get_sessionmaker, session_scope  # noqa: F401

__all__ = [
    "Base",
    "JobRun",
    "JobStatus",
    "News",
    "ensure_schema",
    "get_engine",
    "get_sessionmaker",
    "session_scope",
]
