"""SQL-backed news repository used by the pipeline's persistence stages."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select

from ingestion.db.models import News
from ingestion.db.session import session_scope
from ingestion.settings import Settings
from pipeline.context import RunContext
from pipeline.models import PersistedRecord


class RecordNotFoundError(LookupError):
    """Update target does not exist."""


def _apply(row: News, record: PersistedRecord) -> None:
    row.channel_id = record.channel_id
    row.provider_name = record.provider_name
    row.original_title = record.original_title
    row.original_desc = record.original_description
    row.original_date = record.original_date
    row.url = record.url
    row.is_suspicious = record.is_suspicious
    row.composed_text = record.composed_text
    row.meta = record.meta.model_dump() if record.meta is not None else None
    row.publication_id = record.publication_id
    row.published_at = record.published_at


class SqlNewsRepository:
    """Each call runs in its own committed transaction; there is no batch write."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings

    def find_existing_hashes(self, ctx: RunContext, hashes: Iterable[str]) -> set[str]:
        ctx.check()
        wanted = list(dict.fromkeys(hashes))
        if not wanted:
            return set()
        with session_scope(self._settings) as session:
            stmt = select(News.hash).where(News.hash.in_(wanted))
            return {row[0] for row in session.execute(stmt)}

    def create(self, ctx: RunContext, record: PersistedRecord) -> None:
        ctx.check()
        with session_scope(self._settings) as session:
            row = News(hash=record.hash)
            _apply(row, record)
            session.add(row)

    def update(self, ctx: RunContext, record: PersistedRecord) -> None:
        ctx.check()
        with session_scope(self._settings) as session:
            row = session.execute(select(News).where(News.hash == record.hash)).scalar_one_or_none()
            if row is None:
                raise RecordNotFoundError(f"news not found: {record.hash}")
            _apply(row, record)
