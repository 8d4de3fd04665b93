"""Stage functions for one pipeline run.

Each stage talks to exactly one collaborator and turns that collaborator's
failures into a :class:`StageError` of its own kind. Fetch is the exception:
its errors are recoverable and travel back in :class:`FetchResult`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, List, Sequence

from pipeline.config import PipelineConfig
from pipeline.context import RunContext
from pipeline.errors import ErrorKind, RunCancelledError, StageError
from pipeline.models import ComposedItem, FetchResult, NewsMeta, PersistedRecord, RawItem
from pipeline.ports import Composer, NewsRepository, NewsSource, Publisher

logger = logging.getLogger(__name__)

FETCH = "fetch"
DEDUPE = "dedupe"
COMPOSE = "compose"
PERSIST = "persist"
PUBLISH = "publish"
UPDATE = "update"


def fetch_news(source: NewsSource, ctx: RunContext, cutoff: datetime) -> FetchResult:
    try:
        ctx.check()
        result = source.fetch_latest(ctx, cutoff)
    except RunCancelledError as exc:
        raise StageError(ErrorKind.FETCH_FAILED, FETCH, exc) from exc
    except Exception as exc:
        return FetchResult(items=[], error=exc)
    if ctx.cancelled or ctx.expired:
        exc = RunCancelledError("run was cancelled during fetch")
        raise StageError(ErrorKind.FETCH_FAILED, FETCH, exc) from exc
    return result


def remove_duplicates(repository: NewsRepository, ctx: RunContext, items: Sequence[RawItem]) -> List[RawItem]:
    """Drop items whose id is already stored."""
    hashes = [item.id for item in items]
    try:
        ctx.check()
        existing = set(repository.find_existing_hashes(ctx, hashes))
    except Exception as exc:
        raise StageError(ErrorKind.DEDUPE_FAILED, DEDUPE, exc) from exc
    return [item for item in items if item.id not in existing]


def compose_news(composer: Composer, ctx: RunContext, items: Sequence[RawItem]) -> List[ComposedItem]:
    try:
        ctx.check()
        composed = composer.compose(ctx, list(items))
    except Exception as exc:
        raise StageError(ErrorKind.COMPOSE_FAILED, COMPOSE, exc) from exc
    return list(composed or [])


def build_records(
    items: Sequence[RawItem],
    composed: Sequence[ComposedItem],
    channel_id: str,
) -> List[PersistedRecord]:
    """One record per item in fetch order, with enrichment attached by id."""
    if len(composed) > len(items):
        raise StageError(
            ErrorKind.CONSISTENCY_VIOLATION,
            PERSIST,
            message=f"composed news count {len(composed)} exceeds fetched news count {len(items)}",
        )
    by_id: Dict[str, ComposedItem] = {c.id: c for c in composed}
    known = {item.id for item in items}
    orphans = [cid for cid in by_id if cid not in known]
    if orphans:
        logger.warning("pipeline.compose.unknown_ids", extra={"ids": orphans})
    return [PersistedRecord.from_item(item, channel_id, by_id.get(item.id)) for item in items]


def save_records(repository: NewsRepository, ctx: RunContext, records: Sequence[PersistedRecord]) -> int:
    """Create records one by one. Earlier writes stay committed on failure."""
    saved = 0
    for record in records:
        try:
            ctx.check()
            repository.create(ctx, record)
        except Exception as exc:
            raise StageError(ErrorKind.PERSIST_FAILED, PERSIST, exc, completed=saved) from exc
        saved += 1
    return saved


def should_publish(record: PersistedRecord, config: PipelineConfig) -> bool:
    if record.is_suspicious and config.omit_suspicious:
        return False
    if config.omit_empty_meta and (record.meta is None or record.meta.is_empty()):
        return False
    return True


def format_message(record: PersistedRecord, compose_enabled: bool) -> str:
    original = f"{record.original_title}\n{record.original_description}"
    if not compose_enabled:
        return original
    meta = record.meta or NewsMeta()
    body = record.composed_text if record.composed_text is not None else original
    return (
        f"Hash: {record.hash}\n"
        f"Provider: {record.provider_name}\n"
        f"Meta: {meta.to_json()}\n"
        f"IsSuspicious: {str(record.is_suspicious).lower()}\n"
        f"{body}"
    )


def publish_records(
    publisher: Publisher,
    ctx: RunContext,
    records: Sequence[PersistedRecord],
    config: PipelineConfig,
    clock: Callable[[], datetime],
) -> int:
    """Publish eligible records in order, stamping id and time on success."""
    published = 0
    for record in records:
        if not should_publish(record, config):
            logger.debug(
                "pipeline.publish.skipped",
                extra={"hash": record.hash, "suspicious": record.is_suspicious},
            )
            continue
        text = format_message(record, config.enable_composition)
        try:
            ctx.check()
            publication_id = publisher.publish(ctx, text)
        except Exception as exc:
            raise StageError(ErrorKind.PUBLISH_FAILED, PUBLISH, exc, completed=published) from exc
        record.publication_id = str(publication_id)
        record.published_at = clock()
        published += 1
    return published


def update_records(repository: NewsRepository, ctx: RunContext, records: Sequence[PersistedRecord]) -> int:
    updated = 0
    for record in records:
        try:
            ctx.check()
            repository.update(ctx, record)
        except Exception as exc:
            raise StageError(ErrorKind.UPDATE_FAILED, UPDATE, exc, completed=updated) from exc
        updated += 1
    return updated
