"""Celery task that executes one pipeline run for a configured source."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from celery import shared_task

from ingestion.connectors.base import BaseConnector
from ingestion.connectors.news_api import NewsAPIConnector
from ingestion.connectors.rss import RSSConnector
from ingestion.db.session import ensure_schema, session_scope
from ingestion.repositories.job_runs import JobRunRecorder
from ingestion.repositories.news import SqlNewsRepository
from ingestion.services.aggregator import FeedAggregator
from ingestion.settings import FeedConfig, PipelineSchedule, Settings, get_settings
from ingestion.utils.logging import get_logger
from pipeline.controller import Pipeline, RunReport
from pipeline.observer import LoggingObserver
from pipeline.ports import Composer, NewsRepository, NewsSource, Publisher


# Injection points for tests; each receives the schedule (or settings) and returns the collaborator.
SOURCE_FACTORY: Callable[[PipelineSchedule], NewsSource] | None = None
COMPOSER_FACTORY: Callable[[], Composer] | None = None
PUBLISHER_FACTORY: Callable[[], Publisher] | None = None
REPOSITORY_FACTORY: Callable[[], NewsRepository] | None = None


def _build_connector(feed: FeedConfig) -> BaseConnector:
    if feed.kind == "news_api":
        return NewsAPIConnector(feed.provider_name, feed.query or "")
    return RSSConnector(feed.provider_name, feed.url or "")


def build_source(schedule: PipelineSchedule, settings: Settings) -> NewsSource:
    if SOURCE_FACTORY is not None:
        return SOURCE_FACTORY(schedule)
    return FeedAggregator(
        schedule.source,
        [_build_connector(feed) for feed in schedule.feeds],
        suspicious_keywords=settings.suspicious_keywords,
        filter_keys=schedule.filter_keys,
        timeout_seconds=float(settings.feed_timeout_seconds),
        max_attempts=int(settings.feed_max_attempts),
    )


def build_composer() -> Composer:
    if COMPOSER_FACTORY is not None:
        return COMPOSER_FACTORY()
    from composer.client.openai_client import OpenAIComposer

    return OpenAIComposer.from_env()


def build_publisher(settings: Settings) -> Publisher:
    if PUBLISHER_FACTORY is not None:
        return PUBLISHER_FACTORY()
    from publish.telegram import TelegramPublisher

    return TelegramPublisher.from_settings(settings)


def build_repository(settings: Settings) -> NewsRepository:
    if REPOSITORY_FACTORY is not None:
        return REPOSITORY_FACTORY()
    return SqlNewsRepository(settings)


def build_pipeline(
    schedule: PipelineSchedule,
    settings: Settings,
    *,
    now: Optional[datetime] = None,
    trace_id: Optional[str] = None,
) -> Pipeline:
    config = schedule.to_pipeline_config(now or datetime.now(timezone.utc))
    return Pipeline(
        config,
        source=build_source(schedule, settings),
        composer=build_composer() if config.enable_composition else None,
        repository=build_repository(settings) if config.enable_persistence else None,
        publisher=build_publisher(settings),
        observer=LoggingObserver(trace_id=trace_id),
        timeout_seconds=float(settings.pipeline_run_timeout_seconds),
    )


def _summary(report: RunReport) -> Dict[str, Any]:
    return {
        "source": report.source,
        "outcome": report.outcome.value,
        "fetched": report.fetched,
        "unique": report.unique,
        "composed": report.composed,
        "persisted": report.persisted,
        "published": report.published,
        "updated": report.updated,
    }


def run_core(source: str) -> Dict[str, Any]:
    """Run the pipeline once for ``source``; test-friendly.

    A failed run re-raises its StageError so the job run and the Celery task
    are both marked failed.
    """
    settings = get_settings()
    schedule = settings.get_schedule(source)
    ensure_schema(settings)
    trace_id = str(uuid.uuid4())
    logger = get_logger(__name__)
    logger.info("pipeline.start", extra={"trace_id": trace_id, "source": source})
    with session_scope(settings) as session, JobRunRecorder(
        session, source=source, task_name="run_pipeline_for_source", trace_id=trace_id
    ) as recorder:
        pipeline = build_pipeline(schedule, settings, trace_id=trace_id)
        report = pipeline.run()
        recorder.record(report)
        if report.error is not None:
            raise report.error
        summary = _summary(report)
        logger.info("pipeline.done", extra={"trace_id": trace_id, **summary})
        return summary


@shared_task(name="ingestion.tasks.run.run_pipeline_for_source")
def run_pipeline_for_source(source: str) -> Dict[str, Any]:  # pragma: no cover - thin Celery wrapper
    return run_core(source)
