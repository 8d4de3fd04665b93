"""Celery 애플리케이션 부트스트랩."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict

from celery import Celery, signals
from celery.schedules import schedule as celery_schedule

from .settings import PipelineSchedule, Settings, get_settings
from .utils.logging import configure_logging

_CELERY_APP: Celery | None = None

RUN_TASK_NAME = "ingestion.tasks.run.run_pipeline_for_source"


def create_celery_app(settings: Settings | None = None) -> Celery:
    """설정을 기반으로 Celery 인스턴스를 생성한다."""
    config = settings or get_settings()
    configure_logging(config.structlog_level, json_enabled=config.log_json)

    # Soft limit must leave room for the run's own timeout to fire first.
    soft_limit = max(int(config.celery_task_soft_time_limit), int(config.pipeline_run_timeout_seconds) + 10)

    app = Celery("finthread", broker=config.redis_url, backend=config.redis_url)
    app.conf.update(
        task_default_queue="pipeline.default",
        task_default_exchange="pipeline",
        task_default_routing_key="pipeline.default",
        task_soft_time_limit=soft_limit,
        worker_concurrency=config.celery_worker_concurrency,
        beat_schedule=_build_beat_schedule(config),
        timezone="UTC",
        enable_utc=True,
        worker_send_task_events=True,
        task_send_sent_event=True,
    )

    app.autodiscover_tasks(["ingestion.tasks"], related_name="run")
    _install_signal_handlers()
    return app


def get_celery_app() -> Celery:
    """싱글톤 Celery 인스턴스를 반환한다."""
    global _CELERY_APP
    if _CELERY_APP is None:
        _CELERY_APP = create_celery_app()
    return _CELERY_APP


def _build_beat_schedule(settings: Settings) -> Dict[str, Dict[str, Any]]:
    schedule: Dict[str, Dict[str, Any]] = {}
    for index, item in enumerate(settings.pipeline_schedules):
        if not item.enabled:
            continue
        run_every = celery_schedule(timedelta(minutes=item.interval_minutes))
        schedule[_build_schedule_name(item, index)] = {
            "task": RUN_TASK_NAME,
            "schedule": run_every,
            "args": (item.source,),
            # a run that missed its slot is superseded by the next one
            "options": {"queue": "pipeline.run", "expires": item.interval_minutes * 60},
        }
    return schedule


def _build_schedule_name(item: PipelineSchedule, index: int) -> str:
    return f"run.{item.source.lower()}.{index}"


def _install_signal_handlers() -> None:
    logger = logging.getLogger("ingestion.worker")

    @signals.worker_shutdown.connect(weak=False)
    def _on_worker_shutdown(sender=None, **kwargs):  # noqa: ANN001
        logger.info("Celery worker shutdown detected", extra={"sender": str(sender)})
