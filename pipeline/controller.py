"""Pipeline controller: sequences the stages of one scheduled run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pipeline import stages
from pipeline.config import PipelineConfig
from pipeline.context import DEFAULT_RUN_TIMEOUT_SECONDS, RunContext
from pipeline.errors import StageError
from pipeline.models import RunData
from pipeline.observer import LoggingObserver, SafeObserver
from pipeline.ports import Composer, NewsRepository, NewsSource, Publisher, RunObserver

logger = logging.getLogger(__name__)

# RunReport field holding the partial count of a stage that failed mid-way
_STAGE_COUNTS = {
    stages.PERSIST: "persisted",
    stages.PUBLISH: "published",
    stages.UPDATE: "updated",
}


class RunOutcome(str, Enum):
    NOOP = "noop"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RunReport:
    source: str
    outcome: RunOutcome
    fetched: int = 0
    unique: int = 0
    composed: int = 0
    persisted: int = 0
    published: int = 0
    updated: int = 0
    fetch_error: Optional[Exception] = None
    error: Optional[StageError] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not RunOutcome.FAILED

    @property
    def failed(self) -> bool:
        return self.outcome is RunOutcome.FAILED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Pipeline:
    """Fetch → dedupe → compose → persist → publish → update, for one source.

    Collaborators are injected explicitly. A run never raises a StageError;
    fatal failures come back in ``RunReport.error``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        source: NewsSource,
        composer: Optional[Composer],
        repository: Optional[NewsRepository],
        publisher: Publisher,
        observer: Optional[RunObserver] = None,
        timeout_seconds: float = DEFAULT_RUN_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if config.enable_composition and composer is None:
            raise ValueError("composer is required when composition is enabled")
        if config.enable_persistence and repository is None:
            raise ValueError("repository is required when persistence is enabled")
        self.config = config
        self.source = source
        self.composer = composer
        self.repository = repository
        self.publisher = publisher
        self.observer = SafeObserver(observer or LoggingObserver())
        self.timeout_seconds = float(timeout_seconds)
        self.clock = clock

    @property
    def name(self) -> str:
        return f"Run.{self.source.name}"

    def run(self, ctx: Optional[RunContext] = None) -> RunReport:
        ctx = ctx or RunContext.with_timeout(self.timeout_seconds)
        counts: dict[str, Any] = {}
        try:
            outcome = self._run_stages(ctx, counts)
        except StageError as exc:
            key = _STAGE_COUNTS.get(exc.stage)
            if key is not None:
                counts[key] = exc.completed
            logger.warning(
                "pipeline.run.failed",
                extra={"job": self.name, "stage": exc.stage, "kind": exc.kind.value, "error": str(exc.cause or exc)},
            )
            self.observer.capture_exception(exc)
            return RunReport(source=self.source.name, outcome=RunOutcome.FAILED, error=exc, **counts)
        logger.info("pipeline.run.finished", extra={"job": self.name, "outcome": outcome.value, **_loggable(counts)})
        return RunReport(source=self.source.name, outcome=outcome, **counts)

    def _run_stages(self, ctx: RunContext, counts: dict[str, Any]) -> RunOutcome:
        config = self.config
        data = RunData()

        result = self._traced(stages.FETCH, stages.fetch_news, self.source, ctx, config.fetch_cutoff)
        if result.error is not None:
            counts["fetch_error"] = result.error
            logger.info("pipeline.fetch.error", extra={"job": self.name, "error": str(result.error)})
            self.observer.capture_exception(result.error)
        data.items = list(result.items)
        counts["fetched"] = len(data.items)
        self.observer.breadcrumb(f"fetch_news returned {len(data.items)} news", stage=stages.FETCH)
        if not data.items:
            return RunOutcome.NOOP

        if config.should_dedupe:
            data.items = self._traced(stages.DEDUPE, stages.remove_duplicates, self.repository, ctx, data.items)
            self.observer.breadcrumb(f"remove_duplicates returned {len(data.items)} news", stage=stages.DEDUPE)
        counts["unique"] = len(data.items)
        if not data.items:
            return RunOutcome.NOOP

        if config.enable_composition:
            data.composed = self._traced(stages.COMPOSE, stages.compose_news, self.composer, ctx, data.items)
            counts["composed"] = len(data.composed)
            self.observer.breadcrumb(f"compose_news returned {len(data.composed)} news", stage=stages.COMPOSE)

        data.records = stages.build_records(data.items, data.composed, self.publisher.channel_id)
        if config.enable_persistence:
            counts["persisted"] = self._traced(stages.PERSIST, stages.save_records, self.repository, ctx, data.records)
            self.observer.breadcrumb(f"save_records stored {counts['persisted']} news", stage=stages.PERSIST)

        counts["published"] = self._traced(
            stages.PUBLISH, stages.publish_records, self.publisher, ctx, data.records, config, self.clock
        )
        self.observer.breadcrumb(f"publish_records published {counts['published']} news", stage=stages.PUBLISH)

        if config.enable_persistence:
            counts["updated"] = self._traced(stages.UPDATE, stages.update_records, self.repository, ctx, data.records)
            self.observer.breadcrumb("update_records finished", stage=stages.UPDATE)
        return RunOutcome.SUCCEEDED

    def _traced(self, stage: str, fn: Callable[..., Any], *args: Any) -> Any:
        span = self.observer.start_span(f"{self.name}.{stage}", stage=stage, source=self.source.name)
        try:
            result = fn(*args)
        except BaseException as exc:
            self.observer.finish_span(span, exc)
            raise
        self.observer.finish_span(span)
        return result


def _loggable(counts: dict[str, Any]) -> dict[str, Any]:
    return {k: (str(v) if isinstance(v, Exception) else v) for k, v in counts.items()}
