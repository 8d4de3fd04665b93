"""Durable record of scheduled pipeline runs."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ingestion.db.models import JobRun, JobStatus
from pipeline.controller import RunOutcome, RunReport


class JobRunRecorder:
    """Context manager to record job run lifecycle."""

    def __init__(
        self,
        session: Session,
        *,
        source: str | None,
        task_name: str,
        trace_id: str | None = None,
    ) -> None:
        self._session = session
        self._report: RunReport | None = None
        self._job = JobRun(
            status=JobStatus.RUNNING,
            source=source,
            task_name=task_name,
            trace_id=trace_id,
            started_at=datetime.now(timezone.utc),
        )

    def record(self, report: RunReport) -> None:
        self._report = report

    def __enter__(self) -> "JobRunRecorder":
        self._session.add(self._job)
        # Commit initial RUNNING state so we have a durable record even if later work fails
        self._session.commit()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        report = self._report
        if report is not None:
            self._job.fetched_count = report.fetched
            self._job.published_count = report.published
        if exc is not None:
            self._job.status = JobStatus.FAILED
            kind = getattr(exc, "kind", None)
            self._job.error_code = getattr(kind, "value", None) or type(exc).__name__
            self._job.error_message = str(exc)[:512]
        elif report is not None and report.outcome is RunOutcome.NOOP:
            self._job.status = JobStatus.SKIPPED
        else:
            self._job.status = JobStatus.SUCCEEDED
        self._job.finished_at = datetime.now(timezone.utc)
        self._session.add(self._job)
        # Commit final state before outer transaction may roll back
        try:
            self._session.commit()
        except Exception:  # pragma: no cover - do not mask original error
            self._session.rollback()

    @property
    def job(self) -> JobRun:
        return self._job
