"""Error types raised by the pipeline core."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    FETCH_FAILED = "fetch_failed"
    DEDUPE_FAILED = "dedupe_failed"
    COMPOSE_FAILED = "compose_failed"
    PERSIST_FAILED = "persist_failed"
    PUBLISH_FAILED = "publish_failed"
    UPDATE_FAILED = "update_failed"
    CONSISTENCY_VIOLATION = "consistency_violation"


class PipelineConfigError(ValueError):
    """Inconsistent combination of pipeline options."""


class RunCancelledError(Exception):
    """The run was cancelled before it could finish."""


class RunTimeoutError(RunCancelledError):
    """The run exhausted its wall-clock budget."""


class StageError(Exception):
    """Fatal failure of one pipeline stage.

    ``kind`` lets callers branch without parsing the message; ``cause`` keeps
    the collaborator exception for diagnostics (also chained as ``__cause__``).
    """

    def __init__(
        self,
        kind: ErrorKind,
        stage: str,
        cause: BaseException | None = None,
        message: str | None = None,
        *,
        completed: int = 0,
    ) -> None:
        self.kind = kind
        self.stage = stage
        self.cause = cause
        # items the stage finished before failing (records saved, messages sent)
        self.completed = completed
        detail = message or (str(cause) if cause is not None else kind.value)
        super().__init__(f"[{stage}] {kind.value}: {detail}")
        if cause is not None:
            self.__cause__ = cause

    @property
    def cancelled(self) -> bool:
        return isinstance(self.cause, RunCancelledError)
