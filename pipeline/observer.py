"""Run observers: logging-backed spans/breadcrumbs and a failure-proof wrapper."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pipeline.ports import RunObserver


class NullObserver:
    def start_span(self, name: str, **tags: Any) -> Any:
        return None

    def finish_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        return None

    def breadcrumb(self, message: str, **data: Any) -> None:
        return None

    def capture_exception(self, exc: BaseException) -> None:
        return None


@dataclass
class _Span:
    name: str
    tags: Dict[str, Any]
    started: float = field(default_factory=time.monotonic)


class LoggingObserver:
    """Emit spans and breadcrumbs as structured log records."""

    def __init__(self, trace_id: str | None = None, logger: logging.Logger | None = None) -> None:
        self._trace_id = trace_id
        self._logger = logger or logging.getLogger("pipeline.trace")

    def _extra(self, **data: Any) -> Dict[str, Any]:
        extra = {"trace_id": self._trace_id} if self._trace_id else {}
        extra.update(data)
        return extra

    def start_span(self, name: str, **tags: Any) -> _Span:
        return _Span(name=name, tags=dict(tags))

    def finish_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        if not isinstance(span, _Span):
            return
        elapsed_ms = round((time.monotonic() - span.started) * 1000, 1)
        self._logger.debug(
            "span.finish",
            extra=self._extra(span=span.name, elapsed_ms=elapsed_ms, ok=error is None, **span.tags),
        )

    def breadcrumb(self, message: str, **data: Any) -> None:
        self._logger.info(message, extra=self._extra(**data))

    def capture_exception(self, exc: BaseException) -> None:
        self._logger.error(
            "exception.captured",
            extra=self._extra(error=str(exc), error_type=type(exc).__name__),
        )


class SafeObserver:
    """Wraps another observer so its failures never reach the pipeline."""

    def __init__(self, inner: RunObserver) -> None:
        self._inner = inner
        self._logger = logging.getLogger(__name__)

    def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return getattr(self._inner, method)(*args, **kwargs)
        except Exception:
            self._logger.warning("observer.failed", extra={"method": method}, exc_info=True)
            return None

    def start_span(self, name: str, **tags: Any) -> Any:
        return self._call("start_span", name, **tags)

    def finish_span(self, span: Any, error: Optional[BaseException] = None) -> None:
        self._call("finish_span", span, error)

    def breadcrumb(self, message: str, **data: Any) -> None:
        self._call("breadcrumb", message, **data)

    def capture_exception(self, exc: BaseException) -> None:
        self._call("capture_exception", exc)
