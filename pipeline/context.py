"""Cancellable, deadline-bounded context handed to every collaborator call."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from pipeline.errors import RunCancelledError, RunTimeoutError

DEFAULT_RUN_TIMEOUT_SECONDS = 20.0


@dataclass
class RunContext:
    """Deadline + cancellation flag for a single run.

    Collaborators call :meth:`check` before doing work and use :meth:`bounded`
    to cap their own network timeouts by the time left in the run.
    """

    deadline: Optional[float] = None
    clock: Callable[[], float] = time.monotonic
    _cancel_event: threading.Event = field(default_factory=threading.Event, repr=False)

    @classmethod
    def with_timeout(cls, seconds: float, *, clock: Callable[[], float] = time.monotonic) -> "RunContext":
        if seconds <= 0:
            raise ValueError("timeout must be positive")
        return cls(deadline=clock() + float(seconds), clock=clock)

    def cancel(self) -> None:
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self.clock() >= self.deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline (``None`` when unbounded)."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock())

    def check(self) -> None:
        if self.cancelled:
            raise RunCancelledError("run was cancelled")
        if self.expired:
            raise RunTimeoutError("run timeout exceeded")

    def bounded(self, timeout: float) -> float:
        """Return ``timeout`` capped by the remaining run budget."""
        self.check()
        left = self.remaining()
        if left is None:
            return float(timeout)
        return min(float(timeout), left)
