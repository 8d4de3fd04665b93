"""Collaborator contracts consumed by the pipeline controller."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from pipeline.context import RunContext
from pipeline.models import ComposedItem, FetchResult, PersistedRecord, RawItem


@runtime_checkable
class NewsSource(Protocol):
    name: str

    def fetch_latest(self, ctx: RunContext, cutoff: datetime) -> FetchResult: ...


@runtime_checkable
class Composer(Protocol):
    def compose(self, ctx: RunContext, items: Sequence[RawItem]) -> List[ComposedItem]: ...


@runtime_checkable
class NewsRepository(Protocol):
    def find_existing_hashes(self, ctx: RunContext, hashes: Iterable[str]) -> set[str]: ...

    def create(self, ctx: RunContext, record: PersistedRecord) -> None: ...

    def update(self, ctx: RunContext, record: PersistedRecord) -> None: ...


@runtime_checkable
class Publisher(Protocol):
    channel_id: str

    def publish(self, ctx: RunContext, text: str) -> str: ...


class RunObserver(Protocol):
    """Span/breadcrumb sink. Implementations may be no-ops."""

    def start_span(self, name: str, **tags: Any) -> Any: ...

    def finish_span(self, span: Any, error: Optional[BaseException] = None) -> None: ...

    def breadcrumb(self, message: str, **data: Any) -> None: ...

    def capture_exception(self, exc: BaseException) -> None: ...
