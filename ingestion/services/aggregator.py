"""Source collaborator: fan a schedule's feeds into one batch of RawItems."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Sequence

from ingestion.connectors.base import BaseConnector, ConnectorError
from ingestion.utils.logging import get_logger
from pipeline.context import RunContext
from pipeline.models import FetchResult, RawItem

logger = get_logger(__name__)


class FetchError(Exception):
    """One or more feeds failed; the other feeds' items are still returned."""

    def __init__(self, failures: Sequence[tuple[str, Exception]]) -> None:
        self.failures = list(failures)
        names = ", ".join(f"{name}: {exc}" for name, exc in self.failures)
        super().__init__(f"{len(self.failures)} feed(s) failed ({names})")


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(kw in text for kw in keywords)


class FeedAggregator:
    """Queries each connector in turn and merges their items.

    - feed별 실패는 모아서 ``FetchResult.error``로 반환 (실행은 계속)
    - 여러 feed에 같은 기사가 있으면 첫 번째만 유지
    - ``filter_keys``가 있으면 그중 하나도 언급하지 않는 기사는 제외
    - ``suspicious_keywords``가 포함된 기사는 ``is_suspicious``로 표시
    """

    def __init__(
        self,
        name: str,
        connectors: Sequence[BaseConnector],
        *,
        suspicious_keywords: Sequence[str] = (),
        filter_keys: Sequence[str] = (),
        timeout_seconds: float = 5.0,
        max_attempts: int = 2,
    ) -> None:
        self.name = name
        self.connectors = list(connectors)
        self.suspicious_keywords = [kw.lower() for kw in suspicious_keywords if kw]
        self.filter_keys = [key.lower() for key in filter_keys if key]
        self.timeout_seconds = float(timeout_seconds)
        self.max_attempts = int(max_attempts)

    def fetch_latest(self, ctx: RunContext, cutoff: datetime) -> FetchResult:
        items: List[RawItem] = []
        failures: List[tuple[str, Exception]] = []
        seen: set[str] = set()
        for connector in self.connectors:
            timeout = ctx.bounded(self.timeout_seconds)
            try:
                fetched = connector.fetch(cutoff, timeout=timeout, max_attempts=self.max_attempts)
            except ConnectorError as exc:
                logger.info(
                    "aggregator.feed_failed",
                    extra={"source": self.name, "provider": connector.provider_name, "error": str(exc)},
                )
                failures.append((connector.provider_name, exc))
                continue
            for item in fetched:
                if item.id in seen:
                    continue
                seen.add(item.id)
                items.append(item)

        kept = [self._flag(item) for item in items if self._passes_filter(item)]
        logger.info(
            "aggregator.fetched",
            extra={"source": self.name, "fetched": len(items), "kept": len(kept), "failed_feeds": len(failures)},
        )
        return FetchResult(items=kept, error=FetchError(failures) if failures else None)

    def _passes_filter(self, item: RawItem) -> bool:
        if not self.filter_keys:
            return True
        return _contains_any(f"{item.title}\n{item.description}".lower(), self.filter_keys)

    def _flag(self, item: RawItem) -> RawItem:
        if not self.suspicious_keywords:
            return item
        text = f"{item.title}\n{item.description}".lower()
        if _contains_any(text, self.suspicious_keywords):
            return item.model_copy(update={"is_suspicious": True})
        return item
