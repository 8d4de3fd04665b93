"""RSS connector (fetcher-injected for tests/offline)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import feedparser
import httpx

from .base import BaseConnector, PermanentError, TransientError


FetcherFn = Callable[[Optional[datetime]], List[Dict[str, Any]]]

DEFAULT_TIMEOUT_SECONDS = 5.0


def _entry_to_dict(entry: Any) -> Dict[str, Any]:
    return {
        "title": entry.get("title"),
        "summary": entry.get("summary") or entry.get("description"),
        "link": entry.get("link"),
        "published_parsed": entry.get("published_parsed") or entry.get("updated_parsed"),
        "published": entry.get("published") or entry.get("updated"),
    }


class RSSConnector(BaseConnector):
    """Connector that downloads an RSS/Atom feed and normalizes its entries.

    - fetcher 주입 시: 오프라인 모드 (raw entry dict 목록 반환)
    - fetcher 미주입 시: httpx로 피드를 받아 feedparser로 파싱
    """

    def __init__(self, provider_name: str, url: str, fetcher: Optional[FetcherFn] = None):
        self.provider_name = provider_name
        self.url = url
        self._fetcher = fetcher

    def _fetch_raw(self, since: Optional[datetime], timeout: Optional[float]):
        if self._fetcher is not None:
            return self._fetcher(since)

        try:
            resp = httpx.get(
                self.url,
                timeout=timeout or DEFAULT_TIMEOUT_SECONDS,
                follow_redirects=True,
                headers={"User-Agent": "finthread/0.1 (+rss)"},
            )
        except httpx.TimeoutException as exc:
            raise TransientError(f"RSS 타임아웃: {self.provider_name}") from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"RSS 호출 오류: {self.provider_name}") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(f"RSS 일시 오류: {resp.status_code}")
        if resp.status_code >= 400:
            raise PermanentError(f"RSS 오류: {resp.status_code}")

        feed = feedparser.parse(resp.content)
        if feed.bozo and not feed.entries:
            raise PermanentError(f"RSS 파싱 실패: {self.provider_name}")
        return [_entry_to_dict(entry) for entry in feed.entries]
