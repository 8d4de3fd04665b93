"""News API connector (provider-injected for tests/offline)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import httpx

from ingestion.settings import get_settings

from .base import BaseConnector, PermanentError, TransientError


ProviderFn = Callable[[str, Optional[datetime]], List[Dict[str, Any]]]


class NewsAPIConnector(BaseConnector):
    """Connector for NewsAPI-like sources.

    - provider 주입 시: 오프라인 모드
    - provider 미주입 시: 실제 HTTP 호출 (``from`` 파라미터로 cutoff 전달)
    """

    def __init__(self, provider_name: str, query: str, provider: Optional[ProviderFn] = None):
        self.provider_name = provider_name
        self.query = query
        self._provider = provider

    def _fetch_raw(self, since: Optional[datetime], timeout: Optional[float]):
        if self._provider is not None:
            return self._provider(self.query, since)

        cfg = get_settings()
        if not cfg.news_api_key:
            raise PermanentError("NEWS_API_KEY가 설정되지 않았습니다.")

        headers = {"X-Api-Key": cfg.news_api_key.get_secret_value()}
        params: Dict[str, Any] = {
            "q": self.query,
            "language": cfg.news_api_lang,
            "pageSize": int(cfg.news_api_page_size),
            "sortBy": "publishedAt",
        }
        if since is not None:
            params["from"] = since.isoformat(timespec="seconds")

        try:
            resp = httpx.get(
                cfg.news_api_endpoint,
                headers=headers,
                params=params,
                timeout=timeout or float(cfg.feed_timeout_seconds),
            )
        except httpx.TimeoutException as exc:
            raise TransientError("NewsAPI 타임아웃") from exc
        except httpx.HTTPError as exc:
            raise TransientError("NewsAPI 호출 오류") from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientError(f"NewsAPI 일시 오류: {resp.status_code}")
        if resp.status_code >= 400:
            raise PermanentError(f"NewsAPI 오류: {resp.status_code}")

        articles: List[Dict[str, Any]] = []
        for it in resp.json().get("articles") or []:
            articles.append(
                {
                    "title": it.get("title"),
                    "description": it.get("description"),
                    "url": it.get("url"),
                    "publishedAt": it.get("publishedAt"),
                }
            )
        return articles
