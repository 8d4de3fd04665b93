"""Connector abstraction, errors, and helpers."""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from time import struct_time
from typing import Any, Dict, Iterable, List, Optional

from pipeline.models import RawItem


class ConnectorError(Exception):
    """Base connector error."""


class TransientError(ConnectorError):
    """Retryable error (e.g., rate limit, network hiccup)."""


class PermanentError(ConnectorError):
    """Non-retryable error (e.g., 4xx semantics)."""


def fingerprint(url: str, title: str) -> str:
    """Content-derived id: the same url+title maps to the same id on every run."""
    data = (url.strip() + "\n" + title.strip()).encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def parse_published(value: Any) -> Optional[datetime]:
    """Accept datetime, ISO-8601/RFC-822 strings or ``time.struct_time``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, struct_time):
        dt = datetime(*value[:6], tzinfo=timezone.utc)
    else:
        text = str(value).strip()
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            try:
                dt = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class BaseConnector(ABC):
    """Abstract connector interface with retry and normalization hooks."""

    provider_name: str

    def fetch(
        self,
        since: Optional[datetime] = None,
        *,
        timeout: Optional[float] = None,
        max_attempts: int = 3,
    ) -> List[RawItem]:
        attempts = 0
        last_error: Optional[Exception] = None
        while attempts < max_attempts:
            attempts += 1
            try:
                raw = self._fetch_raw(since, timeout)
                return self._normalize_and_dedupe(raw, since)
            except TransientError as exc:  # retry
                last_error = exc
                if attempts >= max_attempts:
                    raise
            except PermanentError:
                raise
        assert last_error is not None
        raise last_error

    @abstractmethod
    def _fetch_raw(self, since: Optional[datetime], timeout: Optional[float]) -> List[Dict[str, Any]]:
        """Return a list of raw item dicts from the upstream."""

    def _normalize_and_dedupe(self, items: Iterable[Dict[str, Any]], since: Optional[datetime]) -> List[RawItem]:
        seen: set[str] = set()
        normalized: List[RawItem] = []
        now = datetime.now(timezone.utc)
        for entry in items:
            item = self._normalize_item(entry, now)
            if item is None or item.id in seen:
                continue
            if since is not None and item.published_at < since:
                continue
            seen.add(item.id)
            normalized.append(item)
        return normalized

    def _normalize_item(self, entry: Dict[str, Any], collected_at: datetime) -> Optional[RawItem]:
        title = str(entry.get("title") or "").strip()
        description = str(entry.get("description") or entry.get("summary") or entry.get("body") or "").strip()
        url = str(entry.get("url") or entry.get("link") or "").strip()
        if not title or not url:
            return None
        published_at = (
            parse_published(entry.get("published_at"))
            or parse_published(entry.get("publishedAt"))
            or parse_published(entry.get("published_parsed"))
            or parse_published(entry.get("published"))
            or collected_at
        )
        return RawItem(
            id=fingerprint(url, title),
            provider_name=self.provider_name,
            title=title,
            description=description,
            published_at=published_at,
            url=url,
        )
