"""Value records passed between pipeline stages."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _clean_tags(values: List[str]) -> List[str]:
    cleaned: List[str] = []
    seen: set[str] = set()
    for value in values:
        s = (value or "").strip()
        if not s or s.lower() in seen:
            continue
        cleaned.append(s)
        seen.add(s.lower())
    return cleaned


class RawItem(BaseModel):
    """One news item as reported by a source."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="콘텐츠 기반 지문(실행 간 동일)")
    provider_name: str
    title: str
    description: str = ""
    published_at: datetime
    url: str
    is_suspicious: bool = False


class ComposedItem(BaseModel):
    """Generated commentary and tags for one RawItem."""

    id: str = Field(..., min_length=1)
    text: str = ""
    tickers: List[str] = Field(default_factory=list)
    markets: List[str] = Field(default_factory=list)
    hashtags: List[str] = Field(default_factory=list)

    @field_validator("tickers", "markets", "hashtags", mode="before")
    @classmethod
    def _none_to_empty(cls, v):  # noqa: ANN001
        return [] if v is None else v

    @field_validator("tickers", "markets", "hashtags")
    @classmethod
    def _dedupe_tags(cls, v: List[str]) -> List[str]:
        return _clean_tags(v)

    def meta(self) -> "NewsMeta":
        return NewsMeta(tickers=list(self.tickers), markets=list(self.markets), hashtags=list(self.hashtags))


class NewsMeta(BaseModel):
    """Structured tags stored alongside a record."""

    tickers: List[str] = Field(default_factory=list)
    markets: List[str] = Field(default_factory=list)
    hashtags: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.tickers or self.markets or self.hashtags)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str | bytes | None) -> "NewsMeta":
        if not raw:
            return cls()
        return cls.model_validate_json(raw)


class PersistedRecord(BaseModel):
    """Durable form of a fetched item plus enrichment and publication outcome."""

    hash: str
    channel_id: str
    provider_name: str
    original_title: str
    original_description: str = ""
    original_date: datetime
    url: str
    is_suspicious: bool = False
    composed_text: Optional[str] = None
    meta: Optional[NewsMeta] = None
    publication_id: Optional[str] = None
    published_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item: RawItem, channel_id: str, composed: ComposedItem | None = None) -> "PersistedRecord":
        record = cls(
            hash=item.id,
            channel_id=channel_id,
            provider_name=item.provider_name,
            original_title=item.title,
            original_description=item.description,
            original_date=item.published_at,
            url=item.url,
            is_suspicious=item.is_suspicious,
        )
        if composed is not None:
            record.composed_text = composed.text
            record.meta = composed.meta()
        return record

    @property
    def is_published(self) -> bool:
        return self.publication_id is not None


@dataclass
class FetchResult:
    """Items from a source plus a non-fatal error, if any feed failed."""

    items: List[RawItem] = field(default_factory=list)
    error: Optional[Exception] = None


@dataclass
class RunData:
    """Per-run carrier threading stage outputs through the controller."""

    items: List[RawItem] = field(default_factory=list)
    composed: List[ComposedItem] = field(default_factory=list)
    records: List[PersistedRecord] = field(default_factory=list)
