from __future__ import annotations

import pytest
from pydantic import ValidationError

from pipeline.models import ComposedItem, NewsMeta, PersistedRecord, RawItem
from pipeline_fakes import NOW, make_item


def test_raw_item_requires_id():
    with pytest.raises(ValidationError):
        RawItem(id="", provider_name="p", title="t", published_at=NOW, url="https://x")


def test_raw_item_is_frozen():
    item = make_item("A")
    with pytest.raises(ValidationError):
        item.title = "changed"  # type: ignore[misc]


def test_composed_item_cleans_tags():
    composed = ComposedItem(
        id="x",
        tickers=[" AAPL", "aapl", "", "MSFT"],
        markets=None,
        hashtags=["#Fed", "#fed", "#rates"],
    )
    assert composed.tickers == ["AAPL", "MSFT"]
    assert composed.markets == []
    assert composed.hashtags == ["#Fed", "#rates"]


def test_news_meta_json_roundtrip_and_empty():
    meta = NewsMeta(tickers=["AAPL"], hashtags=["#애플"])
    assert not meta.is_empty()
    assert "#애플" in meta.to_json()
    assert NewsMeta.from_json(meta.to_json()) == meta
    assert NewsMeta.from_json(None).is_empty()
    assert NewsMeta.from_json("").is_empty()


def test_persisted_record_from_item_copies_raw_fields():
    item = make_item("A", suspicious=True)
    record = PersistedRecord.from_item(item, "@chan", ComposedItem(id=item.id, text="body", markets=["FX"]))

    assert record.hash == item.id
    assert record.original_title == item.title
    assert record.original_description == item.description
    assert record.is_suspicious is True
    assert record.composed_text == "body"
    assert record.meta == NewsMeta(markets=["FX"])
    assert not record.is_published

    record.publication_id = "42"
    assert record.is_published
