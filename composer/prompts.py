"""프롬프트 템플릿/빌더.

뉴스 묶음을 LLM에 넘겨 기사별 코멘트와 태그를 JSON으로 받도록 요청한다.
"""

from __future__ import annotations

import json
from typing import List, Sequence

from pipeline.models import RawItem


JSON_SCHEMA_SNIPPET = (
    '{"news": array<object> where object = {'
    '"id": string (copy from input), '
    '"text": string (<=500 chars), '
    '"tickers": array<string> (stock tickers mentioned or affected, e.g. "AAPL"), '
    '"markets": array<string> (e.g. "US stocks", "bonds", "commodities", "housing"), '
    '"hashtags": array<string> (e.g. "#inflation", "#fed", "#buybacks")'
    "}}"
)

COMPOSE_SYSTEM_PROMPT = (
    "You are a financial news editor for a short-form news channel.\n"
    "You receive a JSON array of news items, each with an id, title and description.\n"
    "For every item that matters to investors, write a short neutral summary (text) "
    "and list related tickers, markets and hashtags.\n\n"
    "Rules:\n"
    "1) Output JSON ONLY (no prose, no code fences). Schema: "
    f"{JSON_SCHEMA_SNIPPET}.\n"
    "2) Use each input id at most once and never invent ids.\n"
    "3) Skip items that are irrelevant to markets instead of padding the output.\n"
    "4) Only state facts present in the input; no investment advice.\n"
    "5) Use empty arrays when no ticker, market or hashtag applies.\n"
)

_MAX_DESCRIPTION_CHARS = 1000


def news_to_content_json(items: Sequence[RawItem]) -> str:
    """Serialize the fields the model needs (id, title, description)."""
    payload = [
        {
            "id": item.id,
            "title": item.title,
            "description": item.description[:_MAX_DESCRIPTION_CHARS],
        }
        for item in items
    ]
    return json.dumps(payload, ensure_ascii=False)


def build_compose_messages(items: Sequence[RawItem]) -> List[dict]:
    return [
        {"role": "system", "content": COMPOSE_SYSTEM_PROMPT},
        {"role": "user", "content": news_to_content_json(items)},
    ]
