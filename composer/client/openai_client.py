"""OpenAI 기반 뉴스 작성기(composer).

특징
- 오늘 날짜의 기사만 골라 한 번의 chat completion으로 일괄 처리
- 구조화(JSON) 출력 강제 및 파싱 → ComposedItem 스키마로 검증
- Provider 주입으로 테스트 시 네트워크/실제 의존성 제거
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import ValidationError

from composer.prompts import build_compose_messages
from composer.settings import ComposerSettings, get_composer_settings
from ingestion.utils.logging import get_logger
from pipeline.context import RunContext
from pipeline.models import ComposedItem, RawItem

logger = get_logger(__name__)


class LLMError(Exception):
    """LLM 호출 관련 기본 오류."""


class TransientLLMError(LLMError):
    """일시 오류(재시도 대상)."""


class PermanentLLMError(LLMError):
    """영구 오류(재시도 불가)."""


ProviderFn = Callable[[Dict[str, Any]], Dict[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _load_structured_content(content: str, attempts_left: int) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        if attempts_left > 0:
            raise TransientLLMError("LLM 응답 JSON 파싱 실패") from exc
        raise PermanentLLMError(f"LLM 응답 JSON 파싱 실패: {content[:200]}") from exc


def _parse_composed(data: Any) -> List[ComposedItem]:
    if isinstance(data, dict):
        data = data.get("news")
    if not isinstance(data, list):
        raise PermanentLLMError("LLM 응답에 news 배열이 없습니다.")
    try:
        return [ComposedItem.model_validate(entry) for entry in data]
    except ValidationError as exc:
        raise PermanentLLMError(f"LLM 응답 스키마 불일치: {exc}") from exc


@dataclass(frozen=True)
class OpenAIComposer:
    settings: ComposerSettings
    provider: Optional[ProviderFn] = None
    clock: Callable[[], datetime] = field(default=_utcnow)

    @classmethod
    def from_env(cls, provider: Optional[ProviderFn] = None) -> "OpenAIComposer":
        return cls(get_composer_settings(), provider=provider)

    def _get_provider(self) -> ProviderFn:
        if self.provider is not None:
            return self.provider
        try:
            import openai
        except ImportError as exc:  # pragma: no cover - 테스트에선 provider 주입
            raise PermanentLLMError("openai 라이브러리를 찾을 수 없습니다.") from exc

        client = openai.OpenAI(api_key=self.settings.openai_api_key, max_retries=0)

        def _call(payload: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - 네트워크 미사용
            try:
                resp = client.chat.completions.create(**payload)
            except (openai.APITimeoutError, openai.APIConnectionError, openai.RateLimitError) as exc:
                raise TransientLLMError(f"OpenAI 일시 오류: {exc}") from exc
            except openai.APIError as exc:
                raise PermanentLLMError(f"OpenAI 오류: {exc}") from exc
            if not resp.choices:
                raise PermanentLLMError("OpenAI 응답에 choices가 없습니다.")
            return {
                "choices": [{"message": {"content": resp.choices[0].message.content}}],
                "usage": {
                    "prompt_tokens": getattr(resp.usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(resp.usage, "completion_tokens", 0),
                },
                "model": resp.model,
            }

        return _call

    def todays_news(self, items: Sequence[RawItem]) -> List[RawItem]:
        today = self.clock().astimezone(timezone.utc).date()
        return [it for it in items if it.published_at.astimezone(timezone.utc).date() == today]

    def _build_payload(self, items: Sequence[RawItem], timeout: float) -> Dict[str, Any]:
        return {
            "model": self.settings.compose_model,
            "messages": build_compose_messages(items),
            "temperature": float(self.settings.compose_temperature),
            "max_tokens": int(self.settings.compose_max_tokens),
            "response_format": {"type": "json_object"},
            "timeout": timeout,
        }

    def compose(self, ctx: RunContext, items: Sequence[RawItem]) -> List[ComposedItem]:
        todays = self.todays_news(items)
        if not todays:
            return []

        provider = self._get_provider()
        max_attempts = int(self.settings.compose_retry_max_attempts) + 1
        attempts = 0
        last_exc: Optional[Exception] = None
        while attempts < max_attempts:
            attempts += 1
            payload = self._build_payload(todays, ctx.bounded(self.settings.compose_request_timeout_seconds))
            try:
                resp = provider(payload)
                choices = resp.get("choices") or [{}]
                content = (choices[0].get("message") or {}).get("content") or ""
                data = _load_structured_content(content, max_attempts - attempts)
            except TransientLLMError as exc:
                last_exc = exc
                logger.info("compose.retry", extra={"attempt": attempts, "error": str(exc)})
                continue
            usage = resp.get("usage") or {}
            composed = _parse_composed(data)
            logger.info(
                "compose.done",
                extra={
                    "model": resp.get("model") or self.settings.compose_model,
                    "tokens_prompt": int(usage.get("prompt_tokens", 0)),
                    "tokens_completion": int(usage.get("completion_tokens", 0)),
                    "input": len(todays),
                    "composed": len(composed),
                },
            )
            return composed

        assert last_exc is not None
        raise TransientLLMError(f"LLM 호출 재시도 한도 초과: {last_exc}") from last_exc
