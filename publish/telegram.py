"""Telegram channel publisher (Bot API ``sendMessage``)."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from ingestion.settings import Settings, get_settings
from ingestion.utils.logging import get_logger
from pipeline.context import RunContext

logger = get_logger(__name__)

TELEGRAM_MAX_MESSAGE_CHARS = 4096


class PublishError(Exception):
    """Message could not be delivered to the channel."""


def _truncate(value: str, length: int) -> str:
    if len(value) <= length:
        return value
    return value[: length - 1].rstrip() + "…"


class TelegramPublisher:
    """Posts plain-text messages to one channel and returns the message id."""

    def __init__(
        self,
        channel_id: str,
        bot_token: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout_seconds: float = 10.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not channel_id:
            raise ValueError("channel_id is required")
        if not bot_token:
            raise ValueError("bot_token is required")
        self.channel_id = channel_id
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._timeout = float(timeout_seconds)
        self._client = client or httpx.Client()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TelegramPublisher":
        cfg = settings or get_settings()
        if not cfg.telegram_channel_id or not cfg.telegram_bot_token:
            raise RuntimeError("TELEGRAM_CHANNEL_ID/TELEGRAM_BOT_TOKEN이 설정되지 않았습니다.")
        return cls(
            cfg.telegram_channel_id,
            cfg.telegram_bot_token.get_secret_value(),
            api_base=cfg.telegram_api_base,
            timeout_seconds=float(cfg.telegram_timeout_seconds),
        )

    @property
    def _send_url(self) -> str:
        return f"{self._api_base}/bot{self._bot_token}/sendMessage"

    def publish(self, ctx: RunContext, text: str) -> str:
        payload: Dict[str, Any] = {
            "chat_id": self.channel_id,
            "text": _truncate(text, TELEGRAM_MAX_MESSAGE_CHARS),
            "disable_web_page_preview": True,
        }
        timeout = ctx.bounded(self._timeout)
        try:
            resp = self._client.post(self._send_url, json=payload, timeout=timeout)
        except httpx.HTTPError as exc:
            # the token is part of the URL; keep it out of the message
            raise PublishError(f"Telegram 호출 오류: {type(exc).__name__}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400 or not body.get("ok"):
            description = body.get("description") or resp.reason_phrase
            raise PublishError(f"Telegram 오류: {resp.status_code} {description}")

        message_id = (body.get("result") or {}).get("message_id")
        if message_id is None:
            raise PublishError("Telegram 응답에 message_id가 없습니다.")
        logger.debug("publish.sent", extra={"channel_id": self.channel_id, "message_id": message_id})
        return str(message_id)
