"""Settings for the composition (OpenAI LLM) collaborator."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, NonNegativeInt, PositiveFloat, PositiveInt, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ComposerSettings(BaseSettings):
    """Environment-driven configuration for the compose stage."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    openai_api_key: str = Field(..., alias="OPENAI_API_KEY", description="OpenAI API key")
    compose_model: str = Field("gpt-4o-mini", alias="COMPOSE_MODEL", description="OpenAI model name")
    compose_max_tokens: PositiveInt = Field(2048, alias="COMPOSE_MAX_TOKENS", description="Max completion tokens")
    compose_temperature: PositiveFloat = Field(1.0, alias="COMPOSE_TEMPERATURE", description="Sampling temperature")
    compose_request_timeout_seconds: PositiveInt = Field(
        15,
        alias="COMPOSE_REQUEST_TIMEOUT_SECONDS",
        description="HTTP request timeout in seconds",
    )
    compose_retry_max_attempts: NonNegativeInt = Field(
        1,
        alias="COMPOSE_RETRY_MAX_ATTEMPTS",
        description="Extra attempts after a malformed response",
    )

    @field_validator("openai_api_key")
    @classmethod
    def _non_empty_api_key(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("OPENAI_API_KEY는 공백일 수 없습니다.")
        return s


@lru_cache()
def get_composer_settings() -> ComposerSettings:
    try:
        return ComposerSettings()
    except ValidationError as exc:
        raise RuntimeError(f"작성기 설정 검증 실패: {exc}") from exc


def reset_composer_settings_cache() -> None:
    get_composer_settings.cache_clear()  # type: ignore[attr-defined]
