"""Configuration models for the news pipeline service."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, List, Literal, Optional, Set

from pydantic import (
    BaseModel,
    Field,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from pipeline.config import PipelineConfig

DEFAULT_SUSPICIOUS_KEYWORDS: List[str] = [
    "sign up",
    "buy now",
    "climate",
    "activists",
    "activism",
    "advice",
    "covid-19",
    "study",
    "humanitarian",
    "award",
    "research",
    "human rights",
    "united nations",
    "adult content",
    "pornography",
    "porn",
    "sexually",
    "gender",
    "sexuality",
    "class action lawsuit",
    "subscribe",
]


class FeedConfig(BaseModel):
    """One upstream feed belonging to a source."""

    provider_name: str = Field(..., description="표시용 제공자 이름 (예: CNBC).")
    kind: Literal["rss", "news_api"] = Field("rss", description="커넥터 유형.")
    url: Optional[str] = Field(None, description="RSS 피드 URL.")
    query: Optional[str] = Field(None, description="News API 검색어.")

    @field_validator("provider_name")
    @classmethod
    def _strip_provider(cls, value: str) -> str:
        name = value.strip()
        if not name:
            raise ValueError("provider_name은 공백일 수 없습니다.")
        return name

    @model_validator(mode="after")
    def _check_target(self) -> "FeedConfig":
        if self.kind == "rss" and not (self.url or "").strip():
            raise ValueError(f"RSS 피드에는 url이 필요합니다: {self.provider_name}")
        if self.kind == "news_api" and not (self.query or "").strip():
            raise ValueError(f"News API 피드에는 query가 필요합니다: {self.provider_name}")
        return self


class PipelineSchedule(BaseModel):
    """Represents a periodic pipeline run for one source."""

    source: str = Field(..., description="소스 식별자 (스케줄 단위).")
    interval_minutes: PositiveInt = Field(..., description="실행 주기 (분 단위).")
    enabled: bool = Field(True, description="스케줄 사용 여부.")
    lookback_minutes: PositiveInt = Field(60, description="이 시간 이내에 게시된 기사만 수집.")
    feeds: List[FeedConfig] = Field(default_factory=list, description="소스에 속한 피드 목록.")
    filter_keys: List[str] = Field(default_factory=list, description="하나라도 포함해야 하는 키워드 (비어 있으면 필터 없음).")
    omit_suspicious: bool = False
    omit_empty_meta: bool = False
    compose_text: bool = False
    save_to_db: bool = False
    remove_clones: bool = False

    @field_validator("source")
    @classmethod
    def _normalize_source(cls, value: str) -> str:
        source = value.strip()
        if not source:
            raise ValueError("source는 공백일 수 없습니다.")
        return source

    @model_validator(mode="after")
    def _check_pipeline_options(self) -> "PipelineSchedule":
        # PipelineConfigError is a ValueError, so pydantic reports it as a validation error.
        self.to_pipeline_config(datetime.now(timezone.utc))
        return self

    def cutoff(self, now: datetime) -> datetime:
        return now - timedelta(minutes=int(self.lookback_minutes))

    def to_pipeline_config(self, now: datetime) -> PipelineConfig:
        return PipelineConfig(
            fetch_cutoff=self.cutoff(now),
            omit_suspicious=self.omit_suspicious,
            omit_empty_meta=self.omit_empty_meta,
            enable_composition=self.compose_text,
            enable_persistence=self.save_to_db,
            enable_dedupe=self.remove_clones,
        )


class Settings(BaseSettings):
    """파이프라인 환경 설정."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    redis_url: str = Field(..., alias="INGESTION_REDIS_URL", description="Celery 브로커/백엔드 Redis DSN.")
    postgres_dsn: str = Field(..., alias="POSTGRES_DSN", description="PostgreSQL 연결 문자열.")
    telegram_channel_id: Optional[str] = Field(None, alias="TELEGRAM_CHANNEL_ID", description="게시 대상 채널 ID.")
    telegram_bot_token: Optional[SecretStr] = Field(None, alias="TELEGRAM_BOT_TOKEN", description="텔레그램 봇 토큰.")
    telegram_api_base: str = Field(
        "https://api.telegram.org",
        alias="TELEGRAM_API_BASE",
        description="Telegram Bot API 베이스 URL",
    )
    telegram_timeout_seconds: PositiveInt = Field(10, alias="TELEGRAM_TIMEOUT_SECONDS", description="게시 요청 타임아웃(초)")
    news_api_key: Optional[SecretStr] = Field(None, alias="NEWS_API_KEY", description="뉴스 API 인증 키.")
    news_api_endpoint: str = Field(
        "https://newsapi.org/v2/everything",
        alias="NEWS_API_ENDPOINT",
        description="News API 엔드포인트",
    )
    news_api_page_size: PositiveInt = Field(20, alias="NEWS_API_PAGE_SIZE", description="News API 페이지 크기(≤100)")
    news_api_lang: str = Field("en", alias="NEWS_API_LANG", description="News API 언어 필터")
    feed_timeout_seconds: PositiveInt = Field(5, alias="FEED_TIMEOUT_SECONDS", description="피드 HTTP 타임아웃(초)")
    feed_max_attempts: PositiveInt = Field(2, alias="FEED_MAX_ATTEMPTS", description="피드별 최대 시도 횟수")
    suspicious_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SUSPICIOUS_KEYWORDS),
        alias="SUSPICIOUS_KEYWORDS",
        description="의심 기사로 표시할 키워드 (JSON 배열).",
    )
    pipeline_run_timeout_seconds: PositiveInt = Field(
        20,
        alias="PIPELINE_RUN_TIMEOUT_SECONDS",
        description="실행 1회의 전체 시간 예산 (초).",
    )
    structlog_level: str = Field("INFO", alias="STRUCTLOG_LEVEL", description="구조화 로그 레벨.")
    log_json: bool = Field(False, alias="LOG_JSON", description="로그를 JSON 형식으로 출력할지 여부.")
    pipeline_schedules: List[PipelineSchedule] = Field(
        default_factory=list,
        alias="PIPELINE_SCHEDULES",
        description="JSON 배열 형태의 소스별 실행 스케줄.",
    )
    celery_worker_concurrency: PositiveInt = Field(
        4,
        alias="CELERY_WORKER_CONCURRENCY",
        description="Celery 워커 동시 실행 수.",
    )
    celery_task_soft_time_limit: PositiveInt = Field(
        60,
        alias="CELERY_TASK_SOFT_TIME_LIMIT",
        description="Celery 태스크 소프트 타임아웃 (초).",
    )

    @field_validator("pipeline_schedules", "suspicious_keywords", mode="before")
    @classmethod
    def _parse_json_list(cls, value: Any) -> List[Any]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError as exc:
                raise ValueError("JSON 배열이어야 합니다.") from exc
            if not isinstance(parsed, list):
                raise ValueError("JSON 배열이어야 합니다.")
            return parsed
        if isinstance(value, list):
            return value
        raise ValueError("리스트 형태여야 합니다.")

    @field_validator("pipeline_schedules")
    @classmethod
    def _validate_unique_schedule(cls, value: List[PipelineSchedule]) -> List[PipelineSchedule]:
        seen: Set[str] = set()
        for schedule in value:
            if schedule.source in seen:
                raise ValueError(f"중복된 스케줄 항목이 존재합니다: {schedule.source}")
            seen.add(schedule.source)
        return value

    @field_validator("suspicious_keywords")
    @classmethod
    def _lower_keywords(cls, value: List[str]) -> List[str]:
        return [kw.strip().lower() for kw in value if kw and kw.strip()]

    @field_validator("postgres_dsn")
    @classmethod
    def _validate_postgres_dsn(cls, value: str) -> str:
        if "://" not in value:
            raise ValueError("POSTGRES_DSN은 유효한 DSN 문자열이어야 합니다.")
        return value

    @field_validator("news_api_page_size")
    @classmethod
    def _validate_page_size(cls, v: int) -> int:
        if v > 100:
            raise ValueError("NEWS_API_PAGE_SIZE는 100 이하여야 합니다.")
        return v

    def get_schedule(self, source: str) -> PipelineSchedule:
        for schedule in self.pipeline_schedules:
            if schedule.source == source:
                return schedule
        raise KeyError(f"알 수 없는 소스입니다: {source}")


@lru_cache()
def get_settings() -> Settings:
    """환경 변수를 기준으로 Settings 인스턴스를 반환한다."""
    try:
        return Settings()
    except ValidationError as exc:
        raise RuntimeError(f"환경 변수 검증에 실패했습니다: {exc}") from exc


def reset_settings_cache() -> None:
    """Settings LRU 캐시를 초기화한다 (테스트 용도)."""
    get_settings.cache_clear()  # type: ignore[attr-defined]
