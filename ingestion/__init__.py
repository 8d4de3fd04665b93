"""News ingestion, persistence and scheduling for the pipeline."""

from .celery_app import create_celery_app, get_celery_app  # noqa: F401
from .settings import FeedConfig, PipelineSchedule, Settings, get_settings, reset_settings_cache  # noqa: F401

__all__ = [
    "FeedConfig",
    "PipelineSchedule",
    "Settings",
    "create_celery_app",
    "get_celery_app",
    "get_settings",
    "reset_settings_cache",
]
