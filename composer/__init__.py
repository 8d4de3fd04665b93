"""Composer module - OpenAI news enrichment and settings."""

from composer.client.openai_client import (
    LLMError,
    OpenAIComposer,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)
from composer.settings import ComposerSettings, get_composer_settings, reset_composer_settings_cache

__all__ = [
    "LLMError",
    "OpenAIComposer",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
    "ComposerSettings",
    "get_composer_settings",
    "reset_composer_settings_cache",
]
