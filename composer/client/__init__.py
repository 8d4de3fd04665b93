"""LLM client module."""

from composer.client.openai_client import (
    LLMError,
    OpenAIComposer,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)

__all__ = [
    "LLMError",
    "OpenAIComposer",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
]
