"""LLM provider abstraction module."""

from supportbot.providers.base import LLMProvider, LLMResponse
from supportbot.providers.litellm_provider import LiteLLMProvider, ModelHealth

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "ModelHealth",
]
