"""Convenience exports for devassist text generation clients."""

from .llm_client import (
    GenerationRequest,
    ProviderConfigurationError,
    ProviderError,
    ProviderResponseError,
    ProviderTransportError,
    TextGenerator,
)
from .openai_chat import ChatCompletionsClient

__all__ = [
    "ChatCompletionsClient",
    "GenerationRequest",
    "ProviderConfigurationError",
    "ProviderError",
    "ProviderResponseError",
    "ProviderTransportError",
    "TextGenerator",
]
