"""LLM provider adapters: one per back end, all behind ``LLMProvider``."""

from aether.conversation.providers.base import HTTPProvider, LLMProvider
from aether.conversation.providers.factory import (
    create_current_provider,
    create_provider,
    resolve_current,
)
from aether.conversation.providers.gemini_provider import GeminiProvider
from aether.conversation.providers.ollama_provider import OllamaProvider
from aether.conversation.providers.openai_provider import OpenAIProvider

__all__ = [
    "GeminiProvider",
    "HTTPProvider",
    "LLMProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "create_current_provider",
    "create_provider",
    "resolve_current",
]
