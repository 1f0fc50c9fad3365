"""
Provider factory: turns configuration into a concrete adapter.

``create_provider`` is the single place that knows which adapter class
serves which ``ProviderType``.  ``create_current_provider`` resolves the
selected provider from an explicit ``LLMSettings`` value; callers re-invoke
it whenever settings change so an adapter is never reused across a
credential change.
"""

from __future__ import annotations

import logging

import httpx

from aether.config import LLMSettings, ProviderConfig, ProviderType
from aether.conversation.errors import InvalidCredentialError
from aether.conversation.providers.base import LLMProvider
from aether.conversation.providers.gemini_provider import GeminiProvider
from aether.conversation.providers.ollama_provider import OllamaProvider
from aether.conversation.providers.openai_provider import OpenAIProvider

logger = logging.getLogger(__name__)


def create_provider(
    provider_type: ProviderType | str,
    config: ProviderConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMProvider:
    """Create the adapter for *provider_type* configured by *config*.

    Args:
        provider_type: Which back end to build.
        config: Credentials, endpoint and timeout for that back end.
        transport: Optional ``httpx`` transport (tests inject a
            ``MockTransport`` here).

    Returns:
        A ready-to-use ``LLMProvider``.

    Raises:
        InvalidCredentialError: If the provider needs an API key and
            *config* has none.
        ValueError: If *provider_type* is not a known provider.
    """
    provider_type = ProviderType(provider_type)

    if provider_type.requires_api_key and not config.has_api_key:
        logger.warning("No API key configured for %s", provider_type.display_name)
        raise InvalidCredentialError(
            f"Please configure your {provider_type.display_name} API key in the settings."
        )

    if provider_type is ProviderType.OPENAI:
        provider: LLMProvider = OpenAIProvider(
            api_key=config.api_key.strip(),
            endpoint=config.endpoint,
            timeout=config.timeout,
            transport=transport,
        )
    elif provider_type is ProviderType.GEMINI:
        provider = GeminiProvider(
            api_key=config.api_key.strip(),
            endpoint=config.endpoint,
            timeout=config.timeout,
            transport=transport,
        )
    else:
        provider = OllamaProvider(
            endpoint=config.endpoint,
            timeout=config.timeout,
            transport=transport,
        )

    logger.debug("Created %s provider (model=%s)", provider_type.display_name, config.model)
    return provider


def resolve_current(llm_settings: LLMSettings) -> tuple[ProviderType, ProviderConfig]:
    """Return the selected provider type and its configuration."""
    return llm_settings.current()


def create_current_provider(
    llm_settings: LLMSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> LLMProvider:
    """Create the adapter for the provider currently selected in *llm_settings*."""
    provider_type, config = resolve_current(llm_settings)
    return create_provider(provider_type, config, transport=transport)


__all__ = ["create_current_provider", "create_provider", "resolve_current"]
