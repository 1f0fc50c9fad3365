"""
AIService: the orchestration layer between the agent loop and an adapter.

The service wraps exactly one provider adapter plus its static
``ProviderConfig`` and exposes two calls:

- ``complete_with_tools``: the agent loop's main call.
- ``complete``: tools forced absent, for sub-tasks (summaries, the
  tool-incapable fallback) that must not recurse into tool calling.

It never retries.  A ``ToolsNotSupportedError`` is surfaced unchanged so the
agent loop can run its single fallback call and keep the step bound in one
place.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass

import httpx

from aether.config import LLMSettings, ProviderConfig, ProviderType
from aether.conversation.errors import ProviderError
from aether.conversation.messages import CompletionResult, Message, Role, ToolSchema
from aether.conversation.providers.base import LLMProvider
from aether.conversation.providers.factory import create_provider

logger = logging.getLogger(__name__)

_SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes conversations. "
    "You MUST respond with raw JSON only."
)

_SUMMARY_PROMPT = """\
Analyze the following conversation and provide a short, descriptive title \
(max 6 words) and a concise summary (max 2 sentences).

Conversation:
{conversation}

CRITICAL INSTRUCTION: Output ONLY valid JSON. Do not include any markdown \
formatting. Do not include any other text.

Output format:
{{
    "title": "Your Title Here",
    "summary": "Your summary here."
}}"""

_TITLE_RE = re.compile(r'"title"\s*:\s*"(.*?)"', re.DOTALL)
_SUMMARY_RE = re.compile(r'"summary"\s*:\s*"(.*?)"', re.DOTALL)


@dataclass(frozen=True)
class ConversationSummary:
    """Title and short summary generated for a conversation."""

    title: str
    summary: str


class AIService:
    """Stateless orchestration over one provider adapter.

    Attributes:
        provider_type: The back end currently in use.
        config: Its static configuration (model, sampling, credentials).
        provider: The adapter instance.
    """

    def __init__(
        self,
        provider_type: ProviderType | str,
        config: ProviderConfig,
        *,
        provider: LLMProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialise the service.

        Args:
            provider_type: Which back end to use.
            config: Configuration for that back end.
            provider: Pre-built adapter; built from *config* when omitted.
            transport: ``httpx`` transport handed to the factory (tests).

        Raises:
            InvalidCredentialError: If a required API key is missing.
        """
        self.provider_type = ProviderType(provider_type)
        self.config = config
        self._transport = transport
        self.provider = provider or create_provider(
            self.provider_type, config, transport=transport
        )

    @classmethod
    def from_settings(
        cls,
        llm_settings: LLMSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> AIService:
        """Build a service for the provider selected in *llm_settings*."""
        provider_type, config = llm_settings.current()
        return cls(provider_type, config, transport=transport)

    def reload(self, llm_settings: LLMSettings) -> None:
        """Rebuild the adapter from *llm_settings*.

        The previous adapter is only replaced once the new one has been
        created, so a failed reload leaves the service usable.

        Raises:
            InvalidCredentialError: If the newly selected provider needs an
                API key that is not configured.
        """
        provider_type, config = llm_settings.current()
        provider = create_provider(provider_type, config, transport=self._transport)
        self.provider_type = provider_type
        self.config = config
        self.provider = provider
        logger.info(
            "Reloaded provider: %s (model=%s)", provider_type.display_name, config.model
        )

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------

    async def complete_with_tools(
        self,
        messages: list[Message],
        tools: list[ToolSchema] | None,
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        """Send *messages* with the *tools* catalogue attached.

        ``None`` overrides fall back to the configured values.

        Raises:
            ProviderError: Whatever the adapter raised, unchanged.
        """
        return await self._send(messages, tools or None, model, temperature, max_tokens)

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> CompletionResult:
        """Send *messages* with no tools attached."""
        return await self._send(messages, None, model, temperature, max_tokens)

    async def _send(
        self,
        messages: list[Message],
        tools: list[ToolSchema] | None,
        model: str | None,
        temperature: float | None,
        max_tokens: int | None,
    ) -> CompletionResult:
        model_name = model or self.config.model
        t0 = time.monotonic()
        try:
            result = await self.provider.send(
                list(messages),
                model=model_name,
                temperature=temperature if temperature is not None else self.config.temperature,
                max_tokens=max_tokens if max_tokens is not None else self.config.max_tokens,
                tools=tools,
            )
        except ProviderError as exc:
            logger.warning(
                "%s call failed after %.3fs (%s): %s",
                self.provider_type.display_name,
                time.monotonic() - t0,
                exc.kind.value,
                exc,
            )
            raise
        logger.debug(
            "%s call took %.3fs (model=%s, tools=%d, tool_calls=%d)",
            self.provider_type.display_name,
            time.monotonic() - t0,
            model_name,
            len(tools or []),
            len(result.tool_calls),
        )
        return result

    # ------------------------------------------------------------------
    # Sub-tasks
    # ------------------------------------------------------------------

    async def generate_title_and_summary(self, messages: list[Message]) -> ConversationSummary:
        """Ask the model for a short title and summary of *messages*.

        Never raises for provider failures; a placeholder summary is
        returned instead.
        """
        lines = [
            f"{m.role.value.capitalize()}: {m.content}"
            for m in messages
            if m.role is not Role.SYSTEM and m.role is not Role.TOOL and m.content
        ]
        if not lines:
            return ConversationSummary("New Conversation", "No content to summarize.")

        prompt = [
            Message.system(_SUMMARY_SYSTEM_PROMPT),
            Message.user(_SUMMARY_PROMPT.format(conversation="\n".join(lines))),
        ]
        try:
            result = await self.complete(prompt, temperature=0.7, max_tokens=200)
        except ProviderError as exc:
            logger.error("Error generating title and summary: %s", exc)
            return ConversationSummary("New Conversation", "Summary unavailable.")

        return parse_summary(result.content or "")


def parse_summary(content: str) -> ConversationSummary:
    """Extract a title and summary from a model reply.

    Tries the outermost ``{...}`` span as JSON first, then falls back to
    pulling the two fields out with regular expressions.
    """
    start, end = content.find("{"), content.rfind("}")
    if start != -1 and end > start:
        try:
            data = json.loads(content[start : end + 1])
        except json.JSONDecodeError:
            data = None
        if (
            isinstance(data, dict)
            and isinstance(data.get("title"), str)
            and isinstance(data.get("summary"), str)
        ):
            return ConversationSummary(data["title"], data["summary"])

    logger.debug("Summary JSON parsing failed; trying regex extraction on %r", content)
    title_match = _TITLE_RE.search(content)
    summary_match = _SUMMARY_RE.search(content)
    title = title_match.group(1) if title_match else "Conversation"
    summary = summary_match.group(1) if summary_match else content[:100] + "..."
    return ConversationSummary(title, summary)


__all__ = ["AIService", "ConversationSummary", "parse_summary"]
