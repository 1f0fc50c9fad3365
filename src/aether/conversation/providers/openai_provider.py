"""
OpenAI Chat Completions adapter.

Speaks ``POST /v1/chat/completions`` directly over ``httpx``.  The unified
model was shaped after this protocol, so the translation is close to 1:1:

- roles pass through unchanged;
- ``tool`` messages carry ``tool_call_id`` and ``name``;
- assistant tool calls are ``{"id", "type": "function", "function":
  {"name", "arguments": <JSON string>}}``;
- tools are declared as ``{"type": "function", "function": {...}}`` with
  lower-case JSON-schema types.

Any OpenAI-compatible server (LiteLLM proxy, vLLM, LM Studio, ...) works by
setting ``endpoint`` to its ``/v1`` base URL.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from aether.conversation.errors import (
    EmptyResponseError,
    InvalidCredentialError,
    ProviderDecodingError,
)
from aether.conversation.messages import (
    CompletionResult,
    Message,
    ToolCall,
    ToolSchema,
    arguments_to_json,
    normalize_call_id,
)
from aether.conversation.providers.base import HTTPProvider

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_ENDPOINT = "https://api.openai.com/v1"


class OpenAIProvider(HTTPProvider):
    """Adapter for OpenAI-style chat completion endpoints.

    Attributes:
        api_key: Bearer token sent with every request.
        endpoint: API base URL (``.../v1``) or a full
            ``.../chat/completions`` URL.
    """

    name = "openai"
    default_timeout = 30.0

    def __init__(
        self,
        api_key: str,
        endpoint: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise InvalidCredentialError()
        super().__init__(timeout=timeout, transport=transport)
        self.api_key = api_key
        self.endpoint = (endpoint or DEFAULT_OPENAI_ENDPOINT).rstrip("/")

    @property
    def url(self) -> str:
        if self.endpoint.endswith("/chat/completions"):
            return self.endpoint
        return f"{self.endpoint}/chat/completions"

    async def send(
        self,
        messages: list[Message],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[ToolSchema] | None = None,
    ) -> CompletionResult:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [self._format_message(m) for m in messages],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if tools:
            payload["tools"] = [self._format_tool(t) for t in tools]

        data = await self._post_json(
            self.url,
            payload,
            model=model,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        result = self._parse_response(data)
        logger.debug(
            "openai response: finish_reason=%s, tool_calls=%d",
            result.finish_reason,
            len(result.tool_calls),
        )
        return result

    # ------------------------------------------------------------------
    # Wire translation
    # ------------------------------------------------------------------

    @staticmethod
    def _format_message(message: Message) -> dict[str, Any]:
        entry: dict[str, Any] = {"role": message.role.value}
        # Assistant turns that only call tools still need an explicit null.
        entry["content"] = message.content
        if message.tool_call_id is not None and message.name is not None:
            entry["tool_call_id"] = message.tool_call_id
            entry["name"] = message.name
        if message.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.function_name,
                        "arguments": call.arguments_json,
                    },
                }
                for call in message.tool_calls
            ]
        return entry

    @staticmethod
    def _format_tool(tool: ToolSchema) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.to_json_schema(),
            },
        }

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> CompletionResult:
        choices = data.get("choices")
        if not isinstance(choices, list):
            raise ProviderDecodingError("Failed to decode openai response: missing 'choices'")
        if not choices:
            raise EmptyResponseError("No response choices returned.")

        choice = choices[0]
        message = choice.get("message") if isinstance(choice, dict) else None
        if not isinstance(message, dict):
            raise ProviderDecodingError("Failed to decode openai response: missing 'message'")

        tool_calls: list[ToolCall] = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") if isinstance(raw, dict) else None
            if not isinstance(function, dict) or not function.get("name"):
                raise ProviderDecodingError(
                    "Failed to decode openai response: malformed tool call"
                )
            tool_calls.append(
                ToolCall(
                    id=normalize_call_id(raw.get("id")),
                    function_name=function["name"],
                    arguments_json=arguments_to_json(function.get("arguments")),
                )
            )

        content = message.get("content")
        if not isinstance(content, str) or content == "":
            content = None
        if content is None and not tool_calls:
            raise EmptyResponseError()

        return CompletionResult(
            content=content,
            tool_calls=tool_calls,
            finish_reason=choice.get("finish_reason"),
        )


__all__ = ["DEFAULT_OPENAI_ENDPOINT", "OpenAIProvider"]
