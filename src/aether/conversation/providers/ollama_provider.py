"""
Ollama native ``/api/chat`` adapter.

Ollama runs locally, needs no credential, and can take a while to load a
model on the first request, hence the longer default timeout.

Differences from the OpenAI shape:

- ``content`` must always be a string.
- Tool call ``arguments`` are JSON *objects* in both directions, so they are
  parsed on the way out and re-serialised on the way in.
- Tool result messages name the tool via ``tool_name``.
- Sampling settings live under ``options`` (``num_predict`` is the token cap).
- Errors come back as ``{"error": "<text>"}``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from aether.conversation.errors import (
    EmptyResponseError,
    ModelNotFoundError,
    ProviderDecodingError,
    ProviderError,
)
from aether.conversation.messages import (
    CompletionResult,
    Message,
    Role,
    ToolArgumentsError,
    ToolCall,
    ToolSchema,
    arguments_to_json,
    loads_json_object,
    normalize_call_id,
)
from aether.conversation.providers.base import HTTPProvider, mentions_tools_unsupported

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_ENDPOINT = "http://localhost:11434"


class OllamaProvider(HTTPProvider):
    """Adapter for a local or remote Ollama server.

    Attributes:
        endpoint: Server base URL, e.g. ``http://localhost:11434``.
    """

    name = "ollama"
    default_timeout = 60.0

    def __init__(
        self,
        endpoint: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self.endpoint = (endpoint or DEFAULT_OLLAMA_ENDPOINT).rstrip("/")

    @property
    def url(self) -> str:
        return f"{self.endpoint}/api/chat"

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
            "stream": False,
        }
        options: dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        if options:
            payload["options"] = options
        if tools:
            payload["tools"] = [self._format_tool(t) for t in tools]

        data = await self._post_json(self.url, payload, model=model)
        result = self._parse_response(data)
        logger.debug(
            "ollama response: done_reason=%s, tool_calls=%d",
            result.finish_reason,
            len(result.tool_calls),
        )
        return result

    # ------------------------------------------------------------------
    # Wire translation
    # ------------------------------------------------------------------

    @staticmethod
    def _format_message(message: Message) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "role": message.role.value,
            "content": message.content or "",
        }
        if message.role is Role.TOOL:
            entry["tool_name"] = message.name
        if message.tool_calls:
            calls: list[dict[str, Any]] = []
            for call in message.tool_calls:
                # Sent with empty arguments so its tool result still has a call.
                try:
                    arguments = loads_json_object(call.arguments_json)
                except ToolArgumentsError:
                    logger.warning(
                        "Sending tool call %r with empty arguments; could not parse %r",
                        call.function_name,
                        call.arguments_json,
                    )
                    arguments = {}
                calls.append(
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.function_name, "arguments": arguments},
                    }
                )
            entry["tool_calls"] = calls
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
        message = data.get("message")
        if not isinstance(message, dict):
            raise ProviderDecodingError("Failed to decode ollama response: missing 'message'")

        tool_calls: list[ToolCall] = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") if isinstance(raw, dict) else None
            if not isinstance(function, dict) or not function.get("name"):
                raise ProviderDecodingError(
                    "Failed to decode ollama response: malformed tool call"
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
            finish_reason=data.get("done_reason"),
        )

    def _extract_error_message(self, body: Any) -> str | None:
        message = super()._extract_error_message(body)
        if message is None and isinstance(body, dict) and body:
            return json.dumps(body)
        return message

    def _error_for_status(
        self, status_code: int, message: str | None, model: str
    ) -> ProviderError:
        lowered = (message or "").lower()
        if not mentions_tools_unsupported(message) and "not found" in lowered and "model" in lowered:
            return ModelNotFoundError(model, detail=message)
        return super()._error_for_status(status_code, message, model)


__all__ = ["DEFAULT_OLLAMA_ENDPOINT", "OllamaProvider"]
