"""
Google Gemini ``generateContent`` adapter.

Gemini's conversation model has only two roles, ``user`` and ``model``, and
encodes tool use as typed message *parts* rather than message fields.  The
translation rules are:

- ``assistant`` → ``model``; ``system`` and ``user`` → ``user``.
- ``tool`` → ``user`` carrying a ``functionResponse`` part keyed by the
  tool name.  Consecutive tool results are merged into one content so the
  model sees every response for a turn together, in call order.
- Assistant tool calls → ``functionCall`` parts with parsed ``args``.
- Tool declarations → ``functionDeclarations`` whose JSON-schema ``type``
  values are upper-cased (``OBJECT``, ``STRING``, ...).

Gemini does not reliably return call ids, so ids are synthesised on decode.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from aether.conversation.errors import (
    EmptyResponseError,
    InvalidCredentialError,
    ProviderAPIError,
    ProviderDecodingError,
    ProviderError,
    ToolsNotSupportedError,
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

DEFAULT_GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta"

# Schema keywords Gemini's OpenAPI subset accepts; others are rejected.
_SCHEMA_KEYS = frozenset(
    {"type", "format", "description", "nullable", "enum", "properties", "required", "items"}
)


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """Convert a JSON schema fragment to Gemini's upper-case dialect."""
    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _SCHEMA_KEYS:
            continue
        if key == "type" and isinstance(value, str):
            converted[key] = value.upper()
        elif key == "properties" and isinstance(value, dict):
            converted[key] = {
                prop: to_gemini_schema(spec) for prop, spec in value.items()
            }
        elif key == "items" and isinstance(value, dict):
            converted[key] = to_gemini_schema(value)
        elif key == "required":
            if value:
                converted[key] = list(value)
        else:
            converted[key] = value
    return converted


class GeminiProvider(HTTPProvider):
    """Adapter for the Gemini REST API.

    Attributes:
        api_key: Sent in the ``x-goog-api-key`` header (never in the URL).
        endpoint: API base URL including the version segment.
    """

    name = "gemini"
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
        self.endpoint = (endpoint or DEFAULT_GEMINI_ENDPOINT).rstrip("/")

    def url_for(self, model: str) -> str:
        model_id = model[len("models/"):] if model.startswith("models/") else model
        return f"{self.endpoint}/models/{model_id}:generateContent"

    async def send(
        self,
        messages: list[Message],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[ToolSchema] | None = None,
    ) -> CompletionResult:
        payload: dict[str, Any] = {"contents": self._format_contents(messages)}

        generation_config: dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if generation_config:
            payload["generationConfig"] = generation_config

        if tools:
            payload["tools"] = [
                {"functionDeclarations": [self._format_tool(t) for t in tools]}
            ]

        data = await self._post_json(
            self.url_for(model),
            payload,
            model=model,
            headers={"x-goog-api-key": self.api_key},
        )
        result = self._parse_response(data)
        logger.debug(
            "gemini response: finish_reason=%s, tool_calls=%d",
            result.finish_reason,
            len(result.tool_calls),
        )
        return result

    # ------------------------------------------------------------------
    # Request translation
    # ------------------------------------------------------------------

    @staticmethod
    def _format_contents(messages: list[Message]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        previous_was_tool = False

        for message in messages:
            if message.role is Role.TOOL:
                part = {
                    "functionResponse": {
                        "name": message.name,
                        "response": {"result": message.content or ""},
                    }
                }
                if previous_was_tool:
                    contents[-1]["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
                previous_was_tool = True
                continue

            previous_was_tool = False
            role = "model" if message.role is Role.ASSISTANT else "user"
            parts: list[dict[str, Any]] = []
            if message.content:
                parts.append({"text": message.content})
            for call in message.tool_calls:
                # Every functionResponse needs a matching functionCall.
                try:
                    args = loads_json_object(call.arguments_json)
                except ToolArgumentsError:
                    logger.warning(
                        "Sending tool call %r with empty args; could not parse %r",
                        call.function_name,
                        call.arguments_json,
                    )
                    args = {}
                parts.append({"functionCall": {"name": call.function_name, "args": args}})
            if parts:
                contents.append({"role": role, "parts": parts})

        return contents

    @staticmethod
    def _format_tool(tool: ToolSchema) -> dict[str, Any]:
        declaration: dict[str, Any] = {
            "name": tool.name,
            "description": tool.description,
        }
        # Gemini rejects OBJECT schemas with no properties.
        if tool.properties:
            declaration["parameters"] = to_gemini_schema(tool.to_json_schema())
        return declaration

    # ------------------------------------------------------------------
    # Response translation
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_response(data: dict[str, Any]) -> CompletionResult:
        candidates = data.get("candidates")
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            block_reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
            if block_reason:
                raise ProviderAPIError(f"Prompt was blocked by Gemini ({block_reason}).")
            raise EmptyResponseError("No response content returned.")
        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            raise ProviderDecodingError("Failed to decode gemini response: malformed 'candidates'")

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason")
        content = candidate.get("content") or {}
        parts = content.get("parts") if isinstance(content, dict) else None

        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for part in parts or []:
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if isinstance(text, str) and not part.get("thought"):
                texts.append(text)
            function_call = part.get("functionCall")
            if function_call is None:
                continue
            if not isinstance(function_call, dict) or not function_call.get("name"):
                raise ProviderDecodingError(
                    "Failed to decode gemini response: malformed functionCall"
                )
            tool_calls.append(
                ToolCall(
                    id=normalize_call_id(function_call.get("id")),
                    function_name=function_call["name"],
                    arguments_json=arguments_to_json(function_call.get("args")),
                )
            )

        text_content = "".join(texts) or None
        if text_content is None and not tool_calls:
            if finish_reason and finish_reason != "STOP":
                raise EmptyResponseError(
                    f"Received an empty response from the AI (finish reason: {finish_reason})."
                )
            raise EmptyResponseError()

        return CompletionResult(
            content=text_content,
            tool_calls=tool_calls,
            finish_reason=finish_reason,
        )

    def _error_for_status(
        self, status_code: int, message: str | None, model: str
    ) -> ProviderError:
        lowered = (message or "").lower()
        if "api key not valid" in lowered or "api_key_invalid" in lowered:
            return InvalidCredentialError(
                f"{InvalidCredentialError.default_message} ({message})"
            )
        if mentions_tools_unsupported(message):
            return ToolsNotSupportedError(message)
        return super()._error_for_status(status_code, message, model)


__all__ = ["DEFAULT_GEMINI_ENDPOINT", "GeminiProvider", "to_gemini_schema"]
