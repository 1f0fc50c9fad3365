"""Unit tests for aether.conversation.providers.gemini_provider."""

from __future__ import annotations

import json

import httpx
import pytest

from aether.conversation.errors import (
    EmptyResponseError,
    InvalidCredentialError,
    ProviderAPIError,
    ProviderDecodingError,
    ToolsNotSupportedError,
)
from aether.conversation.messages import Message, ToolCall, ToolSchema
from aether.conversation.providers.gemini_provider import GeminiProvider, to_gemini_schema

_WEATHER = ToolSchema.build(
    "getWeather",
    "Current weather for a city.",
    properties={
        "city": {"type": "string", "description": "City name"},
        "days": {"type": "array", "items": {"type": "integer"}},
    },
    required=["city"],
)
_CLOCK = ToolSchema.build("getCurrentDateTime", "Current date and time.")


def _candidate(parts: list[dict], finish_reason: str = "STOP") -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "candidates": [
                {"content": {"role": "model", "parts": parts}, "finishReason": finish_reason}
            ]
        },
    )


def _provider(transport: httpx.AsyncBaseTransport) -> GeminiProvider:
    return GeminiProvider(api_key="g-key", transport=transport)


# ---------------------------------------------------------------------------
# Schema conversion
# ---------------------------------------------------------------------------


def test_to_gemini_schema_uppercases_types_recursively() -> None:
    converted = to_gemini_schema(_WEATHER.to_json_schema())
    assert converted == {
        "type": "OBJECT",
        "properties": {
            "city": {"type": "STRING", "description": "City name"},
            "days": {"type": "ARRAY", "items": {"type": "INTEGER"}},
        },
        "required": ["city"],
    }


def test_to_gemini_schema_drops_unsupported_keys_and_empty_required() -> None:
    converted = to_gemini_schema(
        {"type": "object", "properties": {}, "required": [], "additionalProperties": False}
    )
    assert converted == {"type": "OBJECT", "properties": {}}


def test_url_for_strips_models_prefix() -> None:
    provider = GeminiProvider(api_key="k")
    expected = (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
    )
    assert provider.url_for("gemini-1.5-flash") == expected
    assert provider.url_for("models/gemini-1.5-flash") == expected


def test_requires_api_key() -> None:
    with pytest.raises(InvalidCredentialError):
        GeminiProvider(api_key="")


# ---------------------------------------------------------------------------
# Request encoding
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_request_shape(make_transport) -> None:
    transport = make_transport(_candidate([{"text": "Sunny in both."}]))
    first = ToolCall("c1", "getWeather", '{"city": "Paris"}')
    second = ToolCall("c2", "getWeather", '{"city": "Rome"}')

    await _provider(transport).send(
        [
            Message.system("Be brief."),
            Message.user("Weather in Paris and Rome?"),
            Message.assistant(None, [first, second]),
            Message.tool_result(first, "21C"),
            Message.tool_result(second, "25C"),
        ],
        model="gemini-1.5-flash",
        temperature=0.5,
        max_tokens=64,
        tools=[_WEATHER, _CLOCK],
    )

    request = transport.requests[0]
    assert request.headers["x-goog-api-key"] == "g-key"
    assert "key=" not in str(request.url)

    body = transport.last_json
    assert body["contents"] == [
        {"role": "user", "parts": [{"text": "Be brief."}]},
        {"role": "user", "parts": [{"text": "Weather in Paris and Rome?"}]},
        {
            "role": "model",
            "parts": [
                {"functionCall": {"name": "getWeather", "args": {"city": "Paris"}}},
                {"functionCall": {"name": "getWeather", "args": {"city": "Rome"}}},
            ],
        },
        {
            "role": "user",
            "parts": [
                {"functionResponse": {"name": "getWeather", "response": {"result": "21C"}}},
                {"functionResponse": {"name": "getWeather", "response": {"result": "25C"}}},
            ],
        },
    ]
    assert body["generationConfig"] == {"temperature": 0.5, "maxOutputTokens": 64}

    declarations = body["tools"][0]["functionDeclarations"]
    assert declarations[0]["name"] == "getWeather"
    assert declarations[0]["parameters"]["type"] == "OBJECT"
    assert declarations[1] == {
        "name": "getCurrentDateTime",
        "description": "Current date and time.",
    }


@pytest.mark.anyio
async def test_unparseable_call_arguments_are_sent_empty(make_transport) -> None:
    transport = make_transport(_candidate([{"text": "ok"}]))
    bad = ToolCall("c1", "getWeather", "{broken")

    await _provider(transport).send(
        [
            Message.user("hi"),
            Message.assistant("Checking.", [bad]),
            Message.tool_result(bad, "Error: Could not parse arguments for getWeather."),
        ],
        model="gemini-1.5-flash",
    )

    contents = transport.last_json["contents"]
    assert contents[1] == {
        "role": "model",
        "parts": [{"text": "Checking."}, {"functionCall": {"name": "getWeather", "args": {}}}],
    }
    assert [list(part) for part in contents[2]["parts"]] == [["functionResponse"]]


@pytest.mark.anyio
async def test_no_tools_no_generation_config(make_transport) -> None:
    transport = make_transport(_candidate([{"text": "ok"}]))

    await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")

    body = transport.last_json
    assert "tools" not in body
    assert "generationConfig" not in body


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_text_parts_are_joined_and_thoughts_skipped(make_transport) -> None:
    transport = make_transport(
        _candidate([{"text": "hidden", "thought": True}, {"text": "Hello, "}, {"text": "world"}])
    )

    result = await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")

    assert result.content == "Hello, world"
    assert result.finish_reason == "STOP"


@pytest.mark.anyio
async def test_function_calls_get_synthesised_ids(make_transport) -> None:
    transport = make_transport(
        _candidate(
            [
                {"functionCall": {"name": "getWeather", "args": {"city": "Oslo"}}},
                {"functionCall": {"name": "getCurrentDateTime"}},
            ]
        )
    )

    result = await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")

    assert result.content is None
    first, second = result.tool_calls
    assert first.function_name == "getWeather"
    assert json.loads(first.arguments_json) == {"city": "Oslo"}
    assert second.arguments_json == "{}"
    assert first.id and second.id and first.id != second.id
    assert len(first.id) <= 40


@pytest.mark.anyio
async def test_blocked_prompt(make_transport) -> None:
    transport = make_transport(
        httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})
    )

    with pytest.raises(ProviderAPIError, match="SAFETY"):
        await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")


@pytest.mark.anyio
async def test_no_candidates(make_transport) -> None:
    transport = make_transport(httpx.Response(200, json={"candidates": []}))

    with pytest.raises(EmptyResponseError, match="No response content"):
        await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")


@pytest.mark.anyio
async def test_empty_parts_reports_finish_reason(make_transport) -> None:
    transport = make_transport(_candidate([], finish_reason="MAX_TOKENS"))

    with pytest.raises(EmptyResponseError, match="MAX_TOKENS"):
        await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")


@pytest.mark.anyio
async def test_malformed_function_call(make_transport) -> None:
    transport = make_transport(_candidate([{"functionCall": {"args": {}}}]))

    with pytest.raises(ProviderDecodingError):
        await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_invalid_api_key_on_400(make_transport) -> None:
    body = {"error": {"code": 400, "message": "API key not valid. Please pass a valid API key."}}
    transport = make_transport(httpx.Response(400, json=body))

    with pytest.raises(InvalidCredentialError, match="API key not valid"):
        await _provider(transport).send([Message.user("hi")], model="gemini-1.5-flash")


@pytest.mark.anyio
async def test_function_calling_not_enabled(make_transport) -> None:
    body = {"error": {"code": 400, "message": "Function calling is not enabled for this model"}}
    transport = make_transport(httpx.Response(400, json=body))

    with pytest.raises(ToolsNotSupportedError):
        await _provider(transport).send(
            [Message.user("hi")], model="gemma-2b", tools=[_CLOCK]
        )
