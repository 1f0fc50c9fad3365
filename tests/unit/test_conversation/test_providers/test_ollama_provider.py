"""Unit tests for aether.conversation.providers.ollama_provider."""

from __future__ import annotations

import json

import httpx
import pytest

from aether.conversation.errors import (
    EmptyResponseError,
    ModelNotFoundError,
    ProviderAPIError,
    ProviderDecodingError,
    ServerUnreachableError,
    ToolsNotSupportedError,
)
from aether.conversation.messages import Message, ToolArgumentsError, ToolCall, ToolSchema
from aether.conversation.providers.ollama_provider import OllamaProvider

_WEATHER = ToolSchema.build(
    "getWeather",
    "Current weather for a city.",
    properties={"city": {"type": "string"}},
    required=["city"],
)


def _chat(message: dict, done_reason: str = "stop") -> httpx.Response:
    return httpx.Response(
        200,
        json={"model": "llama3.1", "message": message, "done": True, "done_reason": done_reason},
    )


def _provider(transport: httpx.AsyncBaseTransport) -> OllamaProvider:
    return OllamaProvider(transport=transport)


def test_url_uses_default_endpoint() -> None:
    assert OllamaProvider().url == "http://localhost:11434/api/chat"
    assert OllamaProvider(endpoint="http://gpu-box:11434/").url == "http://gpu-box:11434/api/chat"


# ---------------------------------------------------------------------------
# Request encoding
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_request_shape(make_transport) -> None:
    transport = make_transport(_chat({"role": "assistant", "content": "Sunny."}))
    call = ToolCall("c1", "getWeather", '{"city": "Lima"}')

    await _provider(transport).send(
        [
            Message.user("Weather in Lima?"),
            Message.assistant(None, [call]),
            Message.tool_result(call, "19C"),
        ],
        model="llama3.1",
        temperature=0.1,
        max_tokens=50,
        tools=[_WEATHER],
    )

    request = transport.requests[0]
    assert "authorization" not in request.headers

    body = transport.last_json
    assert body["model"] == "llama3.1"
    assert body["stream"] is False
    assert body["options"] == {"temperature": 0.1, "num_predict": 50}
    assert body["messages"] == [
        {"role": "user", "content": "Weather in Lima?"},
        {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {
                    "id": "c1",
                    "type": "function",
                    "function": {"name": "getWeather", "arguments": {"city": "Lima"}},
                }
            ],
        },
        {"role": "tool", "content": "19C", "tool_name": "getWeather"},
    ]
    assert body["tools"][0]["function"]["parameters"]["properties"] == {
        "city": {"type": "string"}
    }


@pytest.mark.anyio
async def test_unparseable_call_is_sent_with_empty_arguments(make_transport) -> None:
    transport = make_transport(_chat({"role": "assistant", "content": "ok"}))
    call = ToolCall("c1", "getWeather", "nope")

    await _provider(transport).send(
        [Message.assistant("x", [call]), Message.tool_result(call, "Error")],
        model="llama3.1",
    )

    sent = transport.last_json["messages"]
    assert sent[0]["tool_calls"] == [
        {"id": "c1", "type": "function", "function": {"name": "getWeather", "arguments": {}}}
    ]
    assert sent[1]["tool_name"] == "getWeather"


# ---------------------------------------------------------------------------
# Response decoding
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_object_arguments_are_serialised(make_transport) -> None:
    transport = make_transport(
        _chat(
            {
                "role": "assistant",
                "content": "",
                "tool_calls": [
                    {"function": {"name": "getWeather", "arguments": {"city": "Lima"}}}
                ],
            }
        )
    )

    result = await _provider(transport).send([Message.user("hi")], model="llama3.1")

    assert result.content is None
    assert result.finish_reason == "stop"
    (call,) = result.tool_calls
    assert call.function_name == "getWeather"
    assert json.loads(call.arguments_json) == {"city": "Lima"}
    assert call.id.startswith("call_")


@pytest.mark.anyio
async def test_string_arguments_are_accepted(make_transport) -> None:
    transport = make_transport(
        _chat(
            {
                "role": "assistant",
                "content": "",
                "tool_calls": [{"function": {"name": "getWeather", "arguments": '{"city":"Lima"}'}}],
            }
        )
    )

    result = await _provider(transport).send([Message.user("hi")], model="llama3.1")

    assert json.loads(result.tool_calls[0].arguments_json) == {"city": "Lima"}


@pytest.mark.anyio
@pytest.mark.parametrize("arguments", ["{not json", "[1]", [1, 2]])
async def test_bad_arguments_still_return_the_call(make_transport, arguments) -> None:
    transport = make_transport(
        _chat(
            {
                "role": "assistant",
                "tool_calls": [{"function": {"name": "getWeather", "arguments": arguments}}],
            }
        )
    )

    result = await _provider(transport).send([Message.user("hi")], model="llama3.1")

    (call,) = result.tool_calls
    assert call.function_name == "getWeather"
    with pytest.raises(ToolArgumentsError):
        call.parse_arguments()


@pytest.mark.anyio
async def test_empty_message(make_transport) -> None:
    transport = make_transport(_chat({"role": "assistant", "content": ""}))

    with pytest.raises(EmptyResponseError):
        await _provider(transport).send([Message.user("hi")], model="llama3.1")


@pytest.mark.anyio
async def test_missing_message(make_transport) -> None:
    transport = make_transport(httpx.Response(200, json={"done": True}))

    with pytest.raises(ProviderDecodingError):
        await _provider(transport).send([Message.user("hi")], model="llama3.1")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_tools_not_supported(make_transport) -> None:
    body = {"error": "registry.ollama.ai/library/gemma:2b does not support tools"}
    transport = make_transport(httpx.Response(400, json=body))

    with pytest.raises(ToolsNotSupportedError, match="does not support tools"):
        await _provider(transport).send([Message.user("hi")], model="gemma:2b", tools=[_WEATHER])


@pytest.mark.anyio
async def test_model_not_found(make_transport) -> None:
    transport = make_transport(
        httpx.Response(404, json={"error": "model 'llama9' not found, try pulling it first"})
    )

    with pytest.raises(ModelNotFoundError) as info:
        await _provider(transport).send([Message.user("hi")], model="llama9")

    assert info.value.model == "llama9"


@pytest.mark.anyio
async def test_unknown_error_shape_is_dumped(make_transport) -> None:
    transport = make_transport(httpx.Response(500, json={"detail": "boom"}))

    with pytest.raises(ProviderAPIError, match="boom"):
        await _provider(transport).send([Message.user("hi")], model="llama3.1")


@pytest.mark.anyio
async def test_server_not_running(make_transport) -> None:
    transport = make_transport(httpx.ConnectError("Connection refused"))

    with pytest.raises(ServerUnreachableError, match="Please check if the service is running"):
        await _provider(transport).send([Message.user("hi")], model="llama3.1")
