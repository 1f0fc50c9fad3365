"""Unit tests for aether.conversation.providers.base (shared HTTP plumbing)."""

from __future__ import annotations

import httpx
import pytest

from aether.conversation.errors import (
    InvalidCredentialError,
    InvalidEndpointError,
    ModelNotFoundError,
    ProviderAPIError,
    ProviderDecodingError,
    ProviderErrorKind,
    ProviderNetworkError,
    ServerUnreachableError,
    ToolsNotSupportedError,
)
from aether.conversation.messages import Message
from aether.conversation.providers import (
    GeminiProvider,
    LLMProvider,
    OllamaProvider,
    OpenAIProvider,
)
from aether.conversation.providers.base import mentions_tools_unsupported

_MESSAGES = [Message.user("hi")]


def _provider(transport: httpx.AsyncBaseTransport, **kwargs) -> OpenAIProvider:
    return OpenAIProvider(api_key="sk-test", transport=transport, **kwargs)


# ---------------------------------------------------------------------------
# Protocol conformance
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "provider",
    [
        OpenAIProvider(api_key="sk-test"),
        GeminiProvider(api_key="g-test"),
        OllamaProvider(),
    ],
)
def test_adapters_satisfy_protocol(provider: object) -> None:
    assert isinstance(provider, LLMProvider)


def test_default_timeouts() -> None:
    assert OpenAIProvider(api_key="k").timeout == 30.0
    assert GeminiProvider(api_key="k").timeout == 30.0
    assert OllamaProvider().timeout == 60.0
    assert OllamaProvider(timeout=5).timeout == 5


# ---------------------------------------------------------------------------
# Tools-unsupported detection
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "message",
    [
        "registry.ollama.ai/library/gemma:2b does not support tools",
        "Function calling is not enabled for this model",
        "Tool use is not supported",
    ],
)
def test_mentions_tools_unsupported(message: str) -> None:
    assert mentions_tools_unsupported(message)


@pytest.mark.parametrize("message", [None, "", "rate limit exceeded"])
def test_mentions_tools_unsupported_negative(message: str | None) -> None:
    assert not mentions_tools_unsupported(message)


# ---------------------------------------------------------------------------
# Transport failures
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_timeout_maps_to_network_error(make_transport) -> None:
    provider = _provider(make_transport(httpx.ReadTimeout("slow")), timeout=2)

    with pytest.raises(ProviderNetworkError, match="timed out after 2s") as info:
        await provider.send(_MESSAGES, model="gpt-4o-mini")

    assert info.value.kind is ProviderErrorKind.NETWORK_ERROR
    assert isinstance(info.value.__cause__, httpx.ReadTimeout)


@pytest.mark.anyio
async def test_connect_error_maps_to_server_unreachable(make_transport) -> None:
    provider = _provider(make_transport(httpx.ConnectError("refused")))

    with pytest.raises(ServerUnreachableError):
        await provider.send(_MESSAGES, model="gpt-4o-mini")


@pytest.mark.anyio
async def test_other_transport_error_maps_to_network_error(make_transport) -> None:
    provider = _provider(make_transport(httpx.RemoteProtocolError("reset")))

    with pytest.raises(ProviderNetworkError, match="Network error"):
        await provider.send(_MESSAGES, model="gpt-4o-mini")


@pytest.mark.anyio
@pytest.mark.parametrize("endpoint", ["not a url", "ftp://example.com/v1", "http://"])
async def test_invalid_endpoint(endpoint: str, make_transport) -> None:
    transport = make_transport()
    provider = _provider(transport, endpoint=endpoint)

    with pytest.raises(InvalidEndpointError):
        await provider.send(_MESSAGES, model="gpt-4o-mini")

    assert transport.requests == []


# ---------------------------------------------------------------------------
# HTTP status mapping
# ---------------------------------------------------------------------------


@pytest.mark.anyio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_status_maps_to_invalid_credential(status: int, make_transport) -> None:
    body = {"error": {"message": "Incorrect API key provided"}}
    provider = _provider(make_transport(httpx.Response(status, json=body)))

    with pytest.raises(InvalidCredentialError, match="Incorrect API key provided"):
        await provider.send(_MESSAGES, model="gpt-4o-mini")


@pytest.mark.anyio
async def test_404_maps_to_model_not_found(make_transport) -> None:
    body = {"error": {"message": "The model `gpt-9` does not exist"}}
    provider = _provider(make_transport(httpx.Response(404, json=body)))

    with pytest.raises(ModelNotFoundError) as info:
        await provider.send(_MESSAGES, model="gpt-9")

    assert info.value.model == "gpt-9"
    assert "does not exist" in info.value.message


@pytest.mark.anyio
async def test_tools_marker_beats_status_code(make_transport) -> None:
    body = {"error": {"message": "This model does not support tools"}}
    provider = _provider(make_transport(httpx.Response(404, json=body)))

    with pytest.raises(ToolsNotSupportedError):
        await provider.send(_MESSAGES, model="tiny")


@pytest.mark.anyio
async def test_other_status_uses_extracted_message(make_transport) -> None:
    body = {"error": {"message": "Rate limit reached"}}
    provider = _provider(make_transport(httpx.Response(429, json=body)))

    with pytest.raises(ProviderAPIError, match="Rate limit reached") as info:
        await provider.send(_MESSAGES, model="gpt-4o-mini")

    assert info.value.status_code == 429


@pytest.mark.anyio
async def test_unreadable_error_body_falls_back_to_status(make_transport) -> None:
    provider = _provider(make_transport(httpx.Response(502, text="<html>Bad gateway</html>")))

    with pytest.raises(ProviderAPIError, match="HTTP 502"):
        await provider.send(_MESSAGES, model="gpt-4o-mini")


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


@pytest.mark.anyio
async def test_non_json_success_body(make_transport) -> None:
    provider = _provider(make_transport(httpx.Response(200, text="hello")))

    with pytest.raises(ProviderDecodingError):
        await provider.send(_MESSAGES, model="gpt-4o-mini")


@pytest.mark.anyio
async def test_json_array_success_body(make_transport) -> None:
    provider = _provider(make_transport(httpx.Response(200, json=[1, 2])))

    with pytest.raises(ProviderDecodingError, match="expected a JSON object"):
        await provider.send(_MESSAGES, model="gpt-4o-mini")
