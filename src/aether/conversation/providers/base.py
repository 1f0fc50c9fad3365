"""
Provider abstraction shared by every LLM back end.

Defines the ``LLMProvider`` Protocol so the ``AIService`` and ``AgentLoop``
can work with any back end without knowing its wire format, plus
``HTTPProvider``, the common base class the concrete adapters build on.

``HTTPProvider`` owns the transport concerns that are identical across
providers:

- one ``httpx.AsyncClient`` POST per call, bounded by ``timeout``;
- translation of ``httpx`` transport failures into ``ProviderError``
  subclasses;
- best-effort extraction of a readable error message from non-2xx bodies
  before falling back to a generic ``HTTP <status>`` error.

Adapters override ``_extract_error_message`` and ``_error_for_status`` where
their error shapes differ.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from aether.conversation.errors import (
    InvalidCredentialError,
    InvalidEndpointError,
    ModelNotFoundError,
    ProviderAPIError,
    ProviderDecodingError,
    ProviderError,
    ProviderNetworkError,
    ServerUnreachableError,
    ToolsNotSupportedError,
)
from aether.conversation.messages import CompletionResult, Message, ToolSchema

logger = logging.getLogger(__name__)

# Lower-cased fragments seen in provider error bodies when a model cannot
# accept a ``tools`` field.
_TOOLS_UNSUPPORTED_MARKERS: tuple[str, ...] = (
    "does not support tools",
    "does not support tool",
    "tools is not supported",
    "tool use is not supported",
    "does not support function calling",
    "function calling is not enabled",
)


def mentions_tools_unsupported(message: str | None) -> bool:
    """Return True if *message* says the model cannot use tools."""
    if not message:
        return False
    lowered = message.lower()
    return any(marker in lowered for marker in _TOOLS_UNSUPPORTED_MARKERS)


# ---------------------------------------------------------------------------
# LLMProvider Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol every provider adapter satisfies.

    Adapters hold network configuration only, never conversation state, so a
    single instance is safe to reuse across turns.
    """

    name: str

    async def send(
        self,
        messages: list[Message],
        *,
        model: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        tools: list[ToolSchema] | None = None,
    ) -> CompletionResult:
        """Send one completion request.

        Args:
            messages: The full conversation in unified form.
            model: Provider model identifier.
            temperature: Sampling temperature, or ``None`` for the provider
                default.
            max_tokens: Output token cap, or ``None`` for the provider
                default.
            tools: Tool declarations; ``None`` or empty sends no tools.

        Returns:
            A ``CompletionResult`` with content and/or tool calls.

        Raises:
            ProviderError: The most specific subclass available.
        """
        ...


# ---------------------------------------------------------------------------
# Shared HTTP plumbing
# ---------------------------------------------------------------------------


class HTTPProvider:
    """Base class for adapters that speak JSON over a single HTTP POST.

    Attributes:
        name: Short provider name used in logs and error messages.
        default_timeout: Timeout used when none is configured.
        timeout: Request timeout in seconds.
    """

    name = "http"
    default_timeout = 30.0

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else self.default_timeout
        self._transport = transport

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        model: str,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST *payload* to *url* and return the decoded JSON object.

        Raises:
            InvalidEndpointError: If *url* is not an absolute http(s) URL.
            ProviderNetworkError: On timeouts and other transport failures.
            ServerUnreachableError: If the host refuses or cannot be resolved.
            ProviderDecodingError: If a 2xx body is not a JSON object.
            ProviderError: Whatever ``_error_for_status`` maps a non-2xx
                response to.
        """
        self._check_url(url)
        logger.debug(
            "%s request: url=%s model=%s messages=%s",
            self.name,
            _redact(url),
            model,
            len(payload.get("messages") or payload.get("contents") or []),
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error("%s request timed out after %.1fs", self.name, self.timeout)
            raise ProviderNetworkError(
                f"Request to {self.name} timed out after {self.timeout:g}s."
            ) from exc
        except httpx.ConnectError as exc:
            logger.error("%s connection failed: %s", self.name, exc)
            raise ServerUnreachableError(
                f"Could not connect to {self.name} at {_redact(url)}. "
                "Please check if the service is running."
            ) from exc
        except httpx.UnsupportedProtocol as exc:
            raise InvalidEndpointError(f"Invalid endpoint URL: {_redact(url)}") from exc
        except httpx.HTTPError as exc:
            logger.error("%s transport error: %s", self.name, exc)
            raise ProviderNetworkError(f"Network error: {exc}") from exc

        if not response.is_success:
            message = self._extract_error_message(_json_or_none(response))
            logger.warning(
                "%s returned HTTP %d: %s", self.name, response.status_code, message
            )
            raise self._error_for_status(response.status_code, message, model)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderDecodingError(
                f"Failed to decode {self.name} response: {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ProviderDecodingError(
                f"Failed to decode {self.name} response: expected a JSON object"
            )
        return data

    def _extract_error_message(self, body: Any) -> str | None:
        """Pull a readable message out of an error body.

        The default handles the common ``{"error": {"message": ...}}`` and
        ``{"error": "..."}`` shapes.
        """
        if not isinstance(body, dict):
            return None
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            return message if isinstance(message, str) and message else None
        if isinstance(error, str) and error:
            return error
        return None

    def _error_for_status(
        self, status_code: int, message: str | None, model: str
    ) -> ProviderError:
        """Map a non-2xx response to the most specific ``ProviderError``."""
        if mentions_tools_unsupported(message):
            return ToolsNotSupportedError(message)
        if status_code in (401, 403):
            return InvalidCredentialError(
                f"{InvalidCredentialError.default_message} ({message})" if message else None
            )
        if status_code == 404:
            return ModelNotFoundError(model, detail=message)
        return ProviderAPIError(message or f"HTTP {status_code}", status_code=status_code)

    @staticmethod
    def _check_url(url: str) -> None:
        try:
            parsed = httpx.URL(url)
        except (httpx.InvalidURL, TypeError) as exc:
            raise InvalidEndpointError(f"Invalid endpoint URL: {url!r}") from exc
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise InvalidEndpointError(f"Invalid endpoint URL: {url!r}")


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _redact(url: str) -> str:
    """Strip the query string, which may carry an API key."""
    return url.split("?", 1)[0]


__all__ = ["HTTPProvider", "LLMProvider", "mentions_tools_unsupported"]
