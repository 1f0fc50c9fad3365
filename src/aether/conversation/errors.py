"""
Exception hierarchy for provider and tool failures.

Provider adapters raise the most specific ``ProviderError`` subclass they can
determine from the HTTP status and body.  Each subclass carries a
``ProviderErrorKind`` so callers can branch without ``isinstance`` ladders,
and a readable message suitable for showing to the user.

Tool failures use a separate ``ToolError`` hierarchy: they are scoped to a
single tool call and never abort a conversation turn.
"""

from __future__ import annotations

from enum import Enum


class ProviderErrorKind(str, Enum):
    """Coarse classification of provider failures."""

    INVALID_CREDENTIAL = "invalid_credential"
    INVALID_ENDPOINT = "invalid_endpoint"
    NETWORK_ERROR = "network_error"
    DECODING_ERROR = "decoding_error"
    API_ERROR = "api_error"
    MODEL_NOT_FOUND = "model_not_found"
    SERVER_UNREACHABLE = "server_unreachable"
    TOOLS_NOT_SUPPORTED = "tools_not_supported"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(Exception):
    """Base exception for all LLM provider errors."""

    kind: ProviderErrorKind = ProviderErrorKind.UNKNOWN
    default_message = "Unknown provider error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidCredentialError(ProviderError):
    """Raised when the API key is missing or rejected."""

    kind = ProviderErrorKind.INVALID_CREDENTIAL
    default_message = "Invalid or missing API key. Please check your settings."


class InvalidEndpointError(ProviderError):
    """Raised when the configured endpoint cannot form a valid URL."""

    kind = ProviderErrorKind.INVALID_ENDPOINT
    default_message = "Invalid endpoint URL."


class ProviderNetworkError(ProviderError):
    """Raised for transport failures, including request timeouts."""

    kind = ProviderErrorKind.NETWORK_ERROR
    default_message = "Network error while contacting the language model."


class ProviderDecodingError(ProviderError):
    """Raised when the response body cannot be decoded."""

    kind = ProviderErrorKind.DECODING_ERROR
    default_message = "Failed to decode the provider response."


class ProviderAPIError(ProviderError):
    """Raised for API-level failures reported by the provider.

    Attributes:
        status_code: HTTP status code, or ``None`` when the failure was found
            in an otherwise successful response.
    """

    kind = ProviderErrorKind.API_ERROR
    default_message = "The provider returned an error."

    def __init__(self, message: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(ProviderAPIError):
    """Raised when a response holds neither text nor tool calls."""

    default_message = "Received an empty response from the AI."


class ModelNotFoundError(ProviderError):
    """Raised when the selected model does not exist on the provider.

    Attributes:
        model: The model identifier that was requested.
    """

    kind = ProviderErrorKind.MODEL_NOT_FOUND

    def __init__(self, model: str, detail: str | None = None) -> None:
        message = f"Model {model!r} not found. Please pull or select a different model."
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.model = model


class ServerUnreachableError(ProviderError):
    """Raised when the provider host cannot be connected to."""

    kind = ProviderErrorKind.SERVER_UNREACHABLE
    default_message = "Server not reachable. Please check if the service is running."


class ToolsNotSupportedError(ProviderError):
    """Raised when the selected model rejects a request carrying tools."""

    kind = ProviderErrorKind.TOOLS_NOT_SUPPORTED
    default_message = "This model does not support tool calling."


class UnknownProviderError(ProviderError):
    """Raised for failures that fit no other category."""

    kind = ProviderErrorKind.UNKNOWN


# ---------------------------------------------------------------------------
# Tool errors
# ---------------------------------------------------------------------------


class ToolError(Exception):
    """Base exception for a failed tool execution."""


class UnknownToolError(ToolError):
    """Raised when the model requests a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Tool {name!r} is not registered.")
        self.name = name


class MissingArgumentError(ToolError):
    """Raised by a tool handler when a required argument is absent."""

    def __init__(self, argument: str) -> None:
        super().__init__(f"Missing required argument: {argument}")
        self.argument = argument


class ToolTimeoutError(ToolError):
    """Raised when a tool call exceeds the registry timeout."""


class ToolExecutionError(ToolError):
    """Raised when a tool handler fails with an unexpected exception."""


# ---------------------------------------------------------------------------
# Agent loop errors
# ---------------------------------------------------------------------------


class TurnInProgressError(RuntimeError):
    """Raised when a new turn is submitted while another is still running."""


__all__ = [
    "EmptyResponseError",
    "InvalidCredentialError",
    "InvalidEndpointError",
    "MissingArgumentError",
    "ModelNotFoundError",
    "ProviderAPIError",
    "ProviderDecodingError",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderNetworkError",
    "ServerUnreachableError",
    "ToolError",
    "ToolExecutionError",
    "ToolTimeoutError",
    "ToolsNotSupportedError",
    "TurnInProgressError",
    "UnknownProviderError",
    "UnknownToolError",
]
