"""
Unified message model shared by every provider adapter and the agent loop.

Each adapter translates these types to and from its own wire format; nothing
provider-specific is allowed to leak in here.  The types are deliberately
small:

- ``Message``: one turn of the conversation (system / user / assistant /
  tool result).
- ``ToolCall``: an assistant-issued invocation request.  Arguments stay a
  serialised JSON string until the agent loop parses them.
- ``ToolSchema``: a provider-agnostic tool declaration.
- ``CompletionResult``: the normalised output of one adapter call.

``JSONValue`` and the ``loads_json_object`` / ``dumps_json_object`` helpers
give tool arguments an explicit, validated shape instead of passing arbitrary
decoded objects around.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# Recursive JSON value.  ``int`` and ``float`` both map to JSON numbers.
JSONValue = Union[None, bool, int, float, str, list["JSONValue"], dict[str, "JSONValue"]]

# OpenAI rejects tool call ids longer than this; other providers either have
# no id at all (Gemini) or accept anything, so the strictest limit wins.
MAX_TOOL_CALL_ID_LENGTH = 40


class ToolArgumentsError(ValueError):
    """Raised when a tool call's argument payload is not a JSON object."""


class Role(str, Enum):
    """Conversation role."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def _check_json_value(value: Any, path: str) -> None:
    if value is None or isinstance(value, (bool, int, float, str)):
        return
    if isinstance(value, list):
        for index, item in enumerate(value):
            _check_json_value(item, f"{path}[{index}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ToolArgumentsError(f"Non-string key {key!r} at {path}")
            _check_json_value(item, f"{path}.{key}")
        return
    raise ToolArgumentsError(
        f"Value at {path} is not JSON-compatible: {type(value).__name__}"
    )


def loads_json_object(text: str | None) -> dict[str, JSONValue]:
    """Parse *text* as a JSON object.

    An empty or missing payload is treated as ``{}`` since several providers
    send an empty string for zero-argument calls.

    Raises:
        ToolArgumentsError: If *text* is not valid JSON or is not an object.
    """
    if text is None or not text.strip():
        return {}
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ToolArgumentsError(f"Arguments are not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ToolArgumentsError(
            f"Arguments must be a JSON object, got {type(value).__name__}"
        )
    return value


def dumps_json_object(value: dict[str, Any]) -> str:
    """Serialise *value* after checking it only holds JSON-compatible data."""
    if not isinstance(value, dict):
        raise ToolArgumentsError(
            f"Arguments must be a JSON object, got {type(value).__name__}"
        )
    _check_json_value(value, "$")
    return json.dumps(value, ensure_ascii=False)


def arguments_to_json(value: Any) -> str:
    """Return provider-supplied tool call arguments as a JSON string.

    Nothing is rejected here: a string is kept as sent, an object is
    serialised, and anything else is dumped as-is.  Malformed payloads then
    fail in ``ToolCall.parse_arguments`` for that one call instead of
    failing the whole response.
    """
    if value is None:
        return "{}"
    if isinstance(value, str):
        return value or "{}"
    try:
        return dumps_json_object(value)
    except ToolArgumentsError:
        return json.dumps(value, ensure_ascii=False, default=str)


def normalize_call_id(raw_id: Any) -> str:
    """Return *raw_id* if usable as a tool call id, otherwise a fresh one.

    Ids that are missing, blank, or longer than ``MAX_TOOL_CALL_ID_LENGTH``
    are replaced so the id survives a later round trip through a provider
    that enforces the length limit.
    """
    if isinstance(raw_id, str) and raw_id.strip() and len(raw_id) <= MAX_TOOL_CALL_ID_LENGTH:
        return raw_id
    return f"call_{uuid.uuid4().hex[:24]}"


# ---------------------------------------------------------------------------
# Core data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    Attributes:
        id: Call id, unique within the assistant turn.  Correlates the
            ``tool`` message carrying the result.
        function_name: Name of the tool to invoke.
        arguments_json: Serialised JSON object, not yet parsed.
    """

    id: str
    function_name: str
    arguments_json: str = "{}"

    def parse_arguments(self) -> dict[str, JSONValue]:
        """Parse ``arguments_json``.

        Raises:
            ToolArgumentsError: If the payload is malformed or not an object.
        """
        return loads_json_object(self.arguments_json)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "function_name": self.function_name,
            "arguments_json": self.arguments_json,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        return cls(
            id=data["id"],
            function_name=data["function_name"],
            arguments_json=data.get("arguments_json") or "{}",
        )


@dataclass(frozen=True)
class Message:
    """One turn in a conversation.

    ``tool`` messages must carry ``tool_call_id`` and ``name`` so adapters can
    associate the result with the originating call.  An ``assistant`` message
    that requests tools may have ``content=None``.
    """

    role: Role
    content: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None

    def __post_init__(self) -> None:
        # Accept plain strings for the role (e.g. when loading from JSON).
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if self.role is Role.TOOL and (not self.tool_call_id or not self.name):
            raise ValueError("A tool message requires both tool_call_id and name")
        if self.tool_calls and self.role is not Role.ASSISTANT:
            raise ValueError("Only assistant messages may carry tool calls")

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str | None,
        tool_calls: list[ToolCall] | tuple[ToolCall, ...] = (),
    ) -> Message:
        return cls(role=Role.ASSISTANT, content=content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool_result(cls, call: ToolCall, content: str) -> Message:
        """Build the ``tool`` message answering *call*."""
        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_id=call.id,
            name=call.function_name,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return a plain-JSON representation for logging or persistence."""
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            data["name"] = self.name
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        return cls(
            role=Role(data["role"]),
            content=data.get("content"),
            tool_calls=tuple(ToolCall.from_dict(tc) for tc in data.get("tool_calls") or ()),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
        )


@dataclass(frozen=True)
class ToolSchema:
    """Declarative, provider-agnostic description of one callable tool.

    Attributes:
        name: The tool's unique name (used by the model to invoke it).
        description: Human-readable description shown to the model.
        parameters: JSON-schema object describing the arguments
            (``type``, ``properties``, ``required``).
    """

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        name: str,
        description: str,
        properties: dict[str, dict[str, Any]] | None = None,
        required: list[str] | None = None,
    ) -> ToolSchema:
        """Convenience constructor taking properties and required names."""
        return cls(
            name=name,
            description=description,
            parameters={
                "type": "object",
                "properties": dict(properties or {}),
                "required": list(required or []),
            },
        )

    @property
    def properties(self) -> dict[str, Any]:
        return dict(self.parameters.get("properties") or {})

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required") or [])

    def to_json_schema(self) -> dict[str, Any]:
        """Return the parameters as a normalised lower-case JSON schema."""
        return {
            "type": "object",
            "properties": self.properties,
            "required": self.required,
        }


@dataclass
class CompletionResult:
    """Normalised output of a single adapter call.

    Adapters never return a result with neither ``content`` nor
    ``tool_calls``; that condition raises ``EmptyResponseError`` so callers
    can tell "nothing to say" apart from a malformed response.

    Attributes:
        content: Assistant text, if any.
        tool_calls: Requested tool invocations, in the order issued.
        finish_reason: Provider finish reason, passed through verbatim.
    """

    content: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_message(self) -> Message:
        """Return the assistant message recording this result."""
        return Message.assistant(self.content, self.tool_calls)


__all__ = [
    "CompletionResult",
    "JSONValue",
    "MAX_TOOL_CALL_ID_LENGTH",
    "Message",
    "Role",
    "ToolArgumentsError",
    "ToolCall",
    "ToolSchema",
    "arguments_to_json",
    "dumps_json_object",
    "loads_json_object",
    "normalize_call_id",
]
