"""
Tool registry for the Aether agent loop.

Provides ``ToolRegistry``, a container mapping tool names to their
``ToolSchema`` and an async handler, with timeout and retry support around
each execution.

Typical usage::

    from aether.conversation.tools.registry import ToolRegistry
    from aether.conversation.tools.datetime_tool import DateTimeTool

    registry = ToolRegistry(timeout=10.0)
    dt = DateTimeTool()
    registry.register(DateTimeTool.TOOL_SCHEMA, dt.as_handler())

    loop = AgentLoop(service=service, registry=registry)
    result = await loop.run("What time is it?")

The agent loop consumes two things from a registry: ``get_schemas()`` (the
catalogue sent to the model) and ``execute(name, arguments)``.  Any object
with those two methods can stand in for ``ToolRegistry``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, runtime_checkable

from aether.conversation.errors import (
    ToolError,
    ToolExecutionError,
    ToolTimeoutError,
    UnknownToolError,
)
from aether.conversation.messages import JSONValue, ToolSchema

logger = logging.getLogger(__name__)

# Type alias for a single tool handler: async (args_dict) -> result_str
AsyncToolHandler = Callable[[dict[str, JSONValue]], Awaitable[str]]


@runtime_checkable
class ToolExecutor(Protocol):
    """What the agent loop needs from a tool registry."""

    def get_schemas(self) -> list[ToolSchema]:
        ...

    async def execute(self, name: str, arguments: dict[str, JSONValue]) -> str:
        ...


class ToolRegistry:
    """Registry mapping tool names to their schemas and async handlers.

    Attributes:
        timeout: Maximum seconds per tool call; ``None`` disables it.
        max_retries: Additional attempts after a retryable failure.
        retry_exceptions: Exception types that trigger a retry.
    """

    def __init__(
        self,
        timeout: float | None = 30.0,
        max_retries: int = 0,
        retry_exceptions: tuple[type[BaseException], ...] = (asyncio.TimeoutError,),
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_exceptions = retry_exceptions
        self._tools: dict[str, tuple[ToolSchema, AsyncToolHandler]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, schema: ToolSchema, handler: AsyncToolHandler) -> None:
        """Register a tool with its async handler.

        Raises:
            ValueError: If a tool with the same name is already registered.
        """
        if schema.name in self._tools:
            raise ValueError(
                f"Tool {schema.name!r} is already registered. "
                "Deregister it first before re-registering."
            )
        self._tools[schema.name] = (schema, handler)
        logger.debug("Registered tool: %r", schema.name)

    def deregister(self, name: str) -> None:
        """Remove a registered tool by name.

        Raises:
            KeyError: If the tool is not registered.
        """
        if name not in self._tools:
            raise KeyError(f"Tool {name!r} is not registered.")
        del self._tools[name]
        logger.debug("Deregistered tool: %r", name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_schemas(self) -> list[ToolSchema]:
        """Return all registered ``ToolSchema`` objects (insertion order)."""
        return [schema for schema, _handler in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, name: str, arguments: dict[str, JSONValue]) -> str:
        """Run the tool *name* with already-parsed *arguments*.

        Each attempt is bounded by ``timeout``.  Failures matching
        ``retry_exceptions`` are retried up to ``max_retries`` more times.

        Returns:
            The handler's textual result.

        Raises:
            UnknownToolError: If *name* is not registered.
            ToolTimeoutError: If the last attempt timed out.
            ToolError: Raised by the handler itself (e.g. a missing argument).
            ToolExecutionError: For any other handler failure.
        """
        entry = self._tools.get(name)
        if entry is None:
            logger.warning("Unknown tool requested: %r", name)
            raise UnknownToolError(name)

        _schema, handler = entry
        total_attempts = self.max_retries + 1

        for attempt in range(1, total_attempts + 1):
            try:
                if self.timeout is not None:
                    return await asyncio.wait_for(handler(arguments), timeout=self.timeout)
                return await handler(arguments)
            except Exception as exc:
                is_retryable = bool(self.retry_exceptions) and isinstance(
                    exc, self.retry_exceptions
                )
                if is_retryable and attempt < total_attempts:
                    logger.warning(
                        "Tool %r attempt %d/%d failed (%s: %s); retrying…",
                        name,
                        attempt,
                        total_attempts,
                        type(exc).__name__,
                        exc,
                    )
                    continue
                if isinstance(exc, ToolError):
                    raise
                raise _as_tool_error(name, exc, self.timeout) from exc

        # Unreachable, but keeps type checkers happy.
        raise RuntimeError("execute: retry loop exited unexpectedly")  # pragma: no cover


def _as_tool_error(name: str, exc: Exception, timeout: float | None) -> ToolError:
    if isinstance(exc, asyncio.TimeoutError):
        if timeout is None:
            return ToolTimeoutError(f"Tool {name!r} timed out.")
        return ToolTimeoutError(f"Tool {name!r} timed out after {timeout:g}s.")
    logger.error("Tool %r failed: %s", name, exc, exc_info=exc)
    return ToolExecutionError(f"{type(exc).__name__}: {exc}")


__all__ = ["AsyncToolHandler", "ToolExecutor", "ToolRegistry"]
