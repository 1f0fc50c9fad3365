"""Tool registry and built-in tools for the agent loop."""

from aether.conversation.tools.datetime_tool import DateTimeTool
from aether.conversation.tools.registry import AsyncToolHandler, ToolExecutor, ToolRegistry


def register_builtin_tools(registry: ToolRegistry) -> ToolRegistry:
    """Register the built-in tools on *registry* and return it."""
    registry.register(DateTimeTool.TOOL_SCHEMA, DateTimeTool().as_handler())
    return registry


__all__ = [
    "AsyncToolHandler",
    "DateTimeTool",
    "ToolExecutor",
    "ToolRegistry",
    "register_builtin_tools",
]
