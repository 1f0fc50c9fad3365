"""
Aether Conversation Package.

Implements the unified message model, the provider adapters, the
orchestration service and the bounded tool-calling agent loop.
"""

from aether.conversation.loop import AgentLoop, AgentStatus, TurnResult
from aether.conversation.messages import CompletionResult, Message, Role, ToolCall, ToolSchema
from aether.conversation.service import AIService, ConversationSummary

__all__ = [
    "AIService",
    "AgentLoop",
    "AgentStatus",
    "CompletionResult",
    "ConversationSummary",
    "Message",
    "Role",
    "ToolCall",
    "ToolSchema",
    "TurnResult",
]
