"""
AgentLoop: the bounded async tool-calling engine for Aether.

One call to ``AgentLoop.run()`` is one conversation turn: the user message is
sent to the model, any tools the model requests are executed through the
registry and their results fed back, and this repeats until the model
answers with plain content or the step limit is reached.

Turn outcomes are reported through ``TurnResult`` and ``AgentStatus`` rather
than exceptions: provider failures become a user-facing reply and an
``ERROR`` status, and the next turn starts normally.  The stored
conversation only changes when a turn succeeds.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from aether.config import DEFAULT_SYSTEM_PROMPT, LLMSettings
from aether.conversation.errors import (
    ProviderError,
    ToolError,
    ToolsNotSupportedError,
    TurnInProgressError,
)
from aether.conversation.messages import (
    CompletionResult,
    Message,
    ToolArgumentsError,
    ToolCall,
    ToolSchema,
)
from aether.conversation.service import AIService, ConversationSummary
from aether.conversation.tools.registry import ToolExecutor, ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 5

EMPTY_REPLY = "I processed your request, but the final response was empty."
STEP_LIMIT_REPLY = "I hit the maximum step limit while trying to process your request."
TOOLS_UNSUPPORTED_NOTICE = (
    "Note: This model doesn't support tool calling, so I can only provide information.\n\n"
)


class AgentStatus(str, Enum):
    """Observable state of the agent loop."""

    IDLE = "idle"
    THINKING = "thinking"
    RESPONDING = "responding"
    CALLING_TOOL = "calling_tool"
    ERROR = "error"


# Receives the new status plus a detail string: the tool name while
# CALLING_TOOL, a short reason for ERROR, otherwise None.
StatusListener = Callable[[AgentStatus, Optional[str]], None]


@dataclass
class TurnResult:
    """Outcome of one ``AgentLoop.run()`` call.

    Attributes:
        reply: The text shown to the user (final answer or error notice).
        status: ``IDLE`` on success, ``ERROR`` otherwise.
        provider_calls: Number of provider requests made this turn,
            including the no-tools fallback.
        tool_messages: The ``tool`` messages appended this turn, in order.
        used_fallback: ``True`` if the tool-incapable fallback ran.
    """

    reply: str
    status: AgentStatus
    provider_calls: int = 0
    tool_messages: list[Message] = field(default_factory=list)
    used_fallback: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is AgentStatus.IDLE


class AgentLoop:
    """Runs conversation turns against an ``AIService`` with tool support.

    Typical usage::

        registry = register_builtin_tools(ToolRegistry())
        loop = AgentLoop(service=AIService.from_settings(llm_settings), registry=registry)
        result = await loop.run("What time is it in Tokyo?")
        print(result.reply)

    Attributes:
        service: Orchestration service used for every provider call.
        registry: Executes tool calls requested by the model.
        tools: Schema catalogue attached to every tool-enabled call.
        system_prompt: First message of every conversation.
        max_steps: Maximum tool-enabled provider calls per turn.
        status: Current ``AgentStatus``.
        current_tool: Name of the tool being executed, if any.
        conversation_id: Identifier of the current chat, renewed on reset.
    """

    def __init__(
        self,
        service: AIService,
        registry: ToolExecutor | None = None,
        *,
        tools: list[ToolSchema] | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_steps: int = DEFAULT_MAX_STEPS,
        status_listener: StatusListener | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be >= 1")
        self.service = service
        self.registry: ToolExecutor = registry if registry is not None else ToolRegistry()
        self.tools = list(tools) if tools is not None else self.registry.get_schemas()
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.status_listener = status_listener

        self.status = AgentStatus.IDLE
        self.current_tool: str | None = None
        self.conversation_id = uuid.uuid4()
        self._conversation: list[Message] = [Message.system(system_prompt)]
        self._transcript: list[Message] = []
        self._busy = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def conversation(self) -> tuple[Message, ...]:
        """The committed conversation, starting with the system prompt."""
        return tuple(self._conversation)

    @property
    def transcript(self) -> tuple[Message, ...]:
        """User-visible lines: user inputs and assistant replies or notices."""
        return tuple(self._transcript)

    @property
    def is_busy(self) -> bool:
        return self._busy

    def reset(self) -> None:
        """Start a new chat.

        Raises:
            TurnInProgressError: If a turn is still running.
        """
        if self._busy:
            raise TurnInProgressError("Cannot reset while a turn is in progress.")
        self.conversation_id = uuid.uuid4()
        self._conversation = [Message.system(self.system_prompt)]
        self._transcript = []
        self.current_tool = None
        self._set_status(AgentStatus.IDLE)
        logger.info("Started new chat session: %s", self.conversation_id)

    def reload_provider(self, llm_settings: LLMSettings) -> None:
        """Rebuild the service's adapter from *llm_settings*."""
        self.service.reload(llm_settings)

    async def summarize(self) -> ConversationSummary:
        """Generate a title and summary for the committed conversation."""
        return await self.service.generate_title_and_summary(list(self._conversation))

    # ------------------------------------------------------------------
    # Turn execution
    # ------------------------------------------------------------------

    async def run(self, user_text: str) -> TurnResult:
        """Run one conversation turn.

        Args:
            user_text: The user's input.

        Returns:
            A ``TurnResult``.  Provider failures are reported through it
            (``status == AgentStatus.ERROR``), not raised.

        Raises:
            TurnInProgressError: If another turn is still running.
        """
        if self._busy:
            raise TurnInProgressError("A turn is already in progress.")
        self._busy = True
        try:
            return await self._run_turn(user_text)
        finally:
            self.current_tool = None
            self._busy = False

    async def _run_turn(self, user_text: str) -> TurnResult:
        user_message = Message.user(user_text)
        working = [*self._conversation, user_message]
        self._transcript.append(user_message)
        self._set_status(AgentStatus.THINKING)

        provider_calls = 0
        tool_messages: list[Message] = []
        turn_start = time.monotonic()

        try:
            for step in range(1, self.max_steps + 1):
                logger.debug("Agent loop step %d/%d", step, self.max_steps)
                self._set_status(AgentStatus.RESPONDING)
                provider_calls += 1
                result = await self.service.complete_with_tools(working, self.tools)

                if not result.has_tool_calls:
                    logger.info(
                        "Turn complete after %d step(s) in %.3fs",
                        step,
                        time.monotonic() - turn_start,
                    )
                    return self._succeed(
                        working,
                        result.to_message(),
                        _reply_text(result),
                        provider_calls,
                        tool_messages,
                    )

                working.append(result.to_message())
                for call in result.tool_calls:
                    tool_message = await self._dispatch(call)
                    working.append(tool_message)
                    tool_messages.append(tool_message)
                self.current_tool = None
                self._set_status(AgentStatus.THINKING)

        except ToolsNotSupportedError:
            logger.warning(
                "Model %s does not support tools; retrying without tools",
                self.service.config.model,
            )
            provider_calls += 1
            try:
                result = await self.service.complete(working)
            except ProviderError as exc:
                return self._fail(
                    f"API Error: {exc.message}", "API Error", provider_calls, tool_messages,
                    used_fallback=True,
                )
            reply = TOOLS_UNSUPPORTED_NOTICE + _reply_text(result)
            if result.has_tool_calls:
                logger.warning(
                    "Ignoring %d tool call(s) returned without tools", len(result.tool_calls)
                )
            # Calls here would have no tool replies, so only the text is kept.
            return self._succeed(
                working,
                Message.assistant(result.content or ""),
                reply,
                provider_calls,
                tool_messages,
                used_fallback=True,
            )

        except ProviderError as exc:
            logger.error("Provider call failed (%s): %s", exc.kind.value, exc)
            return self._fail(
                f"API Error: {exc.message}", "API Error", provider_calls, tool_messages
            )

        logger.warning("Step limit of %d reached without a final answer", self.max_steps)
        return self._fail(
            STEP_LIMIT_REPLY, "Max Step Limit Reached", provider_calls, tool_messages
        )

    async def _dispatch(self, call: ToolCall) -> Message:
        """Execute one tool call and return the ``tool`` message answering it."""
        name = call.function_name
        self.current_tool = name
        self._set_status(AgentStatus.CALLING_TOOL, name)

        try:
            arguments = call.parse_arguments()
        except ToolArgumentsError as exc:
            logger.warning("Could not parse arguments for %r: %s", name, exc)
            return Message.tool_result(call, f"Error: Could not parse arguments for {name}.")

        logger.debug("Dispatching tool: %s(%s)", name, call.arguments_json)
        t0 = time.monotonic()
        try:
            output = await self.registry.execute(name, arguments)
        except ToolError as exc:
            logger.warning("Tool %r failed: %s", name, exc)
            output = f"TOOL_ERROR: {exc}"
        except Exception as exc:
            logger.error("Tool %r raised unexpectedly: %s", name, exc, exc_info=True)
            output = f"TOOL_ERROR: {exc}"
        else:
            logger.debug("Tool %r took %.3fs", name, time.monotonic() - t0)
        return Message.tool_result(call, output)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _succeed(
        self,
        working: list[Message],
        final: Message,
        reply: str,
        provider_calls: int,
        tool_messages: list[Message],
        *,
        used_fallback: bool = False,
    ) -> TurnResult:
        working.append(final)
        self._conversation = working
        self._transcript.append(Message.assistant(reply))
        self._set_status(AgentStatus.IDLE)
        return TurnResult(
            reply=reply,
            status=AgentStatus.IDLE,
            provider_calls=provider_calls,
            tool_messages=tool_messages,
            used_fallback=used_fallback,
        )

    def _fail(
        self,
        reply: str,
        reason: str,
        provider_calls: int,
        tool_messages: list[Message],
        *,
        used_fallback: bool = False,
    ) -> TurnResult:
        self._transcript.append(Message.assistant(reply))
        self._set_status(AgentStatus.ERROR, reason)
        return TurnResult(
            reply=reply,
            status=AgentStatus.ERROR,
            provider_calls=provider_calls,
            tool_messages=tool_messages,
            used_fallback=used_fallback,
        )

    def _set_status(self, status: AgentStatus, detail: str | None = None) -> None:
        self.status = status
        if self.status_listener is not None:
            self.status_listener(status, detail)


def _reply_text(result: CompletionResult) -> str:
    if result.content and result.content.strip():
        return result.content
    return EMPTY_REPLY


__all__ = [
    "AgentLoop",
    "AgentStatus",
    "DEFAULT_MAX_STEPS",
    "EMPTY_REPLY",
    "STEP_LIMIT_REPLY",
    "StatusListener",
    "TOOLS_UNSUPPORTED_NOTICE",
    "TurnResult",
]
