"""
HTTP server for the Aether agent loop.

Exposes one ``AgentLoop`` over a small REST API so turns can be driven by
other processes (a UI, a hotkey daemon, scripts) without embedding Python.

Endpoints
---------
POST   /conversation             Run one conversation turn.
GET    /conversation             Current chat id, status and transcript.
POST   /conversation/reset       Start a new chat.
POST   /conversation/summary     Generate a title and summary for the chat.
POST   /settings/reload          Re-read provider settings and rebuild the adapter.
GET    /health                   Health / readiness check.

Usage (standalone)::

    from aether.config import get_settings
    from aether.conversation.loop import AgentLoop
    from aether.conversation.server import create_conversation_app
    from aether.conversation.service import AIService
    from aether.conversation.tools import ToolRegistry, register_builtin_tools
    import uvicorn

    settings = get_settings()
    service = AIService.from_settings(settings.load_llm_settings())
    agent = AgentLoop(service, register_builtin_tools(ToolRegistry()))
    app = create_conversation_app(agent, settings=settings)
    uvicorn.run(app, host=settings.host, port=settings.port)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from aether import __version__
from aether.config import Settings, SettingsStore
from aether.conversation.errors import ProviderError, TurnInProgressError
from aether.conversation.loop import AgentLoop

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class ConversationRequest(BaseModel):
    """Body for POST /conversation."""

    text: str = Field(..., min_length=1, description="The user's input for this turn.")


class ConversationResponse(BaseModel):
    """Response body for POST /conversation."""

    response_text: str = Field(..., description="Final answer or error notice.")
    status: str = Field(..., description="Agent status after the turn (idle or error).")
    provider_calls: int = Field(..., description="Provider requests made this turn.")
    used_fallback: bool = Field(
        default=False,
        description="True if the model rejected tools and the no-tools fallback ran.",
    )
    conversation_id: str


class TranscriptLine(BaseModel):
    role: str
    content: str


class ConversationState(BaseModel):
    """Response body for GET /conversation."""

    conversation_id: str
    status: str
    current_tool: str | None = None
    transcript: list[TranscriptLine]


class SummaryResponse(BaseModel):
    title: str
    summary: str


class SettingsResponse(BaseModel):
    """Response body for POST /settings/reload."""

    provider: str
    model: str


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    provider: str
    model: str
    tools: list[str]


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_conversation_app(
    agent: AgentLoop,
    settings_store: SettingsStore | None = None,
    *,
    settings: Settings | None = None,
) -> FastAPI:
    """Create a FastAPI application wrapping *agent*.

    Args:
        agent: A fully initialised ``AgentLoop``.
        settings_store: Where ``POST /settings/reload`` reads provider
            settings from.
        settings: Application settings.  When given, reloads go through
            ``Settings.load_llm_settings()`` so environment overrides and
            credential fallbacks still apply; its store is used when
            *settings_store* is omitted.

    Returns:
        A configured ``FastAPI`` application ready to be served or used in
        tests via ``httpx.AsyncClient(transport=ASGITransport(app=app))``.
    """
    app = FastAPI(
        title="Aether Conversation API",
        description="REST interface for the Aether tool-calling agent loop.",
        version=__version__,
    )

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Return server health and the active provider."""
        return HealthResponse(
            status="ok",
            provider=agent.service.provider_type.value,
            model=agent.service.config.model,
            tools=[schema.name for schema in agent.tools],
        )

    @app.post("/conversation", response_model=ConversationResponse)
    async def process_conversation(body: ConversationRequest) -> ConversationResponse:
        """Run one conversation turn through the agent loop.

        Provider failures are not HTTP errors: they come back as a normal
        response with ``status == "error"`` and the notice as text.

        Raises:
            HTTPException 409: If a turn is already in progress.
            HTTPException 500: If an unexpected server error occurs.
        """
        logger.info("POST /conversation: text=%r", body.text)
        try:
            result = await agent.run(body.text)
        except TurnInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except Exception as exc:
            logger.error("Unexpected error while running turn: %s", exc, exc_info=True)
            raise HTTPException(status_code=500, detail="Internal server error") from exc

        logger.info(
            "POST /conversation response: status=%s calls=%d text=%r",
            result.status.value,
            result.provider_calls,
            result.reply,
        )
        return ConversationResponse(
            response_text=result.reply,
            status=result.status.value,
            provider_calls=result.provider_calls,
            used_fallback=result.used_fallback,
            conversation_id=str(agent.conversation_id),
        )

    @app.get("/conversation", response_model=ConversationState)
    async def conversation_state() -> ConversationState:
        return ConversationState(
            conversation_id=str(agent.conversation_id),
            status=agent.status.value,
            current_tool=agent.current_tool,
            transcript=[
                TranscriptLine(role=m.role.value, content=m.content or "")
                for m in agent.transcript
            ],
        )

    @app.post("/conversation/reset", response_model=ConversationState)
    async def reset_conversation() -> ConversationState:
        """Start a new chat.

        Raises:
            HTTPException 409: If a turn is in progress.
        """
        logger.info("POST /conversation/reset")
        try:
            agent.reset()
        except TurnInProgressError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return await conversation_state()

    @app.post("/conversation/summary", response_model=SummaryResponse)
    async def summarize_conversation() -> SummaryResponse:
        summary = await agent.summarize()
        return SummaryResponse(title=summary.title, summary=summary.summary)

    @app.post("/settings/reload", response_model=SettingsResponse)
    async def reload_settings() -> SettingsResponse:
        """Re-read provider settings and rebuild the adapter.

        Raises:
            HTTPException 400: If the new settings cannot produce an adapter
                (e.g. a missing API key); the previous adapter stays active.
            HTTPException 409: If a turn is in progress.
            HTTPException 501: If the app was built without a settings source.
        """
        if agent.is_busy:
            raise HTTPException(status_code=409, detail="A turn is already in progress.")
        if settings is not None:
            llm_settings = (
                settings.apply_overrides(settings_store.load())
                if settings_store is not None
                else settings.load_llm_settings()
            )
        elif settings_store is not None:
            llm_settings = settings_store.load()
        else:
            raise HTTPException(status_code=501, detail="No settings source configured.")

        try:
            agent.reload_provider(llm_settings)
        except ProviderError as exc:
            logger.warning("Settings reload failed: %s", exc)
            raise HTTPException(status_code=400, detail=exc.message) from exc

        logger.info(
            "POST /settings/reload: provider=%s model=%s",
            agent.service.provider_type.value,
            agent.service.config.model,
        )
        return SettingsResponse(
            provider=agent.service.provider_type.value,
            model=agent.service.config.model,
        )

    return app


__all__ = ["create_conversation_app"]
