"""
Aether - Main Entry Point.

Builds the provider service, tool registry and agent loop from
configuration, then either runs an interactive REPL on stdin or serves the
REST API.

Architecture:
    - config.py: Settings (environment) and persisted provider settings
    - conversation/providers: One adapter per LLM back end
    - conversation/service.py: Orchestration over the selected adapter
    - conversation/loop.py: Bounded tool-calling agent loop
    - conversation/server.py: REST surface
    - main.py: Orchestration and entry point
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from aether.config import ProviderType, Settings, SettingsStore, get_settings
from aether.conversation.errors import ProviderError
from aether.conversation.loop import AgentLoop, AgentStatus
from aether.conversation.service import AIService
from aether.conversation.tools import ToolRegistry, register_builtin_tools

logger = logging.getLogger(__name__)

REPL_HELP = "Commands: /reset (new chat), /summary, /quit"


def build_agent(settings: Settings) -> AgentLoop:
    """Create an ``AgentLoop`` wired from *settings*.

    Raises:
        InvalidCredentialError: If the selected provider needs an API key
            that is not configured.
    """
    llm_settings = settings.load_llm_settings()
    service = AIService.from_settings(llm_settings)
    registry = register_builtin_tools(ToolRegistry(timeout=settings.tool_timeout))
    logger.info(
        "Using %s (model=%s) with %d tool(s)",
        service.provider_type.display_name,
        service.config.model,
        len(registry),
    )
    return AgentLoop(
        service,
        registry,
        system_prompt=settings.system_prompt,
        max_steps=settings.max_steps,
        status_listener=_log_status,
    )


def _log_status(status: AgentStatus, detail: str | None) -> None:
    if status is AgentStatus.CALLING_TOOL:
        logger.info("Calling tool: %s", detail)
    elif status is AgentStatus.ERROR:
        logger.info("Agent error: %s", detail)
    else:
        logger.debug("Agent status: %s", status.value)


async def run_repl(agent: AgentLoop) -> None:
    """Read lines from stdin and run each one as a conversation turn."""
    print(f"Aether ready. {REPL_HELP}")
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        text = line.strip()
        if not text:
            continue
        if text in ("/quit", "/exit"):
            break
        if text == "/reset":
            agent.reset()
            print("Started a new chat.")
            continue
        if text == "/summary":
            summary = await agent.summarize()
            print(f"{summary.title}\n{summary.summary}")
            continue

        result = await agent.run(text)
        print(result.reply)


async def run_server(agent: AgentLoop, settings: Settings) -> None:
    """Serve the REST API until interrupted."""
    import uvicorn

    from aether.conversation.server import create_conversation_app

    app = create_conversation_app(agent, settings=settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    logger.info("Starting REST API server on %s:%d", settings.host, settings.port)
    await server.serve()


def _build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aether",
        description="Tool-calling assistant over OpenAI, Gemini or Ollama",
    )
    parser.add_argument(
        "--settings",
        metavar="PATH",
        default=None,
        help=f"Provider settings file (default: {settings.settings_file})",
    )
    parser.add_argument(
        "--provider",
        choices=[t.value for t in ProviderType],
        default=None,
        help="Override the selected provider",
    )
    parser.add_argument("--model", default=None, help="Override the model for the provider")
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the REST API instead of the interactive prompt",
    )
    parser.add_argument("--host", default=None, help=f"REST host (default: {settings.host})")
    parser.add_argument(
        "--port", type=int, default=None, help=f"REST port (default: {settings.port})"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Return a copy of *settings* with command-line overrides applied."""
    update: dict[str, object] = {}
    if args.settings:
        update["settings_file"] = SettingsStore(args.settings).path
    if args.provider:
        update["provider"] = ProviderType(args.provider)
    if args.model:
        update["model"] = args.model
    if args.host:
        update["host"] = args.host
    if args.port:
        update["port"] = args.port
    if args.debug:
        update["log_level"] = "DEBUG"
    return settings.model_copy(update=update)


def cli_main(argv: list[str] | None = None) -> int:
    """Entry point for the ``aether`` console script."""
    base = get_settings()
    args = _build_parser(base).parse_args(argv)
    settings = apply_cli_overrides(base, args)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        agent = build_agent(settings)
    except ProviderError as exc:
        logger.error("Could not start: %s", exc)
        print(exc.message, file=sys.stderr)
        return 1

    try:
        if args.serve:
            asyncio.run(run_server(agent, settings))
        else:
            asyncio.run(run_repl(agent))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(cli_main())
