"""
Aether - a tool-calling assistant over interchangeable LLM back ends.

This library routes conversational turns to one of several providers
(OpenAI-style, Gemini-style, Ollama-style) behind a single message model,
and drives a bounded agent loop that lets the model call tools before it
answers. It includes:

- Provider adapters and a factory that builds them from settings
- An orchestration service with a no-tools fallback path
- A tool registry with timeouts and retries, plus a date/time tool
- A REST surface and an interactive command-line prompt

Quick Start:
    >>> from aether.config import get_settings
    >>> from aether.conversation import AgentLoop, AIService
    >>> from aether.conversation.tools import ToolRegistry, register_builtin_tools
    >>> service = AIService.from_settings(get_settings().load_llm_settings())
    >>> agent = AgentLoop(service, register_builtin_tools(ToolRegistry()))
    >>> result = await agent.run("What time is it?")
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
