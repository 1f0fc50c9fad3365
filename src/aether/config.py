"""
Configuration management for Aether.

Two layers:

- ``LLMSettings``: the persisted provider selection plus one
  ``ProviderConfig`` per provider type.  ``SettingsStore`` reads and writes it
  as a JSON file; it is passed explicitly to the factory and service, never
  looked up from a global.
- ``Settings``: process-level settings loaded from environment variables
  (``AETHER_`` prefix) and an optional ``.env`` file: logging, step limit,
  server address, credential fallbacks and so on.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are Aether, a helpful desktop assistant. "
    "Answer concisely. Use the available tools when the user asks you to act "
    "on their computer or needs real-time information such as the current "
    "date and time. Do not make up information; if you don't know, say so."
)


class ProviderType(str, Enum):
    """Available LLM back ends."""

    OPENAI = "openai"
    GEMINI = "gemini"
    OLLAMA = "ollama"

    @property
    def display_name(self) -> str:
        return {"openai": "OpenAI", "gemini": "Gemini", "ollama": "Ollama"}[self.value]

    @property
    def requires_api_key(self) -> bool:
        return self is not ProviderType.OLLAMA

    @property
    def default_model(self) -> str:
        return {
            "openai": "gpt-4o-mini",
            "gemini": "gemini-1.5-flash",
            "ollama": "llama3.1",
        }[self.value]


class ProviderConfig(BaseModel):
    """Static configuration for one provider.

    Attributes:
        model: Provider model identifier.
        api_key: Credential, required for hosted providers.
        endpoint: Base URL override.
        temperature: Sampling temperature (0.0–2.0); ``None`` leaves it to
            the provider.
        max_tokens: Output token cap; ``None`` leaves it to the provider.
        timeout: Request timeout in seconds; ``None`` uses the adapter
            default (30s hosted, 60s Ollama).
    """

    model_config = ConfigDict(frozen=True)

    model: str
    api_key: str | None = Field(default=None, repr=False)
    endpoint: str | None = None
    temperature: float | None = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=150, gt=0)
    timeout: float | None = Field(default=None, gt=0)

    @classmethod
    def default_for(cls, provider_type: ProviderType) -> ProviderConfig:
        """Return the default configuration for *provider_type*."""
        endpoint = "http://localhost:11434" if provider_type is ProviderType.OLLAMA else None
        return cls(model=provider_type.default_model, endpoint=endpoint)

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class LLMSettings(BaseModel):
    """Persisted provider selection and per-provider configuration."""

    selected_provider: ProviderType = ProviderType.OPENAI
    providers: dict[ProviderType, ProviderConfig] = Field(default_factory=dict)

    def config_for(self, provider_type: ProviderType) -> ProviderConfig:
        """Return the stored config for *provider_type*, or its defaults."""
        return self.providers.get(provider_type) or ProviderConfig.default_for(provider_type)

    def current(self) -> tuple[ProviderType, ProviderConfig]:
        """Return the selected provider type and its configuration."""
        return self.selected_provider, self.config_for(self.selected_provider)

    def with_config(self, provider_type: ProviderType, config: ProviderConfig) -> LLMSettings:
        """Return a copy with *config* stored for *provider_type*."""
        providers = dict(self.providers)
        providers[provider_type] = config
        return self.model_copy(update={"providers": providers})

    def with_selected(self, provider_type: ProviderType) -> LLMSettings:
        return self.model_copy(update={"selected_provider": provider_type})

    @classmethod
    def default(cls) -> LLMSettings:
        return cls(
            selected_provider=ProviderType.OPENAI,
            providers={t: ProviderConfig.default_for(t) for t in ProviderType},
        )


class SettingsStore:
    """Reads and writes ``LLMSettings`` as a JSON file.

    A missing file yields the defaults.  A corrupt file also yields the
    defaults (and is logged) rather than preventing start-up.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> LLMSettings:
        if not self.path.exists():
            logger.debug("No settings file at %s; using defaults", self.path)
            return LLMSettings.default()
        try:
            return LLMSettings.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.warning("Could not read settings from %s (%s); using defaults", self.path, exc)
            return LLMSettings.default()

    def save(self, settings: LLMSettings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(settings.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Saved settings to %s", self.path)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Logging
    log_level: str = "INFO"

    # Persisted provider settings
    settings_file: Path = Path("~/.config/aether/llm_settings.json")

    # Overrides applied on top of the persisted selection
    provider: ProviderType | None = None
    model: str | None = None

    # Credential fallbacks when the persisted config has none
    openai_api_key: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("AETHER_OPENAI_API_KEY", "OPENAI_API_KEY"),
    )
    gemini_api_key: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices(
            "AETHER_GEMINI_API_KEY", "GEMINI_API_KEY", "GOOGLE_API_KEY"
        ),
    )

    # Agent loop
    max_steps: int = Field(default=5, gt=0)
    tool_timeout: float = Field(default=30.0, gt=0)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # REST server
    host: str = "127.0.0.1"
    port: int = 8765

    model_config = SettingsConfigDict(
        env_prefix="AETHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def settings_store(self) -> SettingsStore:
        return SettingsStore(self.settings_file)

    def apply_overrides(self, llm_settings: LLMSettings) -> LLMSettings:
        """Layer environment overrides and credential fallbacks onto *llm_settings*."""
        result = llm_settings
        if self.provider is not None:
            result = result.with_selected(self.provider)

        fallbacks = {
            ProviderType.OPENAI: self.openai_api_key,
            ProviderType.GEMINI: self.gemini_api_key,
        }
        for provider_type, api_key in fallbacks.items():
            config = result.config_for(provider_type)
            if api_key and not config.has_api_key:
                result = result.with_config(
                    provider_type, config.model_copy(update={"api_key": api_key})
                )

        if self.model:
            selected, config = result.current()
            result = result.with_config(selected, config.model_copy(update={"model": self.model}))
        return result

    def load_llm_settings(self) -> LLMSettings:
        """Read the persisted settings and apply environment overrides."""
        return self.apply_overrides(self.settings_store().load())


def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()


__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "LLMSettings",
    "ProviderConfig",
    "ProviderType",
    "Settings",
    "SettingsStore",
    "get_settings",
]
