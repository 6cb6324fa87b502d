"""Runtime settings for Agentflare, loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from agentflare.schemas import RoutingPolicy, SearchEngine

ENV_PREFIX = "AGENTFLARE_"


class ConfigError(ValueError):
    """Raised when an environment variable holds an invalid value."""

    pass


@dataclass
class SandboxConfig:
    """Endpoints and timeouts for the browser and desktop sandboxes."""

    browser_url: str = "http://localhost:3000"
    computer_url: str = "http://localhost:3001"
    agent_timeout: float = 120.0  # seconds; sandbox agents run their own tool loop
    action_timeout: float = 30.0


@dataclass
class SearchConfig:
    """Web search backend settings."""

    engine: SearchEngine = SearchEngine.DUCKDUCKGO
    brave_api_key: str | None = None
    timeout: float = 15.0
    max_results: int = 10


@dataclass
class ModelConfig:
    """LLM settings used in ``llm`` routing mode."""

    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 4096
    max_iterations: int = 8
    timeout: float = 120.0


@dataclass
class Settings:
    """Top-level settings."""

    sandbox: SandboxConfig = field(default_factory=SandboxConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    routing: RoutingPolicy = RoutingPolicy.HEURISTIC
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``AGENTFLARE_*`` variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            Settings with defaults for every unset variable

        Raises:
            ConfigError: If a variable cannot be parsed
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str | None = None) -> str | None:
            value = env.get(ENV_PREFIX + name)
            if value is None or not value.strip():
                return default
            return value.strip()

        def get_float(name: str, default: float) -> float:
            raw = get(name)
            if raw is None:
                return default
            try:
                value = float(raw)
            except ValueError as e:
                raise ConfigError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from e
            if value <= 0:
                raise ConfigError(f"{ENV_PREFIX}{name} must be positive, got {raw!r}")
            return value

        def get_int(name: str, default: int) -> int:
            raw = get(name)
            if raw is None:
                return default
            try:
                value = int(raw)
            except ValueError as e:
                raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from e
            if value < 1:
                raise ConfigError(f"{ENV_PREFIX}{name} must be at least 1, got {raw!r}")
            return value

        def get_choice(name: str, enum_cls, default):
            raw = get(name)
            if raw is None:
                return default
            try:
                return enum_cls(raw.lower())
            except ValueError as e:
                choices = ", ".join(member.value for member in enum_cls)
                raise ConfigError(f"{ENV_PREFIX}{name} must be one of: {choices}") from e

        sandbox = SandboxConfig(
            browser_url=get("BROWSER_URL", SandboxConfig.browser_url).rstrip("/"),
            computer_url=get("COMPUTER_URL", SandboxConfig.computer_url).rstrip("/"),
            agent_timeout=get_float("AGENT_TIMEOUT", SandboxConfig.agent_timeout),
            action_timeout=get_float("ACTION_TIMEOUT", SandboxConfig.action_timeout),
        )
        search = SearchConfig(
            engine=get_choice("SEARCH_ENGINE", SearchEngine, SearchConfig.engine),
            brave_api_key=get("BRAVE_API_KEY"),
            timeout=get_float("SEARCH_TIMEOUT", SearchConfig.timeout),
            max_results=get_int("SEARCH_MAX_RESULTS", SearchConfig.max_results),
        )
        model = ModelConfig(
            model=get("MODEL", ModelConfig.model),
            max_tokens=get_int("MAX_TOKENS", ModelConfig.max_tokens),
            max_iterations=get_int("MAX_ITERATIONS", ModelConfig.max_iterations),
            timeout=get_float("MODEL_TIMEOUT", ModelConfig.timeout),
        )

        return cls(
            sandbox=sandbox,
            search=search,
            model=model,
            routing=get_choice("ROUTING", RoutingPolicy, RoutingPolicy.HEURISTIC),
            log_level=get("LOG_LEVEL", "INFO").upper(),
        )


# Global settings instance
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_env()
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_instance
    _settings_instance = None
