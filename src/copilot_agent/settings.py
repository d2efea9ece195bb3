"""Runtime settings for the agent loop, read from the environment (``.env`` supported)."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping

from dotenv import load_dotenv

from copilot_agent.errors import ConfigurationError

__all__ = ["AgentSettings", "ENV_PREFIX"]

ENV_PREFIX = "COPILOT_"


@dataclass(frozen=True, slots=True)
class AgentSettings:
    """Limits and model parameters shared by every request."""

    # Loop bounds
    max_iterations: int = 10
    max_tools: int = 100

    # Per-turn model parameters
    max_tokens: int = 8192
    temperature: float = 1.0
    thinking_budget: int = 2000

    # Transport; retries are off because a failed turn ends the request
    timeout: float = 60.0
    max_retries: int = 0

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"

    def turn_params(self) -> dict[str, Any]:
        """Default per-turn params handed to the provider client."""
        return {
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "thinking_budget": self.thinking_budget,
        }

    def copy(self, **overrides: Any) -> "AgentSettings":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "AgentSettings":
        """
        Build settings from ``COPILOT_*`` variables, e.g. ``COPILOT_MAX_ITERATIONS=5``.

        Raises:
            ConfigurationError: if a value cannot be converted to the field type.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or raw == "":
                continue
            caster = {"int": int, "float": float}.get(str(f.type), str)
            try:
                values[f.name] = caster(raw)
            except ValueError as exc:
                raise ConfigurationError(
                    f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}"
                ) from exc

        settings = cls(**values)
        if settings.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        if settings.max_tools < 1:
            raise ConfigurationError("max_tools must be at least 1")
        return settings
