"""Provider selection, model-name mapping and API-key lookup."""
from __future__ import annotations

import os
from enum import StrEnum
from typing import Final

from dotenv import load_dotenv

from copilot_agent.errors import MissingCredentialError, UnsupportedProviderError

load_dotenv()


class Provider(StrEnum):
    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GEMINI = "gemini"


_ALIASES: Final[dict[str, Provider]] = {
    "anthropic": Provider.ANTHROPIC,
    "claude": Provider.ANTHROPIC,
    "openai": Provider.OPENAI,
    "gpt": Provider.OPENAI,
    "gemini": Provider.GEMINI,
    "google": Provider.GEMINI,
}

_ENV_VARS: Final[dict[Provider, str]] = {
    Provider.ANTHROPIC: "ANTHROPIC_API_KEY",
    Provider.OPENAI: "OPENAI_API_KEY",
    Provider.GEMINI: "GEMINI_API_KEY",
}

DEFAULT_MODELS: Final[dict[Provider, str]] = {
    Provider.ANTHROPIC: "claude-sonnet-4-5-20250929",
    Provider.OPENAI: "gpt-4o",
    Provider.GEMINI: "gemini-2.5-flash",
}

# Friendly names the editor sends, mapped to API model ids.
_MODEL_ALIASES: Final[dict[Provider, dict[str, str]]] = {
    Provider.ANTHROPIC: {
        "claude-4.5-sonnet": "claude-sonnet-4-5-20250929",
        "claude-4.5-opus": "claude-opus-4-5-20251101",
        "claude-4.5-haiku": "claude-haiku-4-5-20251001",
        "claude-4-sonnet": "claude-sonnet-4-5-20250929",
        "claude-3.5-sonnet": "claude-3-5-sonnet-20241022",
    },
    Provider.OPENAI: {
        "gpt-4.1": "gpt-4-turbo",
        "gpt-4": "gpt-4-turbo",
        "gpt-3.5": "gpt-3.5-turbo",
    },
    Provider.GEMINI: {},
}


def resolve_provider(name: str | Provider | None) -> Provider:
    """Return the Provider for *name* (aliases allowed), defaulting to Anthropic."""
    if name is None or name == "":
        return Provider.ANTHROPIC
    if isinstance(name, Provider):
        return name
    try:
        return _ALIASES[name.strip().lower()]
    except KeyError:
        raise UnsupportedProviderError(f"Unsupported provider: {name}") from None


def map_model_name(model: str | None, provider: Provider) -> str:
    """Map an editor-facing model name to the provider's API model id.

    Unknown names are assumed to already be API ids and pass through.
    """
    if not model:
        return DEFAULT_MODELS[provider]
    return _MODEL_ALIASES.get(provider, {}).get(model, model)


def get_api_key(provider: Provider) -> str:
    """Return the API key for *provider* or raise MissingCredentialError."""
    try:
        env_var = _ENV_VARS[provider]
    except KeyError:
        raise UnsupportedProviderError(f"No config for {provider!s}") from None

    key = os.environ.get(env_var)
    if not key:
        raise MissingCredentialError(f"{env_var} not configured")
    return key


__all__ = [
    "DEFAULT_MODELS",
    "Provider",
    "get_api_key",
    "map_model_name",
    "resolve_provider",
]
