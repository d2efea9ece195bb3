"""
Error taxonomy for the agent, and translation of noisy provider tracebacks
into a unified `ProviderError` that keeps the original exception for full
tracebacks.
"""

from __future__ import annotations

import importlib
import logging
from typing import Final, Optional, Type

__all__: tuple[str, ...] = (
    "CopilotAgentError",
    "ConfigurationError",
    "UnsupportedProviderError",
    "MissingCredentialError",
    "ProviderError",
    "ToolExecutionError",
    "DEFAULT_DISPLAY_MESSAGE",
    "MAX_ITERATIONS_DISPLAY_MESSAGE",
    "classify_error",
)

DEFAULT_DISPLAY_MESSAGE: Final = "Sorry, I encountered an error. Please try again."
MAX_ITERATIONS_DISPLAY_MESSAGE: Final = (
    "The conversation has reached the maximum number of tool executions."
)


class CopilotAgentError(RuntimeError):
    """Base error. ``display_message`` is safe to show to end users."""

    display_message: str = DEFAULT_DISPLAY_MESSAGE

    def __init__(self, message: str, *, display_message: str | None = None) -> None:
        super().__init__(message)
        if display_message is not None:
            self.display_message = display_message


class ConfigurationError(CopilotAgentError):
    """Raised before any streaming starts when the request cannot be served."""


class UnsupportedProviderError(ConfigurationError):
    pass


class MissingCredentialError(ConfigurationError):
    pass


class ProviderError(CopilotAgentError):
    """Transport or provider failure during a streamed turn.

    Attributes:
        original_exc: The underlying provider exception.
    """

    original_exc: Exception

    def __init__(self, message: str, original_exc: Exception) -> None:
        super().__init__(message)
        self.original_exc = original_exc
        self.__cause__ = original_exc


class ToolExecutionError(CopilotAgentError):
    """Raised inside tool helpers; the dispatcher turns it into a failed result."""


def _import_exception(path: str) -> Type[Exception]:
    """Dynamically import an exception type, falling back to Exception."""
    module_name, _, attr = path.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError):
        return Exception


OpenAI_APIError: Final = _import_exception("openai.APIError")
OpenAI_APIConnectionError: Final = _import_exception("openai.APIConnectionError")
OpenAI_RateLimitError: Final = _import_exception("openai.RateLimitError")

Anthropic_APIError: Final = _import_exception("anthropic.APIError")
Anthropic_APIConnectionError: Final = _import_exception("anthropic.APIConnectionError")
Anthropic_RateLimitError: Final = _import_exception("anthropic.RateLimitError")

API_ERRORS: Final[tuple[Type[Exception], ...]] = (
    OpenAI_APIError,
    Anthropic_APIError,
)

CONN_ERRORS: Final[tuple[Type[Exception], ...]] = (
    OpenAI_APIConnectionError,
    Anthropic_APIConnectionError,
    TimeoutError,
    ConnectionError,
)

RATE_LIMIT_ERRORS: Final[tuple[Type[Exception], ...]] = (
    OpenAI_RateLimitError,
    Anthropic_RateLimitError,
)


def classify_error(
    exc: Exception,
    logger: Optional[logging.Logger] = None,
) -> ProviderError:
    """Wrap an SDK exception in ProviderError with a friendly, concise message."""
    log = logger or logging.getLogger("copilot_agent.errors")

    if isinstance(exc, ProviderError):
        return exc

    # Connection and rate-limit errors subclass APIError, so check them first.
    if isinstance(exc, RATE_LIMIT_ERRORS):
        msg = "Rate-limit exceeded, please retry later"
    elif isinstance(exc, CONN_ERRORS):
        msg = "Connection problem, unable to reach the LLM provider"
    elif isinstance(exc, API_ERRORS):
        status = getattr(exc, "status_code", None)
        msg = f"Provider reported an error ({status})" if status else "Provider reported an error"
    else:
        msg = exc.__class__.__name__

    log.warning("Wrapping provider exception", extra={"exc": exc})
    return ProviderError(f"{msg}: {exc}", exc)
