"""
LLM clients with a unified, streaming ``stream_turn()`` method.

One call streams one model turn. The generator yields live reasoning and
content events, a ``ToolUseReady`` per finished tool request, and ends with
exactly one ``TurnCompleted`` or ``TurnFailed``. Clients hold no state
between calls, so one instance may serve a whole request.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from typing import (
    Any,
    AsyncGenerator,
    Optional,
    Protocol,
    Self,
    Sequence,
)

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from copilot_agent.adapters import (
    AnthropicRequestAdapter,
    GeminiRequestAdapter,
    OpenAIRequestAdapter,
)
from copilot_agent.errors import ProviderError, UnsupportedProviderError, classify_error
from copilot_agent.params import merge_params
from copilot_agent.providers import Provider, get_api_key
from copilot_agent.settings import AgentSettings
from copilot_agent.stream_utils import OpenAIStreamAccumulator, ReasoningTracker
from copilot_agent.types.chat import Conversation
from copilot_agent.types.events import ToolUseReady, TurnCompleted, TurnEvent, TurnFailed
from copilot_agent.types.tool import ToolSpec

__all__ = [
    "BaseAsyncLLM",
    "AnthropicLLM",
    "OpenAILLM",
    "GeminiLLM",
    "create_llm",
]


class RequestAdapter(Protocol):
    """Protocol for adapting between the conversation model and a provider request."""

    def to_provider(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        system_prompt: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Convert the conversation, tools and normalized params to request arguments."""
        ...


class BaseAsyncLLM(ABC):
    """
    Abstract base class for async-first LLM wrappers.
    """

    provider: Provider

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
        **kwargs: Any,
    ) -> None:
        self.model = model
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__
        self.defaults = dict(defaults or {})

    @property
    @abstractmethod
    def adapter(self) -> RequestAdapter:
        """Request adapter for this provider."""
        ...

    @abstractmethod
    def _stream_impl(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        system_prompt: str,
        params: dict[str, Any],
        tracker: ReasoningTracker,
    ) -> AsyncGenerator[TurnEvent, None]:
        """
        Provider-specific streaming. Must yield live events through *tracker*
        and finish with a single ``TurnCompleted``; exceptions are handled by
        ``stream_turn``.
        """
        ...

    async def stream_turn(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        *,
        system_prompt: str,
        params: dict[str, Any] | None = None,
    ) -> AsyncGenerator[TurnEvent, None]:
        """
        Stream one model turn for *conversation*.

        Never raises for provider failures: they arrive as a final ``TurnFailed``.
        """
        normalized_params = merge_params(self.defaults, params)
        tracker = ReasoningTracker()
        completed = False
        events = self._stream_impl(conversation, tools, system_prompt, normalized_params, tracker)
        try:
            async with aclosing(events):
                async for event in events:
                    if isinstance(event, TurnCompleted):
                        for marker in tracker.close():
                            yield marker
                        completed = True
                    yield event
                    if completed:
                        return
        except Exception as exc:
            for marker in tracker.close():
                yield marker
            yield TurnFailed(self._wrap_error(exc))
            return

        for marker in tracker.close():
            yield marker
        yield TurnFailed(
            ProviderError(
                "Provider stream ended without a final message",
                RuntimeError("stream ended early"),
            )
        )

    def _wrap_error(self, exc: Exception) -> ProviderError:
        """Classify a provider exception and log it."""
        error = classify_error(exc, self.logger)
        self._log(f"Turn failed: {error}", logging.ERROR)
        return error

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")

    # --- lifecycle ---------------------------------------------------------
    async def aclose(self) -> None:
        """
        Close underlying async HTTP clients to avoid cleanup after the loop closes.
        Safe to call multiple times.
        """
        client = getattr(self, "_client", None)
        close = getattr(client, "aclose", None) or getattr(client, "close", None)
        if close:
            await close()

    async def __aenter__(self) -> "BaseAsyncLLM":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class AnthropicLLM(BaseAsyncLLM):
    """
    Anthropic LLM implementation (async‑only) on the streaming Messages API.

    Use ``AnthropicLLM.from_client`` when you already have an ``AsyncAnthropic`` instance.
    """

    provider = Provider.ANTHROPIC

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 0,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        base_url: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            model=model, api_key=api_key, logger=logger, name=name, defaults=defaults
        )
        self.api_key = api_key
        self._client = AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            base_url=base_url,
        )
        self._adapter = AnthropicRequestAdapter()

    @classmethod
    def from_client(
        cls,
        model: str,
        client: AsyncAnthropic,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ) -> Self:
        """
        Wrap an existing ``AsyncAnthropic`` client.
        """
        if not isinstance(client, AsyncAnthropic):
            raise TypeError(
                f"AnthropicLLM.from_client expects AsyncAnthropic; got {type(client).__name__}"
            )

        self = cls.__new__(cls)  # bypass __init__
        BaseAsyncLLM.__init__(
            self,
            model=model,
            api_key=client.api_key or "",
            logger=logger,
            name=name,
            defaults=defaults,
        )
        self.api_key = client.api_key or ""
        self._client = client
        self._adapter = AnthropicRequestAdapter()
        return self

    @property
    def adapter(self) -> AnthropicRequestAdapter:
        """Request adapter for Anthropic provider."""
        return self._adapter

    async def _stream_impl(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        system_prompt: str,
        params: dict[str, Any],
        tracker: ReasoningTracker,
    ) -> AsyncGenerator[TurnEvent, None]:
        args = {
            "model": self.model,
            **self._adapter.to_provider(conversation, tools, system_prompt, params),
        }

        self._log(
            f"Streaming turn from Anthropic model {self.model} "
            f"({len(conversation)} turns, {len(tools)} tools)"
        )

        async with self._client.messages.stream(**args) as stream:
            async for event in stream:
                event_type = getattr(event, "type", None)
                if event_type == "content_block_delta":
                    delta = event.delta
                    delta_type = getattr(delta, "type", None)
                    if delta_type == "thinking_delta":
                        for e in tracker.reasoning(delta.thinking):
                            yield e
                    elif delta_type == "text_delta":
                        for e in tracker.content(delta.text):
                            yield e
                    elif delta_type == "input_json_delta":
                        for e in tracker.close():
                            yield e
                elif event_type == "content_block_stop":
                    block = getattr(event, "content_block", None)
                    if getattr(block, "type", None) == "tool_use":
                        for e in tracker.close():
                            yield e
                        request = self._adapter.block_from_provider(block)
                        yield ToolUseReady(request)

            final = await stream.get_final_message()

        message = self._adapter.from_provider(final)
        self._log(
            f"Turn finished (stop_reason={message.stop_reason}, "
            f"tool_calls={len(message.tool_calls)})",
            logging.DEBUG,
        )
        yield TurnCompleted(message)


class OpenAILLM(BaseAsyncLLM):
    """
    OpenAI LLM implementation (async‑only) on streaming Chat Completions.

    Use ``OpenAILLM.from_client`` when you already have an ``AsyncOpenAI`` instance.
    """

    provider = Provider.OPENAI

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 0,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        base_url: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            model=model, api_key=api_key, logger=logger, name=name, defaults=defaults
        )
        self.api_key = api_key
        self._client = AsyncOpenAI(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            base_url=base_url,
        )
        self._adapter = self._make_adapter()

    def _make_adapter(self) -> OpenAIRequestAdapter:
        return OpenAIRequestAdapter()

    @classmethod
    def from_client(
        cls,
        model: str,
        client: AsyncOpenAI,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ) -> Self:
        """
        Build around an already‑configured ``AsyncOpenAI`` client.
        """
        if not isinstance(client, AsyncOpenAI):
            raise TypeError(
                f"{cls.__name__}.from_client expects AsyncOpenAI; got {type(client).__name__}"
            )

        self = cls.__new__(cls)  # bypass __init__
        BaseAsyncLLM.__init__(
            self,
            model=model,
            api_key=client.api_key or "",
            logger=logger,
            name=name,
            defaults=defaults,
        )
        self.api_key = client.api_key or ""
        self._client = client
        self._adapter = self._make_adapter()
        return self

    @property
    def adapter(self) -> OpenAIRequestAdapter:
        """Request adapter for OpenAI provider."""
        return self._adapter

    async def _stream_impl(
        self,
        conversation: Conversation,
        tools: Sequence[ToolSpec],
        system_prompt: str,
        params: dict[str, Any],
        tracker: ReasoningTracker,
    ) -> AsyncGenerator[TurnEvent, None]:
        args = {
            "model": self.model,
            "stream": True,
            "stream_options": {"include_usage": True},
            **self._adapter.to_provider(conversation, tools, system_prompt, params),
        }

        self._log(
            f"Streaming turn from {self.provider.value} model {self.model} "
            f"({len(conversation)} turns, {len(tools)} tools)"
        )

        stream = await self._client.chat.completions.create(**args)
        acc = OpenAIStreamAccumulator()
        async for chunk in stream:
            reasoning, content = acc.add(chunk)
            if reasoning:
                for e in tracker.reasoning(reasoning):
                    yield e
            if content:
                for e in tracker.content(content):
                    yield e

        message = acc.finish()
        for e in tracker.close():
            yield e
        # Tool-call arguments only become complete JSON at the end of the stream.
        for call in message.tool_calls:
            yield ToolUseReady(call)
        yield TurnCompleted(message)


_DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class GeminiLLM(OpenAILLM):
    """
    Gemini LLM implementation via the OpenAI-compatible endpoint.
    """

    provider = Provider.GEMINI

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 0,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        base_url: str = _DEFAULT_GEMINI_BASE_URL,
        defaults: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            model=model,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            logger=logger,
            name=name,
            base_url=base_url,
            defaults=defaults,
        )

    def _make_adapter(self) -> OpenAIRequestAdapter:
        return GeminiRequestAdapter()


# Factory for creating LLM instances

_LLM_REGISTRY: dict[Provider, type[BaseAsyncLLM]] = {
    Provider.OPENAI: OpenAILLM,
    Provider.ANTHROPIC: AnthropicLLM,
    Provider.GEMINI: GeminiLLM,
}


def create_llm(
    provider: Provider,
    model: str,
    *,
    api_key: str | None = None,
    client: AsyncOpenAI | AsyncAnthropic | None = None,
    settings: AgentSettings | None = None,
    logger: logging.Logger | None = None,
) -> BaseAsyncLLM:
    """
    Factory for creating any supported LLM.

    Args:
        provider: Which provider to use (OPENAI, ANTHROPIC, GEMINI).
        model: API model identifier (e.g. "claude-sonnet-4-5-20250929").
        api_key: Overrides automatic lookup; if omitted, pulled from env.
        client: Optional pre-configured client instance to use.
            - For Provider.OPENAI: an AsyncOpenAI instance
            - For Provider.ANTHROPIC: an AsyncAnthropic instance
            - For Provider.GEMINI: an AsyncOpenAI instance pointed at the
              OpenAI-compatible endpoint
        settings: Timeout, retries and default turn params; env-derived if omitted.
        logger: Optional custom logger.

    Raises:
        UnsupportedProviderError: no client class for *provider*.
        MissingCredentialError: no client given and no API key configured.
    """
    try:
        llm_cls = _LLM_REGISTRY[provider]
    except KeyError:
        raise UnsupportedProviderError(f"Unsupported provider: {provider}") from None

    settings = settings or AgentSettings.from_env()
    defaults = settings.turn_params()

    if client is not None:  # use caller‑supplied client verbatim
        return llm_cls.from_client(model, client, logger=logger, defaults=defaults)

    key = api_key or get_api_key(provider)
    return llm_cls(
        model=model,
        api_key=key,
        timeout=settings.timeout,
        max_retries=settings.max_retries,
        logger=logger,
        defaults=defaults,
    )
