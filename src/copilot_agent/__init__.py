"""
Copilot Agent - multi-turn tool-calling agent that streams its work as server-sent events.
"""

from .agent import CopilotAgent, LoopPhase, LoopState, handle_request
from .client import AnthropicLLM, BaseAsyncLLM, GeminiLLM, OpenAILLM, create_llm
from .context import ExecutionContext
from .errors import (
    ConfigurationError,
    CopilotAgentError,
    MissingCredentialError,
    ProviderError,
    ToolExecutionError,
    UnsupportedProviderError,
)
from .prompts import build_system_prompt
from .providers import Provider, get_api_key, map_model_name, resolve_provider
from .schema import normalize_schema
from .settings import AgentSettings
from .sse import EventStream, encode_event
from .tools import ToolDispatcher, ToolRegistry, register_function_execute
from .toolset import prepare_tools
from .types.request import AgentRequest

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AgentRequest",
    "AgentSettings",
    "AnthropicLLM",
    "BaseAsyncLLM",
    "ConfigurationError",
    "CopilotAgent",
    "CopilotAgentError",
    "EventStream",
    "ExecutionContext",
    "GeminiLLM",
    "LoopPhase",
    "LoopState",
    "MissingCredentialError",
    "OpenAILLM",
    "Provider",
    "ProviderError",
    "ToolDispatcher",
    "ToolExecutionError",
    "ToolRegistry",
    "UnsupportedProviderError",
    "build_system_prompt",
    "create_llm",
    "encode_event",
    "get_api_key",
    "handle_request",
    "map_model_name",
    "normalize_schema",
    "prepare_tools",
    "register_function_execute",
    "resolve_provider",
]
