from .chat import (
    ContentBlock,
    Conversation,
    ConversationTurn,
    FinalMessage,
    ReasoningBlock,
    Role,
    TextBlock,
    Usage,
)
from .tool import ToolCallRequest, ToolCallResult, ToolSpec

__all__ = [
    "ContentBlock",
    "Conversation",
    "ConversationTurn",
    "FinalMessage",
    "ReasoningBlock",
    "Role",
    "TextBlock",
    "Usage",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolSpec",
]
