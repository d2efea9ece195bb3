from .dispatcher import ToolDispatcher
from .registry import PRIVILEGED_TOOLS, RegisteredTool, ToolRegistry
from .sandbox import CodeSandbox, SandboxLimits, SubprocessSandbox, register_function_execute

__all__ = [
    "PRIVILEGED_TOOLS",
    "CodeSandbox",
    "RegisteredTool",
    "SandboxLimits",
    "SubprocessSandbox",
    "ToolDispatcher",
    "ToolRegistry",
    "register_function_execute",
]
