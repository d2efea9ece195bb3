"""
Isolated execution of model-written code for the ``function_execute`` tool.

Code never runs in the server process. ``SubprocessSandbox`` starts a fresh
interpreter in isolated mode (``-I``: no user site-packages, no environment
variables, no script directory on ``sys.path``) with a wall-clock timeout and,
on POSIX, CPU-time and address-space limits. The code communicates its answer
by assigning to a variable named ``result``, which must be JSON-serializable;
whatever it prints comes back separately as ``stdout``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from copilot_agent.context import ExecutionContext
from copilot_agent.errors import ToolExecutionError
from copilot_agent.tools.registry import ToolRegistry

__all__ = [
    "CodeSandbox",
    "SandboxLimits",
    "SubprocessSandbox",
    "register_function_execute",
]

logger = logging.getLogger(__name__)

# ============================================
# CONFIGURATION
# ============================================

TIMEOUT_SECONDS = 10.0
CPU_SECONDS = 10
MEMORY_LIMIT_BYTES = 256 * 1024 * 1024
MAX_OUTPUT_SIZE = 1024 * 1024
MAX_STDOUT_CHARS = 64 * 1024

# Runs inside the child interpreter: reads {"code", "params", "max_stdout"}
# from stdin and writes one JSON object to a private copy of fd 1. Prints are
# captured into a buffer; raw writes to fd 1 land on stderr.
_RUNNER = """
import contextlib, io, json, os, sys
channel = os.fdopen(os.dup(1), "w", encoding="utf-8")
os.dup2(2, 1)
payload = json.loads(sys.stdin.read())
namespace = {"params": payload.get("params") or {}, "__name__": "__sandbox__"}
captured = io.StringIO()
try:
    with contextlib.redirect_stdout(captured):
        exec(compile(payload["code"], "<function_execute>", "exec"), namespace)
    out = {"success": True, "result": namespace.get("result")}
except BaseException as exc:
    out = {"success": False, "error": f"{type(exc).__name__}: {exc}"}
out["stdout"] = captured.getvalue()[: payload["max_stdout"]]
try:
    text = json.dumps(out, default=str)
except (TypeError, ValueError) as exc:
    text = json.dumps(
        {"success": False, "error": f"Result is not JSON-serializable: {exc}", "stdout": out["stdout"]}
    )
channel.write(text)
channel.flush()
"""


@dataclass(frozen=True, slots=True)
class SandboxLimits:
    timeout: float = TIMEOUT_SECONDS
    cpu_seconds: int = CPU_SECONDS
    memory_bytes: int = MEMORY_LIMIT_BYTES


class CodeSandbox(Protocol):
    """Boundary for running untrusted code; raises ToolExecutionError on failure or timeout."""

    async def run(
        self, code: str, params: dict[str, Any], limits: SandboxLimits
    ) -> Any: ...


def _limit_resources(limits: SandboxLimits) -> Callable[[], None]:
    def apply() -> None:
        import resource

        resource.setrlimit(resource.RLIMIT_CPU, (limits.cpu_seconds, limits.cpu_seconds))
        resource.setrlimit(resource.RLIMIT_AS, (limits.memory_bytes, limits.memory_bytes))

    return apply


async def _read_bounded(stream: asyncio.StreamReader, limit: int) -> bytes:
    """Read until EOF or until more than *limit* bytes arrived."""
    data = bytearray()
    while len(data) <= limit:
        chunk = await stream.read(limit + 1 - len(data))
        if not chunk:
            break
        data.extend(chunk)
    return bytes(data)


class SubprocessSandbox:
    """Runs Python code in a separate isolated interpreter process."""

    def __init__(self, python: Optional[str] = None) -> None:
        self.python = python or sys.executable

    async def run(
        self, code: str, params: dict[str, Any], limits: SandboxLimits = SandboxLimits()
    ) -> dict[str, Any]:
        """Run *code* and return ``{"result": <value of result>, "stdout": <printed text>}``."""
        payload = json.dumps(
            {"code": code, "params": params, "max_stdout": MAX_STDOUT_CHARS}, default=str
        ).encode("utf-8")
        preexec = _limit_resources(limits) if sys.platform != "win32" else None

        proc = await asyncio.create_subprocess_exec(
            self.python,
            "-I",
            "-c",
            _RUNNER,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            preexec_fn=preexec,
        )
        try:
            stdout, stderr = await asyncio.wait_for(self._exchange(proc, payload), limits.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Sandboxed code timed out after %.1fs", limits.timeout)
            raise ToolExecutionError(f"Code execution timed out after {limits.timeout:g}s") from None

        if len(stdout) > MAX_OUTPUT_SIZE:
            raise ToolExecutionError("Code execution output too large")

        try:
            outcome = json.loads(stdout.decode("utf-8", errors="replace"))
        except json.JSONDecodeError:
            detail = stderr.decode("utf-8", errors="replace").strip().splitlines()
            message = detail[-1] if detail else f"exit code {proc.returncode}"
            raise ToolExecutionError(f"Code execution failed: {message}") from None

        if not outcome.get("success"):
            raise ToolExecutionError(outcome.get("error") or "Code execution failed")
        return {"result": outcome.get("result"), "stdout": outcome.get("stdout", "")}

    @staticmethod
    async def _exchange(
        proc: asyncio.subprocess.Process, payload: bytes
    ) -> tuple[bytes, bytes]:
        try:
            proc.stdin.write(payload)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Sandbox process exited before reading its input")
        finally:
            proc.stdin.close()

        stdout, stderr = await asyncio.gather(
            _read_bounded(proc.stdout, MAX_OUTPUT_SIZE),
            _read_bounded(proc.stderr, MAX_OUTPUT_SIZE),
        )
        if len(stdout) > MAX_OUTPUT_SIZE or len(stderr) > MAX_OUTPUT_SIZE:
            # The child may be blocked on a full pipe.
            if proc.returncode is None:
                proc.kill()
        await proc.wait()
        return stdout, stderr


def register_function_execute(
    registry: ToolRegistry,
    sandbox: Optional[CodeSandbox] = None,
    limits: SandboxLimits = SandboxLimits(),
) -> None:
    """Register the ``function_execute`` tool backed by *sandbox*."""
    runner = sandbox or SubprocessSandbox()

    async def function_execute(tool_input: dict[str, Any], context: ExecutionContext) -> Any:
        code = tool_input.get("code")
        if not isinstance(code, str) or not code.strip():
            raise ToolExecutionError("function_execute requires a non-empty 'code' string")
        params = tool_input.get("params") or {}
        if not isinstance(params, dict):
            raise ToolExecutionError("'params' must be an object")
        return await runner.run(code, params, limits)

    registry.register(
        "function_execute",
        function_execute,
        privileged=True,
        description=(
            "Execute Python code in an isolated sandbox. Assign the output to `result`;"
            " printed text is returned as `stdout`."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "code": {"type": "string", "description": "Python source to run"},
                "params": {"type": "object", "description": "Values exposed as `params`"},
            },
            "required": ["code"],
        },
    )
