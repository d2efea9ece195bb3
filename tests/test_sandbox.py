"""Tests for the function_execute tool and its sandbox."""

import os
import sys

import pytest

from copilot_agent.errors import ToolExecutionError
from copilot_agent.tools.dispatcher import ToolDispatcher
from copilot_agent.tools.registry import ToolRegistry
from copilot_agent.tools.sandbox import (
    MAX_OUTPUT_SIZE,
    MAX_STDOUT_CHARS,
    SandboxLimits,
    SubprocessSandbox,
    register_function_execute,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX resource limits")

GENEROUS = SandboxLimits(timeout=20.0, cpu_seconds=20, memory_bytes=2 * 1024**3)


class FakeSandbox:
    def __init__(self, result=None, error=None):
        self.runs = []
        self.result = result
        self.error = error

    async def run(self, code, params, limits):
        self.runs.append((code, params, limits))
        if self.error:
            raise self.error
        return self.result


class TestFunctionExecuteTool:
    @pytest.mark.asyncio
    async def test_registered_as_privileged(self, context):
        registry = ToolRegistry()
        sandbox = FakeSandbox(result=42)
        register_function_execute(registry, sandbox)

        result = await ToolDispatcher(registry).execute(
            "function_execute", {"code": "result = 42", "params": {"a": 1}}, context
        )

        assert registry.get("function_execute").privileged
        assert result.success and result.result == 42
        assert sandbox.runs[0][:2] == ("result = 42", {"a": 1})

    @pytest.mark.asyncio
    async def test_missing_code(self, context):
        registry = ToolRegistry()
        register_function_execute(registry, FakeSandbox())

        result = await ToolDispatcher(registry).execute("function_execute", {}, context)

        assert not result.success
        assert "non-empty 'code'" in result.error

    @pytest.mark.asyncio
    async def test_sandbox_error_reported(self, context):
        registry = ToolRegistry()
        register_function_execute(registry, FakeSandbox(error=ToolExecutionError("timed out")))

        result = await ToolDispatcher(registry).execute(
            "function_execute", {"code": "while True: pass"}, context
        )

        assert not result.success
        assert result.error == "timed out"


@posix_only
class TestSubprocessSandbox:
    @pytest.mark.asyncio
    async def test_runs_code_in_child_process(self):
        sandbox = SubprocessSandbox()
        value = await sandbox.run(
            "import os\nresult = {'sum': params['a'] + params['b'], 'pid': os.getpid()}",
            {"a": 2, "b": 3},
            GENEROUS,
        )
        assert value["result"]["sum"] == 5
        assert value["result"]["pid"] != os.getpid()
        assert value["stdout"] == ""

    @pytest.mark.asyncio
    async def test_printed_output_returned_separately(self):
        value = await SubprocessSandbox().run(
            "print('hi')\nprint(params['n'] * 2)\nresult = 42", {"n": 21}, GENEROUS
        )
        assert value == {"result": 42, "stdout": "hi\n42\n"}

    @pytest.mark.asyncio
    async def test_raw_writes_do_not_corrupt_result(self):
        value = await SubprocessSandbox().run(
            "import os\nos.write(1, b'noise')\nresult = [1, 2]", {}, GENEROUS
        )
        assert value["result"] == [1, 2]

    @pytest.mark.asyncio
    async def test_long_printed_output_truncated(self):
        value = await SubprocessSandbox().run(
            "print('x' * (4 * 1024 * 1024))\nresult = 'ok'", {}, GENEROUS
        )
        assert value["result"] == "ok"
        assert len(value["stdout"]) == MAX_STDOUT_CHARS

    @pytest.mark.asyncio
    async def test_oversized_result_rejected(self):
        with pytest.raises(ToolExecutionError, match="too large"):
            await SubprocessSandbox().run(
                f"result = 'x' * {MAX_OUTPUT_SIZE + 10}", {}, GENEROUS
            )

    @pytest.mark.asyncio
    async def test_code_error(self):
        with pytest.raises(ToolExecutionError, match="ZeroDivisionError"):
            await SubprocessSandbox().run("result = 1 / 0", {}, GENEROUS)

    @pytest.mark.asyncio
    async def test_timeout(self):
        limits = SandboxLimits(timeout=0.5, cpu_seconds=20, memory_bytes=GENEROUS.memory_bytes)
        with pytest.raises(ToolExecutionError, match="timed out"):
            await SubprocessSandbox().run("while True:\n    pass", {}, limits)
