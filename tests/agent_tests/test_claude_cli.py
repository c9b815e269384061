"""
Tests for the inference subprocess wrapper, using small Python scripts as
stand-ins for the real CLI.
"""

import asyncio
import json
import os
import sys

import pytest

from tirds.agents.claude_cli import build_args, check_cli_available, invoke_claude
from tirds.errors import SpecialistFailed
from tirds.schemas import FailureReason

ECHO = (
    "import sys, json; data = sys.stdin.read(); "
    "print(json.dumps({'argv': sys.argv[1:], 'stdin': data}))"
)
FAIL = "import sys; sys.stderr.write('model overloaded'); sys.exit(3)"
SILENT = "pass"


def _sleeper(pid_file: str) -> str:
    return (
        "import os, time; "
        f"open({pid_file!r}, 'w').write(str(os.getpid())); "
        "time.sleep(30)"
    )


def _fake(script: str) -> list:
    return [sys.executable, "-c", script]


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    return True


async def _wait_for_file(path: str) -> int:
    for _ in range(200):
        if os.path.exists(path) and open(path).read():
            return int(open(path).read())
        await asyncio.sleep(0.025)
    raise AssertionError("fake CLI never started")


class TestBuildArgs:

    def test_flags(self):
        args = build_args(["claude"], "be terse", "claude-3-5-haiku-latest")
        assert args == [
            "claude", "-p", "--system-prompt", "be terse",
            "--model", "claude-3-5-haiku-latest", "--output-format", "text",
        ]


class TestInvokeClaude:

    @pytest.mark.asyncio
    async def test_success_pipes_prompt_on_stdin(self):
        out = await invoke_claude("sys", "the user prompt", "m1", timeout=10, command=_fake(ECHO))
        data = json.loads(out)
        assert data["stdin"] == "the user prompt"
        assert data["argv"][data["argv"].index("--model") + 1] == "m1"

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_process_error(self):
        with pytest.raises(SpecialistFailed) as exc:
            await invoke_claude("sys", "u", "m", timeout=10, command=_fake(FAIL))
        assert exc.value.reason == FailureReason.PROCESS_ERROR
        assert "model overloaded" in exc.value.message

    @pytest.mark.asyncio
    async def test_empty_output_is_unparseable(self):
        with pytest.raises(SpecialistFailed) as exc:
            await invoke_claude("sys", "u", "m", timeout=10, command=_fake(SILENT))
        assert exc.value.reason == FailureReason.UNPARSEABLE_OUTPUT

    @pytest.mark.asyncio
    async def test_missing_binary_is_process_error(self):
        with pytest.raises(SpecialistFailed) as exc:
            await invoke_claude("sys", "u", "m", timeout=10, command=["/nonexistent/claude-cli"])
        assert exc.value.reason == FailureReason.PROCESS_ERROR

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, tmp_path):
        pid_file = str(tmp_path / "pid")
        with pytest.raises(SpecialistFailed) as exc:
            await invoke_claude("sys", "u", "m", timeout=3.0, command=_fake(_sleeper(pid_file)))
        assert exc.value.reason == FailureReason.TIMEOUT
        pid = int(open(pid_file).read())
        assert not _is_alive(pid)

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self, tmp_path):
        pid_file = str(tmp_path / "pid")
        task = asyncio.create_task(
            invoke_claude("sys", "u", "m", timeout=60, command=_fake(_sleeper(pid_file)))
        )
        pid = await _wait_for_file(pid_file)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not _is_alive(pid)


class TestCheckCliAvailable:

    @pytest.mark.asyncio
    async def test_available(self):
        assert await check_cli_available(_fake("print('claude 1.0.0')")) is True

    @pytest.mark.asyncio
    async def test_missing(self):
        assert await check_cli_available(["/nonexistent/claude-cli"]) is False
