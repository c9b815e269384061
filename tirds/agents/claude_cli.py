"""
Inference via the ``claude`` command-line client.

Each call is one subprocess: the system prompt and model go on the command
line, the user prompt is written to stdin, and the response is read from
stdout. A call that exceeds its timeout, or whose awaiting task is
cancelled, has its process killed and reaped.
"""

import asyncio
import logging
import time
from typing import Optional, Sequence

from ..errors import SpecialistFailed
from ..schemas import FailureReason

logger = logging.getLogger("tirds.agents.claude_cli")

DEFAULT_COMMAND = ("claude",)


def build_args(command: Sequence[str], system_prompt: str, model: str) -> list[str]:
    return [
        *command,
        "-p",
        "--system-prompt", system_prompt,
        "--model", model,
        "--output-format", "text",
    ]


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


async def invoke_claude(
    system_prompt: str,
    user_prompt: str,
    model: str,
    timeout: float,
    command: Optional[Sequence[str]] = None,
) -> str:
    """
    Run one inference call and return its stdout.

    Raises:
        SpecialistFailed: TIMEOUT, PROCESS_ERROR (spawn failure or non-zero
            exit) or UNPARSEABLE_OUTPUT (empty response).
    """
    args = build_args(command or DEFAULT_COMMAND, system_prompt, model)
    start = time.monotonic()

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SpecialistFailed(FailureReason.PROCESS_ERROR, f"failed to start {args[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(
            proc.communicate(user_prompt.encode("utf-8")), timeout=timeout
        )
    except asyncio.TimeoutError:
        await _terminate(proc)
        raise SpecialistFailed(FailureReason.TIMEOUT, f"no response within {timeout:g}s")
    except asyncio.CancelledError:
        await _terminate(proc)
        raise

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if proc.returncode != 0:
        err_tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
        logger.warning(f"{args[0]} exited with {proc.returncode} after {elapsed_ms}ms: {err_tail}")
        raise SpecialistFailed(
            FailureReason.PROCESS_ERROR, f"exit code {proc.returncode}: {err_tail}"
        )

    text = stdout.decode("utf-8", errors="replace").strip()
    if not text:
        raise SpecialistFailed(FailureReason.UNPARSEABLE_OUTPUT, "empty response")

    logger.debug(f"Inference with {model} finished in {elapsed_ms}ms ({len(text)} chars)")
    return text


async def check_cli_available(command: Optional[Sequence[str]] = None) -> bool:
    """True when ``<command> --version`` runs and exits cleanly."""
    args = [*(command or DEFAULT_COMMAND), "--version"]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(f"Inference CLI not available: {e}")
        return False
    try:
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
    except asyncio.TimeoutError:
        await _terminate(proc)
        return False
    if proc.returncode == 0:
        logger.info(f"Inference CLI: {stdout.decode(errors='replace').strip()}")
        return True
    return False
