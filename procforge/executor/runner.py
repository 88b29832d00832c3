from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import sys
import time
from typing import Callable, Iterable, Mapping, Protocol, Sequence, TypeVar

from .types import EXIT_EXEC_FAILURE, CapturedOutput, ExecutionResult, Task

logger = logging.getLogger(__name__)

BASE_ENV_OVERLAY = {"CI": "1"}
CAPTURED_ENV_OVERLAY = {"FORCE_COLOR": "1"}


class NeedsTools(Protocol):
    name: str
    requires: tuple[str, ...]


T = TypeVar("T", bound=NeedsTools)


def base_env(overlay: Mapping[str, str] | None = None) -> dict[str, str]:
    """Process environment with the fixed base overlay, then ``overlay`` on top."""
    return {**os.environ, **BASE_ENV_OVERLAY, **(overlay or {})}


def exit_status(returncode: int) -> int:
    """Map a negative (killed by signal) return code to the shell's 128 + N."""
    if returncode < 0:
        return 128 - returncode
    return returncode


def _decode(data: bytes | None) -> str:
    return (data or b"").decode("utf-8", errors="replace")


def run_interactive(
    argv: Sequence[str],
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    *,
    exit_on_failure: bool = True,
) -> int:
    """Run ``argv`` attached to our own terminal and wait for it.

    With ``exit_on_failure`` a nonzero exit terminates the orchestrator with the
    same code, so only use it at sequence points outside concurrent batches.
    """
    logger.debug("run_interactive %s (cwd=%s)", list(argv), cwd)
    try:
        proc = subprocess.run(list(argv), cwd=cwd, env=base_env(env))
        code = exit_status(proc.returncode)
    except OSError as exc:
        logger.error("could not execute %s: %s", argv[0], exc)
        code = EXIT_EXEC_FAILURE

    if code != 0 and exit_on_failure:
        raise SystemExit(code if code > 0 else 1)
    return code


def run_captured(
    argv: Sequence[str],
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
) -> CapturedOutput:
    logger.debug("run_captured %s (cwd=%s)", list(argv), cwd)
    try:
        proc = subprocess.run(
            list(argv),
            cwd=cwd,
            env=base_env(env),
            stdin=subprocess.DEVNULL,
            capture_output=True,
        )
    except OSError as exc:
        logger.debug("could not execute %s: %s", argv[0], exc)
        return CapturedOutput(EXIT_EXEC_FAILURE, "", str(exc))

    return CapturedOutput(
        exit_status(proc.returncode), _decode(proc.stdout), _decode(proc.stderr)
    )


async def run_async(
    argv: Sequence[str],
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    *,
    started_at: float | None = None,
) -> ExecutionResult:
    """Non-blocking ``run_captured``.

    A command that cannot be spawned resolves to ``EXIT_EXEC_FAILURE`` with the
    error text as stderr instead of raising, so a missing tool shows up as one
    more failing result.
    """
    start = time.monotonic() if started_at is None else started_at
    logger.debug("run_async %s (cwd=%s)", list(argv), cwd)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            env=base_env({**CAPTURED_ENV_OVERLAY, **(env or {})}),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.debug("could not execute %s: %s", argv[0], exc)
        return ExecutionResult(EXIT_EXEC_FAILURE, "", str(exc), time.monotonic() - start)

    stdout, stderr = await proc.communicate()
    return ExecutionResult(
        exit_status(proc.returncode),
        _decode(stdout),
        _decode(stderr),
        time.monotonic() - start,
    )


def launch(task: Task, *, started_at: float | None = None) -> asyncio.Task[ExecutionResult]:
    return asyncio.ensure_future(
        run_async(task.argv, task.cwd, task.env, started_at=started_at)
    )


def has_tool(name: str) -> bool:
    return shutil.which(name) is not None


def warn_missing_tool(name: str, consequence: str) -> None:
    print(f"warning: {name} not found, {consequence}", file=sys.stderr)


def available_tasks(
    tasks: Iterable[T],
    *,
    which: Callable[[str], bool] = has_tool,
    warn: Callable[[str, str], None] = warn_missing_tool,
) -> list[T]:
    """Drop tasks whose required executables are missing, warning once per tool."""
    known: dict[str, bool] = {}
    kept: list[T] = []

    for task in tasks:
        missing = []
        for tool in task.requires:
            if tool not in known:
                known[tool] = which(tool)
                if not known[tool]:
                    warn(tool, "skipping tasks that need it")
            if not known[tool]:
                missing.append(tool)

        if missing:
            logger.info("skipping %s: missing %s", task.name, ", ".join(missing))
            continue
        kept.append(task)

    return kept
