from __future__ import annotations

import sys
from typing import TextIO

from procforge.executor import EXIT_EXEC_FAILURE, ExecutionResult, Task


def format_line(task: Task, exit_code: int, elapsed: float) -> str:
    label = f"{task.name} [{task.subsystem}] {elapsed:.1f}s"
    if exit_code == 0:
        return f"OK {label}"
    if exit_code == EXIT_EXEC_FAILURE:
        return f"FAIL {label}, could not execute"
    return f"FAIL {label}, exit code = {exit_code}"


def print_outcome(
    task: Task,
    exit_code: int,
    elapsed: float,
    stdout: str,
    stderr: str,
    *,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> None:
    """One line per task; a failing task's hint, or else its output, goes underneath."""
    out = sys.stdout if out is None else out
    err = sys.stderr if err is None else err

    print(format_line(task, exit_code, elapsed), file=out)
    if exit_code == 0:
        return

    if task.hint:
        print(f"  {task.hint}", file=out)
        return

    if stdout:
        out.write(stdout if stdout.endswith("\n") else stdout + "\n")
    if stderr:
        err.write(stderr if stderr.endswith("\n") else stderr + "\n")
    out.flush()
    err.flush()


def print_result(task: Task, result: ExecutionResult) -> None:
    print_outcome(task, result.exit_code, result.elapsed, result.stdout, result.stderr)
