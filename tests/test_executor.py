# tests/test_executor.py
from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest

from procforge.executor import EXIT_EXEC_FAILURE, ExecutionResult, Task, run_batch, run_step


def _py(code: str) -> tuple[str, ...]:
    return (sys.executable, "-c", code)


def _sleeper(name: str, delay: float, code: int = 0) -> Task:
    return Task(
        name=name,
        argv=_py(f"import time; time.sleep({delay}); print('{name}'); raise SystemExit({code})"),
    )


@pytest.mark.asyncio
async def test_batch_reports_in_completion_order() -> None:
    tasks = [_sleeper("slow", 0.6), _sleeper("fast", 0.05), _sleeper("middle", 0.3)]
    seen: list[str] = []

    batch = await run_batch(tasks, lambda t, r: seen.append(t.name), status_stream=io.StringIO())

    assert seen == ["fast", "middle", "slow"]
    assert batch.ok
    assert batch.results["slow"].stdout.strip() == "slow"


@pytest.mark.asyncio
async def test_batch_tasks_run_concurrently() -> None:
    tasks = [_sleeper(f"t{i}", 0.5) for i in range(4)]

    batch = await run_batch(tasks, status_stream=io.StringIO())

    # Four half-second tasks in sequence would take two seconds
    assert max(r.elapsed for r in batch.results.values()) < 1.8


@pytest.mark.asyncio
async def test_missing_executable_fails_only_its_own_task() -> None:
    tasks = [
        _sleeper("before", 0.01),
        Task(name="ghost", argv=("/nonexistent/ghost-tool", "--version")),
        _sleeper("after", 0.2),
    ]
    received: dict[str, ExecutionResult] = {}

    batch = await run_batch(
        tasks, lambda t, r: received.setdefault(t.name, r), status_stream=io.StringIO()
    )

    assert received["ghost"].exit_code == EXIT_EXEC_FAILURE
    assert received["ghost"].stderr != ""
    assert received["before"].ok
    assert received["after"].ok
    assert batch.failed == ["ghost"]


@pytest.mark.asyncio
async def test_failed_batch_still_delivers_every_result() -> None:
    tasks = [_sleeper("bad", 0.01, code=5), _sleeper("good", 0.2)]

    batch = await run_batch(tasks, status_stream=io.StringIO())

    assert batch.order == ["bad", "good"]
    assert batch.results["bad"].exit_code == 5
    assert not batch.ok


@pytest.mark.asyncio
async def test_empty_batch_is_ok() -> None:
    batch = await run_batch([], status_stream=io.StringIO())

    assert batch.ok
    assert batch.order == []


@pytest.mark.asyncio
async def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        await run_batch([_sleeper("x", 0), _sleeper("x", 0)], status_stream=io.StringIO())


@pytest.mark.asyncio
async def test_task_env_and_cwd_are_applied(tmp_path: Path) -> None:
    task = Task(
        name="env",
        argv=_py(
            "import os, pathlib; pathlib.Path('written.txt').write_text(os.environ['PF_TEST'])"
        ),
        cwd=str(tmp_path),
        env={"PF_TEST": "ok"},
    )

    batch = await run_batch([task], status_stream=io.StringIO())

    assert batch.ok
    assert (tmp_path / "written.txt").read_text() == "ok"


def test_run_step_captures_output_and_time() -> None:
    output, elapsed = run_step(Task(name="step", argv=_py("print('fixed')")))

    assert output.ok
    assert output.stdout.strip() == "fixed"
    assert elapsed >= 0


def test_run_step_failure_is_returned() -> None:
    output, _ = run_step(Task(name="step", argv=_py("raise SystemExit(2)")))

    assert output.exit_code == 2
