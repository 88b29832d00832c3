# tests/test_runner.py
from __future__ import annotations

import sys
from pathlib import Path

import pytest

from procforge.executor.runner import (
    available_tasks,
    base_env,
    exit_status,
    run_async,
    run_captured,
    run_interactive,
)
from procforge.executor.types import EXIT_EXEC_FAILURE, Task


def _py(code: str) -> list[str]:
    """argv running ``code`` with the current interpreter; never goes through a shell."""
    return [sys.executable, "-c", code]


MISSING = "/nonexistent/definitely-not-a-tool"


# -------------------------
# Environment
# -------------------------


def test_base_env_overlay_is_last_write_wins(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PF_SHARED", "from-os")
    env = base_env({"PF_SHARED": "from-overlay", "CI": "0"})

    assert env["PF_SHARED"] == "from-overlay"
    assert env["CI"] == "0"


def test_base_env_sets_ci() -> None:
    assert base_env()["CI"] == "1"


def test_exit_status_maps_signal_deaths() -> None:
    assert exit_status(0) == 0
    assert exit_status(3) == 3
    assert exit_status(-15) == 143
    assert exit_status(-9) == 137


# -------------------------
# run_captured
# -------------------------


def test_run_captured_collects_both_streams() -> None:
    out = run_captured(
        _py("import sys; print('to out'); print('to err', file=sys.stderr); raise SystemExit(4)")
    )

    assert out.exit_code == 4
    assert out.stdout.strip() == "to out"
    assert out.stderr.strip() == "to err"
    assert not out.ok


def test_run_captured_applies_env_and_cwd(tmp_path: Path) -> None:
    out = run_captured(
        _py("import os; print(os.environ['PF_TEST'], os.getcwd())"),
        cwd=str(tmp_path),
        env={"PF_TEST": "ok"},
    )

    assert out.ok
    value, cwd = out.stdout.split()
    assert value == "ok"
    assert Path(cwd).resolve() == tmp_path.resolve()


def test_run_captured_missing_executable_is_reported_not_raised() -> None:
    out = run_captured([MISSING])

    assert out.exit_code == EXIT_EXEC_FAILURE
    assert out.stderr != ""


# -------------------------
# run_interactive
# -------------------------


def test_run_interactive_returns_zero_on_success() -> None:
    assert run_interactive(_py("pass")) == 0


def test_run_interactive_exits_with_child_code() -> None:
    with pytest.raises(SystemExit) as e:
        run_interactive(_py("raise SystemExit(3)"))

    assert e.value.code == 3


def test_run_interactive_can_return_failure_instead() -> None:
    assert run_interactive(_py("raise SystemExit(3)"), exit_on_failure=False) == 3


def test_run_interactive_missing_executable_exits_1() -> None:
    with pytest.raises(SystemExit) as e:
        run_interactive([MISSING])

    assert e.value.code == 1


# -------------------------
# run_async
# -------------------------


@pytest.mark.asyncio
async def test_run_async_captures_output_and_elapsed() -> None:
    result = await run_async(_py("import time; time.sleep(0.1); print('done')"))

    assert result.ok
    assert result.stdout.strip() == "done"
    assert result.elapsed >= 0.1


@pytest.mark.asyncio
async def test_run_async_nonzero_exit_is_a_normal_result() -> None:
    result = await run_async(_py("raise SystemExit(9)"))

    assert result.exit_code == 9
    assert not result.could_not_execute


@pytest.mark.asyncio
async def test_run_async_forces_color_unless_overridden() -> None:
    forced = await run_async(_py("import os; print(os.environ.get('FORCE_COLOR'))"))
    overridden = await run_async(
        _py("import os; print(os.environ.get('FORCE_COLOR'))"), env={"FORCE_COLOR": "0"}
    )

    assert forced.stdout.strip() == "1"
    assert overridden.stdout.strip() == "0"


@pytest.mark.asyncio
async def test_run_async_missing_executable_resolves_to_failure() -> None:
    result = await run_async([MISSING])

    assert result.exit_code == EXIT_EXEC_FAILURE
    assert result.could_not_execute
    assert result.stderr != ""


# -------------------------
# Tool availability
# -------------------------


def test_available_tasks_skips_and_warns_once_per_tool() -> None:
    tasks = [
        Task("go-build", ("go", "build"), requires=("go",)),
        Task("go-test", ("go", "test"), requires=("go",)),
        Task("lint", ("ruff",), requires=("ruff",)),
        Task("plain", ("true",)),
    ]
    warned: list[str] = []

    kept = available_tasks(
        tasks,
        which=lambda tool: tool != "go",
        warn=lambda tool, consequence: warned.append(tool),
    )

    assert [t.name for t in kept] == ["lint", "plain"]
    assert warned == ["go"]


def test_available_tasks_default_warning_goes_to_stderr(
    capsys: pytest.CaptureFixture[str],
) -> None:
    kept = available_tasks([Task("x", ("x",), requires=("definitely-not-a-tool-pf",))])
    captured = capsys.readouterr()

    assert kept == []
    assert "definitely-not-a-tool-pf" in captured.err


def test_task_env_cannot_be_changed_after_construction() -> None:
    source = {"MODE": "strict"}
    task = Task(name="lint", argv=("lint",), env=source)

    source["MODE"] = "loose"
    with pytest.raises(TypeError):
        task.env["MODE"] = "loose"  # type: ignore[index]

    assert task.env == {"MODE": "strict"}
