from __future__ import annotations

import inspect
import logging
import time
from typing import Sequence, TextIO

from procforge.status import LiveStatus

from .race import ResultCallback, race_in_order
from .runner import launch, run_captured
from .types import BatchResult, CapturedOutput, ExecutionResult, Task

logger = logging.getLogger(__name__)


async def run_batch(
    tasks: Sequence[Task],
    on_result: ResultCallback | None = None,
    *,
    status_stream: TextIO | None = None,
) -> BatchResult:
    """Run every task concurrently and report each one as it finishes.

    The batch is only judged once all tasks have been delivered; a failure
    never cancels its siblings.
    """
    start = time.monotonic()
    names = [task.name for task in tasks]
    if len(set(names)) != len(names):
        raise ValueError("task names must be unique within a batch")

    logger.info("starting batch of %d task(s)", len(tasks))
    pending = [(task, launch(task, started_at=start)) for task in tasks]

    async with LiveStatus(names, stream=status_stream, started_at=start) as status:

        async def report(task: Task, result: ExecutionResult) -> None:
            status.done(task.name)
            if on_result is not None:
                ret = on_result(task, result)
                if inspect.isawaitable(ret):
                    await ret

        batch = await race_in_order(pending, report, started_at=start)

    logger.info(
        "batch finished in %.1fs: %d passed, %d failed",
        time.monotonic() - start,
        len(batch.order) - len(batch.failed),
        len(batch.failed),
    )
    return batch


def run_step(task: Task) -> tuple[CapturedOutput, float]:
    """Run one sequential step (fix or prepare) with captured output."""
    start = time.monotonic()
    output = run_captured(task.argv, task.cwd, task.env)
    elapsed = time.monotonic() - start
    if not output.ok:
        logger.warning("step %s failed with exit code %d", task.name, output.exit_code)
    return output, elapsed
