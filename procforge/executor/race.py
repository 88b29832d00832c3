from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, Sequence

from .types import EXIT_EXEC_FAILURE, BatchResult, CompletedTask, ExecutionResult, Task

logger = logging.getLogger(__name__)

ResultCallback = Callable[[Task, ExecutionResult], Any]


def _settled_result(fut: asyncio.Future[ExecutionResult], started_at: float) -> ExecutionResult:
    """Result of a settled future, or a synthetic failure if it didn't produce one."""
    if fut.cancelled():
        error = "execution was cancelled"
    else:
        exc = fut.exception()
        if exc is None:
            result = fut.result()
            if isinstance(result, ExecutionResult):
                return result
            error = f"execution produced {type(result).__name__}, not a result"
        else:
            error = str(exc) or repr(exc)

    return ExecutionResult(EXIT_EXEC_FAILURE, "", error, time.monotonic() - started_at)


async def race_in_order(
    pending: Sequence[tuple[Task, Awaitable[ExecutionResult]]],
    on_result: ResultCallback | None = None,
    *,
    started_at: float | None = None,
) -> BatchResult:
    """Deliver each pending execution exactly once, in the order they settle.

    Executions that settle in the same loop iteration are delivered in
    submission order. An execution that raises is reported as an
    ``EXIT_EXEC_FAILURE`` result carrying the error text; nothing is dropped
    and nothing is cancelled because of a sibling's failure.
    """
    start = time.monotonic() if started_at is None else started_at
    batch = BatchResult()

    live: dict[asyncio.Future[ExecutionResult], int] = {}
    for index, (_, awaitable) in enumerate(pending):
        live[asyncio.ensure_future(awaitable)] = index

    try:
        while live:
            done, _ = await asyncio.wait(live.keys(), return_when=asyncio.FIRST_COMPLETED)

            for fut in sorted(done, key=live.__getitem__):
                task = pending[live.pop(fut)][0]
                result = _settled_result(fut, start)
                if result.could_not_execute:
                    logger.debug("%s could not execute: %s", task.name, result.stderr)

                batch.record(CompletedTask(task, result))
                if on_result is not None:
                    await _deliver(on_result, task, result)
    finally:
        for fut in live:
            fut.cancel()

    return batch


async def _deliver(on_result: ResultCallback, task: Task, result: ExecutionResult) -> None:
    try:
        ret = on_result(task, result)
        if inspect.isawaitable(ret):
            await ret
    except Exception:
        logger.exception("result callback failed for %s", task.name)
