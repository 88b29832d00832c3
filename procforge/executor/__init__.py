from .batch import run_batch, run_step
from .race import race_in_order
from .runner import (
    available_tasks,
    base_env,
    has_tool,
    launch,
    run_async,
    run_captured,
    run_interactive,
)
from .types import (
    EXIT_EXEC_FAILURE,
    BatchResult,
    CapturedOutput,
    CompletedTask,
    ExecutionResult,
    Task,
)

__all__ = [
    "run_batch",
    "run_step",
    "race_in_order",
    "available_tasks",
    "base_env",
    "has_tool",
    "launch",
    "run_async",
    "run_captured",
    "run_interactive",
    "EXIT_EXEC_FAILURE",
    "BatchResult",
    "CapturedOutput",
    "CompletedTask",
    "ExecutionResult",
    "Task",
]
