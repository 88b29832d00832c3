from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

# Reserved status for a command that could not be spawned or observed.
# Real exits are always >= 0 (signal deaths are reported as 128 + signum).
EXIT_EXEC_FAILURE = -1


@dataclass(frozen=True)
class Task:
    name: str
    argv: tuple[str, ...]
    cwd: str | None = None
    hint: str | None = None
    subsystem: str = "general"
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    requires: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Read-only copy so a shared dict can't change the task later
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


@dataclass(frozen=True)
class CapturedOutput:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    stdout: str
    stderr: str
    elapsed: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def could_not_execute(self) -> bool:
        return self.exit_code == EXIT_EXEC_FAILURE


@dataclass(frozen=True)
class CompletedTask:
    task: Task
    result: ExecutionResult


@dataclass
class BatchResult:
    order: list[str] = field(default_factory=list)
    results: dict[str, ExecutionResult] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def record(self, completed: CompletedTask) -> None:
        name = completed.task.name
        self.order.append(name)
        self.results[name] = completed.result
        if not completed.result.ok:
            self.failed.append(name)
