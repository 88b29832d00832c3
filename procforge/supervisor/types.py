from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass, field
from enum import Enum, auto

# Exit code reported when shutdown was triggered by an interruption signal
EXIT_INTERRUPTED = 130

DEFAULT_GRACE_PERIOD = 5.0


class GroupState(Enum):
    EMPTY = auto()
    RUNNING = auto()
    TEARING_DOWN = auto()
    TERMINATED = auto()


class KillPhase(Enum):
    IDLE = auto()
    GRACEFUL_SENT = auto()
    GRACE_TIMER_ARMED = auto()
    FORCEFUL_SENT = auto()
    DONE = auto()


@dataclass
class ManagedProcess:
    name: str
    argv: tuple[str, ...]
    process: asyncio.subprocess.Process
    exited: asyncio.Future[int] = field(repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return not self.exited.done()

    @property
    def exit_code(self) -> int | None:
        if self.exited.done():
            return self.exited.result()
        return None

    def send_signal(self, sig: signal.Signals) -> bool:
        if not self.running:
            return False
        try:
            self.process.send_signal(sig)
        except ProcessLookupError:
            return False
        return True


class SupervisorError(Exception):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)


class GroupClosedError(SupervisorError):
    def __init__(self, *args: object) -> None:
        super().__init__(*args)
