from .group import ProcessGroup
from .terminal import reset_terminal
from .types import (
    DEFAULT_GRACE_PERIOD,
    EXIT_INTERRUPTED,
    GroupClosedError,
    GroupState,
    KillPhase,
    ManagedProcess,
    SupervisorError,
)

__all__ = [
    "ProcessGroup",
    "reset_terminal",
    "DEFAULT_GRACE_PERIOD",
    "EXIT_INTERRUPTED",
    "GroupClosedError",
    "GroupState",
    "KillPhase",
    "ManagedProcess",
    "SupervisorError",
]
