from __future__ import annotations

import asyncio
import inspect
import logging
import signal
from typing import Any, Callable, Iterable, Mapping, Sequence

from procforge.executor.runner import base_env, exit_status

from .terminal import reset_terminal as _reset_terminal
from .types import (
    DEFAULT_GRACE_PERIOD,
    EXIT_INTERRUPTED,
    GroupClosedError,
    GroupState,
    KillPhase,
    ManagedProcess,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ProcessGroup:
    """Long-lived sibling processes that live and die together.

    The group owns its signal subscriptions: they are installed on the first
    spawn and removed when the group terminates. Only one group per process
    should be running with subscriptions at a time; pass ``signals=()`` for
    groups that must not touch them.

    Teardown is single-shot. Whatever triggers it first (a signal, an explicit
    ``kill_all``, or ``wait_for_first`` seeing an exit) starts the one teardown
    sequence and every later trigger just waits for it:

    1. cleanup callbacks, in registration order, each isolated
    2. SIGTERM to every live process
    3. wait up to ``grace_period`` for them to exit
    4. SIGKILL whatever is left and reap it
    5. remove signal subscriptions
    6. restore the terminal
    """

    def __init__(
        self,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        *,
        signals: Iterable[signal.Signals] = DEFAULT_SIGNALS,
        reset_terminal: Callable[[], None] = _reset_terminal,
    ) -> None:
        self.grace_period = grace_period
        self.signals = tuple(signals)
        self.state = GroupState.EMPTY
        self.processes: list[ManagedProcess] = []
        self.kill_phases: list[KillPhase] = []
        self.interrupted_by: signal.Signals | None = None

        self._reset_terminal = reset_terminal
        self._cleanups: list[Callable[[], Any]] = []
        self._installed: list[signal.Signals] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._interrupted = asyncio.Event()
        self._teardown: asyncio.Future[None] | None = None

    async def __aenter__(self) -> ProcessGroup:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self.state is not GroupState.TERMINATED:
            await self.kill_all()

    @property
    def closed(self) -> bool:
        return self.state in (GroupState.TEARING_DOWN, GroupState.TERMINATED)

    @property
    def kill_phase(self) -> KillPhase:
        return self.kill_phases[-1] if self.kill_phases else KillPhase.IDLE

    def on_cleanup(self, fn: Callable[[], Any]) -> None:
        self._cleanups.append(fn)

    async def spawn(
        self,
        argv: Sequence[str],
        *,
        name: str | None = None,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        inherit_stdin: bool = False,
    ) -> ManagedProcess:
        if self.closed:
            raise GroupClosedError(f"cannot spawn {argv[0]!r}: group is shutting down")

        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd,
            env=base_env(env),
            stdin=None if inherit_stdin else asyncio.subprocess.DEVNULL,
        )

        # Teardown may have started while we were spawning
        if self.closed:
            proc.kill()
            await proc.wait()
            raise GroupClosedError(f"{argv[0]!r} spawned during shutdown and was killed")

        managed = ManagedProcess(
            name=name or argv[0],
            argv=tuple(argv),
            process=proc,
            exited=asyncio.ensure_future(self._reap(proc)),
        )
        self.processes.append(managed)
        logger.info("started %s (pid=%d)", managed.name, proc.pid)

        if self.state is GroupState.EMPTY:
            self._install_signal_handlers()
            self.state = GroupState.RUNNING

        return managed

    async def kill_all(self) -> None:
        await asyncio.shield(self._start_teardown())

    async def wait_for_first(self) -> int:
        """Wait for any process to exit, tear down the rest, return its code."""
        if not self.processes:
            return 0

        exits = [p.exited for p in self.processes]
        interrupted = asyncio.ensure_future(self._interrupted.wait())
        try:
            done, _ = await asyncio.wait(
                [*exits, interrupted], return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await asyncio.shield(self._start_teardown())
            raise
        finally:
            interrupted.cancel()

        if self.interrupted_by is not None:
            await self.kill_all()
            return EXIT_INTERRUPTED

        first = next(p for p in self.processes if p.exited in done)
        code = first.exited.result()
        logger.info("%s exited with code %d, stopping the group", first.name, code)
        await self.kill_all()
        return code

    async def wait_for_all(self) -> int:
        """Wait for every process to exit on its own, return the worst code."""
        remaining = {p.exited for p in self.processes}
        interrupted = asyncio.ensure_future(self._interrupted.wait())
        try:
            while remaining and not self._interrupted.is_set():
                done, _ = await asyncio.wait(
                    [*remaining, interrupted], return_when=asyncio.FIRST_COMPLETED
                )
                remaining -= done
        except asyncio.CancelledError:
            await asyncio.shield(self._start_teardown())
            raise
        finally:
            interrupted.cancel()

        if self.interrupted_by is not None:
            await self.kill_all()
            return EXIT_INTERRUPTED

        self._remove_signal_handlers()
        self.state = GroupState.TERMINATED
        return max([0, *(p.exited.result() for p in self.processes)])

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self.interrupted_by is None:
            self.interrupted_by = signal.Signals(sig)
            logger.info("received %s, stopping the group", self.interrupted_by.name)
        self._interrupted.set()
        self._start_teardown()

    def _start_teardown(self) -> asyncio.Future[None]:
        if self._teardown is None:
            self.state = GroupState.TEARING_DOWN
            self._teardown = asyncio.ensure_future(self._run_teardown())
        return self._teardown

    async def _run_teardown(self) -> None:
        try:
            await self._run_cleanups()
            await self._terminate()
        finally:
            self._remove_signal_handlers()
            try:
                # stty blocks, keep it off the loop
                await asyncio.get_running_loop().run_in_executor(None, self._reset_terminal)
            except Exception:
                logger.exception("terminal reset failed")
            self.state = GroupState.TERMINATED
            logger.debug("group terminated")

    async def _run_cleanups(self) -> None:
        for fn in list(self._cleanups):
            try:
                ret = fn()
                if inspect.isawaitable(ret):
                    await ret
            except Exception:
                logger.exception("cleanup callback %r failed", fn)

    async def _terminate(self) -> None:
        live = [p for p in self.processes if p.running]
        if not live:
            self.kill_phases.append(KillPhase.DONE)
            return

        for p in live:
            p.send_signal(signal.SIGTERM)
        self.kill_phases.append(KillPhase.GRACEFUL_SENT)

        self.kill_phases.append(KillPhase.GRACE_TIMER_ARMED)
        await asyncio.wait([p.exited for p in live], timeout=self.grace_period)

        stragglers = [p for p in live if p.running]
        if stragglers:
            for p in stragglers:
                logger.warning(
                    "%s (pid=%d) ignored SIGTERM for %.1fs, killing it",
                    p.name,
                    p.pid,
                    self.grace_period,
                )
                p.send_signal(signal.SIGKILL)
            self.kill_phases.append(KillPhase.FORCEFUL_SENT)
            await asyncio.wait([p.exited for p in stragglers])

        self.kill_phases.append(KillPhase.DONE)

    def _install_signal_handlers(self) -> None:
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as exc:
                logger.debug("cannot subscribe to %s: %s", sig, exc)
                continue
            self._installed.append(sig)

    def _remove_signal_handlers(self) -> None:
        if self._loop is not None:
            for sig in self._installed:
                self._loop.remove_signal_handler(sig)
        self._installed = []

    @staticmethod
    async def _reap(proc: asyncio.subprocess.Process) -> int:
        return exit_status(await proc.wait())
