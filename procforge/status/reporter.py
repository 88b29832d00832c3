from __future__ import annotations

import asyncio
import time
from typing import Iterable, TextIO

from rich.console import Console
from rich.live import Live
from rich.text import Text


class LiveStatus:
    """Redraws the names of still-running tasks on one terminal line.

    Purely cosmetic: nothing is drawn unless the console is a terminal.
    """

    def __init__(
        self,
        names: Iterable[str],
        *,
        stream: TextIO | None = None,
        interval: float = 0.1,
        started_at: float | None = None,
        enabled: bool | None = None,
    ) -> None:
        if stream is None:
            self.console = Console(stderr=True, force_terminal=enabled)
        else:
            self.console = Console(file=stream, force_terminal=enabled)
        self.interval = interval
        self.started_at = time.monotonic() if started_at is None else started_at
        # dict keeps submission order for display
        self.pending: dict[str, None] = dict.fromkeys(names)
        self._live: Live | None = None
        self._ticker: asyncio.Task[None] | None = None

    @property
    def enabled(self) -> bool:
        return self.console.is_terminal

    async def __aenter__(self) -> LiveStatus:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def start(self) -> None:
        if not self.enabled or self._live is not None:
            return

        # Refreshed from the event loop, not from rich's own thread
        self._live = Live(
            self.render(),
            console=self.console,
            transient=True,
            auto_refresh=False,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self._live.start(refresh=True)
        self._ticker = asyncio.ensure_future(self._tick())

    async def stop(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        if self._live is not None:
            self._live.stop()
            self._live = None

    def done(self, name: str) -> None:
        self.pending.pop(name, None)
        self.clear()

    def clear(self) -> None:
        """Blank the line so the caller's next output starts on a clean row."""
        if self._live is not None:
            self._live.update(Text(""), refresh=True)

    def render(self) -> Text:
        elapsed = time.monotonic() - self.started_at
        return Text(
            f"{elapsed:.1f}s [{', '.join(self.pending)}]",
            no_wrap=True,
            overflow="ellipsis",
        )

    async def _tick(self) -> None:
        while self._live is not None:
            self._live.update(self.render(), refresh=True)
            await asyncio.sleep(self.interval)
