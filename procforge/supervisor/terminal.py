from __future__ import annotations

import logging
import subprocess
import sys
from typing import TextIO

logger = logging.getLogger(__name__)

# SGR reset, show cursor, leave the alternate screen buffer
RESET_SEQUENCE = "\x1b[0m\x1b[?25h\x1b[?1049l"


def reset_terminal(stream: TextIO | None = None) -> None:
    """Undo whatever a child may have left behind on the shared terminal."""
    stream = stream or sys.stdout

    try:
        if stream.isatty():
            stream.write(RESET_SEQUENCE)
            stream.flush()
    except (OSError, ValueError) as exc:
        logger.debug("could not write terminal reset sequence: %s", exc)

    # Leaves raw/no-echo input mode; fails quietly when stdin is not a tty
    try:
        subprocess.run(
            ["stty", "sane"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as exc:
        logger.debug("stty unavailable: %s", exc)
