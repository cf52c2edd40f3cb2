"""Non-blocking single-key input for the dashboard."""

from __future__ import annotations

import os
import select
import sys
import time
from typing import Optional, TextIO


class KeyboardHandler:
    """
    Puts a TTY stdin into non-canonical, no-echo mode for the lifetime of
    the `with` block and restores it afterwards.

    wait_key() doubles as the UI loop's tick: it returns as soon as a key
    arrives or when the timeout expires, whichever comes first. Without a
    TTY (pipes, CI) it just sleeps for the timeout.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdin
        self._fd: Optional[int] = None
        self._old_settings = None

    @property
    def interactive(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "KeyboardHandler":
        try:
            is_tty = self._stream.isatty()
        except (AttributeError, ValueError):
            is_tty = False
        if not is_tty:
            return self

        try:
            import termios
        except ImportError:
            # No termios on Windows
            return self

        fd = self._stream.fileno()
        self._old_settings = termios.tcgetattr(fd)
        new_settings = termios.tcgetattr(fd)
        new_settings[3] = new_settings[3] & ~(termios.ICANON | termios.ECHO)
        new_settings[6][termios.VMIN] = 0
        new_settings[6][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSADRAIN, new_settings)
        self._fd = fd
        return self

    def __exit__(self, *args) -> None:
        if self._fd is not None and self._old_settings is not None:
            import termios

            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._old_settings)
        self._fd = None
        self._old_settings = None

    def wait_key(self, timeout: float) -> Optional[str]:
        """Wait up to `timeout` seconds for one keypress."""
        if self._fd is None:
            time.sleep(timeout)
            return None

        ready, _, _ = select.select([self._fd], [], [], timeout)
        if not ready:
            return None

        ch = os.read(self._fd, 1)
        if not ch:
            return None
        return ch.decode("utf-8", errors="replace")
