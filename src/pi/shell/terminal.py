"""Terminal abstraction for raw-mode, byte-at-a-time interaction.

Provides a ``Terminal`` protocol and ``TtyTerminal``, which opens the
controlling terminal, switches it to raw mode and restores it on
:meth:`TtyTerminal.stop` or on a termination signal, whichever comes first.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
import termios
import tty
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_DEVICE = "/dev/tty"

_TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class TerminalError(Exception):
    """The terminal could not be opened or put into raw mode."""


# ---------------------------------------------------------------------------
# Terminal protocol
# ---------------------------------------------------------------------------


class Terminal(Protocol):
    """Interface for terminal I/O operations."""

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def read_byte(self) -> int | None:
        """Block until one byte is available. None means end of input."""
        ...

    def write(self, data: str) -> None: ...

    @property
    def columns(self) -> int: ...

    @property
    def rows(self) -> int: ...


# ---------------------------------------------------------------------------
# TtyTerminal implementation
# ---------------------------------------------------------------------------


class TtyTerminal:
    """Raw-mode terminal reading from the tty device and writing to stdout."""

    def __init__(self, device: str = DEFAULT_DEVICE) -> None:
        self._device = device
        self._fd: int | None = None
        self._original_termios: list | None = None
        self._prev_handlers: dict[int, object] = {}

    # -- properties ---------------------------------------------------------

    @property
    def active(self) -> bool:
        return self._fd is not None

    @property
    def columns(self) -> int:
        try:
            return os.get_terminal_size(sys.stdout.fileno()).columns
        except (ValueError, OSError):
            return 80

    @property
    def rows(self) -> int:
        try:
            return os.get_terminal_size(sys.stdout.fileno()).lines
        except (ValueError, OSError):
            return 24

    # -- start / stop -------------------------------------------------------

    def start(self) -> None:
        """Open the device and enable raw mode. Raises TerminalError."""
        try:
            fd = os.open(self._device, os.O_RDWR | os.O_NOCTTY)
        except OSError as e:
            raise TerminalError(f"failed to open terminal {self._device}: {e}") from e

        try:
            self._original_termios = termios.tcgetattr(fd)
            tty.setraw(fd)
        except (termios.error, OSError) as e:
            os.close(fd)
            self._original_termios = None
            raise TerminalError(f"failed to set raw mode: {e}") from e

        self._fd = fd

    def stop(self) -> None:
        """Restore terminal attributes and signal handlers.

        Safe to call more than once, including from a signal handler that
        races the normal shutdown path.
        """
        fd, self._fd = self._fd, None
        attrs, self._original_termios = self._original_termios, None

        for signum, handler in self._prev_handlers.items():
            signal.signal(signum, handler)
        self._prev_handlers = {}

        if fd is None:
            return

        if attrs is not None:
            try:
                termios.tcsetattr(fd, termios.TCSADRAIN, attrs)
            except (termios.error, OSError) as e:
                logger.debug("Terminal mode already restored: %s", e)
        try:
            os.close(fd)
        except OSError as e:
            logger.debug("Terminal already closed: %s", e)

    def install_signal_handlers(self) -> None:
        """Restore the terminal and exit when a termination signal arrives."""
        for signum in _TERMINATION_SIGNALS:
            self._prev_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._on_signal)

    # -- I/O ----------------------------------------------------------------

    def read_byte(self) -> int | None:
        if self._fd is None:
            return None
        try:
            data = os.read(self._fd, 1)
        except OSError as e:
            logger.debug("Terminal read failed: %s", e)
            return None
        return data[0] if data else None

    def write(self, data: str) -> None:
        """Write directly to stdout, bypassing buffering."""
        try:
            sys.stdout.write(data)
            sys.stdout.flush()
        except OSError:
            pass

    # -- private: signals ---------------------------------------------------

    def _on_signal(self, signum: int, frame: object) -> None:
        logger.debug("Received signal %d, restoring terminal", signum)
        self.write("\r\n")
        self.stop()
        raise SystemExit(0)
