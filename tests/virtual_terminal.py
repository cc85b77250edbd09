"""Virtual terminal for testing -- implements the Terminal protocol in-memory.

This module provides a ``VirtualTerminal`` class that satisfies the
``pi.shell.terminal.Terminal`` protocol without performing any real I/O.
Input is a queue of bytes fed by the test; all output is captured in a
buffer for assertions.
"""

from __future__ import annotations

from collections import deque


class VirtualTerminal:
    """In-memory terminal that replays queued input and records all writes.

    Parameters
    ----------
    rows:
        Number of terminal rows (height).
    columns:
        Number of terminal columns (width).
    """

    def __init__(self, rows: int = 24, columns: int = 80) -> None:
        self._rows = rows
        self._columns = columns
        self._buffer: list[str] = []
        self._input: deque[int] = deque()
        self._started = False
        self.fail_writes = False

    # -- Terminal protocol: properties --------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @rows.setter
    def rows(self, value: int) -> None:
        self._rows = value

    @property
    def columns(self) -> int:
        return self._columns

    @columns.setter
    def columns(self, value: int) -> None:
        self._columns = value

    @property
    def started(self) -> bool:
        return self._started

    # -- Terminal protocol: lifecycle ---------------------------------------

    def start(self) -> None:
        self._started = True

    def stop(self) -> None:
        self._started = False

    # -- Terminal protocol: I/O ---------------------------------------------

    def read_byte(self) -> int | None:
        """Pop the next queued byte; ``None`` once the queue is exhausted."""
        if not self._input:
            return None
        return self._input.popleft()

    def write(self, data: str) -> None:
        """Append *data* to the internal buffer."""
        if self.fail_writes:
            raise OSError("write failed")
        self._buffer.append(data)

    # -- Test helpers -------------------------------------------------------

    def feed(self, data: bytes | str) -> None:
        """Queue *data* as keyboard input."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._input.extend(data)

    @property
    def output(self) -> str:
        """Return everything written to the terminal as a single string."""
        return "".join(self._buffer)

    @property
    def write_count(self) -> int:
        """Return the number of individual ``write`` calls made."""
        return len(self._buffer)

    def clear_buffer(self) -> None:
        """Discard all recorded output."""
        self._buffer.clear()
