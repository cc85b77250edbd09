"""Command history: a persisted, size-capped log with recall and reverse search.

``HistoryStore`` keeps past commands (newest last) and rewrites its file on
every addition. ``HistorySearch`` layers incremental reverse-i-search on top.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 1000
HISTORY_FILE_NAME = ".pi_shell_history"


def default_history_path() -> str:
    """Default history file (~/.pi_shell_history)."""
    return os.path.join(os.path.expanduser("~"), HISTORY_FILE_NAME)


class HistoryStore:
    """Append-only, deduplicated command history persisted as plain text.

    One command per line. The file is opened, read or written, and closed
    inside each operation.
    """

    def __init__(
        self,
        path: str | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._path = path if path is not None else default_history_path()
        self._limit = max(1, limit)
        self._entries: list[str] = []
        self._index = -1  # -1 means not navigating

    @property
    def path(self) -> str:
        return self._path

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    @property
    def history_index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __getitem__(self, index: int) -> str:
        return self._entries[index]

    # -- persistence ---------------------------------------------------------

    def load(self) -> None:
        """Load entries from disk.

        A missing file is created empty. Any other read failure is logged and
        leaves the history empty.
        """
        self._entries = []
        self._index = -1
        path = Path(self._path)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            try:
                path.touch()
            except OSError as e:
                logger.warning("Could not create history file %s: %s", self._path, e)
            return
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read history file %s: %s", self._path, e)
            return

        entries = [line for line in content.split("\n") if line]
        self._entries = entries[-self._limit :]

    def save(self) -> None:
        """Rewrite the whole file. Raises OSError on failure."""
        Path(self._path).write_text("\n".join(self._entries), encoding="utf-8")

    # -- mutation ------------------------------------------------------------

    def add(self, cmd: str) -> bool:
        """Record a committed command and persist the history.

        Empty commands and immediate repeats are ignored (returns False).
        """
        self._index = -1
        if not cmd:
            return False
        if self._entries and self._entries[-1] == cmd:
            return False
        self._entries.append(cmd)
        if len(self._entries) > self._limit:
            del self._entries[: len(self._entries) - self._limit]
        self.save()
        return True

    # -- navigation ----------------------------------------------------------

    def previous(self) -> str:
        """Step to an older entry (Up). Stops at the oldest one."""
        if not self._entries:
            return ""
        if self._index == -1:
            self._index = len(self._entries) - 1
        elif self._index > 0:
            self._index -= 1
        return self._entries[self._index]

    def next(self) -> str:
        """Step to a newer entry (Down).

        Moving past the newest entry leaves navigation and returns "".
        """
        if self._index == -1:
            return ""
        if self._index < len(self._entries) - 1:
            self._index += 1
            return self._entries[self._index]
        self._index = -1
        return ""

    def reset_navigation(self) -> None:
        self._index = -1


class HistorySearch:
    """Incremental reverse search over a :class:`HistoryStore`."""

    PROMPT_TEMPLATE = "(reverse-i-search)`{query}': "

    def __init__(self, history: HistoryStore) -> None:
        self._history = history
        self._active = False
        self._query = ""
        self._results: list[str] = []
        self._cursor = -1

    @property
    def active(self) -> bool:
        return self._active

    @property
    def query(self) -> str:
        return self._query

    @property
    def results(self) -> list[str]:
        return list(self._results)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def prompt(self) -> str:
        return self.PROMPT_TEMPLATE.format(query=self._query)

    def start(self) -> None:
        self._active = True
        self._query = ""
        self._results = []
        self._cursor = -1

    def update_query(self, query: str) -> str:
        """Recompute matches for *query* and return the best one ("" if none)."""
        self._query = query
        needle = query.lower()
        self._results = [
            entry for entry in reversed(self._history.entries) if needle in entry.lower()
        ]
        self._cursor = 0 if self._results else -1
        return self.current()

    def current(self) -> str:
        if self._cursor < 0:
            return ""
        return self._results[self._cursor]

    def next(self) -> str:
        if not self._results:
            return ""
        self._cursor = (self._cursor + 1) % len(self._results)
        return self._results[self._cursor]

    def previous(self) -> str:
        if not self._results:
            return ""
        self._cursor = (self._cursor - 1) % len(self._results)
        return self._results[self._cursor]

    def exit(self) -> None:
        self._active = False
        self._query = ""
        self._results = []
        self._cursor = -1
