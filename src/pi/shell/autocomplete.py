"""Completion engine for commands, executables, file paths and history.

Candidates are plain strings carrying a source tag (``HIST: `` for history
entries, ``CMD: `` for built-ins, executables and paths). Which rule applies
depends on the shape of the text being typed:

* empty text: the most recent history entries;
* a single word: built-ins and PATH executables plus history prefix matches;
* anything after a space: file paths for the last word plus history entries
  containing that word.
"""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

HISTORY_TAG = "HIST: "
COMMAND_TAG = "CMD: "

BUILTIN_COMMANDS: tuple[str, ...] = ("cd", "clear", "exit", "help", "quit")

MAX_HISTORY_ITEMS = 3
MAX_ITEMS_WITH_HISTORY = 3
MAX_ITEMS = 6


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def is_history_item(item: str) -> bool:
    return item.startswith(HISTORY_TAG)


def strip_tag(item: str) -> str:
    """Remove the source tag from a candidate."""
    for tag in (HISTORY_TAG, COMMAND_TAG):
        if item.startswith(tag):
            return item[len(tag) :]
    return item


def _tagged(tag: str, values: Iterable[str]) -> list[str]:
    return [f"{tag}{value}" for value in values]


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------


def is_single_token(text: str) -> bool:
    """True if nothing but one word has been typed (no whitespace yet)."""
    return bool(text) and not any(ch.isspace() for ch in text)


def last_token(text: str) -> str:
    """The word being completed; empty when the text ends in whitespace."""
    if not text or text[-1].isspace():
        return ""
    return text.split()[-1]


def expand_home(path: str) -> str:
    """Expand a leading ``~`` or ``~/`` to the home directory."""
    if path == "~":
        return str(Path.home())
    if path.startswith("~/"):
        return os.path.join(str(Path.home()), path[2:])
    return path


@dataclass
class PathToken:
    """A path being completed, split at its last ``/``."""

    directory: str  # directory part as typed, e.g. "src/" or "~/"
    search_dir: str  # directory to list on disk
    prefix: str  # entry-name prefix


def split_path_token(token: str, base_path: str) -> PathToken:
    if token == "~":
        directory, prefix = "~/", ""
    else:
        slash = token.rfind("/")
        directory, prefix = token[: slash + 1], token[slash + 1 :]

    expanded = expand_home(directory)
    if not expanded:
        search_dir = base_path
    elif os.path.isabs(expanded):
        search_dir = expanded
    else:
        search_dir = os.path.join(base_path, expanded)
    return PathToken(directory=directory, search_dir=search_dir, prefix=prefix)


# ---------------------------------------------------------------------------
# Filesystem lookups
# ---------------------------------------------------------------------------


def find_executables(prefix: str, path_env: str | None = None) -> set[str]:
    """Names of executable files on PATH starting with *prefix*."""
    search_path = os.environ.get("PATH", "") if path_env is None else path_env
    names: set[str] = set()
    for directory in search_path.split(os.pathsep):
        if not directory:
            continue
        try:
            entries = list(os.scandir(directory))
        except OSError:
            continue
        for entry in entries:
            if not entry.name.startswith(prefix):
                continue
            try:
                if entry.is_file() and os.access(entry.path, os.X_OK):
                    names.add(entry.name)
            except OSError:
                continue
    return names


def list_directory(path_token: PathToken) -> set[str]:
    """Entries of the token's directory matching its prefix, dirs with a ``/``.

    Dot-entries are only listed when the prefix itself starts with ``.``.
    """
    try:
        entries = list(os.scandir(path_token.search_dir))
    except OSError:
        return set()

    show_hidden = path_token.prefix.startswith(".")
    names: set[str] = set()
    for entry in entries:
        if not entry.name.startswith(path_token.prefix):
            continue
        if entry.name.startswith(".") and not show_hidden:
            continue
        try:
            is_directory = entry.is_dir()
        except OSError:
            # Broken symlink or permission error - treat as file
            is_directory = False
        names.add(entry.name + "/" if is_directory else entry.name)
    return names


def _recent_distinct(
    entries: Sequence[str],
    matches: Callable[[str], bool],
    limit: int = MAX_HISTORY_ITEMS,
) -> list[str]:
    """Up to *limit* distinct matching entries, newest first."""
    found: list[str] = []
    for entry in reversed(entries):
        if entry in found or not matches(entry):
            continue
        found.append(entry)
        if len(found) >= limit:
            break
    return found


def _rank(history: list[str], commands: list[str]) -> list[str]:
    if history:
        return _tagged(HISTORY_TAG, history) + _tagged(
            COMMAND_TAG, commands[:MAX_ITEMS_WITH_HISTORY]
        )
    return _tagged(COMMAND_TAG, commands[:MAX_ITEMS])


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CompletionEngine:
    """Produces ranked, source-tagged candidates for the current line."""

    def __init__(
        self,
        history: Sequence[str],
        *,
        base_path: str | None = None,
        path_env: str | None = None,
        builtins: Sequence[str] = BUILTIN_COMMANDS,
    ) -> None:
        self._history = history
        self._base_path = base_path
        self._path_env = path_env
        self._builtins = tuple(builtins)

    @property
    def base_path(self) -> str:
        # Resolved per call so a `cd` is picked up
        return self._base_path if self._base_path is not None else os.getcwd()

    def get_completions(self, text: str) -> list[str]:
        entries = list(self._history)

        if not text:
            return _tagged(HISTORY_TAG, _recent_distinct(entries, lambda _: True))

        if is_single_token(text):
            return self._command_completions(text, entries)

        return self._path_completions(last_token(text), entries)

    def _command_completions(self, token: str, entries: list[str]) -> list[str]:
        names = {name for name in self._builtins if name.startswith(token)}
        names |= find_executables(token, self._path_env)

        lowered = token.lower()
        history = _recent_distinct(entries, lambda e: e.lower().startswith(lowered))
        return _rank(history, sorted(names))

    def _path_completions(self, token: str, entries: list[str]) -> list[str]:
        try:
            base_path: str | None = self.base_path
        except OSError:
            # Working directory was removed; only absolute and ~ paths resolve
            base_path = None

        path_token = split_path_token(token, base_path or "")
        if base_path is None and not os.path.isabs(path_token.search_dir):
            names: set[str] = set()
        else:
            names = list_directory(path_token)

        history = _recent_distinct(entries, lambda e: token in e)
        return _rank(history, sorted(names))


# ---------------------------------------------------------------------------
# Applying candidates
# ---------------------------------------------------------------------------


def inline_suggestion(text: str, items: Sequence[str]) -> str:
    """The first candidate that extends *text* (case-insensitive), or ""."""
    lowered = text.lower()
    seen: set[str] = set()
    for item in items:
        value = strip_tag(item)
        if value in seen:
            continue
        seen.add(value)
        if value.lower().startswith(lowered):
            return value
    return ""


def apply_completion(text: str, item: str) -> str:
    """Return the line after accepting *item*.

    History entries replace the whole line; a command replaces the word being
    typed; a path replaces the name part of the last word. A space follows
    unless the result already has one (commands) or names a directory (paths).
    """
    value = strip_tag(item)

    if is_history_item(item) or not text or is_single_token(text):
        return value if " " in value else value + " "

    token = last_token(text)
    path_token = split_path_token(token, ".")
    completed = text[: len(text) - len(token)] + path_token.directory + value
    return completed if value.endswith("/") else completed + " "


class CompletionState:
    """The candidates on offer for the current line and the selected one."""

    def __init__(self) -> None:
        self._items: list[str] = []
        self._selected = 0

    @property
    def items(self) -> list[str]:
        return list(self._items)

    @property
    def selected(self) -> int:
        return self._selected

    def update(self, items: Sequence[str]) -> None:
        self._items = list(items)
        self._selected = 0

    def clear(self) -> None:
        self._items = []
        self._selected = 0

    def select_next(self) -> None:
        if self._items:
            self._selected = (self._selected + 1) % len(self._items)

    def select_previous(self) -> None:
        if self._items:
            self._selected = (self._selected - 1) % len(self._items)

    def selected_item(self) -> str:
        if not self._items:
            return ""
        return self._items[self._selected]

    def __bool__(self) -> bool:
        return bool(self._items)

    def __len__(self) -> int:
        return len(self._items)
