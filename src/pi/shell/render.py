"""Renderer: draws the input line, inline suggestion and completion panel.

All terminal control sequences live here. Callers express intent
(``show_suggestion``, ``show_panel``, ``clear_panel`` ...) and the renderer
keeps the user's cursor where typing expects it by wrapping every excursion
in cursor save/restore. Write failures are absorbed so a display problem
never ends the session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from pi.shell.autocomplete import is_history_item
from pi.shell.terminal import Terminal
from pi.shell.utils import truncate_to_width, visible_width

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# ANSI escape constants
# ---------------------------------------------------------------------------

SAVE_CURSOR = "\x1b[s"
RESTORE_CURSOR = "\x1b[u"
CLEAR_TO_EOL = "\x1b[K"
CLEAR_LINE = "\x1b[2K"
CLEAR_SCREEN = "\x1b[2J\x1b[H"
CURSOR_DOWN = "\x1b[1B"
_CURSOR_UP_FMT = "\x1b[{}A"
_COLUMN_FMT = "\x1b[{}G"
ERASE_CHAR = "\b \b"

MAX_PANEL_ROWS = 6
# Borders included, so the largest panel is always fully cleared
PANEL_CLEAR_ROWS = MAX_PANEL_ROWS + 2

DEFAULT_SUGGESTION_COLUMN = 60
DEFAULT_PANEL_WIDTH = 40


# ---------------------------------------------------------------------------
# Theme
# ---------------------------------------------------------------------------


def _sgr(*codes: int) -> Callable[[str], str]:
    start = f"\x1b[{';'.join(str(c) for c in codes)}m"
    return lambda text: f"{start}{text}\x1b[0m"


@dataclass
class RenderTheme:
    suggestion: Callable[[str], str]
    command_row: Callable[[str], str]
    history_row: Callable[[str], str]
    selected_row: Callable[[str], str]
    border: Callable[[str], str]


DEFAULT_THEME = RenderTheme(
    suggestion=_sgr(90),
    command_row=_sgr(30, 43),
    history_row=_sgr(30, 46),
    selected_row=_sgr(1, 97, 44),
    border=_sgr(2),
)


def _single_line(text: str) -> str:
    return "".join(ch if ch.isprintable() else " " for ch in text)


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------


class Renderer:
    """Intent-level drawing on a :class:`Terminal`.

    Tracks the prompt and typed text of the current line so suggestions can
    be placed relative to the cursor.
    """

    def __init__(
        self,
        terminal: Terminal,
        *,
        theme: RenderTheme = DEFAULT_THEME,
        suggestion_column: int = DEFAULT_SUGGESTION_COLUMN,
        panel_width: int = DEFAULT_PANEL_WIDTH,
    ) -> None:
        self._terminal = terminal
        self._theme = theme
        self._suggestion_column = suggestion_column
        self._panel_width = panel_width
        self._prompt = ""
        self._text = ""
        self._panel_visible = False
        self._mid_line = False  # pass-through output left the cursor mid-line

    @property
    def panel_visible(self) -> bool:
        return self._panel_visible

    # -- output primitives --------------------------------------------------

    def _emit(self, data: str) -> None:
        try:
            self._terminal.write(data)
        except OSError as e:
            logger.debug("Dropped terminal write: %s", e)

    def write(self, data: str) -> None:
        """Pass-through output (command results)."""
        if data:
            self._mid_line = not data.endswith("\n")
        self._emit(data)

    def write_line(self, text: str = "") -> None:
        self._emit(text + "\r\n")
        self._prompt = ""
        self._text = ""
        self._mid_line = False

    def ensure_line_start(self) -> None:
        """Move to a fresh line if command output did not end with one."""
        if self._mid_line:
            self.new_line()

    def new_line(self) -> None:
        self.write_line("")

    def clear_screen(self) -> None:
        self._emit(CLEAR_SCREEN)
        self._panel_visible = False
        self._mid_line = False

    # -- input line ---------------------------------------------------------

    def show_prompt(self, prompt: str, text: str = "") -> None:
        """Redraw the whole input line."""
        self._prompt = prompt
        self._text = text
        self._emit("\r" + CLEAR_LINE + prompt + text)

    def echo(self, ch: str) -> None:
        self._text += ch
        self._emit(ch)

    def erase(self, count: int = 1) -> None:
        if count <= 0:
            return
        self._text = self._text[:-count]
        self._emit(ERASE_CHAR * count)

    # -- inline suggestion --------------------------------------------------

    def show_suggestion(self, suggestion: str) -> None:
        """Show *suggestion* as ghost text after the cursor and, when there is
        room, in full at the suggestion column.
        """
        if not suggestion:
            self.clear_suggestion()
            return

        text = self._text
        suffix = suggestion[len(text) :] if suggestion.lower().startswith(text.lower()) else ""
        cursor_col = visible_width(self._prompt + text)

        out = [CLEAR_TO_EOL]
        column = max(self._suggestion_column, cursor_col + visible_width(suffix) + 2)
        if column + visible_width(suggestion) + 1 <= self._terminal.columns:
            out.append(SAVE_CURSOR)
            out.append(_COLUMN_FMT.format(column))
            out.append("[" + self._theme.suggestion(suggestion) + "]" + CLEAR_TO_EOL)
            out.append(RESTORE_CURSOR)
        if suffix:
            out.append(self._theme.suggestion(suffix))
            out.append("\b" * len(suffix))
        self._emit("".join(out))

    def clear_suggestion(self) -> None:
        self._emit(CLEAR_TO_EOL)

    # -- completion panel ---------------------------------------------------

    def show_panel(self, items: Sequence[str], selected: int) -> None:
        """Draw up to MAX_PANEL_ROWS candidates in a box below the line."""
        rows = list(items)[:MAX_PANEL_ROWS]
        if not rows:
            self.clear_panel()
            return

        columns = self._terminal.columns
        interior = max(1, min(self._panel_width, columns - 4))
        column = max(1, columns - (interior + 2))
        border = self._theme.border

        lines = [border("┌" + "─" * interior + "┐")]
        for i, item in enumerate(rows):
            text = truncate_to_width(_single_line(item), interior, pad=True)
            if i == selected:
                style = self._theme.selected_row
            elif is_history_item(item):
                style = self._theme.history_row
            else:
                style = self._theme.command_row
            lines.append(border("│") + style(text) + border("│"))
        lines.append(border("└" + "─" * interior + "┘"))

        out = [self._reserve_rows(), SAVE_CURSOR, self._clear_region(), RESTORE_CURSOR]
        for line in lines:
            out.append(CURSOR_DOWN + _COLUMN_FMT.format(column) + line)
        out.append(RESTORE_CURSOR)
        self._emit("".join(out))
        self._panel_visible = True

    def clear_panel(self) -> None:
        if not self._panel_visible:
            return
        self._emit(SAVE_CURSOR + self._clear_region() + RESTORE_CURSOR)
        self._panel_visible = False

    @staticmethod
    def _reserve_rows() -> str:
        # Line feeds scroll the screen when the prompt sits on the last rows;
        # raw mode keeps the column, so moving back up lands on the cursor.
        return "\n" * PANEL_CLEAR_ROWS + _CURSOR_UP_FMT.format(PANEL_CLEAR_ROWS)

    @staticmethod
    def _clear_region() -> str:
        return (CURSOR_DOWN + CLEAR_LINE) * PANEL_CLEAR_ROWS
