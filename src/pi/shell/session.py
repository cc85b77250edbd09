"""Session loop: reads keys, edits the line and dispatches committed commands.

One :class:`Session` owns the decoder, line buffer, history search and
completion state for the lifetime of the shell. Each byte read from the
terminal goes through decode -> mutate -> render on a single thread.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable

from pi.shell.autocomplete import (
    CompletionEngine,
    CompletionState,
    apply_completion,
    inline_suggestion,
)
from pi.shell.executor import Executor, ExecutorError
from pi.shell.history import HistorySearch, HistoryStore
from pi.shell.keys import ESC, KeyDecoder, KeyEvent, KeyKind, match_literal_ctrl_arrow
from pi.shell.line_buffer import LineBuffer
from pi.shell.render import Renderer
from pi.shell.settings import ShellSettings
from pi.shell.terminal import Terminal

logger = logging.getLogger(__name__)

BANNER = "pi shell (type 'help' for commands, 'exit' to quit)"

HELP_LINES = (
    "Available commands:",
    "  cd     - Change the working directory",
    "  clear  - Clear the screen",
    "  exit   - Exit the shell",
    "  help   - Show this help message",
    "  quit   - Same as exit",
    "",
    "Any other input is run as a command",
    "",
)

EXIT_OK = 0


class Session:
    """Interactive line editor driving an :class:`Executor`."""

    def __init__(
        self,
        terminal: Terminal,
        history: HistoryStore,
        executor: Executor,
        *,
        settings: ShellSettings | None = None,
        engine: CompletionEngine | None = None,
        renderer: Renderer | None = None,
    ) -> None:
        self._settings = settings or ShellSettings()
        self._terminal = terminal
        self._history = history
        self._executor = executor
        self._engine = engine or CompletionEngine(history)
        self._renderer = renderer or Renderer(
            terminal,
            suggestion_column=self._settings.suggestion_column,
            panel_width=self._settings.panel_width,
        )

        self._decoder = KeyDecoder()
        self._buffer = LineBuffer()
        self._search = HistorySearch(history)
        self._completions = CompletionState()

        self._pre_search_text = ""
        # Set when ESC aborted a search; the rest of that sequence is dropped
        self._discarding = False

        self._builtins: dict[str, Callable[[list[str]], int | None]] = {
            "cd": self._builtin_cd,
            "clear": self._builtin_clear,
            "exit": self._builtin_exit,
            "help": self._builtin_help,
            "quit": self._builtin_exit,
        }

    # -- read-only state ----------------------------------------------------

    @property
    def text(self) -> str:
        return self._buffer.text

    @property
    def prompt(self) -> str:
        return self._settings.prompt

    @property
    def completions(self) -> CompletionState:
        return self._completions

    @property
    def search(self) -> HistorySearch:
        return self._search

    # -- main loop ----------------------------------------------------------

    def run(self) -> int:
        """Run until the user exits. Returns the process exit code."""
        self._renderer.write_line(BANNER)
        self._show_prompt()
        while True:
            byte = self._terminal.read_byte()
            if byte is None:
                logger.debug("End of input, leaving session")
                self._renderer.clear_panel()
                self._renderer.new_line()
                return EXIT_OK
            code = self.handle_byte(byte)
            if code is not None:
                return code

    def handle_byte(self, byte: int) -> int | None:
        """Feed one raw byte. Returns an exit code when the session ends."""
        if self._search.active and byte == ESC and not self._decoder.pending:
            self._decoder.feed(byte)
            self._discarding = True
            self._abort_search()
            return None

        event = self._decoder.feed(byte)
        if self._discarding:
            if not self._decoder.pending:
                self._discarding = False
            return None
        if event is None:
            return None
        return self.handle_event(event)

    def handle_event(self, event: KeyEvent) -> int | None:
        """Apply one decoded key. Returns an exit code when the session ends."""
        kind = event.kind

        if kind is KeyKind.CTRL_C:
            self._renderer.clear_panel()
            self._renderer.new_line()
            return EXIT_OK

        if self._search.active:
            return self._handle_search_event(event)

        if kind in (KeyKind.CHAR, KeyKind.OTHER) and self._settings.ctrl_arrow_fallback:
            literal = match_literal_ctrl_arrow(self._buffer.text)
            if literal is not None:
                # The keystroke that revealed the leaked sequence is dropped
                self._strip_literal_ctrl_arrow()
                self._move_selection(literal.kind is KeyKind.CTRL_UP)
                return None

        if kind is KeyKind.CHAR:
            self._insert(event.char)
        elif kind is KeyKind.BACKSPACE:
            self._backspace()
        elif kind is KeyKind.TAB:
            self._tab()
        elif kind is KeyKind.RIGHT:
            if self._completions:
                self._accept(self._completions.selected_item())
        elif kind is KeyKind.UP:
            if self._panel_active():
                self._move_selection(up=True)
            else:
                entry = self._history.previous()
                if entry:
                    self._recall(entry)
        elif kind is KeyKind.DOWN:
            if self._panel_active():
                self._move_selection(up=False)
            elif self._history.history_index != -1:
                # Past the newest entry next() returns the blank line
                self._recall(self._history.next())
        elif kind is KeyKind.CTRL_UP:
            self._move_selection(up=True)
        elif kind is KeyKind.CTRL_DOWN:
            self._move_selection(up=False)
        elif kind is KeyKind.CTRL_R:
            self._start_search()
        elif kind is KeyKind.ENTER:
            return self._commit()
        elif kind is KeyKind.CTRL_D:
            if not self._buffer:
                self._renderer.clear_panel()
                self._renderer.new_line()
                return EXIT_OK
        return None

    # -- editing ------------------------------------------------------------

    def _insert(self, ch: str) -> None:
        if not self._buffer.append(ch):
            return
        self._renderer.echo(ch)
        self._history.reset_navigation()
        self._update_completions()

    def _backspace(self) -> None:
        if not self._buffer.delete_last():
            return
        self._renderer.erase(1)
        self._history.reset_navigation()
        self._update_completions()

    def _strip_literal_ctrl_arrow(self) -> None:
        self._buffer.delete_last()
        self._buffer.delete_last()
        self._renderer.erase(2)
        self._update_completions()

    def _tab(self) -> None:
        if self._completions:
            self._accept(self._completions.selected_item())
        else:
            self._update_completions()

    def _accept(self, item: str) -> None:
        if not item:
            return
        self._buffer.set(apply_completion(self._buffer.text, item))
        self._history.reset_navigation()
        self._renderer.clear_panel()
        self._show_prompt()
        self._update_completions()

    def _recall(self, entry: str) -> None:
        self._completions.clear()
        self._renderer.clear_panel()
        self._buffer.set(entry)
        self._show_prompt()
        if entry and self._settings.inline_suggestions:
            self._show_suggestion(inline_suggestion(entry, self._engine.get_completions(entry)))

    # -- completions --------------------------------------------------------

    def _panel_active(self) -> bool:
        return self._settings.completion_panel and bool(self._completions)

    def _update_completions(self) -> None:
        self._completions.update(self._engine.get_completions(self._buffer.text))
        self._render_panel()
        self._render_suggestion()

    def _move_selection(self, up: bool) -> None:
        if not self._completions:
            self._completions.update(self._engine.get_completions(self._buffer.text))
            if not self._completions:
                return
        if up:
            self._completions.select_previous()
        else:
            self._completions.select_next()
        self._render_panel()

    def _render_panel(self) -> None:
        if self._settings.completion_panel and self._completions:
            self._renderer.show_panel(self._completions.items, self._completions.selected)
        else:
            self._renderer.clear_panel()

    def _render_suggestion(self) -> None:
        text = self._buffer.text
        if text and self._settings.inline_suggestions:
            self._show_suggestion(inline_suggestion(text, self._completions.items))
        else:
            self._renderer.clear_suggestion()

    def _show_suggestion(self, suggestion: str) -> None:
        if suggestion:
            self._renderer.show_suggestion(suggestion)
        else:
            self._renderer.clear_suggestion()

    # -- reverse search -----------------------------------------------------

    def _start_search(self) -> None:
        self._pre_search_text = self._buffer.text
        self._completions.clear()
        self._renderer.clear_panel()
        self._search.start()
        self._show_search_prompt()

    def _abort_search(self) -> None:
        self._search.exit()
        self._buffer.set(self._pre_search_text)
        self._show_prompt()

    def _handle_search_event(self, event: KeyEvent) -> int | None:
        kind = event.kind
        if kind is KeyKind.CHAR:
            self._preview(self._search.update_query(self._search.query + event.char))
        elif kind is KeyKind.BACKSPACE:
            if self._search.query:
                self._preview(self._search.update_query(self._search.query[:-1]))
        elif kind is KeyKind.TAB:
            self._preview(self._search.next())
        elif kind is KeyKind.ENTER:
            self._search.exit()
            return self._commit()
        elif kind is KeyKind.CTRL_R:
            self._search.exit()
            self._show_prompt()
        return None

    def _preview(self, match: str) -> None:
        if match:
            self._buffer.set(match)
        self._show_search_prompt()

    def _show_search_prompt(self) -> None:
        self._renderer.show_prompt(self._search.prompt, self._buffer.text)

    # -- commit / dispatch --------------------------------------------------

    def _commit(self) -> int | None:
        line = self._buffer.text
        self._completions.clear()
        self._renderer.clear_panel()
        self._renderer.new_line()
        self._history.reset_navigation()

        code = None
        if line:
            try:
                self._history.add(line)
            except OSError as e:
                # Shown inline; raw mode would garble a stderr log record
                logger.debug("Failed to save history to %s: %s", self._history.path, e)
                self._renderer.write_line(f"Error saving history: {e}")
            code = self._dispatch(line)

        self._buffer.reset()
        if code is None:
            self._renderer.ensure_line_start()
            self._show_prompt()
        return code

    def _dispatch(self, line: str) -> int | None:
        parts = line.split()
        if not parts:
            return None
        command, args = parts[0], parts[1:]

        builtin = self._builtins.get(command)
        if builtin is not None:
            return builtin(args)

        try:
            self._executor.run(command, args, self._renderer.write)
        except (ExecutorError, OSError) as e:
            self._renderer.ensure_line_start()
            self._renderer.write_line(f"Error: {e}")
        return None

    def _show_prompt(self) -> None:
        self._renderer.show_prompt(self._settings.prompt, self._buffer.text)

    # -- built-in commands --------------------------------------------------

    def _builtin_exit(self, args: list[str]) -> int | None:
        return EXIT_OK

    def _builtin_clear(self, args: list[str]) -> int | None:
        self._renderer.clear_screen()
        return None

    def _builtin_help(self, args: list[str]) -> int | None:
        for line in HELP_LINES:
            self._renderer.write_line(line)
        return None

    def _builtin_cd(self, args: list[str]) -> int | None:
        target = os.path.expanduser(args[0] if args else "~")
        try:
            os.chdir(target)
        except OSError as e:
            self._renderer.write_line(f"cd: {target}: {e.strerror or e}")
        return None
