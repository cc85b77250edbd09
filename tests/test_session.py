"""Tests for pi.shell.session -- key handling, search and command dispatch."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from pi.shell.autocomplete import CompletionEngine
from pi.shell.executor import ExecutorError
from pi.shell.history import HistoryStore
from pi.shell.render import Renderer, RenderTheme
from pi.shell.session import BANNER, Session
from pi.shell.settings import ShellSettings

from .virtual_terminal import VirtualTerminal


def _identity(text: str) -> str:
    return text


PLAIN_THEME = RenderTheme(
    suggestion=_identity,
    command_row=_identity,
    history_row=_identity,
    selected_row=_identity,
    border=_identity,
)


class FakeExecutor:
    """Records invocations; optionally writes output or fails."""

    def __init__(self, output: str = "", error: Exception | None = None) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.output = output
        self.error = error

    def run(self, command: str, args: Sequence[str], write: Callable[[str], None]) -> None:
        self.calls.append((command, list(args)))
        if self.output:
            write(self.output)
        if self.error is not None:
            raise self.error


def make_executables(directory: Path, names: list[str]) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        path = directory / name
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)


@pytest.fixture
def terminal() -> VirtualTerminal:
    return VirtualTerminal()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    make_executables(path, ["git", "grep"])
    return path


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def make_session(
    tmp_path: Path,
    terminal: VirtualTerminal,
    executor: FakeExecutor,
    bin_dir: Path,
    workdir: Path,
):
    def factory(
        entries: list[str] | None = None,
        history_path: Path | None = None,
        **settings_kwargs,
    ) -> Session:
        path = history_path or tmp_path / "history"
        if entries:
            path.write_text("\n".join(entries), encoding="utf-8")
        history = HistoryStore(str(path))
        history.load()
        settings = ShellSettings(history_file=str(path), **settings_kwargs)
        engine = CompletionEngine(history, base_path=str(workdir), path_env=str(bin_dir))
        renderer = Renderer(terminal, theme=PLAIN_THEME)
        return Session(
            terminal, history, executor, settings=settings, engine=engine, renderer=renderer
        )

    return factory


def feed(session: Session, data: bytes | str) -> int | None:
    if isinstance(data, str):
        data = data.encode("utf-8")
    code = None
    for byte in data:
        code = session.handle_byte(byte)
        if code is not None:
            break
    return code


UP = b"\x1b[A"
DOWN = b"\x1b[B"
RIGHT = b"\x1b[C"
CTRL_R = b"\x12"


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------


class TestRun:
    def test_runs_command_and_exits_on_end_of_input(
        self, make_session, terminal: VirtualTerminal, executor: FakeExecutor
    ) -> None:
        session = make_session()
        terminal.feed("ls -la\r")
        assert session.run() == 0
        assert executor.calls == [("ls", ["-la"])]
        assert BANNER in terminal.output

    def test_exit_builtin_stops_reading(
        self, make_session, terminal: VirtualTerminal, executor: FakeExecutor
    ) -> None:
        session = make_session()
        terminal.feed("exit\rls\r")
        assert session.run() == 0
        assert executor.calls == []
        assert terminal.read_byte() == ord("l")

    def test_quit_builtin(self, make_session) -> None:
        assert feed(make_session(), "quit\r") == 0

    def test_ctrl_c_exits(self, make_session) -> None:
        session = make_session()
        assert feed(session, b"ls\x03") == 0

    def test_ctrl_d_on_empty_line_exits(self, make_session) -> None:
        assert feed(make_session(), b"\x04") == 0

    def test_ctrl_d_with_text_is_ignored(self, make_session) -> None:
        session = make_session()
        assert feed(session, b"l\x04") is None
        assert session.text == "l"


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


class TestEditing:
    def test_typing_and_backspace(self, make_session) -> None:
        session = make_session()
        feed(session, b"lss\x7f")
        assert session.text == "ls"

    def test_control_bytes_ignored(self, make_session) -> None:
        session = make_session()
        feed(session, b"l\x01s")
        assert session.text == "ls"

    def test_invalid_escape_sequence_leaves_buffer(self, make_session) -> None:
        session = make_session()
        feed(session, b"ls\x1b[5;3~")
        assert session.text == "ls"

    def test_inline_suggestion_rendered(self, make_session, terminal: VirtualTerminal) -> None:
        session = make_session()
        feed(session, "gi")
        assert session.completions.items == ["CMD: git"]
        assert terminal.output.endswith("t\b")

    def test_tab_accepts_selected(self, make_session) -> None:
        session = make_session()
        feed(session, "gi\t")
        assert session.text == "git "

    def test_tab_on_fresh_line_shows_history(self, make_session) -> None:
        session = make_session(["ls", "pwd"])
        feed(session, "\t")
        assert session.completions.items == ["HIST: pwd", "HIST: ls"]

    def test_right_accepts_selected(self, make_session) -> None:
        session = make_session()
        feed(session, b"gr" + RIGHT)
        assert session.text == "grep "

    def test_right_without_candidates_is_noop(self, make_session) -> None:
        session = make_session()
        feed(session, b"zz" + RIGHT)
        assert session.text == "zz"


# ---------------------------------------------------------------------------
# Arrows
# ---------------------------------------------------------------------------


class TestArrows:
    def test_up_down_walk_history(self, make_session) -> None:
        session = make_session(["ls", "pwd"])
        feed(session, UP)
        assert session.text == "pwd"
        feed(session, UP)
        assert session.text == "ls"
        feed(session, DOWN)
        assert session.text == "pwd"
        feed(session, DOWN)
        assert session.text == ""

    def test_up_on_empty_history_keeps_line(self, make_session) -> None:
        session = make_session()
        feed(session, UP)
        assert session.text == ""

    def test_down_without_navigation_keeps_line(self, make_session) -> None:
        session = make_session(completion_panel=False)
        feed(session, b"zz" + DOWN)
        assert session.text == "zz"

    def test_arrows_move_panel_selection(self, make_session) -> None:
        session = make_session()
        feed(session, "g")
        assert session.completions.items == ["CMD: git", "CMD: grep"]
        feed(session, UP)
        assert session.completions.selected == 1
        feed(session, DOWN)
        assert session.completions.selected == 0
        assert session.text == "g"

    def test_panel_disabled_arrows_use_history(self, make_session) -> None:
        session = make_session(["git log"], completion_panel=False)
        feed(session, b"g" + UP)
        assert session.text == "git log"

    def test_ctrl_down_computes_candidates(self, make_session) -> None:
        session = make_session(["ls", "pwd"])
        feed(session, b"\x1b[1;5B")
        assert session.completions.items == ["HIST: pwd", "HIST: ls"]
        assert session.completions.selected == 1

    def test_ctrl_up_wraps_to_last(self, make_session) -> None:
        session = make_session(["ls", "pwd"])
        feed(session, b"\x1b[5A")
        assert session.completions.selected == 1


# ---------------------------------------------------------------------------
# Literal Ctrl+arrow fallback
# ---------------------------------------------------------------------------


class TestLiteralCtrlArrow:
    def test_leaked_sequence_is_stripped(self, make_session) -> None:
        session = make_session(["ls"])
        feed(session, "5Ax")
        assert session.text == ""
        assert session.completions.items == ["HIST: ls"]

    def test_disabled_by_setting(self, make_session) -> None:
        session = make_session(ctrl_arrow_fallback=False)
        feed(session, "5Ax")
        assert session.text == "5Ax"


# ---------------------------------------------------------------------------
# Reverse search
# ---------------------------------------------------------------------------


class TestReverseSearch:
    ENTRIES = ["foo", "bar", "foobar"]

    def test_preview_and_cycle(self, make_session, terminal: VirtualTerminal) -> None:
        session = make_session(self.ENTRIES)
        feed(session, CTRL_R + b"foo")
        assert session.search.active
        assert session.text == "foobar"
        assert "(reverse-i-search)`foo': foobar" in terminal.output
        feed(session, "\t")
        assert session.text == "foo"

    def test_no_match_keeps_buffer(self, make_session) -> None:
        session = make_session(self.ENTRIES)
        feed(session, CTRL_R + b"foo" + b"zz")
        assert session.text == "foobar"

    def test_backspace_shortens_query(self, make_session) -> None:
        session = make_session(self.ENTRIES)
        feed(session, CTRL_R + b"ba\x7f")
        assert session.search.query == "b"

    def test_enter_commits_match(self, make_session, executor: FakeExecutor) -> None:
        session = make_session(self.ENTRIES)
        feed(session, CTRL_R + b"foo\t\r")
        assert not session.search.active
        assert executor.calls == [("foo", [])]
        assert session.text == ""

    def test_escape_restores_pre_search_buffer(self, make_session) -> None:
        session = make_session(self.ENTRIES)
        feed(session, b"ab" + CTRL_R + b"bar\x1b")
        assert not session.search.active
        assert session.text == "ab"

    def test_arrow_in_search_aborts_and_is_dropped(self, make_session) -> None:
        session = make_session(self.ENTRIES)
        feed(session, b"ab" + CTRL_R + b"bar" + UP)
        assert not session.search.active
        assert session.text == "ab"
        feed(session, "c")
        assert session.text == "abc"

    def test_ctrl_r_toggles_off_keeping_preview(
        self, make_session, executor: FakeExecutor
    ) -> None:
        session = make_session(self.ENTRIES)
        feed(session, CTRL_R + b"bar" + CTRL_R)
        assert not session.search.active
        assert session.text == "foobar"
        assert executor.calls == []


# ---------------------------------------------------------------------------
# Commit and dispatch
# ---------------------------------------------------------------------------


class TestCommit:
    def test_adds_to_history(self, make_session, tmp_path: Path) -> None:
        session = make_session()
        feed(session, "ls\r")
        assert (tmp_path / "history").read_text() == "ls"
        assert session.text == ""

    def test_empty_line_not_recorded(self, make_session, executor: FakeExecutor) -> None:
        session = make_session()
        feed(session, "\r")
        assert executor.calls == []

    def test_history_save_error_reported(
        self, make_session, tmp_path: Path, terminal: VirtualTerminal, executor: FakeExecutor
    ) -> None:
        session = make_session(history_path=tmp_path / "missing" / "history")
        feed(session, "ls\r")
        assert "Error saving history:" in terminal.output
        assert executor.calls == [("ls", [])]

    def test_history_save_error_not_logged_above_debug(
        self, make_session, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        session = make_session(history_path=tmp_path / "missing" / "history")
        with caplog.at_level(logging.DEBUG, logger="pi.shell.session"):
            feed(session, "ls\r")
        records = [r for r in caplog.records if r.name == "pi.shell.session"]
        assert any("Failed to save history" in r.getMessage() for r in records)
        assert all(r.levelno <= logging.DEBUG for r in records)

    def test_executor_output_passed_through(
        self, make_session, terminal: VirtualTerminal, executor: FakeExecutor
    ) -> None:
        executor.output = "hello\r\n"
        feed(make_session(), "echo hello\r")
        assert "hello\r\n" in terminal.output

    def test_executor_error_reported(
        self, make_session, terminal: VirtualTerminal, executor: FakeExecutor
    ) -> None:
        executor.error = ExecutorError("exit status 1")
        session = make_session()
        assert feed(session, "false\r") is None
        assert "Error: exit status 1\r\n" in terminal.output

    def test_partial_output_gets_newline_before_prompt(
        self, make_session, terminal: VirtualTerminal, executor: FakeExecutor
    ) -> None:
        executor.output = "no newline"
        feed(make_session(), "printf x\r")
        assert "no newline\r\n\r\x1b[2K> " in terminal.output


class TestBuiltins:
    def test_help(self, make_session, terminal: VirtualTerminal) -> None:
        feed(make_session(), "help\r")
        assert "Available commands:" in terminal.output
        assert "  cd     - Change the working directory" in terminal.output

    def test_clear(self, make_session, terminal: VirtualTerminal) -> None:
        feed(make_session(), "clear\r")
        assert "\x1b[2J\x1b[H" in terminal.output

    def test_cd(
        self, make_session, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "sub").mkdir()
        monkeypatch.chdir(tmp_path)
        feed(make_session(), "cd sub\r")
        assert Path.cwd().resolve() == (tmp_path / "sub").resolve()

    def test_cd_home(
        self, make_session, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        home = tmp_path / "home"
        home.mkdir()
        monkeypatch.setenv("HOME", str(home))
        monkeypatch.chdir(tmp_path)
        feed(make_session(), "cd\r")
        assert Path.cwd().resolve() == home.resolve()

    def test_cd_error(
        self,
        make_session,
        tmp_path: Path,
        terminal: VirtualTerminal,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(tmp_path)
        feed(make_session(), "cd nowhere\r")
        assert "cd: nowhere: " in terminal.output
        assert Path.cwd().resolve() == tmp_path.resolve()
