"""pi-shell: interactive command shell with history search and autocompletion."""

# Completion
from pi.shell.autocomplete import (
    COMMAND_TAG,
    HISTORY_TAG,
    CompletionEngine,
    CompletionState,
    apply_completion,
    inline_suggestion,
    is_history_item,
    strip_tag,
)

# Command execution
from pi.shell.executor import Executor, ExecutorError, SubprocessExecutor

# History
from pi.shell.history import HistorySearch, HistoryStore

# Keyboard input decoding
from pi.shell.keys import (
    DecoderState,
    KeyDecoder,
    KeyEvent,
    KeyKind,
    match_literal_ctrl_arrow,
    step,
)

# Line editing
from pi.shell.line_buffer import LineBuffer

# Rendering
from pi.shell.render import DEFAULT_THEME, Renderer, RenderTheme

# Session loop
from pi.shell.session import Session

# Settings
from pi.shell.settings import ShellSettings, load_settings

# Terminal
from pi.shell.terminal import Terminal, TerminalError, TtyTerminal

# Utilities
from pi.shell.utils import truncate_to_width, visible_width

__all__ = [
    # Completion
    "COMMAND_TAG",
    "HISTORY_TAG",
    "CompletionEngine",
    "CompletionState",
    "apply_completion",
    "inline_suggestion",
    "is_history_item",
    "strip_tag",
    # Command execution
    "Executor",
    "ExecutorError",
    "SubprocessExecutor",
    # History
    "HistorySearch",
    "HistoryStore",
    # Keyboard input decoding
    "DecoderState",
    "KeyDecoder",
    "KeyEvent",
    "KeyKind",
    "match_literal_ctrl_arrow",
    "step",
    # Line editing
    "LineBuffer",
    # Rendering
    "DEFAULT_THEME",
    "RenderTheme",
    "Renderer",
    # Session loop
    "Session",
    # Settings
    "ShellSettings",
    "load_settings",
    # Terminal
    "Terminal",
    "TerminalError",
    "TtyTerminal",
    # Utilities
    "truncate_to_width",
    "visible_width",
]
