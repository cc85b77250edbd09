"""CLI entry point for pi-shell."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from pi.shell.executor import SubprocessExecutor
from pi.shell.history import HistoryStore
from pi.shell.session import Session
from pi.shell.settings import load_settings
from pi.shell.terminal import TerminalError, TtyTerminal

logger = logging.getLogger(__name__)

EXIT_TERMINAL_ERROR = 1


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pi-shell",
        description="Interactive command shell with history search and autocompletion",
    )
    parser.add_argument("--settings", default=None, help="Settings file (default: ~/.pi/shell.json)")
    parser.add_argument("--history-file", default=None, help="History file (default: ~/.pi_shell_history)")
    parser.add_argument("--prompt", default=None, help="Prompt string (default: '> ')")
    parser.add_argument("--no-panel", action="store_true", help="Disable the completion panel")
    parser.add_argument("--no-suggest", action="store_true", help="Disable inline suggestions")
    parser.add_argument("--log-level", default="warning", choices=["debug", "info", "warning", "error"])
    parser.add_argument("--log-file", default=None, help="Write logs to this file instead of stderr")
    return parser.parse_args(argv)


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "historyFile": args.history_file,
        "prompt": args.prompt,
        "completionPanel": False if args.no_panel else None,
        "inlineSuggestions": False if args.no_suggest else None,
    }


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        filename=args.log_file,
    )

    settings, error = load_settings(args.settings, _overrides(args))
    if error is not None:
        logger.warning("Could not load settings, using defaults: %s", error)

    history = HistoryStore(settings.history_file, settings.history_limit)
    history.load()

    terminal = TtyTerminal()
    try:
        terminal.start()
    except TerminalError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_TERMINAL_ERROR

    terminal.install_signal_handlers()
    try:
        session = Session(terminal, history, SubprocessExecutor(), settings=settings)
        return session.run()
    finally:
        terminal.stop()


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
