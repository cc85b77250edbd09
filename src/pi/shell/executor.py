"""Command execution behind the ``Executor`` protocol.

The session hands every committed non-builtin line to an executor. The
default ``SubprocessExecutor`` runs the program directly (no shell), streams
its output while it runs and fixes up line endings for a raw-mode terminal.
"""

from __future__ import annotations

import codecs
import contextlib
import logging
import re
import subprocess
from collections.abc import Callable, Sequence
from typing import Protocol

logger = logging.getLogger(__name__)

_LONE_LF_RE = re.compile(r"(?<!\r)\n")

_READ_CHUNK = 4096


class ExecutorError(Exception):
    """A command could not be run or finished unsuccessfully."""


class Executor(Protocol):
    def run(
        self,
        command: str,
        args: Sequence[str],
        write: Callable[[str], None],
    ) -> None:
        """Run *command* to completion, streaming output through *write*."""
        ...


def normalize_newlines(text: str) -> str:
    """Turn lone ``\\n`` into ``\\r\\n`` (raw mode does no output translation)."""
    return _LONE_LF_RE.sub("\r\n", text)


class SubprocessExecutor:
    """Runs commands as child processes sharing the terminal's stdin."""

    def __init__(self, cwd: str | None = None) -> None:
        self._cwd = cwd

    def run(
        self,
        command: str,
        args: Sequence[str],
        write: Callable[[str], None],
    ) -> None:
        logger.debug("Executing %s %s", command, list(args))
        try:
            process = subprocess.Popen(
                [command, *args],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                cwd=self._cwd,
            )
        except FileNotFoundError as e:
            raise ExecutorError(f"{command}: command not found") from e
        except OSError as e:
            raise ExecutorError(f"{command}: {e.strerror or e}") from e

        try:
            self._stream(process, write)
        except BaseException:
            # Includes SystemExit from the terminal's signal handler
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            process.wait()
            raise

        returncode = process.wait()
        if returncode != 0:
            raise ExecutorError(f"exit status {returncode}")

    @staticmethod
    def _stream(process: subprocess.Popen, write: Callable[[str], None]) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        assert process.stdout is not None
        with process.stdout:
            while True:
                chunk = process.stdout.read1(_READ_CHUNK)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text:
                    write(normalize_newlines(text))
            tail = decoder.decode(b"", final=True)
            if tail:
                write(normalize_newlines(tail))
