"""LineBuffer - the command line being composed, edited only at its end."""

from __future__ import annotations

from pi.shell.keys import is_printable


class LineBuffer:
    """Text typed since the last commit.

    The cursor is always at the end: characters can be appended or removed
    from the tail, and the whole contents can be replaced or reset.
    """

    def __init__(self, text: str = "") -> None:
        self._chars: list[str] = list(text)

    @property
    def text(self) -> str:
        return "".join(self._chars)

    def contents(self) -> str:
        return self.text

    def append(self, ch: str) -> bool:
        """Append one printable ASCII character. Returns False if rejected."""
        if len(ch) != 1 or not is_printable(ord(ch)):
            return False
        self._chars.append(ch)
        return True

    def delete_last(self) -> bool:
        """Remove the final character. Returns False if the buffer was empty."""
        if not self._chars:
            return False
        self._chars.pop()
        return True

    def set(self, text: str) -> None:
        self._chars = list(text)

    def reset(self) -> None:
        self._chars = []

    def __len__(self) -> int:
        return len(self._chars)

    def __bool__(self) -> bool:
        return bool(self._chars)
