"""Keyboard input decoding for the raw-mode line editor.

Turns the raw byte stream coming from the terminal into logical key events.
Escape sequences are resolved by an explicit finite-state machine:
:func:`step` is a pure ``(state, byte) -> (state, event)`` transition and
:class:`KeyDecoder` carries the current state between bytes.

Sequences that do not resolve to a known key are swallowed, never
re-injected as typed text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Byte constants
# ---------------------------------------------------------------------------

ESC = 27
CTRL_C = 3
CTRL_D = 4
BACKSPACE = 127
CTRL_H = 8
TAB = 9
LF = 10
CR = 13
CTRL_R = 18

_FIRST_PRINTABLE = 32
_LAST_PRINTABLE = 126


def is_printable(byte: int) -> bool:
    """Return True for printable ASCII (32-126)."""
    return _FIRST_PRINTABLE <= byte <= _LAST_PRINTABLE


def _is_csi_parameter(byte: int) -> bool:
    # Parameter (0x30-0x3F) and intermediate (0x20-0x2F) bytes of a CSI sequence
    return 0x20 <= byte <= 0x3F


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class KeyKind(Enum):
    CHAR = auto()
    ENTER = auto()
    BACKSPACE = auto()
    TAB = auto()
    CTRL_R = auto()
    CTRL_C = auto()
    CTRL_D = auto()
    UP = auto()
    DOWN = auto()
    RIGHT = auto()
    CTRL_UP = auto()
    CTRL_DOWN = auto()
    OTHER = auto()


@dataclass(frozen=True)
class KeyEvent:
    """A decoded key. ``byte`` is set for CHAR and OTHER events."""

    kind: KeyKind
    byte: int | None = None

    @property
    def char(self) -> str:
        if self.byte is None or not is_printable(self.byte):
            return ""
        return chr(self.byte)


# Shared instances for the argument-free events
ENTER_EVENT = KeyEvent(KeyKind.ENTER)
BACKSPACE_EVENT = KeyEvent(KeyKind.BACKSPACE)
TAB_EVENT = KeyEvent(KeyKind.TAB)
CTRL_R_EVENT = KeyEvent(KeyKind.CTRL_R)
CTRL_C_EVENT = KeyEvent(KeyKind.CTRL_C)
CTRL_D_EVENT = KeyEvent(KeyKind.CTRL_D)
UP_EVENT = KeyEvent(KeyKind.UP)
DOWN_EVENT = KeyEvent(KeyKind.DOWN)
RIGHT_EVENT = KeyEvent(KeyKind.RIGHT)
CTRL_UP_EVENT = KeyEvent(KeyKind.CTRL_UP)
CTRL_DOWN_EVENT = KeyEvent(KeyKind.CTRL_DOWN)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class DecoderState(Enum):
    NORMAL = auto()
    ESCAPE = auto()  # ESC
    CSI = auto()  # ESC [  or  ESC O
    CSI_5 = auto()  # ESC [ 5
    CSI_1 = auto()  # ESC [ 1
    CSI_1_SEMI = auto()  # ESC [ 1 ;
    CSI_1_SEMI_5 = auto()  # ESC [ 1 ; 5
    DISCARD = auto()  # unknown CSI sequence, waiting for its final byte


_CONTROL_EVENTS: dict[int, KeyEvent] = {
    CR: ENTER_EVENT,
    LF: ENTER_EVENT,
    BACKSPACE: BACKSPACE_EVENT,
    CTRL_H: BACKSPACE_EVENT,
    TAB: TAB_EVENT,
    CTRL_R: CTRL_R_EVENT,
    CTRL_C: CTRL_C_EVENT,
    CTRL_D: CTRL_D_EVENT,
}

_ARROW_FINALS: dict[int, KeyEvent] = {
    ord("A"): UP_EVENT,
    ord("B"): DOWN_EVENT,
    ord("C"): RIGHT_EVENT,
}

_CTRL_ARROW_FINALS: dict[int, KeyEvent] = {
    ord("A"): CTRL_UP_EVENT,
    ord("B"): CTRL_DOWN_EVENT,
}

Transition = tuple[DecoderState, "KeyEvent | None"]


def _unresolved(state: DecoderState, byte: int) -> Transition:
    """Give up on the current sequence, swallowing *byte*."""
    logger.debug("Discarding unresolved escape sequence at %s (byte %d)", state.name, byte)
    if _is_csi_parameter(byte):
        return DecoderState.DISCARD, None
    return DecoderState.NORMAL, None


def step(state: DecoderState, byte: int) -> Transition:
    """Advance the decoder by one byte.

    Returns the next state and the event completed by *byte*, if any.
    """
    if state is DecoderState.NORMAL:
        if byte == ESC:
            return DecoderState.ESCAPE, None
        control = _CONTROL_EVENTS.get(byte)
        if control is not None:
            return DecoderState.NORMAL, control
        if is_printable(byte):
            return DecoderState.NORMAL, KeyEvent(KeyKind.CHAR, byte)
        return DecoderState.NORMAL, KeyEvent(KeyKind.OTHER, byte)

    if state is DecoderState.ESCAPE:
        # Some terminals send ESC A / ESC B for the arrows
        if byte == ord("A"):
            return DecoderState.NORMAL, UP_EVENT
        if byte == ord("B"):
            return DecoderState.NORMAL, DOWN_EVENT
        if byte in (ord("["), ord("O")):
            return DecoderState.CSI, None
        logger.debug("Discarding ESC followed by byte %d", byte)
        return DecoderState.NORMAL, None

    if state is DecoderState.CSI:
        arrow = _ARROW_FINALS.get(byte)
        if arrow is not None:
            return DecoderState.NORMAL, arrow
        if byte == ord("5"):
            return DecoderState.CSI_5, None
        if byte == ord("1"):
            return DecoderState.CSI_1, None
        return _unresolved(state, byte)

    if state is DecoderState.CSI_5 or state is DecoderState.CSI_1_SEMI_5:
        ctrl_arrow = _CTRL_ARROW_FINALS.get(byte)
        if ctrl_arrow is not None:
            return DecoderState.NORMAL, ctrl_arrow
        return _unresolved(state, byte)

    if state is DecoderState.CSI_1:
        if byte == ord(";"):
            return DecoderState.CSI_1_SEMI, None
        return _unresolved(state, byte)

    if state is DecoderState.CSI_1_SEMI:
        if byte == ord("5"):
            return DecoderState.CSI_1_SEMI_5, None
        return _unresolved(state, byte)

    # DISCARD: eat parameter bytes up to and including the final byte
    if _is_csi_parameter(byte):
        return DecoderState.DISCARD, None
    return DecoderState.NORMAL, None


class KeyDecoder:
    """Stateful wrapper around :func:`step`, fed one byte at a time."""

    def __init__(self) -> None:
        self._state = DecoderState.NORMAL

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def pending(self) -> bool:
        """True while in the middle of an escape sequence."""
        return self._state is not DecoderState.NORMAL

    def feed(self, byte: int) -> KeyEvent | None:
        self._state, event = step(self._state, byte)
        return event

    def feed_bytes(self, data: bytes) -> list[KeyEvent]:
        events: list[KeyEvent] = []
        for byte in data:
            event = self.feed(byte)
            if event is not None:
                events.append(event)
        return events

    def reset(self) -> None:
        self._state = DecoderState.NORMAL


# ---------------------------------------------------------------------------
# Literal Ctrl+arrow fallback
# ---------------------------------------------------------------------------

_LITERAL_CTRL_ARROWS: dict[str, KeyEvent] = {
    "5A": CTRL_UP_EVENT,
    "5B": CTRL_DOWN_EVENT,
}


def match_literal_ctrl_arrow(text: str) -> KeyEvent | None:
    """Detect a Ctrl+Up/Down that leaked into the buffer as typed text.

    Some terminal setups deliver the ESC of ``ESC [ 5 A`` out of band, so
    only ``5A`` / ``5B`` arrives as ordinary characters. This is a heuristic:
    it also fires when someone really types those two characters.
    """
    return _LITERAL_CTRL_ARROWS.get(text[-2:]) if len(text) >= 2 else None
