from __future__ import annotations

import os
import select
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Final, Protocol

_ESCAPE_FOLLOWUP_S: Final[float] = 0.05

_CSI_KEYS: Final[dict[bytes, str]] = {
    b"[A": "UP",
    b"[B": "DOWN",
    b"[C": "RIGHT",
    b"[D": "LEFT",
    b"[H": "HOME",
    b"[F": "END",
    b"[Z": "SHIFT_TAB",
    b"[5~": "PGUP",
    b"[6~": "PGDN",
    b"[1~": "HOME",
    b"[4~": "END",
    b"OA": "UP",
    b"OB": "DOWN",
    b"OC": "RIGHT",
    b"OD": "LEFT",
    b"OH": "HOME",
    b"OF": "END",
}


class KeySource(Protocol):
    def read_key(self, timeout: float | None) -> str | None:
        """Return the next key name, or None if nothing arrived within `timeout`."""


def decode_key(data: bytes) -> str:
    """Map one keystroke's bytes to a key name ("" for unrecognised input)."""

    if not data:
        return ""
    if data == b"\x03":  # Ctrl+C
        raise KeyboardInterrupt
    if data[:1] == b"\x1b":
        if len(data) == 1:
            return "ESC"
        return _CSI_KEYS.get(data[1:], "")
    if data in {b"\r", b"\n"}:
        return "ENTER"
    if data in {b"\x7f", b"\x08"}:
        return "BACKSPACE"
    if data == b"\t":
        return "TAB"
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return ""


class KeyReader:
    """Reads keystrokes from a terminal file descriptor in cbreak mode."""

    def __init__(self, fd: int | None = None) -> None:
        self._fd = sys.stdin.fileno() if fd is None else fd

    def _ready(self, timeout: float | None) -> bool:
        readable, _, _ = select.select([self._fd], [], [], timeout)
        return bool(readable)

    def _read_sequence(self) -> bytes:
        data = os.read(self._fd, 1)
        if data != b"\x1b":
            if data and data[0] >= 0xC0:
                # Multi-byte UTF-8 lead byte: pull the continuation bytes.
                extra = 1 if data[0] < 0xE0 else 2 if data[0] < 0xF0 else 3
                data += os.read(self._fd, extra)
            return data
        # A lone ESC has no follow-up bytes within a short window.
        while self._ready(_ESCAPE_FOLLOWUP_S):
            data += os.read(self._fd, 1)
            last = data[-1:]
            if len(data) >= 3 and (last.isalpha() or last == b"~"):
                break
        return data

    def read_key(self, timeout: float | None) -> str | None:
        while True:
            if not self._ready(timeout):
                return None
            key = decode_key(self._read_sequence())
            if key:
                return key


@contextmanager
def raw_terminal(fd: int | None = None) -> Iterator[None]:
    if sys.platform == "win32":
        yield None
        return

    import termios  # noqa: PLC0415
    import tty  # noqa: PLC0415

    target = sys.stdin.fileno() if fd is None else fd
    old = termios.tcgetattr(target)
    try:
        tty.setcbreak(target)
        yield None
    finally:
        termios.tcsetattr(target, termios.TCSADRAIN, old)
