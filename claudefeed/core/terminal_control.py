"""Terminal escape sequences and the real-terminal handle used while attached."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
import sys
import termios
import tty
from typing import Callable, Optional, TextIO

from claudefeed.constants import FALLBACK_COLUMNS, FALLBACK_ROWS

logger = logging.getLogger(__name__)

RESET_SCROLL_REGION = "\x1b[r"
ENABLE_FOCUS_REPORTING = "\x1b[?1004h"
DISABLE_FOCUS_REPORTING = "\x1b[?1004l"
# Button tracking with SGR extended coordinates, left on by full-screen list views
DISABLE_MOUSE_REPORTING = "\x1b[?1000l\x1b[?1006l"
SAVE_CURSOR = "\x1b7"
RESTORE_CURSOR = "\x1b8"
REVERSE_VIDEO = "\x1b[7m"
RESET_ATTRIBUTES = "\x1b[0m"

FOCUS_IN = b"\x1b[I"
FOCUS_OUT = b"\x1b[O"

# Ctrl+X: legacy control byte, or CSI u / kitty keyboard protocol
DETACH_KEYS = (b"\x18", b"\x1b[120;5u")
DETACH_HINT = "Ctrl+X detach"

_FOCUS_RE = re.compile(re.escape(FOCUS_IN) + b"|" + re.escape(FOCUS_OUT))
_SGR_MOUSE_RE = re.compile(rb"\x1b\[<(\d+);(\d+);(\d+)([Mm])")


def set_scroll_region(top: int, bottom: int) -> str:
    """Restrict scrolling to rows top..bottom (1-based, inclusive)."""
    return f"\x1b[{top};{bottom}r"


def move_cursor(row: int, col: int) -> str:
    return f"\x1b[{row};{col}H"


def render_status_bar(cols: int, rows: int, label: Optional[str] = None) -> str:
    """Reverse-video bar on the last row, leaving the cursor where it was."""
    text = f" {DETACH_HINT}"
    if label:
        text += f" │ {label}"
    text = text[:cols].ljust(cols)
    return SAVE_CURSOR + move_cursor(rows, 1) + REVERSE_VIDEO + text + RESET_ATTRIBUTES + RESTORE_CURSOR


def is_detach_chord(data: bytes) -> bool:
    return data in DETACH_KEYS


def strip_focus_reports(data: bytes) -> tuple[bytes, bool]:
    """Remove focus-in/out reports. Returns (remaining bytes, whether any were found)."""
    stripped, count = _FOCUS_RE.subn(b"", data)
    return stripped, count > 0


def parse_mouse_clicks(data: bytes) -> list[tuple[int, int]]:
    """Left-button presses in SGR mouse reports, as 1-based (column, row)."""
    clicks: list[tuple[int, int]] = []
    for match in _SGR_MOUSE_RE.finditer(data):
        button = int(match.group(1))
        if match.group(4) != b"M":
            continue  # release
        if button & 0b11 != 0 or button & 32 or button & 64:
            continue  # other button, motion, or wheel
        clicks.append((int(match.group(2)), int(match.group(3))))
    return clicks


class Terminal:
    """The controlling terminal: size, raw mode, output and resize events."""

    def __init__(self, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout
        self._saved_attrs: Optional[list[object]] = None

    @property
    def input_fd(self) -> int:
        return self._stdin.fileno()

    def size(self) -> tuple[int, int]:
        """(columns, rows) of the output terminal."""
        try:
            size = os.get_terminal_size(self._stdout.fileno())
        except (OSError, ValueError):
            return FALLBACK_COLUMNS, FALLBACK_ROWS
        return size.columns or FALLBACK_COLUMNS, size.lines or FALLBACK_ROWS

    def write(self, data: bytes | str) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        buffer = getattr(self._stdout, "buffer", None)
        if buffer is not None:
            buffer.write(payload)
        else:
            self._stdout.write(payload.decode("utf-8", errors="replace"))
        self._stdout.flush()

    def enter_raw_mode(self) -> None:
        fd = self.input_fd
        if not os.isatty(fd) or self._saved_attrs is not None:
            return
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setraw(fd)

    def exit_raw_mode(self) -> None:
        if self._saved_attrs is None:
            return
        try:
            termios.tcsetattr(self.input_fd, termios.TCSADRAIN, self._saved_attrs)
        except termios.error as e:
            logger.warning("Failed to restore terminal mode: %s", e)
        finally:
            self._saved_attrs = None

    def add_resize_handler(self, loop: asyncio.AbstractEventLoop, callback: Callable[[], None]) -> None:
        loop.add_signal_handler(signal.SIGWINCH, callback)

    def remove_resize_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.remove_signal_handler(signal.SIGWINCH)
