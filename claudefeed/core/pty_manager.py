"""PTY multiplexer for assistant sessions.

Owns every child process, keeps output of detached children in a capped
buffer, and lends the real terminal to exactly one child at a time. While a
child is attached the terminal's last row is reserved for a status bar by
installing a scroll region over the rows above it.

All state lives on the event loop thread: the child PTYs and stdin are
registered with `loop.add_reader`, SIGWINCH with `loop.add_signal_handler`.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import pexpect

from claudefeed.config import config
from claudefeed.constants import READ_CHUNK_BYTES
from claudefeed.core.errors import ExecutableNotFoundError
from claudefeed.core.models import AttachOutcome
from claudefeed.core.terminal_control import (
    DISABLE_FOCUS_REPORTING,
    DISABLE_MOUSE_REPORTING,
    ENABLE_FOCUS_REPORTING,
    RESET_SCROLL_REGION,
    Terminal,
    is_detach_chord,
    render_status_bar,
    set_scroll_region,
    strip_focus_reports,
)

logger = logging.getLogger(__name__)

# Errors a child may raise once its process is gone
_CHILD_GONE_ERRORS = (OSError, ValueError, pexpect.ExceptionPexpect)


@dataclass
class PtySessionEntry:
    """One live child. Only PtyManager touches these."""

    child: Any  # pexpect.spawn
    loop: asyncio.AbstractEventLoop
    alive: bool = True
    attached: bool = False
    output_buffer: bytearray = field(default_factory=bytearray)
    on_output: Optional[Callable[[bytes], None]] = None
    on_exit: Optional[Callable[[], None]] = None


class PtyManager:
    """Spawn, attach, detach and kill assistant sessions running in PTYs."""

    def __init__(
        self,
        terminal: Optional[Terminal] = None,
        executable: Optional[str] = None,
        *,
        buffer_bytes: Optional[int] = None,
        terminal_type: Optional[str] = None,
        repaint_delay_ms: Optional[int] = None,
        repaint_restore_ms: Optional[int] = None,
        spawn_factory: Callable[..., Any] = pexpect.spawn,
        which: Callable[[str], Optional[str]] = pexpect.which,
    ) -> None:
        self._terminal = terminal or Terminal()
        self._executable = executable or config.agent.binary
        self._executable_path: Optional[str] = None
        self._buffer_bytes = buffer_bytes or config.pty.buffer_bytes
        self._terminal_type = terminal_type or config.agent.terminal_type
        self._repaint_delay = (
            repaint_delay_ms if repaint_delay_ms is not None else config.pty.repaint_delay_ms
        ) / 1000
        self._repaint_restore = (
            repaint_restore_ms if repaint_restore_ms is not None else config.pty.repaint_restore_ms
        ) / 1000
        self._spawn_factory = spawn_factory
        self._which = which
        self._processes: dict[str, PtySessionEntry] = {}

    @property
    def terminal(self) -> Terminal:
        return self._terminal

    @property
    def repaint_delay(self) -> float:
        return self._repaint_delay

    @property
    def repaint_restore(self) -> float:
        return self._repaint_restore

    def _resolve_executable(self) -> str:
        """Absolute path of the assistant binary, looked up once."""
        if self._executable_path is None:
            path = self._which(self._executable)
            if not path:
                raise ExecutableNotFoundError(self._executable)
            self._executable_path = path
            logger.debug("Resolved %s to %s", self._executable, path)
        return self._executable_path

    def spawn(self, session_id: str, cwd: Optional[str], args: Sequence[str]) -> None:
        """Start a child for session_id. No-op when one is already tracked.

        Raises:
            ExecutableNotFoundError: If the assistant binary is not on PATH.
        """
        if session_id in self._processes:
            return

        executable = self._resolve_executable()
        spawn_cwd = cwd if cwd and os.path.isdir(cwd) else os.getcwd()
        cols, rows = self._terminal.size()
        env = dict(os.environ)
        env["TERM"] = self._terminal_type

        child = self._spawn_factory(
            executable,
            list(args),
            cwd=spawn_cwd,
            env=env,
            dimensions=(rows, cols),
            encoding=None,
        )
        loop = asyncio.get_running_loop()
        entry = PtySessionEntry(child=child, loop=loop)
        self._processes[session_id] = entry
        loop.add_reader(child.child_fd, self._on_child_readable, session_id, entry)
        logger.info("Spawned session %s (pid=%s, cwd=%s)", session_id, getattr(child, "pid", "?"), spawn_cwd)

    def _on_child_readable(self, session_id: str, entry: PtySessionEntry) -> None:
        try:
            chunk = entry.child.read_nonblocking(READ_CHUNK_BYTES, timeout=0)
        except pexpect.TIMEOUT:
            return
        except (pexpect.EOF, OSError, ValueError):
            self._on_child_exit(session_id, entry)
            return

        if not chunk:
            return
        if entry.attached and entry.on_output is not None:
            entry.on_output(chunk)
            return

        entry.output_buffer += chunk
        overflow = len(entry.output_buffer) - self._buffer_bytes
        if overflow > 0:
            del entry.output_buffer[:overflow]

    def _on_child_exit(self, session_id: str, entry: PtySessionEntry) -> None:
        self._stop_reading(entry)
        entry.alive = False
        entry.output_buffer.clear()
        if self._processes.get(session_id) is entry:
            del self._processes[session_id]
        logger.info("Session %s exited", session_id)
        self._dispose(entry)
        if entry.on_exit is not None:
            entry.on_exit()

    def _stop_reading(self, entry: PtySessionEntry) -> None:
        try:
            entry.loop.remove_reader(entry.child.child_fd)
        except _CHILD_GONE_ERRORS:
            pass

    def _dispose(self, entry: PtySessionEntry) -> None:
        """Close the child's PTY and reap it without blocking the loop."""
        if entry.loop.is_running():
            entry.loop.run_in_executor(None, _close_child, entry.child)
        else:
            _close_child(entry.child)

    async def attach(self, session_id: str, label: Optional[str] = None) -> AttachOutcome:
        """Hand the terminal to a child until it detaches or exits.

        Unknown or dead ids return EXITED immediately.
        """
        entry = self._processes.get(session_id)
        if entry is None or not entry.alive:
            return AttachOutcome.EXITED

        attachment = _Attachment(self, session_id, entry, label)
        return await attachment.run()

    def kill(self, session_id: str) -> None:
        """Terminate a child and forget it. Unknown ids are ignored."""
        entry = self._processes.pop(session_id, None)
        if entry is None:
            return
        entry.alive = False
        self._stop_reading(entry)
        try:
            entry.child.kill(signal.SIGTERM)
        except _CHILD_GONE_ERRORS as e:
            logger.debug("Signal to session %s failed (already gone?): %s", session_id, e)
        self._dispose(entry)
        logger.info("Killed session %s", session_id)
        if entry.on_exit is not None:
            entry.on_exit()

    def kill_all(self) -> None:
        for session_id in list(self._processes):
            self.kill(session_id)

    def has(self, session_id: str) -> bool:
        return session_id in self._processes

    def ids(self) -> set[str]:
        return set(self._processes)


def _close_child(child: Any) -> None:
    try:
        child.close(force=True)
    except _CHILD_GONE_ERRORS as e:
        logger.debug("Closing child failed: %s", e)


class _Attachment:
    """One foreground binding of the terminal to a child."""

    def __init__(self, manager: PtyManager, session_id: str, entry: PtySessionEntry, label: Optional[str]) -> None:
        self._manager = manager
        self._terminal = manager.terminal
        self._session_id = session_id
        self._entry = entry
        self._label = label
        self._loop = asyncio.get_running_loop()
        self._done: asyncio.Future[AttachOutcome] = self._loop.create_future()
        self._timers: list[asyncio.TimerHandle] = []
        self._torn_down = False

    async def run(self) -> AttachOutcome:
        terminal = self._terminal
        entry = self._entry

        cols, rows = terminal.size()
        terminal.write(DISABLE_MOUSE_REPORTING + set_scroll_region(1, max(1, rows - 1)) + ENABLE_FOCUS_REPORTING)
        self._resize_child(cols, rows - 1)

        if entry.output_buffer:
            terminal.write(bytes(entry.output_buffer))
            entry.output_buffer.clear()

        entry.attached = True
        entry.on_output = self._on_output
        entry.on_exit = self._on_exit
        self._render_status()

        terminal.enter_raw_mode()
        self._loop.add_reader(terminal.input_fd, self._on_input)
        terminal.add_resize_handler(self._loop, self._on_resize)
        self._schedule_repaint()
        logger.info("Attached session %s", self._session_id)

        try:
            return await self._done
        finally:
            self._teardown()

    def _render_status(self) -> None:
        cols, rows = self._terminal.size()
        self._terminal.write(render_status_bar(cols, rows, self._label))

    def _resize_child(self, cols: int, rows: int) -> None:
        if not self._entry.alive:
            return
        try:
            self._entry.child.setwinsize(max(1, rows), max(1, cols))
        except _CHILD_GONE_ERRORS as e:
            logger.debug("Resize of session %s failed: %s", self._session_id, e)

    def _on_output(self, chunk: bytes) -> None:
        self._terminal.write(chunk)
        # raw output may have drawn over the reserved row
        self._render_status()

    def _on_exit(self) -> None:
        self._finish(AttachOutcome.EXITED)

    def _on_resize(self) -> None:
        cols, rows = self._terminal.size()
        self._terminal.write(set_scroll_region(1, max(1, rows - 1)))
        self._resize_child(cols, rows - 1)
        self._render_status()

    def _on_input(self) -> None:
        try:
            data = os.read(self._terminal.input_fd, READ_CHUNK_BYTES)
        except BlockingIOError:
            return
        except OSError as e:
            logger.warning("Reading terminal input failed: %s", e)
            self._finish(AttachOutcome.DETACHED)
            return
        if not data:
            # stdin closed
            self._finish(AttachOutcome.DETACHED)
            return

        data, focus_changed = strip_focus_reports(data)
        if focus_changed:
            self._schedule_repaint()
        if not data:
            return
        if is_detach_chord(data):
            self._finish(AttachOutcome.DETACHED)
            return
        try:
            self._entry.child.send(data)
        except _CHILD_GONE_ERRORS as e:
            logger.debug("Write to session %s failed: %s", self._session_id, e)

    def _schedule_repaint(self) -> None:
        """Shrink the child's width by one column, then restore it, to force a full redraw."""

        def restore() -> None:
            cols, rows = self._terminal.size()
            self._resize_child(cols, rows - 1)

        def shrink() -> None:
            cols, rows = self._terminal.size()
            self._resize_child(max(1, cols - 1), rows - 1)
            self._timers.append(self._loop.call_later(self._manager.repaint_restore, restore))

        self._timers.append(self._loop.call_later(self._manager.repaint_delay, shrink))

    def _finish(self, outcome: AttachOutcome) -> None:
        if self._done.done():
            return
        self._teardown()
        self._done.set_result(outcome)
        logger.info("Session %s %s", self._session_id, outcome.value)

    def _teardown(self) -> None:
        if self._torn_down:
            return
        self._torn_down = True

        entry = self._entry
        entry.attached = False
        entry.on_output = None
        entry.on_exit = None
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

        terminal = self._terminal
        self._loop.remove_reader(terminal.input_fd)
        terminal.remove_resize_handler(self._loop)
        terminal.write(RESET_SCROLL_REGION + DISABLE_FOCUS_REPORTING)
        terminal.exit_raw_mode()
