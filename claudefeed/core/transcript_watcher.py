"""Filesystem watcher for the transcript store.

Collapses bursts of transcript changes into a single refresh callback once
the store has been quiet for the debounce window. Delivery is best effort:
a change that lands during a refresh triggers another one, but nothing
guarantees one refresh per write.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from claudefeed.config import config, transcripts_root
from claudefeed.constants import TRANSCRIPT_SUFFIX

logger = logging.getLogger(__name__)


def _is_relevant(path: str) -> bool:
    """Only transcript files matter."""
    return Path(path).suffix == TRANSCRIPT_SUFFIX


class _TranscriptHandler(FileSystemEventHandler):
    """Watchdog handler that pokes the asyncio side on transcript changes."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str]) -> None:
        super().__init__()
        self._loop = loop
        self._queue = queue

    def _handle(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        src = event.src_path
        if isinstance(src, bytes):
            src = src.decode("utf-8", errors="replace")
        if not _is_relevant(src):
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, src)
        except RuntimeError:
            pass  # Loop closed

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle(event)


class TranscriptWatcher:
    """Watches the transcript root and calls on_change after each quiet period."""

    def __init__(
        self,
        on_change: Callable[[], Awaitable[None]],
        root: Optional[Path] = None,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self._on_change = on_change
        self._root = root if root is not None else transcripts_root()
        self._debounce = debounce_seconds if debounce_seconds is not None else config.watch.debounce_seconds

    async def run(self) -> None:
        """Start watching and process events until cancelled."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str] = asyncio.Queue()

        if not self._root.is_dir():
            logger.info("TranscriptWatcher: %s does not exist, watcher idle", self._root)
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                return

        observer = Observer()
        observer.daemon = True
        observer.schedule(_TranscriptHandler(loop, queue), str(self._root), recursive=True)
        observer.start()
        logger.info("TranscriptWatcher: started on %s", self._root)

        try:
            await self.debounce_loop(queue)
        except asyncio.CancelledError:
            pass
        finally:
            observer.stop()
            observer.join(timeout=2)
            logger.info("TranscriptWatcher: stopped")

    async def debounce_loop(self, queue: asyncio.Queue[str]) -> None:
        """Wait for a change, absorb follow-ups until quiet, then refresh once."""
        while True:
            path = await queue.get()
            changed = {path}
            while True:
                try:
                    changed.add(await asyncio.wait_for(queue.get(), timeout=self._debounce))
                except asyncio.TimeoutError:
                    break
            logger.debug("TranscriptWatcher: %d file(s) changed", len(changed))
            try:
                await self._on_change()
            except Exception as exc:  # noqa: BLE001
                logger.warning("TranscriptWatcher: refresh failed: %s", exc)
