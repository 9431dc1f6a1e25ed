"""Session feed coordinator.

Holds the latest full scan of the transcript store and serves derived
views from it. Every refresh re-reads everything and re-derives from
scratch; listeners are told once the new scan is in place.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional

from claudefeed.core import preferences
from claudefeed.core.models import SessionLoad, SessionSummary, SessionView, ThreadItem
from claudefeed.core.session_derivation import derive_sessions
from claudefeed.core.transcript_reader import load_all_sessions, load_session_thread
from claudefeed.core.transcript_watcher import TranscriptWatcher

logger = logging.getLogger(__name__)

Listener = Callable[[SessionLoad], Awaitable[None]]


class SessionFeed:
    """Latest transcript scan plus the sessions derived from it."""

    def __init__(self, root: Optional[Path] = None, preferences_dir: Optional[Path] = None) -> None:
        self._root = root
        self._preferences_dir = preferences_dir
        self._load = SessionLoad()
        self._listeners: list[Listener] = []
        self._refresh_lock = asyncio.Lock()
        self._watch_task: Optional[asyncio.Task[None]] = None

    @property
    def load(self) -> SessionLoad:
        return self._load

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def refresh(self) -> SessionLoad:
        """Re-read every transcript and notify listeners."""
        async with self._refresh_lock:
            self._load = await load_all_sessions(self._root)
        logger.debug("Feed refreshed: %d entries", len(self._load.entries))
        for listener in list(self._listeners):
            await listener(self._load)
        return self._load

    def sessions(self, view: SessionView = SessionView.ACTIVE, include_hidden: bool = False) -> list[SessionSummary]:
        """Derived summaries for the current scan, minus hidden sessions."""
        summaries = derive_sessions(self._load.entries, self._load.file_mtimes, view=view)
        if include_hidden:
            return summaries
        hidden = preferences.load_hidden(self._preferences_dir)
        return [s for s in summaries if s.session_id not in hidden]

    async def thread(self, session_id: str) -> list[ThreadItem]:
        return await load_session_thread(session_id, self._root)

    def start_watching(self, debounce_seconds: Optional[float] = None) -> None:
        """Refresh automatically when transcripts change."""
        if self._watch_task is not None:
            return

        async def on_change() -> None:
            await self.refresh()

        watcher = TranscriptWatcher(on_change, root=self._root, debounce_seconds=debounce_seconds)
        self._watch_task = asyncio.create_task(watcher.run())

    async def stop_watching(self) -> None:
        if self._watch_task is None:
            return
        self._watch_task.cancel()
        try:
            await self._watch_task
        except asyncio.CancelledError:
            pass
        self._watch_task = None
