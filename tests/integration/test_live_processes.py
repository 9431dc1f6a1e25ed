"""Integration tests against a real PTY child and a real filesystem watcher."""

import asyncio
import io

import pytest

from claudefeed.core.feed import SessionFeed
from claudefeed.core.pty_manager import PtyManager
from claudefeed.core.terminal_control import Terminal
from claudefeed.core.transcript_watcher import TranscriptWatcher


async def _until(predicate, timeout=3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_real_child_exit_is_detected(tmp_path):
    manager = PtyManager(Terminal(stdin=io.StringIO(), stdout=io.StringIO()), "sh")
    manager.spawn("s1", str(tmp_path), ["-c", "printf ready"])
    assert manager.has("s1")
    await _until(lambda: not manager.has("s1"))


@pytest.mark.asyncio
async def test_real_child_is_killed(tmp_path):
    manager = PtyManager(Terminal(stdin=io.StringIO(), stdout=io.StringIO()), "sh")
    manager.spawn("s1", str(tmp_path), ["-c", "sleep 30"])
    manager.kill_all()
    assert manager.ids() == set()


@pytest.mark.asyncio
async def test_watcher_reports_transcript_writes(tmp_path):
    project = tmp_path / "-p"
    project.mkdir()
    changed = asyncio.Event()

    async def on_change():
        changed.set()

    watcher = TranscriptWatcher(on_change, root=tmp_path, debounce_seconds=0.05)
    task = asyncio.create_task(watcher.run())
    try:
        await asyncio.sleep(0.2)
        (project / "s1.jsonl").write_text("{}\n", encoding="utf-8")
        await asyncio.wait_for(changed.wait(), timeout=3)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


@pytest.mark.asyncio
async def test_feed_refreshes_when_transcripts_change(tmp_path):
    project = tmp_path / "-p"
    project.mkdir()
    feed = SessionFeed(root=tmp_path, preferences_dir=tmp_path / "prefs")
    refreshed = asyncio.Event()

    async def listener(load):
        if "s1" in load.file_mtimes:
            refreshed.set()

    feed.add_listener(listener)
    feed.start_watching(debounce_seconds=0.05)
    try:
        await asyncio.sleep(0.2)
        (project / "s1.jsonl").write_text("{}\n", encoding="utf-8")
        await asyncio.wait_for(refreshed.wait(), timeout=3)
    finally:
        await feed.stop_watching()
