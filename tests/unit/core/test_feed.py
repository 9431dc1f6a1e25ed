"""Unit tests for the session feed coordinator and transcript watcher debounce."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from claudefeed.core import preferences
from claudefeed.core.feed import SessionFeed
from claudefeed.core.models import SessionView
from claudefeed.core.transcript_watcher import TranscriptWatcher, _is_relevant, _TranscriptHandler


def _write_session(root, project, session_id, *prompts):
    path = root / project / f"{session_id}.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    now = datetime.now(timezone.utc)
    lines = [
        json.dumps(
            {
                "type": "user",
                "timestamp": (now - timedelta(seconds=len(prompts) - i)).isoformat(),
                "cwd": "/work",
                "message": {"role": "user", "content": prompt},
            }
        )
        for i, prompt in enumerate(prompts)
    ]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


@pytest.mark.asyncio
async def test_refresh_notifies_listeners(tmp_path):
    _write_session(tmp_path, "-p", "s1", "hello")
    feed = SessionFeed(root=tmp_path, preferences_dir=tmp_path / "prefs")
    seen = []

    async def listener(load):
        seen.append(len(load.entries))

    feed.add_listener(listener)
    load = await feed.refresh()

    assert seen == [1]
    assert load is feed.load
    assert "s1" in load.file_mtimes


@pytest.mark.asyncio
async def test_sessions_hide_hidden_ids(tmp_path):
    prefs = tmp_path / "prefs"
    root = tmp_path / "projects"
    _write_session(root, "-p", "s1", "one")
    _write_session(root, "-p", "s2", "two")
    preferences.add_hidden("s1", prefs)

    feed = SessionFeed(root=root, preferences_dir=prefs)
    await feed.refresh()

    assert [s.session_id for s in feed.sessions(SessionView.ALL)] == ["s2"]
    assert {s.session_id for s in feed.sessions(SessionView.ALL, include_hidden=True)} == {"s1", "s2"}


@pytest.mark.asyncio
async def test_refresh_rereads_from_scratch(tmp_path):
    _write_session(tmp_path, "-p", "s1", "one")
    feed = SessionFeed(root=tmp_path, preferences_dir=tmp_path / "prefs")
    await feed.refresh()
    assert feed.sessions(SessionView.ALL)[0].entry_count == 1

    _write_session(tmp_path, "-p", "s1", "one", "two", "three")
    await feed.refresh()
    assert feed.sessions(SessionView.ALL)[0].entry_count == 3


@pytest.mark.asyncio
async def test_thread_delegates_to_reader(tmp_path):
    _write_session(tmp_path, "-p", "s1", "one", "two")
    feed = SessionFeed(root=tmp_path)
    items = await feed.thread("s1")
    assert [item.text for item in items] == ["one", "two"]


def test_only_transcripts_are_relevant():
    assert _is_relevant("/x/-p/s1.jsonl")
    assert not _is_relevant("/x/-p/s1.jsonl.tmp")
    assert not _is_relevant("/x/-p/notes.txt")


@pytest.mark.asyncio
async def test_handler_queues_transcript_events():
    queue = asyncio.Queue()
    handler = _TranscriptHandler(asyncio.get_running_loop(), queue)

    handler.on_modified(SimpleNamespace(is_directory=False, src_path="/x/-p/s1.jsonl"))
    handler.on_created(SimpleNamespace(is_directory=False, src_path=b"/x/-p/s2.jsonl"))
    handler.on_deleted(SimpleNamespace(is_directory=False, src_path="/x/-p/notes.txt"))
    handler.on_modified(SimpleNamespace(is_directory=True, src_path="/x/-p.jsonl"))
    await asyncio.sleep(0)

    assert queue.get_nowait() == "/x/-p/s1.jsonl"
    assert queue.get_nowait() == "/x/-p/s2.jsonl"
    assert queue.empty()


@pytest.mark.asyncio
async def test_debounce_collapses_bursts():
    calls = []

    async def on_change():
        calls.append(1)

    watcher = TranscriptWatcher(on_change, root=None, debounce_seconds=0.02)
    queue: asyncio.Queue[str] = asyncio.Queue()
    task = asyncio.create_task(watcher.debounce_loop(queue))
    try:
        for name in ("a.jsonl", "b.jsonl", "a.jsonl"):
            queue.put_nowait(name)
        await asyncio.sleep(0.1)
        assert calls == [1]

        queue.put_nowait("c.jsonl")
        await asyncio.sleep(0.1)
        assert calls == [1, 1]
    finally:
        task.cancel()


@pytest.mark.asyncio
async def test_failed_refresh_does_not_stop_debounce():
    calls = []

    async def on_change():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    watcher = TranscriptWatcher(on_change, debounce_seconds=0.01)
    queue: asyncio.Queue[str] = asyncio.Queue()
    task = asyncio.create_task(watcher.debounce_loop(queue))
    try:
        queue.put_nowait("a.jsonl")
        await asyncio.sleep(0.05)
        queue.put_nowait("a.jsonl")
        await asyncio.sleep(0.05)
        assert len(calls) == 2
    finally:
        task.cancel()
