"""Unit tests for transcript reading and feed normalization."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from claudefeed.core.models import EntryType, PromptItem, ToolItem
from claudefeed.core.transcript_reader import (
    encode_project_dir,
    find_transcript,
    load_all_sessions,
    load_session_thread,
    parse_record,
    parse_records,
    project_label_from_dir,
)

HOME = Path("/home/ana")


def _line(kind: str, ts: str, content, **extra) -> str:
    message = {"role": kind, "content": content}
    if "model" in extra:
        message["model"] = extra.pop("model")
    return json.dumps({"type": kind, "timestamp": ts, "message": message, **extra})


def _write(path: Path, *lines: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


# =============================================================================
# Project labels
# =============================================================================


def test_encode_project_dir_replaces_non_alphanumerics():
    assert encode_project_dir("/home/ana/my_app.v2") == "-home-ana-my-app-v2"


def test_project_label_strips_home_prefix_verbatim():
    assert project_label_from_dir("-home-ana-my-cool-project", HOME) == "my-cool-project"


def test_project_label_for_home_itself():
    assert project_label_from_dir("-home-ana", HOME) == "~"


def test_project_label_outside_home_is_unchanged():
    assert project_label_from_dir("-srv-app", HOME) == "-srv-app"


# =============================================================================
# Record parsing
# =============================================================================


def test_parse_records_skips_malformed_lines():
    text = "\n".join(
        [
            _line("user", "2026-01-01T10:00:00Z", "hi"),
            "{not json",
            "",
            "[1, 2]",
            _line("assistant", "2026-01-01T10:00:01Z", [{"type": "text", "text": "hello"}]),
        ]
    )
    records = parse_records(text)
    assert [r.kind for r in records] == ["user", "assistant"]


def test_parse_records_carries_first_cwd_forward():
    text = "\n".join(
        [
            _line("user", "2026-01-01T10:00:00Z", "first"),
            _line("user", "2026-01-01T10:00:01Z", "second", cwd="/work/a"),
            _line("user", "2026-01-01T10:00:02Z", "third", cwd="/work/b"),
            _line("user", "2026-01-01T10:00:03Z", "fourth"),
        ]
    )
    records = parse_records(text)
    assert [r.cwd for r in records] == [None, "/work/a", "/work/a", "/work/a"]


def test_parse_records_reads_git_branch():
    records = parse_records(_line("user", "2026-01-01T10:00:00Z", "x", gitBranch="main"))
    assert records[0].git_branch == "main"


def _single(kind: str, content, **extra):
    return parse_records(_line(kind, "2026-01-01T10:00:00Z", content, **extra))[0]


def test_user_string_content_is_prompt():
    entries = parse_record(_single("user", "fix the bug"), "proj", "s1", "/w")
    assert len(entries) == 1
    assert entries[0].entry_type == EntryType.PROMPT
    assert entries[0].content == "fix the bug"
    assert entries[0].session_id == "s1"
    assert entries[0].cwd == "/w"
    assert entries[0].timestamp == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_user_tool_results_skip_empty_text():
    content = [
        {"type": "tool_result", "tool_use_id": "t1", "content": "done"},
        {"type": "tool_result", "tool_use_id": "t2", "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]},
        {"type": "tool_result", "tool_use_id": "t3", "content": ""},
        {"type": "text", "text": "ignored"},
    ]
    entries = parse_record(_single("user", content), "proj", "s1", None)
    assert [(e.entry_type, e.content) for e in entries] == [
        (EntryType.TOOL_RESULT, "done"),
        (EntryType.TOOL_RESULT, "a\nb"),
    ]


def test_assistant_blocks_become_responses_and_tool_uses():
    content = [
        {"type": "thinking", "thinking": "hmm"},
        {"type": "text", "text": "Let me look"},
        {"type": "text", "text": ""},
        {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
    ]
    entries = parse_record(_single("assistant", content, model="m-1"), "proj", "s1", None)
    assert [(e.entry_type, e.content, e.model) for e in entries] == [
        (EntryType.RESPONSE, "Let me look", "m-1"),
        (EntryType.TOOL_USE, "Bash: ls", "m-1"),
    ]


def test_assistant_string_content_is_one_response():
    entries = parse_record(_single("assistant", "plain answer"), "proj", "s1", None)
    assert [(e.entry_type, e.content) for e in entries] == [(EntryType.RESPONSE, "plain answer")]
    assert parse_record(_single("assistant", ""), "proj", "s1", None) == []


def test_records_without_timestamp_or_known_kind_yield_nothing():
    no_ts = parse_records(json.dumps({"type": "user", "message": {"role": "user", "content": "x"}}))[0]
    assert parse_record(no_ts, "proj", "s1", None) == []
    summary = parse_records(json.dumps({"type": "summary", "timestamp": "2026-01-01T10:00:00Z", "summary": "x"}))[0]
    assert parse_record(summary, "proj", "s1", None) == []


def test_entry_content_is_truncated():
    entries = parse_record(_single("user", "y" * 500), "proj", "s1", None)
    assert entries[0].content == "y" * 200 + "…"


# =============================================================================
# Store loading
# =============================================================================


@pytest.mark.asyncio
async def test_load_all_sessions_merges_and_sorts(tmp_path):
    root = tmp_path / "projects"
    _write(
        root / "-home-ana-alpha" / "s1.jsonl",
        _line("user", "2026-01-01T10:00:00Z", "alpha first", cwd="/home/ana/alpha"),
        _line("assistant", "2026-01-01T10:00:05Z", [{"type": "text", "text": "alpha reply"}]),
    )
    _write(
        root / "-home-ana-beta" / "s2.jsonl",
        _line("user", "2026-01-01T10:00:03Z", "beta first"),
    )
    _write(root / "-home-ana-beta" / "agent-subagent-1.jsonl", _line("user", "2026-01-01T11:00:00Z", "sub"))
    _write(root / "-home-ana-beta" / "notes.txt", "hello")

    load = await load_all_sessions(root, HOME)

    assert [e.content for e in load.entries] == ["alpha reply", "beta first", "alpha first"]
    assert load.projects == ["alpha", "beta"]
    assert set(load.file_mtimes) == {"s1", "s2"}
    assert load.entries[0].cwd == "/home/ana/alpha"


@pytest.mark.asyncio
async def test_load_all_sessions_keeps_read_order_for_equal_timestamps(tmp_path):
    root = tmp_path / "projects"
    ts = "2026-01-01T10:00:00Z"
    _write(
        root / "-p" / "s1.jsonl",
        _line("assistant", ts, [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}]),
    )
    load = await load_all_sessions(root, HOME)
    assert [e.content for e in load.entries] == ["one", "two"]


@pytest.mark.asyncio
async def test_load_all_sessions_missing_root_is_empty(tmp_path):
    load = await load_all_sessions(tmp_path / "nope", HOME)
    assert load.entries == []
    assert load.projects == []
    assert load.file_mtimes == {}


@pytest.mark.asyncio
async def test_load_session_thread_finds_file_in_any_project(tmp_path):
    root = tmp_path / "projects"
    _write(
        root / "-p" / "abc.jsonl",
        _line("user", "2026-01-01T10:00:00Z", "go"),
        _line("assistant", "2026-01-01T10:00:01Z", [{"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}}]),
        _line("user", "2026-01-01T10:00:02Z", [{"type": "tool_result", "tool_use_id": "t1", "content": "a.txt"}]),
    )
    assert find_transcript("abc", root) == root / "-p" / "abc.jsonl"

    items = await load_session_thread("abc", root)
    assert isinstance(items[0], PromptItem)
    assert isinstance(items[1], ToolItem)
    assert items[1].result == "a.txt"
    assert len(items) == 2


@pytest.mark.asyncio
async def test_load_session_thread_unknown_id_is_empty(tmp_path):
    assert await load_session_thread("missing", tmp_path) == []
