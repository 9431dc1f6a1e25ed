"""Read assistant transcripts from disk and normalize them into feed entries.

Layout: one directory per project under the transcripts root, one
line-delimited JSON file per session. The directory name is the project's
absolute path with every non-alphanumeric character replaced by "-"; the file
name minus `.jsonl` is the session id. The store is read-only for us.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Optional

from claudefeed.config import transcripts_root
from claudefeed.constants import SUBAGENT_PATTERN, TRANSCRIPT_SUFFIX
from claudefeed.core.content import decode_message, describe_tool_use, tool_result_text, truncate
from claudefeed.core.models import (
    EntryType,
    FeedEntry,
    JsonDict,
    RawLogRecord,
    SessionLoad,
    TextBlock,
    ThreadItem,
    ToolResultBlock,
    ToolUseBlock,
)
from claudefeed.core.thread import reconstruct_thread
from claudefeed.utils import parse_timestamp

logger = logging.getLogger(__name__)

_SUBAGENT_RE = re.compile(SUBAGENT_PATTERN, re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")

# (entries, mtime) for one session file
_FileResult = tuple[list[FeedEntry], Optional[float]]


def encode_project_dir(path: str) -> str:
    """Encode an absolute path the way the transcript store names directories."""
    return _NON_ALNUM_RE.sub("-", path)


def project_label_from_dir(dir_name: str, home: Optional[Path] = None) -> str:
    """Recover a readable project label from an encoded directory name.

    The encoded home directory prefix is stripped and the remainder kept
    verbatim, so "-home-ana-my-cool-project" becomes "my-cool-project". Names
    outside the home directory are returned unchanged.
    """
    encoded_home = encode_project_dir(str(home if home is not None else Path.home()))
    if dir_name == encoded_home:
        return "~"
    prefix = encoded_home + "-"
    if dir_name.startswith(prefix) and len(dir_name) > len(prefix):
        return dir_name[len(prefix) :]
    return dir_name


def parse_line(line: str) -> Optional[JsonDict]:
    """Decode one transcript line. Returns None for blank or malformed lines."""
    stripped = line.strip()
    if not stripped:
        return None
    try:
        raw = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return raw if isinstance(raw, dict) else None


def to_record(raw: JsonDict, cwd: Optional[str]) -> RawLogRecord:
    """Build a RawLogRecord from a decoded line, stamping the carried-forward cwd."""
    kind = raw.get("type")
    branch = raw.get("gitBranch")
    return RawLogRecord(
        kind=kind if isinstance(kind, str) else "",
        timestamp=parse_timestamp(raw.get("timestamp")),
        cwd=cwd,
        git_branch=branch if isinstance(branch, str) and branch else None,
        message=decode_message(raw.get("message")),
        raw=raw,
    )


def parse_records(text: str) -> list[RawLogRecord]:
    """Parse a whole transcript, skipping malformed lines.

    The first non-empty `cwd` in the file applies to that line and every
    later one; lines before it carry None.
    """
    records: list[RawLogRecord] = []
    cwd: Optional[str] = None
    for line in text.splitlines():
        raw = parse_line(line)
        if raw is None:
            continue
        if cwd is None:
            line_cwd = raw.get("cwd")
            if isinstance(line_cwd, str) and line_cwd:
                cwd = line_cwd
        records.append(to_record(raw, cwd))
    return records


def read_transcript(path: Path) -> list[RawLogRecord]:
    """Read and parse one transcript file."""
    return parse_records(path.read_text(encoding="utf-8", errors="replace"))


def parse_record(record: RawLogRecord, project: str, session_id: str, cwd: Optional[str]) -> list[FeedEntry]:
    """Expand one record into zero or more feed entries.

    User string content yields one prompt. User block content yields one
    tool_result per result block with non-empty text. Assistant content
    yields a response per non-empty text block and a tool_use per tool call.
    Thinking and unknown blocks are skipped.
    """
    message = record.message
    timestamp = record.timestamp
    if message is None or timestamp is None:
        return []
    if not (record.is_user or record.is_assistant):
        return []

    def entry(entry_type: EntryType, content: str, model: Optional[str] = None) -> FeedEntry:
        return FeedEntry(
            timestamp=timestamp,
            project=project,
            session_id=session_id,
            cwd=cwd,
            entry_type=entry_type,
            model=model,
            content=truncate(content),
            record=record,
        )

    entries: list[FeedEntry] = []

    if record.is_user:
        if isinstance(message.content, str):
            entries.append(entry(EntryType.PROMPT, message.content))
            return entries
        for block in message.blocks:
            if isinstance(block, ToolResultBlock):
                text = tool_result_text(block.content)
                if text:
                    entries.append(entry(EntryType.TOOL_RESULT, text))
        return entries

    if isinstance(message.content, str):
        if message.content:
            entries.append(entry(EntryType.RESPONSE, message.content, message.model))
        return entries

    for block in message.blocks:
        if isinstance(block, TextBlock):
            if block.text:
                entries.append(entry(EntryType.RESPONSE, block.text, message.model))
        elif isinstance(block, ToolUseBlock):
            entries.append(entry(EntryType.TOOL_USE, describe_tool_use(block.name, block.input), message.model))
    return entries


def _list_dir(path: Path) -> list[Path]:
    """Sorted directory listing; unreadable or missing directories list as empty."""
    try:
        return sorted(path.iterdir())
    except FileNotFoundError:
        logger.debug("Directory not found: %s", path)
        return []
    except OSError as e:
        logger.warning("Cannot list %s: %s", path, e)
        return []


def _session_files(project_dir: Path) -> list[Path]:
    return [
        p
        for p in _list_dir(project_dir)
        if p.suffix == TRANSCRIPT_SUFFIX and not _SUBAGENT_RE.search(p.name) and p.is_file()
    ]


def _read_session_file(path: Path, project: str) -> _FileResult:
    """Entries and mtime for one session file. A read failure yields nothing."""
    session_id = path.stem
    try:
        mtime = path.stat().st_mtime
        records = read_transcript(path)
    except OSError as e:
        logger.warning("Cannot read transcript %s: %s", path, e)
        return [], None

    entries: list[FeedEntry] = []
    for record in records:
        entries.extend(parse_record(record, project, session_id, record.cwd))
    logger.debug("Read %d entries from %s", len(entries), path)
    return entries, mtime


async def _load_project(project_dir: Path, home: Optional[Path]) -> tuple[str, list[Path], list[_FileResult]]:
    label = project_label_from_dir(project_dir.name, home)
    files = await asyncio.to_thread(_session_files, project_dir)
    results = await asyncio.gather(*(asyncio.to_thread(_read_session_file, f, label) for f in files))
    return label, files, list(results)


async def load_all_sessions(root: Optional[Path] = None, home: Optional[Path] = None) -> SessionLoad:
    """Read every session of every project and return the merged feed.

    Projects and files are read concurrently. Entries are merged in listing
    order and then stable-sorted newest first, so equal timestamps keep
    their read order.
    """
    base = root if root is not None else transcripts_root()
    project_dirs = [p for p in await asyncio.to_thread(_list_dir, base) if p.is_dir()]
    projects = await asyncio.gather(*(_load_project(d, home) for d in project_dirs))

    load = SessionLoad()
    labels: set[str] = set()
    for label, files, results in projects:
        labels.add(label)
        for path, (entries, mtime) in zip(files, results):
            load.entries.extend(entries)
            if mtime is not None:
                load.file_mtimes[path.stem] = mtime

    load.entries.sort(key=lambda e: e.timestamp, reverse=True)
    load.projects = sorted(labels)
    logger.info("Loaded %d entries across %d projects", len(load.entries), len(load.projects))
    return load


def find_transcript(session_id: str, root: Optional[Path] = None) -> Optional[Path]:
    """Locate the transcript file for a session id in any project directory."""
    base = root if root is not None else transcripts_root()
    file_name = f"{session_id}{TRANSCRIPT_SUFFIX}"
    for project_dir in _list_dir(base):
        candidate = project_dir / file_name
        if candidate.is_file():
            return candidate
    return None


async def load_session_thread(session_id: str, root: Optional[Path] = None) -> list[ThreadItem]:
    """Thread timeline for one session; empty when the transcript is missing."""
    path = await asyncio.to_thread(find_transcript, session_id, root)
    if path is None:
        logger.debug("No transcript for session %s", session_id)
        return []
    try:
        records = await asyncio.to_thread(read_transcript, path)
    except OSError as e:
        logger.warning("Cannot read transcript %s: %s", path, e)
        return []
    return reconstruct_thread(records)
