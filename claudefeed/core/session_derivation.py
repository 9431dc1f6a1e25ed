"""Derive per-session summaries and live status from the feed.

Everything here is a pure function of the entry list (plus the clock and
optional file mtimes). The summary list is recomputed from scratch on every
refresh and never patched, so it cannot drift from the transcripts.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Mapping, Optional, Sequence, Union

from claudefeed.config import config
from claudefeed.constants import QUESTION_TOOL_NAME
from claudefeed.core.content import describe_tool_use, first_question
from claudefeed.core.models import (
    ContentBlock,
    EntryType,
    FeedEntry,
    PendingAction,
    PreviewLine,
    QuestionAction,
    QuestionOption,
    RawLogRecord,
    SessionStatus,
    SessionSummary,
    SessionView,
    ToolAction,
    ToolUseBlock,
)

_NEWLINES_RE = re.compile(r"\n+")


def format_relative_time(moment: datetime, now: Optional[datetime] = None) -> str:
    """Render an age as "just now", "12m ago" or "3h ago"."""
    current = now or datetime.now(timezone.utc)
    diff_sec = int((current - moment).total_seconds())
    if diff_sec < 60:
        return "just now"
    diff_min = diff_sec // 60
    if diff_min < 60:
        return f"{diff_min}m ago"
    return f"{diff_min // 60}h ago"


def extract_pending_action(content: Union[str, Sequence[ContentBlock]]) -> Optional[PendingAction]:
    """What the newest assistant turn is blocked on, from its last tool call.

    A question-tool call with a question and at least one option becomes a
    QuestionAction (first question only). Any other tool call, including a
    question call without options, becomes a ToolAction.
    """
    if isinstance(content, str):
        return None

    last_call: Optional[ToolUseBlock] = None
    for block in content:
        if isinstance(block, ToolUseBlock):
            last_call = block
    if last_call is None:
        return None

    if last_call.name == QUESTION_TOOL_NAME:
        first = first_question(last_call.input)
        if first is not None:
            question = first.get("question")
            raw_options = first.get("options")
            if isinstance(question, str) and question and isinstance(raw_options, list) and raw_options:
                options = [
                    QuestionOption(label=str(opt.get("label", "")), description=str(opt.get("description", "")))
                    for opt in raw_options
                    if isinstance(opt, dict)
                ]
                if options:
                    return QuestionAction(question=question, options=options)

    return ToolAction(description=describe_tool_use(last_call.name, last_call.input))


def is_stale(
    last_activity_at: datetime,
    now: datetime,
    file_mtime: Optional[float] = None,
    stale_after_seconds: Optional[int] = None,
) -> bool:
    """Whether a session has gone quiet.

    Stale means strictly more than the threshold since the last log entry,
    unless the transcript file itself was modified within the threshold
    (inclusive), which covers long tool calls that have not logged yet.
    """
    threshold = stale_after_seconds if stale_after_seconds is not None else config.status.stale_after_seconds
    if (now - last_activity_at).total_seconds() <= threshold:
        return False
    if file_mtime is not None and now.timestamp() - file_mtime <= threshold:
        return False
    return True


def infer_status(record: RawLogRecord, stale: bool) -> tuple[SessionStatus, Optional[PendingAction]]:
    """Status from the newest record behind a session's newest entry."""
    if stale:
        return SessionStatus.IDLE, None
    if record.is_user:
        return SessionStatus.THINKING, None
    if record.is_assistant and record.message is not None:
        pending = extract_pending_action(record.message.content)
        if pending is not None:
            return SessionStatus.WAITING, pending
    return SessionStatus.IDLE, None


def _flatten(text: str) -> str:
    return _NEWLINES_RE.sub(" ", text)


def build_preview(group: Sequence[FeedEntry], status: SessionStatus) -> list[PreviewLine]:
    """Newest prompt and newest assistant turn, oldest first.

    The assistant turn is the newest tool call while waiting, else the newest
    text response.
    """
    turn_type = EntryType.TOOL_USE if status == SessionStatus.WAITING else EntryType.RESPONSE
    prompt_idx = next((i for i, e in enumerate(group) if e.entry_type == EntryType.PROMPT), None)
    turn_idx = next((i for i, e in enumerate(group) if e.entry_type == turn_type), None)

    picked: list[tuple[int, PreviewLine]] = []
    if prompt_idx is not None:
        picked.append((prompt_idx, PreviewLine(label="User", text=_flatten(group[prompt_idx].content))))
    if turn_idx is not None:
        picked.append((turn_idx, PreviewLine(label="Claude", text=_flatten(group[turn_idx].content))))

    # group is newest first, so a higher index is older
    picked.sort(key=lambda pair: pair[0], reverse=True)
    return [line for _, line in picked]


def _latest_model_and_branch(group: Sequence[FeedEntry]) -> tuple[Optional[str], Optional[str]]:
    model: Optional[str] = None
    branch: Optional[str] = None
    for entry in group:
        if model is None and entry.model:
            model = entry.model
        if branch is None and entry.record.git_branch:
            branch = entry.record.git_branch
        if model is not None and branch is not None:
            break
    return model, branch


def _is_today(moment: datetime, now: datetime) -> bool:
    return moment.astimezone().date() == now.astimezone().date()


def derive_sessions(
    entries: Sequence[FeedEntry],
    file_mtimes: Optional[Mapping[str, float]] = None,
    *,
    view: SessionView = SessionView.ACTIVE,
    now: Optional[datetime] = None,
    stale_after_seconds: Optional[int] = None,
) -> list[SessionSummary]:
    """Group newest-first entries by session and summarize each group.

    Args:
        entries: Feed entries sorted newest first
        file_mtimes: Optional session id -> transcript mtime (epoch seconds)
        view: ACTIVE keeps sessions whose newest entry is from today (local
            time); ALL keeps everything
        now: Clock override for tests
        stale_after_seconds: Threshold override

    Returns:
        Summaries ordered by last activity, newest first.
    """
    current = now or datetime.now(timezone.utc)
    mtimes = file_mtimes or {}

    groups: dict[str, list[FeedEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.session_id, []).append(entry)

    summaries: list[SessionSummary] = []
    for session_id, group in groups.items():
        newest = group[0]
        if view == SessionView.ACTIVE and not _is_today(newest.timestamp, current):
            continue

        stale = is_stale(newest.timestamp, current, mtimes.get(session_id), stale_after_seconds)
        status, pending = infer_status(newest.record, stale)
        model, branch = _latest_model_and_branch(group)

        summaries.append(
            SessionSummary(
                session_id=session_id,
                project=newest.project,
                cwd=newest.cwd,
                last_activity_at=newest.timestamp,
                entry_count=len(group),
                preview=build_preview(group, status),
                model=model,
                git_branch=branch,
                status=status,
                pending_action=pending,
            )
        )

    summaries.sort(key=lambda s: s.last_activity_at, reverse=True)
    return summaries
