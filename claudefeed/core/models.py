"""Data models for transcripts, derived sessions and thread timelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from claudefeed.constants import RESUME_FLAG

# Decoded JSON as it comes off a transcript line
JsonDict = dict[str, Any]


class EntryType(str, Enum):
    """Kind of normalized feed entry."""

    PROMPT = "prompt"
    RESPONSE = "response"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"


class SessionStatus(str, Enum):
    """What a session is doing right now."""

    IDLE = "idle"
    THINKING = "thinking"
    WAITING = "waiting"


class SessionView(str, Enum):
    """Which sessions derive_sessions reports."""

    ACTIVE = "active"  # newest entry is from today (local time)
    ALL = "all"


class AttachOutcome(str, Enum):
    """How an attach ended."""

    DETACHED = "detached"
    EXITED = "exited"


# --- Content blocks -------------------------------------------------------


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    name: str
    input: JsonDict
    id: Optional[str] = None


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: Optional[str]
    content: object
    is_error: bool = False


@dataclass(frozen=True)
class ThinkingBlock:
    thinking: str = ""


@dataclass(frozen=True)
class UnknownBlock:
    """A block type this version does not understand."""

    type: str
    raw: JsonDict


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock, ThinkingBlock, UnknownBlock]


@dataclass(frozen=True)
class Message:
    role: str
    content: Union[str, tuple[ContentBlock, ...]]
    model: Optional[str] = None

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Block content, or an empty tuple for plain-string content."""
        if isinstance(self.content, str):
            return ()
        return self.content


@dataclass(frozen=True)
class RawLogRecord:
    """One parsed transcript line.

    Attributes:
        kind: Record type ("user", "assistant", or anything else)
        timestamp: Aware datetime, None when absent or unparseable
        cwd: Working directory carried forward from the first line that had one
        git_branch: Branch recorded on this line, if any
        message: Decoded message, None when absent
        raw: The decoded JSON object
    """

    kind: str
    timestamp: Optional[datetime]
    cwd: Optional[str]
    git_branch: Optional[str]
    message: Optional[Message]
    raw: JsonDict = field(repr=False, compare=False, default_factory=dict)

    @property
    def is_user(self) -> bool:
        return self.kind == "user"

    @property
    def is_assistant(self) -> bool:
        return self.kind == "assistant"


# --- Feed and sessions ----------------------------------------------------


@dataclass(frozen=True)
class FeedEntry:
    """Normalized projection of one content block of one record."""

    timestamp: datetime
    project: str
    session_id: str
    cwd: Optional[str]
    entry_type: EntryType
    model: Optional[str]
    content: str
    record: RawLogRecord = field(repr=False, compare=False)


@dataclass(frozen=True)
class QuestionOption:
    label: str
    description: str = ""


@dataclass(frozen=True)
class QuestionAction:
    """Session is blocked on a multiple-choice question."""

    question: str
    options: list[QuestionOption]

    @property
    def kind(self) -> str:
        return "question"


@dataclass(frozen=True)
class ToolAction:
    """Session is blocked on a tool call (usually a permission prompt)."""

    description: str

    @property
    def kind(self) -> str:
        return "tool"


PendingAction = Union[QuestionAction, ToolAction]


@dataclass(frozen=True)
class PreviewLine:
    label: str  # "User" or "Claude"
    text: str


@dataclass
class SessionSummary:
    session_id: str
    project: str
    cwd: Optional[str]
    last_activity_at: datetime
    entry_count: int
    preview: list[PreviewLine] = field(default_factory=list)
    model: Optional[str] = None
    git_branch: Optional[str] = None
    status: SessionStatus = SessionStatus.IDLE
    pending_action: Optional[PendingAction] = None


@dataclass
class SessionLoad:
    """Result of one full transcript scan.

    Attributes:
        entries: All feed entries, newest first
        projects: Sorted project labels seen during the scan
        file_mtimes: Session id -> transcript mtime (epoch seconds)
    """

    entries: list[FeedEntry] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    file_mtimes: dict[str, float] = field(default_factory=dict)


# --- Thread timeline ------------------------------------------------------


@dataclass
class PromptItem:
    text: str
    timestamp: Optional[datetime] = None

    @property
    def kind(self) -> str:
        return "prompt"


@dataclass
class TextItem:
    text: str
    model: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def kind(self) -> str:
        return "text"


@dataclass
class ToolItem:
    """Tool call; result and is_error are filled in when the result arrives."""

    name: str
    description: str
    result: str = ""
    is_error: bool = False
    timestamp: Optional[datetime] = None

    @property
    def kind(self) -> str:
        return "tool"


ThreadItem = Union[PromptItem, TextItem, ToolItem]


@dataclass(frozen=True)
class ResumeTarget:
    """What the presentation layer hands over to spawn and attach a session."""

    session_id: str
    label: str
    cwd: Optional[str] = None
    injected_prompt: Optional[str] = None

    def agent_args(self) -> list[str]:
        """Arguments for the assistant executable."""
        args = [RESUME_FLAG, self.session_id]
        if self.injected_prompt:
            args.append(self.injected_prompt)
        return args
