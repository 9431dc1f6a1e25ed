from pydantic import BaseModel, ConfigDict, Field, field_validator

from claudefeed.constants import (
    AGENT_BINARY,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_OUTPUT_BUFFER_BYTES,
    DEFAULT_REPAINT_DELAY_MS,
    DEFAULT_REPAINT_RESTORE_MS,
    DEFAULT_STALE_AFTER_SECONDS,
    DEFAULT_TERMINAL_TYPE,
)


class AgentConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    binary: str = AGENT_BINARY
    terminal_type: str = DEFAULT_TERMINAL_TYPE

    @field_validator("binary")
    @classmethod
    def validate_binary(cls, v: str) -> str:
        """Reject an empty executable name."""
        if not v.strip():
            raise ValueError("agent.binary must not be empty")
        return v.strip()


class StatusConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    stale_after_seconds: int = Field(default=DEFAULT_STALE_AFTER_SECONDS, ge=1)


class PtyConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    buffer_bytes: int = Field(default=DEFAULT_OUTPUT_BUFFER_BYTES, ge=1024)
    repaint_delay_ms: int = Field(default=DEFAULT_REPAINT_DELAY_MS, ge=0)
    repaint_restore_ms: int = Field(default=DEFAULT_REPAINT_RESTORE_MS, ge=0)


class WatchConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    debounce_seconds: float = Field(default=DEFAULT_DEBOUNCE_SECONDS, ge=0.0)


class FeedConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    transcripts_dir: str = "~/.claude/projects"
    tasks_dir: str = "~/.claude/tasks"
    preferences_dir: str = "~/.claude-feed"
    agent: AgentConfig = AgentConfig()
    status: StatusConfig = StatusConfig()
    pty: PtyConfig = PtyConfig()
    watch: WatchConfig = WatchConfig()
