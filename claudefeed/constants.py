"""Constants used across claudefeed.

Values here are internal policy; user-tunable values live in claudefeed.config.
"""

# Transcript store layout
TRANSCRIPT_SUFFIX = ".jsonl"
SUBAGENT_PATTERN = r"subagent"

# Entry normalization
PREVIEW_MAX_CHARS = 200
PROMPT_INPUT_MAX_CHARS = 80
QUESTION_INPUT_MAX_CHARS = 120
ELLIPSIS = "…"

# Tool-input keys tried, in order, when describing a tool call
TOOL_DESCRIPTION_KEYS = ("command", "file_path", "pattern", "query")

# Tool whose pending call is a question for the operator
QUESTION_TOOL_NAME = "AskUserQuestion"

# Status inference
DEFAULT_STALE_AFTER_SECONDS = 300

# PTY multiplexer
DEFAULT_TERMINAL_TYPE = "xterm-256color"
DEFAULT_OUTPUT_BUFFER_BYTES = 64 * 1024
DEFAULT_REPAINT_DELAY_MS = 100
DEFAULT_REPAINT_RESTORE_MS = 50
FALLBACK_COLUMNS = 80
FALLBACK_ROWS = 24
READ_CHUNK_BYTES = 4096

# Agent process
AGENT_BINARY = "claude"
RESUME_FLAG = "--resume"

# File watching
DEFAULT_DEBOUNCE_SECONDS = 0.3
