"""Decoding and describing transcript content blocks."""

from __future__ import annotations

from typing import Any, Optional

from claudefeed.constants import (
    ELLIPSIS,
    PREVIEW_MAX_CHARS,
    PROMPT_INPUT_MAX_CHARS,
    QUESTION_INPUT_MAX_CHARS,
    TOOL_DESCRIPTION_KEYS,
)
from claudefeed.core.models import (
    ContentBlock,
    Message,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UnknownBlock,
)


def truncate(text: str, max_chars: int = PREVIEW_MAX_CHARS) -> str:
    """Cut text to max_chars, marking the cut with a single ellipsis character."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + ELLIPSIS


def decode_block(raw: dict[str, Any]) -> ContentBlock:
    """Decode one raw content block into its typed form."""
    block_type = raw.get("type")
    if block_type == "text":
        text = raw.get("text")
        return TextBlock(text=text if isinstance(text, str) else "")
    if block_type == "tool_use":
        name = raw.get("name")
        tool_input = raw.get("input")
        block_id = raw.get("id")
        return ToolUseBlock(
            name=name if isinstance(name, str) else "",
            input=tool_input if isinstance(tool_input, dict) else {},
            id=block_id if isinstance(block_id, str) and block_id else None,
        )
    if block_type == "tool_result":
        tool_use_id = raw.get("tool_use_id")
        return ToolResultBlock(
            tool_use_id=tool_use_id if isinstance(tool_use_id, str) and tool_use_id else None,
            content=raw.get("content"),
            is_error=raw.get("is_error") is True,
        )
    if block_type == "thinking":
        thinking = raw.get("thinking")
        return ThinkingBlock(thinking=thinking if isinstance(thinking, str) else "")
    return UnknownBlock(type=block_type if isinstance(block_type, str) else "", raw=raw)


def decode_message(raw: object) -> Optional[Message]:
    """Decode a record's `message` object. Returns None when it is not usable."""
    if not isinstance(raw, dict):
        return None

    role = raw.get("role")
    model = raw.get("model")
    content = raw.get("content")

    decoded: str | tuple[ContentBlock, ...]
    if isinstance(content, str):
        decoded = content
    elif isinstance(content, list):
        decoded = tuple(decode_block(item) for item in content if isinstance(item, dict))
    else:
        decoded = ()

    return Message(
        role=role if isinstance(role, str) else "",
        content=decoded,
        model=model if isinstance(model, str) and model else None,
    )


def tool_result_text(content: object) -> str:
    """Resolve tool_result content to text.

    Content is either a string or a list of blocks, of which only text blocks
    count (joined with newlines).
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    parts = [
        item["text"]
        for item in content
        if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str)
    ]
    return "\n".join(parts)


def first_question(tool_input: dict[str, Any]) -> Optional[dict[str, Any]]:
    """First entry of a question tool's `questions` list, if any."""
    questions = tool_input.get("questions")
    if not isinstance(questions, list) or not questions:
        return None
    first = questions[0]
    return first if isinstance(first, dict) else None


def describe_tool_use(name: str, tool_input: Optional[dict[str, Any]]) -> str:
    """Build the one-line description of a tool call, e.g. "Bash: ls -la".

    Tries command, file_path, pattern, query, then prompt (cut to 80 chars),
    then the first question (cut to 120 chars). Falls back to the bare name.
    """
    if not tool_input:
        return name

    for key in TOOL_DESCRIPTION_KEYS:
        value = tool_input.get(key)
        if value:
            return f"{name}: {value}"

    prompt = tool_input.get("prompt")
    if prompt:
        return f"{name}: {str(prompt)[:PROMPT_INPUT_MAX_CHARS]}"

    first = first_question(tool_input)
    if first is not None:
        question = first.get("question")
        if question:
            return f"{name}: {str(question)[:QUESTION_INPUT_MAX_CHARS]}"

    return name
