"""Rebuild one session's conversation as an ordered timeline."""

from __future__ import annotations

from typing import Iterable

from claudefeed.core.content import describe_tool_use, tool_result_text
from claudefeed.core.models import (
    PromptItem,
    RawLogRecord,
    TextBlock,
    TextItem,
    ThreadItem,
    ToolItem,
    ToolResultBlock,
    ToolUseBlock,
)


def reconstruct_thread(records: Iterable[RawLogRecord]) -> list[ThreadItem]:
    """Turn a session's records (file order) into thread items.

    Tool calls are emitted as soon as they appear, with an empty result. When
    the matching tool_result shows up later, the already-emitted item is
    patched in place; nothing is appended for it. Results with no known
    call id are dropped, and calls without an id stay unfilled.
    """
    items: list[ThreadItem] = []
    in_flight: dict[str, ToolItem] = {}

    for record in records:
        message = record.message
        if message is None:
            continue

        if record.is_user:
            if isinstance(message.content, str):
                items.append(PromptItem(text=message.content, timestamp=record.timestamp))
                continue
            for block in message.blocks:
                if not isinstance(block, ToolResultBlock) or block.tool_use_id is None:
                    continue
                pending = in_flight.pop(block.tool_use_id, None)
                if pending is None:
                    continue
                pending.result = tool_result_text(block.content)
                pending.is_error = block.is_error

        elif record.is_assistant:
            if isinstance(message.content, str):
                if message.content:
                    items.append(TextItem(text=message.content, model=message.model, timestamp=record.timestamp))
                continue
            for block in message.blocks:
                if isinstance(block, TextBlock):
                    if block.text:
                        items.append(TextItem(text=block.text, model=message.model, timestamp=record.timestamp))
                elif isinstance(block, ToolUseBlock):
                    item = ToolItem(
                        name=block.name,
                        description=describe_tool_use(block.name, block.input),
                        timestamp=record.timestamp,
                    )
                    items.append(item)
                    if block.id is not None:
                        in_flight[block.id] = item

    return items
