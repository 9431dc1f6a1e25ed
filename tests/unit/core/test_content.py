"""Unit tests for content decoding and tool descriptions."""

from claudefeed.core.content import (
    decode_block,
    decode_message,
    describe_tool_use,
    tool_result_text,
    truncate,
)
from claudefeed.core.models import TextBlock, ThinkingBlock, ToolResultBlock, ToolUseBlock, UnknownBlock


def test_truncate_keeps_short_text():
    assert truncate("hello") == "hello"
    assert truncate("x" * 200) == "x" * 200


def test_truncate_appends_single_ellipsis_char():
    result = truncate("x" * 250)
    assert result == "x" * 200 + "…"
    assert len(result) == 201


def test_decode_block_variants():
    assert decode_block({"type": "text", "text": "hi"}) == TextBlock(text="hi")
    assert decode_block({"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}}) == ToolUseBlock(
        name="Bash", input={"command": "ls"}, id="t1"
    )
    result = decode_block({"type": "tool_result", "tool_use_id": "t1", "content": "ok", "is_error": True})
    assert result == ToolResultBlock(tool_use_id="t1", content="ok", is_error=True)
    assert decode_block({"type": "thinking", "thinking": "hmm"}) == ThinkingBlock(thinking="hmm")
    assert isinstance(decode_block({"type": "image"}), UnknownBlock)


def test_decode_message_string_and_blocks():
    message = decode_message({"role": "user", "content": "do it"})
    assert message is not None
    assert message.content == "do it"
    assert message.blocks == ()

    message = decode_message({"role": "assistant", "model": "m-1", "content": [{"type": "text", "text": "a"}, "junk"]})
    assert message is not None
    assert message.model == "m-1"
    assert message.blocks == (TextBlock(text="a"),)


def test_decode_message_rejects_non_object():
    assert decode_message(None) is None
    assert decode_message("text") is None


def test_tool_result_text_joins_text_blocks_only():
    content = [
        {"type": "text", "text": "one"},
        {"type": "image", "source": {}},
        {"type": "text", "text": "two"},
    ]
    assert tool_result_text(content) == "one\ntwo"
    assert tool_result_text("plain") == "plain"
    assert tool_result_text(None) == ""


def test_describe_tool_use_key_priority():
    assert describe_tool_use("Bash", {"command": "ls", "file_path": "/x"}) == "Bash: ls"
    assert describe_tool_use("Read", {"file_path": "/etc/hosts"}) == "Read: /etc/hosts"
    assert describe_tool_use("Grep", {"pattern": "TODO"}) == "Grep: TODO"
    assert describe_tool_use("WebSearch", {"query": "weather"}) == "WebSearch: weather"


def test_describe_tool_use_prompt_and_question_are_cut():
    assert describe_tool_use("Task", {"prompt": "p" * 100}) == "Task: " + "p" * 80
    question = {"questions": [{"question": "q" * 150, "options": []}]}
    assert describe_tool_use("AskUserQuestion", question) == "AskUserQuestion: " + "q" * 120


def test_describe_tool_use_falls_back_to_name():
    assert describe_tool_use("TodoWrite", {"todos": []}) == "TodoWrite"
    assert describe_tool_use("TodoWrite", None) == "TodoWrite"
    assert describe_tool_use("Bash", {"command": ""}) == "Bash"
