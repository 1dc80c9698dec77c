"""Tests for message normalization"""

import logging

import pytest

from ctxwin.session.message import (
    AssistantMessage,
    FileContentPart,
    FileErrorPart,
    ImagePart,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolMessage,
    UserMessage,
    message_from_dict,
    message_to_dict,
)


class TestMessageFromDict:
    def test_user_string_content(self):
        msg = message_from_dict({"role": "user", "content": "Hello"})

        assert msg == UserMessage(content="Hello")
        assert msg.role == "user"

    def test_user_parts(self):
        msg = message_from_dict({
            "role": "user",
            "content": [
                {"type": "text", "text": "look"},
                {"type": "image_url", "image_url": {"url": "data:image/png;base64,AA", "media_type": "image/png"}},
                {"type": "file_content", "name": "a.txt", "text": "body"},
                {"type": "file_error", "name": "b.pdf", "error": "unreadable"},
                {"text": "untyped"},
            ],
        })

        assert msg.content == [
            TextPart(text="look"),
            ImagePart(url="data:image/png;base64,AA", media_type="image/png"),
            FileContentPart(name="a.txt", text="body"),
            FileErrorPart(name="b.pdf", error="unreadable"),
            TextPart(text="untyped"),
        ]
        assert len(msg.image_parts()) == 1

    def test_unexpected_user_content_defaults_to_empty(self):
        msg = message_from_dict({"role": "user", "content": 42})

        assert msg == UserMessage(content="")

    def test_ui_only_keys_are_dropped(self):
        msg = message_from_dict({
            "role": "assistant",
            "content": "answer",
            "reasoning": "thinking...",
            "isStreaming": False,
        })

        assert message_to_dict(msg) == {"role": "assistant", "content": "answer"}

    def test_assistant_structured_content_is_flattened(self):
        msg = message_from_dict({
            "role": "assistant",
            "content": [{"type": "text", "text": "a"}, {"type": "tool_use"}, {"type": "text", "text": "b"}],
            "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "read", "arguments": '{"p": 1}'}}],
        })

        assert msg == AssistantMessage(
            content="ab",
            tool_calls=[ToolCall(id="c1", name="read", arguments='{"p": 1}')],
        )

    def test_flat_tool_call_with_dict_arguments(self):
        msg = message_from_dict({
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "c1", "name": "read", "arguments": {"path": "a.py"}}],
        })

        assert msg.content is None
        assert msg.tool_calls[0].arguments == '{"path": "a.py"}'
        assert msg.tool_calls[0].parsed_arguments() == {"path": "a.py"}

    def test_tool_content_is_stringified(self):
        msg = message_from_dict({
            "role": "tool",
            "tool_call_id": "c1",
            "name": "search",
            "content": {"hits": [1, 2]},
        })

        assert msg == ToolMessage(content='{"hits": [1, 2]}', tool_call_id="c1", name="search")

    def test_missing_tool_call_id_is_coerced(self, caplog):
        with caplog.at_level(logging.WARNING):
            msg = message_from_dict({"role": "tool", "content": "result"})

        assert msg.tool_call_id == ""
        assert "tool_call_id" in caplog.text

    def test_system_message(self):
        assert message_from_dict({"role": "system", "content": "rules"}) == SystemMessage(content="rules")

    def test_unknown_role_is_rejected(self):
        with pytest.raises(ValueError):
            message_from_dict({"role": "narrator", "content": "once upon a time"})


class TestMessageToDict:
    def test_assistant_with_tool_calls(self):
        msg = AssistantMessage(content=None, tool_calls=[ToolCall(id="c1", name="read", arguments="{}")])

        assert message_to_dict(msg) == {
            "role": "assistant",
            "content": None,
            "tool_calls": [{"id": "c1", "type": "function", "function": {"name": "read", "arguments": "{}"}}],
        }

    def test_tool_message(self):
        msg = ToolMessage(content="ok", tool_call_id="c1", name="read")

        assert message_to_dict(msg) == {"role": "tool", "content": "ok", "tool_call_id": "c1", "name": "read"}

    def test_wire_format_sends_files_as_text(self):
        msg = UserMessage(content=[
            FileContentPart(name="a.txt", text="body"),
            ImagePart(url="https://example.com/cat.png"),
        ])

        wire = message_to_dict(msg, wire=True)

        assert wire["content"] == [
            {"type": "text", "text": "[File: a.txt]\nbody"},
            {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
        ]

    def test_storage_format_survives_normalization(self):
        msg = UserMessage(content=[FileErrorPart(name="b.pdf", error="bad"), TextPart(text="hi")])

        assert message_from_dict(message_to_dict(msg)) == msg


class TestToolCall:
    def test_unparsable_arguments(self):
        assert ToolCall(id="c1", name="read", arguments="{not json").parsed_arguments() == {}
