"""Tests for the OpenAI-compatible provider"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from ctxwin.provider.base import ProviderError
from ctxwin.provider.openrouter import OpenRouterProvider
from ctxwin.session.message import AssistantMessage, FileContentPart, ToolCall, ToolMessage, UserMessage


def delta_chunk(content=None, tool_calls=None, finish_reason=None):
    return SimpleNamespace(choices=[SimpleNamespace(
        delta=SimpleNamespace(content=content, tool_calls=tool_calls),
        finish_reason=finish_reason,
    )])


def tool_delta(index, id=None, name=None, arguments=None):
    return SimpleNamespace(index=index, id=id, function=SimpleNamespace(name=name, arguments=arguments))


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def provider(client):
    return OpenRouterProvider(model="test-model", api_key="sk", base_url="https://llm.test/v1", max_tokens=512, client=client)


class TestOpenRouterProvider:
    def test_build_request(self, provider):
        messages = [
            UserMessage(content=[FileContentPart(name="a.txt", text="body")]),
            AssistantMessage(content=None, tool_calls=[ToolCall(id="c1", name="read", arguments="{}")]),
            ToolMessage(content="ok", tool_call_id="c1", name="read"),
        ]
        tools = [{"name": "read", "description": "Read a file", "parameters": {"type": "object"}}]

        request = provider.build_request("system prompt", messages, tools)

        assert request["model"] == "test-model"
        assert request["stream"] is True
        assert request["max_tokens"] == 512
        assert request["tool_choice"] == "auto"
        assert request["tools"][0]["function"]["name"] == "read"
        assert request["messages"][0] == {"role": "system", "content": "system prompt"}
        assert request["messages"][1]["content"] == [{"type": "text", "text": "[File: a.txt]\nbody"}]
        assert request["messages"][3]["tool_call_id"] == "c1"

    def test_no_tools(self, provider):
        request = provider.build_request("system prompt", [UserMessage(content="hi")])

        assert "tools" not in request
        assert "tool_choice" not in request

    @pytest.mark.asyncio
    async def test_stream_accumulates_tool_calls(self, provider, client):
        async def fake_stream():
            yield delta_chunk(content="Let me ")
            yield delta_chunk(content="check.")
            yield delta_chunk(tool_calls=[tool_delta(0, id="c1", name="read", arguments='{"pa')])
            yield delta_chunk(tool_calls=[tool_delta(0, arguments='th": "a"}')])
            yield delta_chunk(finish_reason="tool_calls")

        client.chat.completions.create = AsyncMock(return_value=fake_stream())

        chunks = [c async for c in provider.stream("system", [UserMessage(content="hi")])]

        assert [c.content for c in chunks if c.type == "text"] == ["Let me ", "check."]
        calls = [c for c in chunks if c.type == "tool_call"]
        assert len(calls) == 1
        assert (calls[0].id, calls[0].name, calls[0].arguments) == ("c1", "read", '{"path": "a"}')
        assert chunks[-1].type == "finish"
        assert chunks[-1].content == "tool_calls"

    def test_missing_api_key_is_reported(self):
        with pytest.raises(ProviderError, match="No OpenRouter credentials found"):
            OpenRouterProvider(model="test-model", api_key=None, base_url="https://llm.test/v1")

        with pytest.raises(ProviderError):
            OpenRouterProvider(model="test-model", api_key="", base_url="https://llm.test/v1")
