"""OpenAI-compatible chat provider (OpenRouter, Groq, OpenAI)"""

import logging
from typing import AsyncIterator

import openai

from ctxwin.session.message import Message, messages_to_dicts

from .base import Provider, ProviderError, StreamChunk

logger = logging.getLogger(__name__)


class OpenRouterProvider(Provider):
    """Streams chat completions from any OpenAI-compatible endpoint"""

    def __init__(
        self,
        model: str,
        api_key: str | None,
        base_url: str,
        temperature: float = 0.7,
        top_p: float = 0.95,
        max_tokens: int | None = None,
        client: openai.AsyncOpenAI | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.client = client or self._create_client(api_key, base_url)

    def _create_client(self, api_key: str | None, base_url: str) -> openai.AsyncOpenAI:
        if not api_key:
            raise ProviderError(
                "No OpenRouter credentials found. Set OPENROUTER_API_KEY or store a key with CredentialStore."
            )
        return openai.AsyncOpenAI(api_key=api_key, base_url=base_url)

    def _convert_tools(self, tools: list[dict] | None) -> list[dict] | None:
        """Convert internal tool format to OpenAI format"""
        if not tools:
            return None

        return [
            {
                "type": "function",
                "function": {
                    "name": t["name"],
                    "description": t["description"],
                    "parameters": t["parameters"],
                },
            }
            for t in tools
        ]

    def build_request(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> dict:
        kwargs = {
            "model": self.model,
            "messages": [{"role": "system", "content": system}] + messages_to_dicts(messages, wire=True),
            "temperature": self.temperature,
            "top_p": self.top_p,
            "stream": True,
            "extra_headers": {"X-Title": "ctxwin"},
        }
        if self.max_tokens:
            kwargs["max_tokens"] = self.max_tokens

        openai_tools = self._convert_tools(tools)
        if openai_tools:
            kwargs["tools"] = openai_tools
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def stream(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response, emitting completed tool calls at the end"""
        logger.info(f"Requesting completion from {self.model} with {len(messages)} messages")

        tool_calls_accumulator: dict[int, dict] = {}
        finish_reason = None

        try:
            stream = await self.client.chat.completions.create(**self.build_request(system, messages, tools))

            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                delta = choice.delta

                if delta and delta.content:
                    yield StreamChunk(type="text", content=delta.content)

                if delta and delta.tool_calls:
                    for tc in delta.tool_calls:
                        acc = tool_calls_accumulator.setdefault(
                            tc.index, {"id": "", "name": "", "arguments": ""}
                        )
                        if tc.id:
                            acc["id"] = tc.id
                        if tc.function:
                            if tc.function.name:
                                acc["name"] = tc.function.name
                            if tc.function.arguments:
                                acc["arguments"] += tc.function.arguments

                if choice.finish_reason:
                    finish_reason = choice.finish_reason
        except openai.APIStatusError as e:
            message = str(e)
            raise ProviderError(
                f"API Error: {e.status_code} - {message}",
                status_code=e.status_code,
                tool_use_failed="tool_use_failed" in message,
            ) from e
        except openai.APIError as e:
            raise ProviderError(f"Request to {self.model} failed: {e}") from e

        for idx in sorted(tool_calls_accumulator):
            tc = tool_calls_accumulator[idx]
            yield StreamChunk(
                type="tool_call",
                id=tc["id"] or f"tool_{idx}",
                name=tc["name"],
                arguments=tc["arguments"] or "{}",
            )

        logger.info(f"Completion finished: {finish_reason or 'stop'}")
        yield StreamChunk(type="finish", content=finish_reason or "stop")
