"""Conversation turn loop: optimize, request, run tools, request again"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator

from ctxwin.auth.credentials import CredentialStore
from ctxwin.config.config import Config, ContextConfig, ModelInfo
from ctxwin.provider.base import Provider, ProviderError, StreamChunk
from ctxwin.provider.openrouter import OpenRouterProvider
from ctxwin.session.context import (
    ContextOverflowError,
    HistoryOptimizer,
    OptimizationResult,
    SummaryCache,
)
from ctxwin.session.message import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolCall,
    ToolMessage,
    UserMessage,
)
from ctxwin.session.session import Session
from ctxwin.session.summarize import Summarizer
from ctxwin.tool.registry import ToolRegistry

logger = logging.getLogger(__name__)

BASE_SYSTEM_PROMPT = "You are a helpful assistant. Format responses using Markdown."
TOOL_USE_PROMPT = "You are capable of using tools. Use tools only when necessary and relevant to the user's request."

MAX_TOOL_USE_RETRIES = 3


class UnsupportedContentError(Exception):
    """The conversation contains content the model cannot accept"""


class TurnState(str, Enum):
    AWAITING_FIRST_RESPONSE = "awaiting_first_response"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_FINAL_RESPONSE = "awaiting_final_response"
    DONE = "done"


def build_system_prompt(custom_prompt: str = "", has_tools: bool = False) -> SystemMessage:
    prompt = BASE_SYSTEM_PROMPT
    if has_tools:
        prompt += f" {TOOL_USE_PROMPT}"
    if custom_prompt and custom_prompt.strip():
        prompt += f"\n\n{custom_prompt.strip()}"
    return SystemMessage(content=prompt)


@dataclass
class ConversationTurnController:
    """Runs one user turn against a session.

    The summary cache is threaded through the turn as a value: each model
    request gets its own optimizer call, and a changed cache is persisted on
    the session before that request goes out.
    """

    session: Session
    provider: Provider
    model_info: ModelInfo
    optimizer: HistoryOptimizer = field(default_factory=HistoryOptimizer)
    context: ContextConfig = field(default_factory=ContextConfig)
    tools: ToolRegistry = field(default_factory=ToolRegistry)
    api_key: str | None = None
    custom_system_prompt: str = ""
    max_iterations: int = 15
    state: TurnState = field(default=TurnState.DONE, init=False)
    optimizations: list[OptimizationResult] = field(default_factory=list, init=False)

    @classmethod
    def from_config(
        cls,
        session: Session,
        config: Config,
        tools: ToolRegistry | None = None,
        credentials: CredentialStore | None = None,
        model: str | None = None,
    ) -> "ConversationTurnController":
        """Wire up provider, summarizer and model lookup from configuration

        Raises:
            ProviderError: if no API key is stored or set in the environment
        """
        credentials = credentials or CredentialStore()
        api_key = credentials.get_api_key("openrouter")
        model_id = model or config.model
        provider = OpenRouterProvider(
            model=model_id,
            api_key=api_key,
            base_url=config.base_url,
            temperature=config.temperature,
            top_p=config.top_p,
            max_tokens=config.max_tokens,
        )
        summarizer = Summarizer(
            model=config.context.summarization_model,
            base_url=config.context.summarization_base_url,
        )
        return cls(
            session=session,
            provider=provider,
            model_info=config.model_info(model_id),
            optimizer=HistoryOptimizer(summarizer=summarizer),
            context=config.context,
            tools=tools or ToolRegistry(),
            api_key=api_key,
            custom_system_prompt=config.custom_system_prompt,
        )

    async def run(self, message: Message | str) -> AsyncIterator[StreamChunk]:
        """Add the user's message and stream the turn's output"""
        if isinstance(message, str):
            message = UserMessage(content=message)
        self.session.add_message(message)
        self.optimizations = []

        system_prompt = build_system_prompt(self.custom_system_prompt, has_tools=len(self.tools) > 0)
        cache = self.session.summary_cache
        pending: list[ToolCall] = []
        iteration = 0
        self.state = TurnState.AWAITING_FIRST_RESPONSE

        try:
            while self.state != TurnState.DONE:
                if self.state == TurnState.EXECUTING_TOOLS:
                    async for chunk in self._execute_tools(pending):
                        yield chunk
                    pending = []
                    if iteration >= self.max_iterations:
                        logger.warning(f"Stopping turn after {iteration} model requests")
                        yield StreamChunk(type="text", content="\n\n[Maximum iterations reached - stopping]")
                        self.state = TurnState.DONE
                    else:
                        self.state = TurnState.AWAITING_FINAL_RESPONSE
                    continue

                iteration += 1
                result = await self._optimize(system_prompt, cache)
                cache = result.updated_cache

                response_text = ""
                tool_calls: list[ToolCall] = []
                async for chunk in self._stream_with_retry(system_prompt, result.history):
                    if chunk.type == "text":
                        response_text += chunk.content
                        yield chunk
                    elif chunk.type == "tool_call":
                        tool_calls.append(ToolCall(id=chunk.id, name=chunk.name, arguments=chunk.arguments))
                        yield chunk

                if response_text or tool_calls:
                    self.session.add_message(
                        AssistantMessage(content=response_text or None, tool_calls=tool_calls)
                    )

                if tool_calls:
                    pending = tool_calls
                    self.state = TurnState.EXECUTING_TOOLS
                else:
                    self.state = TurnState.DONE
        finally:
            self.state = TurnState.DONE

    async def _optimize(self, system_prompt: SystemMessage, cache: SummaryCache | None) -> OptimizationResult:
        limit = self.model_info.context_window
        messages = self.session.get_messages()
        result = await self.optimizer.optimize(
            messages,
            system_prompt,
            model_context_limit=limit,
            target_token_limit=self.context.target_token_limit,
            cache=cache,
            api_key=self.api_key,
            summarization_enabled=self.context.summarization_enabled,
        )
        self.optimizations.append(result)

        if result.cache_changed(cache):
            logger.info("Summary cache changed, persisting")
            self.session.set_summary_cache(result.updated_cache)

        if result.token_count > limit:
            raise ContextOverflowError(result.token_count, limit)

        # The emergency clamp may drop the newest message to make room for the system prompt
        newest = messages[-1]
        if not any(m is newest for m in result.history):
            needed = self.optimizer.estimator.count_message_list_tokens([system_prompt, newest])
            raise ContextOverflowError(needed, limit)

        if not self.model_info.vision_supported and any(
            isinstance(m, UserMessage) and m.image_parts() for m in result.history
        ):
            raise UnsupportedContentError("The selected model does not support image inputs.")

        return result

    async def _stream_with_retry(
        self,
        system_prompt: SystemMessage,
        history: list[Message],
    ) -> AsyncIterator[StreamChunk]:
        schemas = self.tools.get_schemas() or None
        retries = 0
        while True:
            try:
                async for chunk in self.provider.stream(system_prompt.content, history, schemas):
                    yield chunk
                return
            except ProviderError as e:
                if not e.tool_use_failed or retries >= MAX_TOOL_USE_RETRIES:
                    raise
                retries += 1
                logger.warning(f"Tool use failed, retrying ({retries}/{MAX_TOOL_USE_RETRIES}): {e}")

    async def _execute_tools(self, tool_calls: list[ToolCall]) -> AsyncIterator[StreamChunk]:
        context = {"session": self.session}
        for tool_call in tool_calls:
            result = await self.tools.execute(tool_call.name, tool_call.parsed_arguments(), context=context)
            self.session.add_message(
                ToolMessage(content=result, tool_call_id=tool_call.id, name=tool_call.name)
            )
            yield StreamChunk(type="tool_result", content=result, id=tool_call.id, name=tool_call.name)
