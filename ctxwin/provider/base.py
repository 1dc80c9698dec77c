"""Provider abstraction for LLM APIs"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Literal

from ctxwin.session.message import Message


@dataclass
class StreamChunk:
    """A chunk of streamed response from an LLM"""
    type: Literal["text", "tool_call", "tool_result", "finish"]
    content: str = ""
    name: str = ""
    arguments: str = ""
    id: str = ""


class ProviderError(Exception):
    """A model request failed"""

    def __init__(self, message: str, status_code: int | None = None, tool_use_failed: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.tool_use_failed = tool_use_failed


class Provider(ABC):
    """Base class for LLM providers"""

    @abstractmethod
    def stream(
        self,
        system: str,
        messages: list[Message],
        tools: list[dict] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from the model"""
        pass
