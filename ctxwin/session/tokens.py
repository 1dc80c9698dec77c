"""Token accounting for messages and message lists"""

import logging
import math
from typing import Callable, Iterable

from .message import (
    AssistantMessage,
    ImagePart,
    Message,
    ToolMessage,
    UserMessage,
    part_text,
)

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

MESSAGE_OVERHEAD = 4
IMAGE_TOKENS = 85
# Every reply is primed with <|im_start|>assistant
REPLY_PRIMING = 2


def estimate_tokens_from_chars(text: str) -> int:
    """Rough token estimation (~4 chars per token)"""
    return math.ceil(len(text) / 4)


class TokenEstimator:
    """Counts tokens for text and messages.

    A custom ``counter`` takes precedence over the tiktoken encoder. Whatever
    does the counting, a failure falls back to the character estimate so
    counting never raises.
    """

    def __init__(
        self,
        counter: Callable[[str], int] | None = None,
        encoding_name: str = DEFAULT_ENCODING,
    ):
        self.counter = counter
        self.encoding_name = encoding_name
        self._encoding = None
        self._encoding_failed = False

    def _get_encoding(self):
        if self._encoding is None and not self._encoding_failed:
            try:
                import tiktoken

                self._encoding = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                logger.warning(f"Could not load tiktoken encoding '{self.encoding_name}': {e}")
                self._encoding_failed = True
        return self._encoding

    def count_tokens(self, text: str | None) -> int:
        if not text:
            return 0
        try:
            if self.counter is not None:
                return int(self.counter(text))
            encoding = self._get_encoding()
            if encoding is not None:
                return len(encoding.encode(text, disallowed_special=()))
        except Exception as e:
            logger.warning(f"Token encoding failed, falling back to rough estimate: {e}")
        return estimate_tokens_from_chars(text)

    def count_message_tokens(self, message: Message) -> int:
        """Tokens one message costs inside a list, without the reply priming"""
        tokens = MESSAGE_OVERHEAD
        tokens += self.count_tokens(message.role)

        content = message.content
        if isinstance(content, str):
            tokens += self.count_tokens(content)
        elif isinstance(message, UserMessage) and content is not None:
            for part in content:
                if isinstance(part, ImagePart):
                    tokens += IMAGE_TOKENS
                else:
                    tokens += self.count_tokens(part_text(part))

        if isinstance(message, AssistantMessage):
            for tool_call in message.tool_calls:
                tokens += self.count_tokens(tool_call.name)
                tokens += self.count_tokens(tool_call.arguments)

        if isinstance(message, ToolMessage):
            tokens += self.count_tokens(message.name)
            tokens += self.count_tokens(message.tool_call_id)
            # name/tool_call_id replace the role slot
            if message.name or message.tool_call_id:
                tokens -= 1

        return tokens

    def count_message_list_tokens(self, messages: Iterable[Message]) -> int:
        return sum(self.count_message_tokens(m) for m in messages) + REPLY_PRIMING
