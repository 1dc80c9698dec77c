"""LLM-based summarization for conversation context"""

import logging

import httpx

from .message import (
    AssistantMessage,
    Message,
    SystemMessage,
    TextPart,
    ToolMessage,
    UserMessage,
)

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
SUMMARIZATION_MODEL = "google/gemini-2.0-flash-exp:free"
SUMMARIZATION_MAX_TOKENS = 1000
SUMMARIZATION_TEMPERATURE = 0.3

SUMMARY_PREAMBLE = "[Summary of prior conversation]:"
PREVIOUS_SUMMARY_PREAMBLE = "Previous Summary:"

SUMMARY_SYSTEM_PROMPT = f"""You are an expert conversation summarizer. Condense the following chat history, focusing ONLY on the most critical information, key decisions, user goals, facts, and crucial context needed to understand subsequent messages. Explicitly retain any stated user instructions or preferences for how the assistant should behave.

When summarizing tool interactions (indicated by '[Requesting tool: ...]' and '[Tool result for ...:]'), capture the essential information: what tool was called, for what purpose (if clear from surrounding messages), and the key outcome or data from the result. Avoid excessive detail about arguments or raw output unless absolutely critical.

Be extremely concise and use neutral language. Maximum summary length: {SUMMARIZATION_MAX_TOKENS} tokens. Start the summary directly without preamble."""


def _message_text(msg: Message) -> str:
    if isinstance(msg, ToolMessage):
        return f"[Tool result for {msg.name or 'unknown'}: {msg.content}]"

    if isinstance(msg, AssistantMessage):
        parts = []
        if msg.content:
            parts.append(msg.content)
        parts.extend(f"[Requesting tool: {tc.name}]" for tc in msg.tool_calls)
        return " ".join(parts)

    if isinstance(msg, UserMessage) and not isinstance(msg.content, str):
        return " ".join(
            p.text if isinstance(p, TextPart) else f"[{p.type}]"
            for p in msg.content
        )

    return msg.content or ""


def format_messages_for_summary(messages: list[Message]) -> str:
    """Format messages into a plain-text transcript for summarization."""
    return "\n\n".join(f"{msg.role}: {_message_text(msg)}" for msg in messages)


def create_summary_message(summary_text: str) -> SystemMessage:
    """Create the synthetic message that stands in for summarized history."""
    return SystemMessage(content=f"{SUMMARY_PREAMBLE}\n{summary_text}")


def create_previous_summary_message(summary_text: str) -> SystemMessage:
    """Carry a stale summary into the next summarization request."""
    return SystemMessage(content=f"{PREVIOUS_SUMMARY_PREAMBLE}\n{summary_text}")


class Summarizer:
    """Condenses messages through one chat completion request.

    Every failure resolves to ``None``; callers fall back to truncation.
    """

    def __init__(
        self,
        model: str = SUMMARIZATION_MODEL,
        base_url: str = OPENROUTER_BASE_URL,
        max_tokens: int = SUMMARIZATION_MAX_TOKENS,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport

    def build_request(self, messages: list[Message]) -> dict:
        transcript = format_messages_for_summary(messages)
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": f"Summarize this conversation history:\n\n---\n{transcript}\n---"},
            ],
            "max_tokens": self.max_tokens,
            "temperature": SUMMARIZATION_TEMPERATURE,
        }

    async def summarize(self, messages: list[Message], api_key: str | None) -> str | None:
        """Summarize messages, returning the summary text or None on failure."""
        logger.info(f"Attempting to summarize {len(messages)} messages")
        if not messages:
            logger.warning("No messages provided for summarization")
            return None
        if not api_key:
            logger.error("Summarization API key is missing")
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {api_key}",
                        "Content-Type": "application/json",
                        "X-Title": "ctxwin",
                    },
                    json=self.build_request(messages),
                )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Summarization request error: {e}")
            return None

        if not response.is_success:
            logger.error(f"Summarization request failed with status {response.status_code}: {response.text[:500]}")
            return None

        try:
            data = response.json()
            summary = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Could not extract summary from response: {e}")
            return None

        if not isinstance(summary, str) or not summary.strip():
            logger.error("Summarization response contained no text")
            return None

        logger.info(f"Generated summary ({len(summary)} chars)")
        return summary.strip()
