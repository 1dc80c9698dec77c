"""Context management and compaction for long conversations"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from .message import Message, SystemMessage
from .summarize import (
    SUMMARIZATION_MAX_TOKENS,
    Summarizer,
    create_previous_summary_message,
    create_summary_message,
)
from .tokens import REPLY_PRIMING, TokenEstimator

logger = logging.getLogger(__name__)

DEFAULT_TARGET_TOKEN_LIMIT = 50000

# Space held back for a summary that has not been generated yet
SUMMARY_RESERVATION_PADDING = 1.1


class ContextOverflowError(Exception):
    """The conversation cannot be made to fit the model's context window"""

    def __init__(self, token_count: int, model_context_limit: int):
        self.token_count = token_count
        self.model_context_limit = model_context_limit
        super().__init__(
            f"Conversation needs {token_count} tokens even after truncation, "
            f"but the model only accepts {model_context_limit}. "
            "Choose a model with a larger context window or shorten the message."
        )


class Strategy(str, Enum):
    FIT = "fit"
    CACHED_SUMMARY = "cached_summary"
    FRESH_SUMMARY = "fresh_summary"
    TRUNCATED = "truncated"
    EMERGENCY = "emergency"


@dataclass(frozen=True)
class SummaryCache:
    """Summary of messages [0, covers_messages_up_to_index) of a conversation"""
    text: str
    covers_messages_up_to_index: int

    def __post_init__(self):
        if self.covers_messages_up_to_index < 0:
            raise ValueError("covers_messages_up_to_index must be non-negative")

    def is_valid_for(self, keep_index: int) -> bool:
        return bool(self.text) and self.covers_messages_up_to_index >= keep_index

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "covers_messages_up_to_index": self.covers_messages_up_to_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SummaryCache":
        return cls(
            text=data["text"],
            covers_messages_up_to_index=int(data["covers_messages_up_to_index"]),
        )


@dataclass
class OptimizationResult:
    """Projected history for one model request.

    ``history`` never contains the system prompt passed to the optimizer.
    ``token_count`` is the cost of the projection with that prompt included.
    """
    history: list[Message]
    updated_cache: SummaryCache | None
    strategy: Strategy
    token_count: int
    keep_index: int | None = None

    def cache_changed(self, previous: SummaryCache | None) -> bool:
        return self.updated_cache != previous


class HistoryOptimizer:
    """Fits a conversation into a token budget.

    Tries, in order: sending everything, reusing a cached summary of the
    oldest messages, summarizing them afresh, and dropping them. A final
    clamp enforces the model's hard context limit. Nothing here mutates the
    history it is given.
    """

    def __init__(
        self,
        estimator: TokenEstimator | None = None,
        summarizer: Summarizer | None = None,
    ):
        self.estimator = estimator or TokenEstimator()
        self.summarizer = summarizer or Summarizer()

    def summary_reservation(self, cache: SummaryCache | None, ceiling: int) -> int:
        """Tokens to hold back for the summary message"""
        if cache is not None:
            return self.estimator.count_message_tokens(create_summary_message(cache.text))
        padded = int(SUMMARIZATION_MAX_TOKENS * SUMMARY_RESERVATION_PADDING)
        return min(padded, ceiling // 2)

    @staticmethod
    def find_keep_index(
        costs: Sequence[int],
        fixed_cost: int,
        ceiling: int,
    ) -> int:
        """Walk back from the newest message while the running total fits.

        ``fixed_cost`` covers everything sent besides the recent messages
        (priming, system prompt, summary). Messages from the returned index
        onward are kept verbatim.
        """
        accumulated = fixed_cost
        keep_index = len(costs)
        while keep_index > 0:
            cost = costs[keep_index - 1]
            if accumulated + cost > ceiling:
                break
            accumulated += cost
            keep_index -= 1
        return keep_index

    async def optimize(
        self,
        full_history: Sequence[Message],
        system_prompt: SystemMessage | None,
        model_context_limit: int,
        target_token_limit: int = DEFAULT_TARGET_TOKEN_LIMIT,
        cache: SummaryCache | None = None,
        api_key: str | None = None,
        summarization_enabled: bool = True,
    ) -> OptimizationResult:
        """Build the history to send for one model request.

        Args:
            full_history: Complete conversation, oldest first (not modified)
            system_prompt: System prompt used for accounting, or None
            model_context_limit: Hard context window of the target model
            target_token_limit: Soft, user-configured ceiling
            cache: Summary cache from the previous call, or None
            api_key: Credentials for the summarization request
            summarization_enabled: When False, old messages are dropped

        Returns:
            OptimizationResult; persist ``updated_cache`` if it changed

        Raises:
            ValueError: if either limit is not positive
        """
        if model_context_limit <= 0:
            raise ValueError(f"model_context_limit must be positive, got {model_context_limit}")
        if target_token_limit <= 0:
            raise ValueError(f"target_token_limit must be positive, got {target_token_limit}")

        estimator = self.estimator
        prefix: list[Message] = [system_prompt] if system_prompt is not None else []
        costs = [estimator.count_message_tokens(m) for m in full_history]
        system_cost = estimator.count_message_tokens(system_prompt) if system_prompt is not None else 0
        current_tokens = REPLY_PRIMING + system_cost + sum(costs)

        logger.debug(
            f"Optimizing {len(full_history)} messages: {current_tokens} tokens, "
            f"target {target_token_limit}, model limit {model_context_limit}, "
            f"summarization {'enabled' if summarization_enabled else 'disabled'}"
        )

        updated_cache = cache
        keep_index: int | None = None

        if current_tokens <= target_token_limit or len(full_history) <= 1:
            candidate = prefix + list(full_history)
            strategy = Strategy.FIT
        else:
            ceiling = min(target_token_limit, model_context_limit)
            candidate = None

            if summarization_enabled:
                reservation = self.summary_reservation(cache, ceiling)
                keep_index = self.find_keep_index(costs, REPLY_PRIMING + system_cost + reservation, ceiling)
                recent = list(full_history[keep_index:])

                if cache is not None and cache.is_valid_for(keep_index):
                    logger.info(f"Reusing cached summary covering {cache.covers_messages_up_to_index} messages")
                    candidate = prefix + [create_summary_message(cache.text)] + recent
                    strategy = Strategy.CACHED_SUMMARY
                else:
                    if cache is not None:
                        # The stale summary's size says nothing about the next one
                        reservation = self.summary_reservation(None, ceiling)
                        keep_index = self.find_keep_index(
                            costs, REPLY_PRIMING + system_cost + reservation, ceiling
                        )
                        recent = list(full_history[keep_index:])

                    to_summarize = list(full_history[:keep_index])
                    if cache is not None:
                        to_summarize.insert(0, create_previous_summary_message(cache.text))

                    logger.info(f"Summarizing {keep_index} messages, keeping {len(recent)}")
                    summary_text = await self.summarizer.summarize(to_summarize, api_key)

                    if summary_text:
                        updated_cache = SummaryCache(text=summary_text, covers_messages_up_to_index=keep_index)
                        summary_message = create_summary_message(summary_text)
                        keep_index = self._fit_after_summary(
                            costs,
                            keep_index,
                            REPLY_PRIMING + system_cost + estimator.count_message_tokens(summary_message),
                            ceiling,
                        )
                        candidate = prefix + [summary_message] + list(full_history[keep_index:])
                        strategy = Strategy.FRESH_SUMMARY
                    else:
                        logger.warning("Summarization failed, falling back to truncation")
            else:
                logger.info("Summarization disabled, applying truncation")

            if candidate is None:
                keep_index = self._truncation_index(costs, REPLY_PRIMING + system_cost, ceiling)
                candidate = prefix + list(full_history[keep_index:])
                updated_cache = None
                strategy = Strategy.TRUNCATED
                logger.info(f"Truncation dropped {keep_index} of {len(full_history)} messages")

        token_count = estimator.count_message_list_tokens(candidate)
        if token_count > model_context_limit:
            logger.warning(
                f"Projected history ({token_count} tokens) exceeds model limit "
                f"({model_context_limit}), applying emergency truncation"
            )
            candidate, token_count = self._emergency_clamp(candidate, token_count, model_context_limit)
            updated_cache = None
            strategy = Strategy.EMERGENCY
            if token_count > model_context_limit:
                logger.error(f"A single message of {token_count} tokens exceeds the model limit")

        logger.info(f"Optimized history: {len(candidate)} messages, {token_count} tokens ({strategy.value})")

        if system_prompt is not None and candidate and candidate[0] is system_prompt:
            candidate = candidate[1:]

        return OptimizationResult(
            history=candidate,
            updated_cache=updated_cache,
            strategy=strategy,
            token_count=token_count,
            keep_index=keep_index,
        )

    @staticmethod
    def _truncation_index(costs: Sequence[int], fixed_cost: int, ceiling: int) -> int:
        """Index of the oldest message kept when dropping from the front"""
        running = fixed_cost + sum(costs)
        start = 0
        while start < len(costs) and running > ceiling:
            running -= costs[start]
            start += 1
        return start

    @staticmethod
    def _fit_after_summary(costs: Sequence[int], keep_index: int, fixed_cost: int, ceiling: int) -> int:
        """Drop the oldest recent messages when the summary outgrew its reservation.

        The newest message is always kept; the emergency clamp handles the rest.
        """
        running = fixed_cost + sum(costs[keep_index:])
        start = keep_index
        while start < len(costs) - 1 and running > ceiling:
            running -= costs[start]
            start += 1
        if start > keep_index:
            logger.info(f"Summary larger than reserved, dropped {start - keep_index} more recent messages")
        return start

    def _emergency_clamp(
        self,
        candidate: list[Message],
        token_count: int,
        model_context_limit: int,
    ) -> tuple[list[Message], int]:
        """Keep the first message, drop the oldest of the rest until it fits."""
        if not candidate:
            return candidate, token_count

        first, rest = candidate[0], candidate[1:]
        start = 0
        while start < len(rest) and token_count > model_context_limit:
            token_count -= self.estimator.count_message_tokens(rest[start])
            start += 1

        return [first] + rest[start:], token_count
