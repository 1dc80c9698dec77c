from .message import (
    AssistantMessage,
    FileContentPart,
    FileErrorPart,
    ImagePart,
    Message,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolMessage,
    UserMessage,
    message_from_dict,
    message_to_dict,
)
from .tokens import TokenEstimator
from .summarize import Summarizer, create_summary_message
from .context import (
    ContextOverflowError,
    HistoryOptimizer,
    OptimizationResult,
    Strategy,
    SummaryCache,
)
from .session import Session

__all__ = [
    "AssistantMessage",
    "FileContentPart",
    "FileErrorPart",
    "ImagePart",
    "Message",
    "SystemMessage",
    "TextPart",
    "ToolCall",
    "ToolMessage",
    "UserMessage",
    "message_from_dict",
    "message_to_dict",
    "TokenEstimator",
    "Summarizer",
    "create_summary_message",
    "ContextOverflowError",
    "HistoryOptimizer",
    "OptimizationResult",
    "Strategy",
    "SummaryCache",
    "Session",
]
