from .loop import (
    ConversationTurnController,
    TurnState,
    UnsupportedContentError,
    build_system_prompt,
)

__all__ = [
    "ConversationTurnController",
    "TurnState",
    "UnsupportedContentError",
    "build_system_prompt",
]
