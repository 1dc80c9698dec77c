from .base import Provider, ProviderError, StreamChunk
from .openrouter import OpenRouterProvider

__all__ = ["Provider", "ProviderError", "StreamChunk", "OpenRouterProvider"]
