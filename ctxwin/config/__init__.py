from .config import Config, ContextConfig, ModelInfo

__all__ = ["Config", "ContextConfig", "ModelInfo"]
