from .base import Tool
from .registry import ToolRegistry

__all__ = ["Tool", "ToolRegistry"]
