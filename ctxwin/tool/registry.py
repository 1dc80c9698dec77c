"""Tool registry"""

import logging

from .base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Tools the model may call; tool servers register theirs here"""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool):
        """Register a tool"""
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name"""
        return self._tools.get(name)

    def get_schemas(self) -> list[dict]:
        """Get all tool schemas for LLM"""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.get_parameters_schema(),
            }
            for tool in self._tools.values()
        ]

    async def execute(self, name: str, args: dict, context: dict) -> str:
        """Execute a tool by name; failures become the tool result"""
        tool = self._tools.get(name)
        if not tool:
            return f"Error: Unknown tool '{name}'"

        try:
            return await tool.execute(args, context)
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            return f"Error executing {name}: {e}"
