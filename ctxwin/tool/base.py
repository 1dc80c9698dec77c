"""Tools the model may call during a conversation turn"""

from abc import ABC, abstractmethod


class Tool(ABC):
    """A callable the model can request by name.

    The schema from ``get_parameters_schema`` is advertised with every model
    request. Whatever ``execute`` returns is stored verbatim as the content of
    the tool message, so it counts against the context budget like any other
    message.
    """

    name: str
    description: str

    @abstractmethod
    def get_parameters_schema(self) -> dict:
        """JSON schema for the arguments object"""

    @abstractmethod
    async def execute(self, args: dict, context: dict) -> str:
        """Run with parsed arguments; ``context`` carries the active session"""
