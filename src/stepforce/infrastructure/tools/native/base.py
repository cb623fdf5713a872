"""Base class for built-in tools."""

from abc import ABC, abstractmethod
from typing import Any, Dict

from stepforce.core.interfaces.tools import ExecutionContext


class Tool(ABC):
    """Base class for all built-in tools"""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def parameters_schema(self) -> Dict[str, Any]:
        """Override to describe the tool's parameters"""
        return {"type": "object", "properties": {}}

    @property
    def requires_approval(self) -> bool:
        return False

    @abstractmethod
    async def execute(self, params: Dict[str, Any], context: ExecutionContext) -> Dict[str, Any]:
        pass
