"""
Capability Registry

Process-wide lookup of named tools. Tools are registered once at startup
and read-only afterwards. Agents reference tools either by name (looked up
here) or as inline definitions.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

import structlog

from stepforce.core.domain.errors import ToolRegistrationError
from stepforce.core.interfaces.tools import ExecutionContext, ToolProtocol

ToolFunction = Callable[[dict[str, Any], ExecutionContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class FunctionTool:
    """Inline tool definition backed by a coroutine function."""

    name: str
    description: str
    function: ToolFunction
    parameters_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    requires_approval: bool = False

    async def execute(
        self, params: dict[str, Any], context: ExecutionContext
    ) -> dict[str, Any]:
        return await self.function(params, context)


class CapabilityRegistry:
    """Named, schema-described tools available to agents."""

    def __init__(self, tools: Optional[Iterable[ToolProtocol]] = None):
        self._tools: dict[str, ToolProtocol] = {}
        self.logger = structlog.get_logger().bind(component="capability_registry")
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolProtocol) -> None:
        """
        Register a tool under its name.

        Raises:
            ToolRegistrationError: If the name is already taken
        """
        if tool.name in self._tools:
            raise ToolRegistrationError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        self.logger.debug(
            "tool_registered",
            tool=tool.name,
            requires_approval=tool.requires_approval,
        )

    def get(self, name: str) -> Optional[ToolProtocol]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self):
        return iter(self._tools.values())

    def resolve(self, items: Iterable[Any]) -> list[ToolProtocol]:
        """
        Resolve an agent's tool list into tool objects.

        Accepts bare names (looked up in the registry) and inline tool
        definitions. The result is deduplicated by name, first occurrence
        wins. Unknown names are dropped with a warning, so the resolved
        list may be shorter than the request.
        """
        resolved: dict[str, ToolProtocol] = {}

        for item in items:
            if isinstance(item, str):
                tool = self._tools.get(item)
                if tool is None:
                    self.logger.warning("unknown_tool_dropped", tool=item)
                    continue
            else:
                tool = item

            if tool.name in resolved:
                continue
            resolved[tool.name] = tool

        return list(resolved.values())
