"""
Tool protocol and the execution context handed to tools.

Tools return `{"success": True, "result": ...}` or
`{"success": False, "error": ...}`; expected failure modes are reported,
not raised.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from stepforce.core.domain.models import Step


@dataclass(frozen=True)
class ExecutionContext:
    """
    Context passed to every tool execution.

    Attributes:
        execution_id: Owning execution
        agent_id: Agent being executed
        owner_id: Identity owning the agent
        step_number: 1-based number of the current step
        step_id: Id of the current step
        prior_steps: Steps finished before the current one
        metadata: Request metadata
        cancel_event: Set when the execution is cancelled; long-running
            tools that leave the event loop can poll it
    """

    execution_id: str
    agent_id: str
    owner_id: str
    step_number: int
    step_id: str = ""
    prior_steps: tuple[Step, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)


@runtime_checkable
class ToolProtocol(Protocol):
    """Protocol for capabilities the model may call."""

    @property
    def name(self) -> str:
        ...

    @property
    def description(self) -> str:
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema of the tool's parameters."""
        ...

    @property
    def requires_approval(self) -> bool:
        ...

    async def execute(
        self, params: dict[str, Any], context: ExecutionContext
    ) -> dict[str, Any]:
        ...
