"""Execution event schemas for streaming responses."""

import json
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional


class EventType(str, Enum):
    """Event types emitted while an execution runs."""

    EXECUTION_STARTED = "execution_started"
    STEP_STARTED = "step_started"
    TOOL_CALL_REQUESTED = "tool_call_requested"
    APPROVAL_REQUESTED = "approval_requested"
    TOOL_RESULT = "tool_result"
    STEP_COMPLETED = "step_completed"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"
    EXECUTION_CANCELLED = "execution_cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_EVENTS


_TERMINAL_EVENTS = {
    EventType.EXECUTION_COMPLETED,
    EventType.EXECUTION_FAILED,
    EventType.EXECUTION_CANCELLED,
}


@dataclass
class ExecutionEvent:
    """A single state transition of an execution.

    `sequence` increases by one per event within an execution.
    """

    type: EventType
    execution_id: str
    sequence: int
    step_number: Optional[int] = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    @property
    def is_terminal(self) -> bool:
        return self.type.is_terminal

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.type.value
        return payload

    def to_sse(self) -> str:
        """Render the event as a server-sent-events frame."""
        data = json.dumps(self.to_dict(), ensure_ascii=False, default=str)
        return f"data: {data}\n\n"
