"""
Core Domain Models

This module defines the data model of an agent execution: the immutable
agent definition and request handed in by callers, and the mutable
Execution/Step records the coordinator owns while a run is in flight.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def new_id() -> str:
    """Generate a unique identifier."""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Lifecycle status of an execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class StepType(str, Enum):
    """Kind of reasoning turn, derived from the number of tool calls."""

    REASONING = "reasoning"
    TOOL_CALL = "tool_call"
    PARALLEL_TOOLS = "parallel_tools"


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class ToolErrorCode(str, Enum):
    """Classification of a failed tool call."""

    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETERS = "invalid_parameters"
    APPROVAL_REJECTED = "approval_rejected"
    APPROVAL_TIMEOUT = "approval_timeout"
    TOOL_TIMEOUT = "tool_timeout"
    TOOL_FAILED = "tool_failed"
    TOOL_ERROR = "tool_error"


class ErrorKind(str, Enum):
    """Classification of an execution failure."""

    MODEL_FAILURE = "model_failure"
    TOOL_FAILURE = "tool_failure"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class AgentDefinition:
    """
    Immutable agent configuration.

    Created by the agent-management side of the system and read-only to the
    coordinator.

    Attributes:
        id: Agent identifier
        name: Human-readable agent name
        model: Model identifier or alias understood by the model service
        system_prompt: System prompt placed at the head of every transcript
        owner_id: Identity owning the agent (approvals are routed to it)
        temperature: Sampling temperature (engine default when None)
        max_tokens: Completion token limit per model call (engine default when None)
        tools: Ordered tool names or inline tool definitions
        max_steps: Step budget; the request may only lower it
        description: Optional free-text description
    """

    id: str
    name: str
    model: str
    system_prompt: str
    owner_id: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    tools: tuple[Any, ...] = ()
    max_steps: Optional[int] = None
    description: str = ""


@dataclass(frozen=True)
class ExecutionRequest:
    """
    Input of one execution.

    Attributes:
        instruction: Free-text user instruction
        max_steps: Optional step budget override (capped by the agent's)
        auto_approve: Skip human approval for gated tools
        metadata: Opaque caller metadata, passed to tools
        history: Prior user/assistant turns (role/content dicts)
    """

    instruction: str
    max_steps: Optional[int] = None
    auto_approve: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    history: tuple[dict[str, Any], ...] = ()


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    parameters: dict[str, Any]
    requires_approval: bool = False


@dataclass
class ToolResult:
    """Outcome of exactly one ToolCall, correlated by call_id."""

    call_id: str
    tool_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    error_message: Optional[str] = None
    execution_time_ms: int = 0

    def to_payload(self) -> dict[str, Any]:
        """Payload reported back to the model in the transcript."""
        if self.success:
            return {"success": True, "result": self.result}
        return {
            "success": False,
            "error": self.error,
            "message": self.error_message,
        }


@dataclass
class TokenUsage:
    input: int = 0
    output: int = 0
    total: int = 0

    def add(self, other: "TokenUsage") -> None:
        self.input += other.input
        self.output += other.output
        self.total += other.total


@dataclass
class Step:
    """One reasoning turn: a model call and its tool fan-out."""

    number: int
    id: str = field(default_factory=new_id)
    type: StepType = StepType.REASONING
    status: StepStatus = StepStatus.RUNNING
    output: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def result_for(self, call_id: str) -> Optional[ToolResult]:
        for result in self.tool_results:
            if result.call_id == call_id:
                return result
        return None


@dataclass
class ExecutionError:
    """Structured terminal error of a failed execution."""

    kind: ErrorKind
    message: str
    code: Optional[str] = None
    step_number: Optional[int] = None
    tool_name: Optional[str] = None
    call_id: Optional[str] = None


@dataclass
class ExecutionResult:
    """
    Final summary of an execution.

    `truncated` marks a run that used its whole step budget without the
    model signalling completion; such a run is still `completed`.
    """

    success: bool
    output: str
    final_step: int
    total_steps: int
    tools_used: list[str] = field(default_factory=list)
    tokens_used: TokenUsage = field(default_factory=TokenUsage)
    execution_time_ms: int = 0
    truncated: bool = False
    completion_source: Optional[str] = None


@dataclass
class Execution:
    """
    The unit of work owned by the coordinator.

    Invariants:
        - status never leaves a terminal value
        - completed_at is set if and only if status is terminal
        - steps are appended only while running
    """

    agent_id: str
    owner_id: str
    input: str
    id: str = field(default_factory=new_id)
    status: ExecutionStatus = ExecutionStatus.PENDING
    steps: list[Step] = field(default_factory=list)
    result: Optional[ExecutionResult] = None
    error: Optional[ExecutionError] = None
    started_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    transcript: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ApprovalRequest:
    """A pending human authorization for a gated tool call."""

    execution_id: str
    step_id: str
    owner_id: str
    message: str
    tool_name: str
    parameters: dict[str, Any]
    id: str = field(default_factory=new_id)
    status: ApprovalStatus = ApprovalStatus.PENDING
    note: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    responded_at: Optional[datetime] = None

    @property
    def payload(self) -> dict[str, Any]:
        return {"tool_name": self.tool_name, "parameters": self.parameters}
