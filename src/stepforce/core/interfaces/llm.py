"""
Model Invocation Service protocol.

The coordinator talks to the language model exclusively through this
boundary: a transcript and tool specs go in, text plus zero or more tool
calls come out. Implementations raise ModelInvocationError (with the
`transient` flag set for retryable failures) instead of returning error
payloads.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from stepforce.core.domain.models import TokenUsage


@dataclass
class ModelRequest:
    """
    Attributes:
        model: Model identifier or alias
        messages: Transcript in OpenAI chat format
        tools: Tool specs in OpenAI function-calling format
        temperature: Sampling temperature
        max_tokens: Completion token limit
        max_attempts: Retry budget the caller applies to transient failures
    """

    model: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    max_attempts: int = 1


@dataclass
class ModelToolCall:
    id: Optional[str]
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass
class ModelResponse:
    """
    Attributes:
        text: Generated text (may be empty when only tools are called)
        tool_calls: Requested tool calls, in model order
        usage: Token usage of this call
        finished: Structured completion signal. True when the model ended
            its turn deliberately, False when it stopped for another reason,
            None when the provider gave no signal.
    """

    text: str = ""
    tool_calls: list[ModelToolCall] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    finished: Optional[bool] = None


class ModelInvocationProtocol(Protocol):
    """Protocol for model invocation services."""

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        """
        Run one model call.

        Raises:
            ModelInvocationError: On failure; `transient` marks retryable ones
        """
        ...

    def supports_model(self, model: str) -> bool:
        """Return True if the model id can be served."""
        ...
