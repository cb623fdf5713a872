"""Agent definition and request validation."""

from typing import Optional

from stepforce.core.domain.models import AgentDefinition, ExecutionRequest

MAX_STEPS_LIMIT = 50
MAX_TOKENS_LIMIT = 8000


def validate_agent_definition(agent: AgentDefinition, known_tools: Optional[set[str]] = None) -> list[str]:
    """
    Return human-readable problems with an agent definition.

    Args:
        agent: Definition to check
        known_tools: When given, tool names outside this set are reported

    Returns:
        List of error messages, empty when the definition is valid
    """
    errors: list[str] = []

    if not agent.name or not agent.name.strip():
        errors.append("Agent name is required")

    if not agent.model or not agent.model.strip():
        errors.append("AI model is required")

    if not agent.system_prompt or not agent.system_prompt.strip():
        errors.append("System prompt is required")

    if agent.temperature is not None and not 0 <= agent.temperature <= 2:
        errors.append("Temperature must be between 0 and 2")

    if agent.max_tokens is not None and not 1 <= agent.max_tokens <= MAX_TOKENS_LIMIT:
        errors.append(f"Max tokens must be between 1 and {MAX_TOKENS_LIMIT}")

    if agent.max_steps is not None and not 1 <= agent.max_steps <= MAX_STEPS_LIMIT:
        errors.append(f"Max steps must be between 1 and {MAX_STEPS_LIMIT}")

    if known_tools is not None:
        for item in agent.tools:
            if isinstance(item, str) and item not in known_tools:
                errors.append(f"Unknown tool: {item}")

    return errors


def validate_request(request: ExecutionRequest) -> list[str]:
    errors: list[str] = []
    if not request.instruction or not request.instruction.strip():
        errors.append("Input is required")
    if request.max_steps is not None and request.max_steps < 1:
        errors.append("Max steps override must be at least 1")
    return errors
