"""
Agent templates.

Ready-made agent definitions over the built-in tools, plus validation of
agent definitions against a capability registry.
"""

from typing import Optional

from stepforce.core.domain.models import AgentDefinition, new_id
from stepforce.core.domain.validation import validate_agent_definition as _validate_fields
from stepforce.core.tools.registry import CapabilityRegistry

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_STEPS = 10

AGENT_TEMPLATES: dict[str, dict] = {
    "general": {
        "system_prompt": (
            "You are a helpful AI assistant that can use tools to complete tasks. "
            "Break complex tasks into steps and use the appropriate tools to gather "
            "information and perform calculations before giving a complete answer."
        ),
        "tools": ["calculator", "text_analyzer", "timestamp", "web_request"],
    },
    "research": {
        "system_prompt": (
            "You are a research assistant specialized in finding, analyzing and "
            "synthesizing information. Fetch sources with the available tools and "
            "present well-structured findings."
        ),
        "tools": ["web_request", "text_analyzer", "timestamp"],
    },
    "analysis": {
        "system_prompt": (
            "You are a data analysis expert. Use the available tools to analyze text "
            "and perform calculations. Focus on accuracy and explain your analysis."
        ),
        "tools": ["calculator", "text_analyzer", "timestamp"],
    },
    "custom": {
        "system_prompt": (
            "You are a specialized AI assistant. Use the available tools to complete "
            "tasks effectively."
        ),
        "tools": ["calculator", "text_analyzer", "timestamp"],
    },
}


def create_agent_from_template(
    name: str,
    template: str,
    owner_id: str,
    custom_prompt: Optional[str] = None,
    model: str = DEFAULT_MODEL,
) -> AgentDefinition:
    """
    Build an agent definition from a named template.

    Args:
        name: Agent name
        template: One of general, research, analysis, custom
        owner_id: Identity owning the agent
        custom_prompt: System prompt for the custom template
        model: Model identifier or alias

    Raises:
        ValueError: If the template is unknown
    """
    if template not in AGENT_TEMPLATES:
        raise ValueError(
            f"Unknown template: {template}. Available: {', '.join(AGENT_TEMPLATES)}"
        )

    config = AGENT_TEMPLATES[template]
    system_prompt = config["system_prompt"]
    if template == "custom" and custom_prompt:
        system_prompt = custom_prompt

    return AgentDefinition(
        id=new_id(),
        name=name,
        description=f"AI agent based on {template} template",
        model=model,
        system_prompt=system_prompt,
        owner_id=owner_id,
        temperature=0.7,
        max_tokens=2000,
        tools=tuple(config["tools"]),
        max_steps=DEFAULT_MAX_STEPS,
    )


def validate_agent_definition(
    agent: AgentDefinition, registry: Optional[CapabilityRegistry] = None
) -> list[str]:
    """Validate an agent definition; unknown tool names are reported when a registry is given."""
    known_tools = set(registry.names()) if registry is not None else None
    return _validate_fields(agent, known_tools)
