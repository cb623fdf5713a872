"""
Tool Converter - OpenAI function calling format conversion.

This module converts tool definitions and step records into the message
format used by OpenAI-compatible chat APIs. All JSON is serialised with
sorted keys so a transcript is byte-stable across runs.
"""

import json
from typing import Any, Iterable, Optional

from stepforce.core.domain.models import ToolCall, ToolResult
from stepforce.core.interfaces.tools import ToolProtocol


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


def tools_to_openai_format(tools: Iterable[ToolProtocol]) -> list[dict[str, Any]]:
    """
    Convert tools to OpenAI function calling format.

    Returns:
        [{"type": "function", "function": {"name", "description", "parameters"}}, ...]
    """
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters_schema,
            },
        }
        for tool in tools
    ]


def assistant_message(text: str, tool_calls: Optional[list[ToolCall]] = None) -> dict[str, Any]:
    """
    Build the assistant turn of a step.

    When the model requested tools, the calls are attached so the
    following tool messages can reference them by id.
    """
    if not tool_calls:
        return {"role": "assistant", "content": text}

    return {
        "role": "assistant",
        "content": text or None,
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": _dumps(call.parameters)},
            }
            for call in tool_calls
        ],
    }


def tool_result_to_message(
    result: ToolResult,
    max_output_chars: int = 20000,
) -> dict[str, Any]:
    """
    Convert a tool result to an OpenAI tool message.

    Large outputs are truncated to keep the transcript within the model's
    context window.

    Returns:
        {"role": "tool", "tool_call_id": ..., "name": ..., "content": "<json>"}
    """
    payload = _truncate_payload(result.to_payload(), max_output_chars)
    return {
        "role": "tool",
        "tool_call_id": result.call_id,
        "name": result.tool_name,
        "content": _dumps(payload),
    }


def _truncate_payload(payload: dict[str, Any], max_chars: int) -> dict[str, Any]:
    truncated = payload.copy()
    value = truncated.get("result")

    if isinstance(value, str):
        text = value
    elif isinstance(value, (list, dict)):
        text = _dumps(value)
    else:
        return truncated

    if len(text) > max_chars:
        overflow = len(text) - max_chars
        truncated["result"] = text[:max_chars] + f"\n\n[... TRUNCATED - {overflow} more chars ...]"
    return truncated
