"""Unit tests for domain records and execution events."""

import json

from stepforce.core.domain.events import EventType, ExecutionEvent
from stepforce.core.domain.models import (
    Execution,
    ExecutionStatus,
    Step,
    TokenUsage,
    ToolResult,
)


class TestExecutionEvent:
    def test_terminal_types(self):
        terminal = {t for t in EventType if t.is_terminal}
        assert terminal == {
            EventType.EXECUTION_COMPLETED,
            EventType.EXECUTION_FAILED,
            EventType.EXECUTION_CANCELLED,
        }

    def test_to_sse_frame(self):
        """Test that SSE frames carry the JSON-encoded event."""
        event = ExecutionEvent(
            type=EventType.STEP_STARTED,
            execution_id="exec-1",
            sequence=2,
            step_number=1,
            data={"step_id": "s1"},
        )

        frame = event.to_sse()

        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        payload = json.loads(frame[len("data: "):])
        assert payload["type"] == "step_started"
        assert payload["sequence"] == 2
        assert payload["data"] == {"step_id": "s1"}


class TestRecords:
    def test_tool_result_payloads(self):
        ok = ToolResult(call_id="c1", tool_name="echo", success=True, result="hi")
        bad = ToolResult(
            call_id="c2", tool_name="echo", success=False, error="tool_failed", error_message="boom"
        )

        assert ok.to_payload() == {"success": True, "result": "hi"}
        assert bad.to_payload() == {"success": False, "error": "tool_failed", "message": "boom"}

    def test_token_usage_accumulates(self):
        usage = TokenUsage()
        usage.add(TokenUsage(input=3, output=2, total=5))
        usage.add(TokenUsage(input=1, output=1, total=2))

        assert (usage.input, usage.output, usage.total) == (4, 3, 7)

    def test_step_result_lookup(self):
        step = Step(number=1)
        step.tool_results = [ToolResult(call_id="a", tool_name="echo", success=True)]

        assert step.result_for("a") is step.tool_results[0]
        assert step.result_for("missing") is None

    def test_execution_terminal_flag(self):
        execution = Execution(agent_id="agent-1", owner_id="owner-1", input="hi")
        assert execution.status is ExecutionStatus.PENDING
        assert not execution.is_terminal

        execution.status = ExecutionStatus.FAILED
        assert execution.is_terminal
        assert execution.to_dict()["status"] is ExecutionStatus.FAILED
