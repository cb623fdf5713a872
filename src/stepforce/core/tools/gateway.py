"""
Tool Invocation Gateway

Single entry point for running a model-requested tool call:

1. look the tool up (unknown → failure, nothing else attempted)
2. validate parameters against the tool's JSON Schema
3. route approval-gated tools through the ApprovalBroker
4. execute with a hard wall-clock timeout
5. normalise the outcome into a ToolResult (results must serialise to JSON)

Every expected failure becomes a ToolResult with success=False and an
error code; only cancellation propagates as an exception.
"""

import asyncio
import contextlib
import json
import time
from typing import Any, Callable, Iterable, Mapping, Optional

import structlog
from jsonschema import Draft7Validator
from jsonschema.exceptions import SchemaError

from stepforce.core.domain.models import (
    ApprovalRequest,
    ApprovalStatus,
    ToolCall,
    ToolErrorCode,
    ToolResult,
)
from stepforce.core.interfaces.tools import ExecutionContext, ToolProtocol
from stepforce.core.tools.approval import ApprovalBroker
from stepforce.core.tools.registry import CapabilityRegistry

ApprovalListener = Callable[[ApprovalRequest], None]


class ToolInvocationGateway:
    """Looks up, validates, gates and executes tool calls."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        broker: ApprovalBroker,
        tool_timeout_seconds: float = 30.0,
        required_approval_tools: Iterable[str] = (),
        enable_human_approval: bool = True,
    ):
        """
        Args:
            registry: Capability registry for name lookups
            broker: Approval broker for gated tools
            tool_timeout_seconds: Hard bound on a single tool execution
            required_approval_tools: Tool names gated regardless of their flag
            enable_human_approval: When False, gated tools run ungated
        """
        self.registry = registry
        self.broker = broker
        self.tool_timeout_seconds = tool_timeout_seconds
        self.required_approval_tools = frozenset(required_approval_tools)
        self.enable_human_approval = enable_human_approval
        self.logger = structlog.get_logger().bind(component="tool_gateway")

    def requires_approval(self, tool_name: str, tool: Optional[ToolProtocol] = None) -> bool:
        """Resolve the approval flag of a tool at call time."""
        if tool_name in self.required_approval_tools:
            return True
        tool = tool or self.registry.get(tool_name)
        return bool(tool and tool.requires_approval)

    async def invoke(
        self,
        call: ToolCall,
        context: ExecutionContext,
        auto_approve: bool = False,
        tools: Optional[Mapping[str, ToolProtocol]] = None,
        on_approval: Optional[ApprovalListener] = None,
        slots: Optional[asyncio.Semaphore] = None,
    ) -> ToolResult:
        """
        Run one tool call.

        Args:
            call: The tool call requested by the model
            context: Execution context handed to the tool
            auto_approve: Skip the approval wait for gated tools
            tools: Tools available to the agent; defaults to the registry
            on_approval: Notified when an approval request is created
            slots: Bounds concurrent executions; not held while awaiting approval

        Returns:
            ToolResult correlated to the call id
        """
        start = time.perf_counter()
        log = self.logger.bind(
            execution_id=context.execution_id,
            step=context.step_number,
            call_id=call.id,
            tool=call.name,
        )

        def finish(success: bool, **kwargs: Any) -> ToolResult:
            return ToolResult(
                call_id=call.id,
                tool_name=call.name,
                success=success,
                execution_time_ms=int((time.perf_counter() - start) * 1000),
                **kwargs,
            )

        tool = tools.get(call.name) if tools is not None else self.registry.get(call.name)
        if tool is None:
            log.warning("tool_call_unknown_tool")
            return finish(
                False,
                error=ToolErrorCode.UNKNOWN_TOOL.value,
                error_message=f"Tool not found: {call.name}",
            )

        validation_error = self._validate(tool, call.parameters)
        if validation_error:
            log.warning("tool_call_invalid_parameters", error=validation_error)
            return finish(
                False,
                error=ToolErrorCode.INVALID_PARAMETERS.value,
                error_message=validation_error,
            )

        if self._is_gated(tool) and not auto_approve:
            decision = await self._await_approval(tool, call, context, on_approval)
            if decision.status is not ApprovalStatus.APPROVED:
                code = (
                    ToolErrorCode.APPROVAL_TIMEOUT
                    if decision.status is ApprovalStatus.EXPIRED
                    else ToolErrorCode.APPROVAL_REJECTED
                )
                log.info("tool_call_not_approved", status=decision.status.value)
                return finish(
                    False,
                    error=code.value,
                    error_message=decision.note or f"Approval {decision.status.value}",
                )

        log.info("tool_execute", args_keys=sorted(call.parameters))
        try:
            # wait_for cancels the tool coroutine on timeout; rollback of
            # partial side effects is the tool's own responsibility.
            async with slots or contextlib.nullcontext():
                raw = await asyncio.wait_for(
                    tool.execute(call.parameters, context),
                    timeout=self.tool_timeout_seconds,
                )
        except asyncio.TimeoutError:
            log.warning("tool_call_timeout", timeout_seconds=self.tool_timeout_seconds)
            return finish(
                False,
                error=ToolErrorCode.TOOL_TIMEOUT.value,
                error_message=f"Tool timed out after {self.tool_timeout_seconds}s",
            )
        except Exception as e:
            log.error("tool_exception", error=str(e), error_type=type(e).__name__)
            return finish(
                False,
                error=ToolErrorCode.TOOL_ERROR.value,
                error_message=f"{type(e).__name__}: {e}",
            )

        if not isinstance(raw, dict) or "success" not in raw:
            log.error("tool_invalid_payload", payload_type=type(raw).__name__)
            return finish(
                False,
                error=ToolErrorCode.TOOL_ERROR.value,
                error_message=f"Tool returned invalid payload: {type(raw).__name__}",
            )

        if not raw["success"]:
            message = _error_message(raw.get("error"))
            log.warning("tool_call_failed", error=message)
            return finish(False, error=ToolErrorCode.TOOL_FAILED.value, error_message=message)

        value = raw.get("result")
        try:
            json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            log.error("tool_result_not_serializable", error=str(e))
            return finish(
                False,
                error=ToolErrorCode.TOOL_ERROR.value,
                error_message=f"Tool result is not serializable: {e}",
            )

        result = finish(True, result=value)
        log.info("tool_complete", execution_time_ms=result.execution_time_ms)
        return result

    def _is_gated(self, tool: ToolProtocol) -> bool:
        if not self.enable_human_approval:
            return False
        return tool.name in self.required_approval_tools or bool(tool.requires_approval)

    def _validate(self, tool: ToolProtocol, params: Any) -> Optional[str]:
        """Return a validation message, or None when params are valid."""
        schema = tool.parameters_schema or {"type": "object"}
        try:
            validator = Draft7Validator(schema)
            errors = sorted(validator.iter_errors(params), key=lambda e: [str(p) for p in e.path])
        except SchemaError as e:
            return f"Tool schema is invalid: {e.message}"

        if not errors:
            return None
        return "; ".join(
            f"{'/'.join(str(p) for p in error.path) or '<root>'}: {error.message}"
            for error in errors
        )

    async def _await_approval(
        self,
        tool: ToolProtocol,
        call: ToolCall,
        context: ExecutionContext,
        on_approval: Optional[ApprovalListener],
    ) -> ApprovalRequest:
        approval = ApprovalRequest(
            execution_id=context.execution_id,
            step_id=context.step_id,
            owner_id=context.owner_id,
            message=f"Requesting approval to execute tool: {tool.name}",
            tool_name=tool.name,
            parameters=dict(call.parameters),
        )
        self.broker.request(approval)
        if on_approval is not None:
            on_approval(approval)
        return await self.broker.wait(approval.id)


def _error_message(error: Any) -> str:
    if isinstance(error, str) and error:
        return error
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return "Tool execution failed"
