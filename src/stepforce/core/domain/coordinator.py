"""
Execution Coordinator - bounded multi-step agent loop.

Drives one execution per asyncio task:
1. Build the transcript (system prompt, history, instruction)
2. Call the model with the agent's tools (transient errors retried)
3. If the model requested tools → fan them out through the gateway,
   join at a barrier, append results in call order, loop
4. Stop on the model's completion signal or when the step budget runs out

Every state transition is published as an ExecutionEvent to the
execution's listeners and logged. An execution reaches exactly one
terminal status, and terminal statuses are never left.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import structlog

from stepforce.config.settings import EngineSettings
from stepforce.core.domain.completion import detect_completion
from stepforce.core.domain.errors import (
    ConfigurationError,
    InvalidTransitionError,
    ModelInvocationError,
)
from stepforce.core.domain.events import EventType, ExecutionEvent
from stepforce.core.domain.models import (
    AgentDefinition,
    ApprovalRequest,
    ErrorKind,
    Execution,
    ExecutionError,
    ExecutionRequest,
    ExecutionResult,
    ExecutionStatus,
    Step,
    StepStatus,
    StepType,
    TokenUsage,
    ToolCall,
    ToolResult,
    utc_now,
)
from stepforce.core.domain.retry import call_with_retry
from stepforce.core.domain.validation import validate_agent_definition, validate_request
from stepforce.core.interfaces.llm import ModelInvocationProtocol, ModelRequest, ModelResponse
from stepforce.core.interfaces.store import KeyedStore
from stepforce.core.interfaces.tools import ExecutionContext, ToolProtocol
from stepforce.core.tools.gateway import ToolInvocationGateway
from stepforce.infrastructure.persistence.memory_store import InMemoryStore
from stepforce.infrastructure.tools.tool_converter import (
    assistant_message,
    tool_result_to_message,
    tools_to_openai_format,
)

EventListener = Callable[[ExecutionEvent], None]

NO_OUTPUT = "No output generated"

_TERMINAL_EVENT_TYPES = {
    ExecutionStatus.COMPLETED: EventType.EXECUTION_COMPLETED,
    ExecutionStatus.FAILED: EventType.EXECUTION_FAILED,
    ExecutionStatus.CANCELLED: EventType.EXECUTION_CANCELLED,
}


@dataclass
class ActiveExecution:
    """Runtime bookkeeping of one in-flight execution."""

    execution: Execution
    agent: AgentDefinition
    request: ExecutionRequest
    max_steps: int
    tools: dict[str, ToolProtocol]
    listeners: list[EventListener] = field(default_factory=list)
    task: Optional[asyncio.Task] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    cancel_reason: Optional[str] = None
    sequence: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    tools_used: list[str] = field(default_factory=list)
    started: float = field(default_factory=time.perf_counter)


class ExecutionCoordinator:
    """
    Runs agent executions as bounded reasoning loops.

    Executions are tracked in a keyed store while active and removed when
    they reach a terminal status. The coordinator is safe to share between
    concurrent executions on one event loop.
    """

    def __init__(
        self,
        model_service: ModelInvocationProtocol,
        gateway: ToolInvocationGateway,
        settings: Optional[EngineSettings] = None,
        store: Optional[KeyedStore[ActiveExecution]] = None,
    ):
        """
        Args:
            model_service: Model invocation service
            gateway: Tool invocation gateway (owns the capability registry)
            settings: Engine settings; defaults are used when omitted
            store: Registry of active executions
        """
        self.model_service = model_service
        self.gateway = gateway
        self.registry = gateway.registry
        self.settings = settings or EngineSettings()
        self._active: KeyedStore[ActiveExecution] = store if store is not None else InMemoryStore()
        self.logger = structlog.get_logger().bind(component="coordinator")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def execute(self, agent: AgentDefinition, request: ExecutionRequest) -> Execution:
        """
        Run an execution to its terminal state.

        Raises:
            ConfigurationError: If the agent or request is invalid; no
                execution is created in that case.
        """
        active = self._prepare(agent, request)
        self._start(active)
        try:
            await asyncio.wait({active.task})
        except asyncio.CancelledError:
            await self.cancel(active.execution.id, reason="Caller cancelled")
            raise
        return active.execution

    async def submit(self, agent: AgentDefinition, request: ExecutionRequest) -> Execution:
        """Start an execution in the background and return it immediately."""
        active = self._prepare(agent, request)
        self._start(active)
        return active.execution

    async def wait(self, execution_id: str) -> Optional[Execution]:
        """Wait for an active execution to finish; None if it is not active."""
        active = self._active.get(execution_id)
        if active is None:
            return None
        await asyncio.wait({active.task})
        return active.execution

    async def stream_execute(
        self, agent: AgentDefinition, request: ExecutionRequest
    ) -> AsyncIterator[ExecutionEvent]:
        """
        Run an execution and yield its events in order.

        The stream ends after the terminal event. Closing the stream early
        cancels the execution.
        """
        active = self._prepare(agent, request)
        queue: asyncio.Queue[ExecutionEvent] = asyncio.Queue()
        active.listeners.append(queue.put_nowait)
        self._start(active)

        try:
            while True:
                event = await queue.get()
                yield event
                if event.is_terminal:
                    break
        finally:
            if not active.execution.is_terminal:
                await self.cancel(active.execution.id, reason="Stream consumer closed")

    async def cancel(self, execution_id: str, reason: str = "Execution cancelled by user") -> bool:
        """
        Cancel an active execution.

        Returns once in-flight work has observed the cancellation and the
        execution is terminal.

        Returns:
            True if this call cancelled the execution, False if it was not
            active, finished on its own first, or was already being
            cancelled by an earlier call
        """
        active = self._active.get(execution_id)
        if active is None or active.execution.is_terminal:
            return False
        if active.cancel_reason is not None:
            return False

        active.cancel_reason = reason
        active.cancel_event.set()
        self.logger.info("execution_cancel_requested", execution_id=execution_id, reason=reason)

        task = active.task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

        # Task cancelled before it started running never reached its handler
        if not active.execution.is_terminal:
            self._cancelled(active)
        return active.execution.status is ExecutionStatus.CANCELLED

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Return an active execution, or None."""
        active = self._active.get(execution_id)
        return active.execution if active is not None else None

    def active_executions(self) -> list[Execution]:
        return [active.execution for active in self._active.values()]

    def subscribe(self, execution_id: str, listener: EventListener) -> bool:
        """Attach an event listener to an active execution."""
        active = self._active.get(execution_id)
        if active is None:
            return False
        active.listeners.append(listener)
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _prepare(self, agent: AgentDefinition, request: ExecutionRequest) -> ActiveExecution:
        errors = validate_agent_definition(agent) + validate_request(request)
        if agent.model and not self.model_service.supports_model(agent.model):
            errors.append(f"Unknown model: {agent.model}")
        if errors:
            self.logger.warning("execution_rejected", agent_id=agent.id, errors=errors)
            raise ConfigurationError(errors)

        tools = self.registry.resolve(agent.tools)
        execution = Execution(
            agent_id=agent.id,
            owner_id=agent.owner_id,
            input=request.instruction,
            metadata=dict(request.metadata),
        )
        return ActiveExecution(
            execution=execution,
            agent=agent,
            request=request,
            max_steps=self._step_budget(agent, request),
            tools={tool.name: tool for tool in tools},
        )

    def _step_budget(self, agent: AgentDefinition, request: ExecutionRequest) -> int:
        budget = agent.max_steps or self.settings.max_steps_per_execution
        if request.max_steps is not None:
            budget = min(budget, request.max_steps)
        return budget

    def _start(self, active: ActiveExecution) -> None:
        execution = active.execution
        self._active.put(execution.id, active)
        self._transition(active, ExecutionStatus.RUNNING)

        self.logger.info(
            "execution_start",
            execution_id=execution.id,
            agent_id=execution.agent_id,
            max_steps=active.max_steps,
            tools=list(active.tools),
            instruction=execution.input[:100],
        )
        self._emit(
            active,
            EventType.EXECUTION_STARTED,
            data={
                "agent_id": execution.agent_id,
                "max_steps": active.max_steps,
                "tools": list(active.tools),
            },
        )
        active.task = asyncio.create_task(self._run(active), name=f"execution-{execution.id}")

    def _transition(self, active: ActiveExecution, status: ExecutionStatus) -> None:
        execution = active.execution
        if execution.is_terminal:
            raise InvalidTransitionError(
                f"Execution {execution.id} is {execution.status.value} and cannot become {status.value}"
            )
        execution.status = status
        if status.is_terminal:
            execution.completed_at = utc_now()

    async def _run(self, active: ActiveExecution) -> Execution:
        execution = active.execution
        try:
            await self._loop(active)
        except asyncio.CancelledError:
            self._cancelled(active)
        except Exception as e:
            self.logger.exception("execution_internal_error", execution_id=execution.id)
            step = execution.steps[-1] if execution.steps else None
            if step is not None and step.status is StepStatus.RUNNING:
                self._close_step(step, StepStatus.FAILED, error=str(e))
            self._terminate(
                active,
                ExecutionStatus.FAILED,
                error=ExecutionError(
                    kind=ErrorKind.INTERNAL_ERROR,
                    message=f"{type(e).__name__}: {e}",
                    step_number=step.number if step else None,
                ),
            )
        return execution

    def _cancelled(self, active: ActiveExecution) -> None:
        execution = active.execution
        if execution.steps and execution.steps[-1].status is StepStatus.RUNNING:
            self._close_step(execution.steps[-1], StepStatus.FAILED, error="Execution cancelled")
        self._terminate(active, ExecutionStatus.CANCELLED)

    def _terminate(
        self,
        active: ActiveExecution,
        status: ExecutionStatus,
        error: Optional[ExecutionError] = None,
        truncated: bool = False,
        completion_source: Optional[str] = None,
    ) -> None:
        """Move the execution to its terminal status and publish it once."""
        execution = active.execution
        self._transition(active, status)
        execution.error = error
        if status is not ExecutionStatus.CANCELLED:
            execution.result = self._summarize(active, status, truncated, completion_source)

        data: dict[str, Any] = {"status": status.value, "total_steps": len(execution.steps)}
        if execution.result is not None:
            data["output"] = execution.result.output
            data["truncated"] = execution.result.truncated
            data["tools_used"] = list(execution.result.tools_used)
        if error is not None:
            data["error"] = {
                "kind": error.kind.value,
                "code": error.code,
                "message": error.message,
                "step_number": error.step_number,
                "tool_name": error.tool_name,
                "call_id": error.call_id,
            }
        if status is ExecutionStatus.CANCELLED:
            data["reason"] = active.cancel_reason

        self.logger.info(
            "execution_complete",
            execution_id=execution.id,
            status=status.value,
            steps=len(execution.steps),
            truncated=truncated,
            error_kind=error.kind.value if error else None,
        )
        self._emit(active, _TERMINAL_EVENT_TYPES[status], data=data)
        self._active.delete(execution.id)

    def _summarize(
        self,
        active: ActiveExecution,
        status: ExecutionStatus,
        truncated: bool,
        completion_source: Optional[str],
    ) -> ExecutionResult:
        steps = active.execution.steps
        output = next((step.output for step in reversed(steps) if step.output), NO_OUTPUT)
        return ExecutionResult(
            success=status is ExecutionStatus.COMPLETED,
            output=output,
            final_step=steps[-1].number if steps else 0,
            total_steps=len(steps),
            tools_used=list(active.tools_used),
            tokens_used=active.usage,
            execution_time_ms=int((time.perf_counter() - active.started) * 1000),
            truncated=truncated,
            completion_source=completion_source,
        )

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    async def _loop(self, active: ActiveExecution) -> None:
        execution = active.execution
        agent = active.agent
        transcript = execution.transcript
        transcript.extend(self._initial_messages(agent, active.request))
        tool_specs = tools_to_openai_format(active.tools.values())

        for number in range(1, active.max_steps + 1):
            step = Step(number=number)
            execution.steps.append(step)
            self.logger.info("loop_step", execution_id=execution.id, step=number)
            self._emit(active, EventType.STEP_STARTED, step=number, data={"step_id": step.id})

            request = self._model_request(agent, transcript, tool_specs)
            try:
                response = await call_with_retry(
                    lambda: self.model_service.invoke(request),
                    self.settings.retry,
                    execution_id=execution.id,
                    step=number,
                )
            except ModelInvocationError as e:
                self._close_step(step, StepStatus.FAILED, error=str(e))
                self._terminate(
                    active,
                    ExecutionStatus.FAILED,
                    error=ExecutionError(
                        kind=ErrorKind.MODEL_FAILURE,
                        code="transient_exhausted" if e.transient else "permanent",
                        message=f"Model call failed after {e.attempts} attempt(s): {e}",
                        step_number=number,
                    ),
                )
                return

            active.usage.add(response.usage)
            step.output = response.text
            calls = self._tool_calls(active, response, number)
            step.tool_calls = calls
            step.type = _step_type(calls)
            transcript.append(assistant_message(response.text, calls))

            if calls:
                for call in calls:
                    if call.name not in active.tools_used:
                        active.tools_used.append(call.name)

                step.tool_results = await self._dispatch(active, step, calls)
                for result in step.tool_results:
                    transcript.append(tool_result_to_message(result))

                failed = next((r for r in step.tool_results if not r.success), None)
                if failed is not None and self.settings.abort_on_tool_failure:
                    message = f"Tool '{failed.tool_name}' failed ({failed.error}): {failed.error_message}"
                    self._close_step(step, StepStatus.FAILED, error=message)
                    self._terminate(
                        active,
                        ExecutionStatus.FAILED,
                        error=ExecutionError(
                            kind=ErrorKind.TOOL_FAILURE,
                            code=failed.error,
                            message=message,
                            step_number=number,
                            tool_name=failed.tool_name,
                            call_id=failed.call_id,
                        ),
                    )
                    return

            self._close_step(step, StepStatus.COMPLETED)
            self._emit(
                active,
                EventType.STEP_COMPLETED,
                step=number,
                data={
                    "step_id": step.id,
                    "type": step.type.value,
                    "output": step.output,
                    "tool_calls": len(calls),
                },
            )

            source = detect_completion(
                response,
                keyword_fallback=self.settings.completion_keyword_fallback,
                keywords=self.settings.completion_keywords,
            )
            if source is not None:
                self.logger.info("final_answer_received", execution_id=execution.id, step=number, source=source)
                self._terminate(active, ExecutionStatus.COMPLETED, completion_source=source)
                return

        self.logger.warning("step_budget_exhausted", execution_id=execution.id, max_steps=active.max_steps)
        self._terminate(active, ExecutionStatus.COMPLETED, truncated=True)

    def _initial_messages(self, agent: AgentDefinition, request: ExecutionRequest) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": agent.system_prompt}]
        for message in request.history:
            role = message.get("role")
            content = message.get("content")
            if role in ("user", "assistant") and content:
                messages.append({"role": role, "content": str(content)})
        messages.append({"role": "user", "content": request.instruction})
        return messages

    def _model_request(
        self,
        agent: AgentDefinition,
        transcript: list[dict[str, Any]],
        tool_specs: list[dict[str, Any]],
    ) -> ModelRequest:
        return ModelRequest(
            model=agent.model,
            messages=list(transcript),
            tools=tool_specs,
            temperature=agent.temperature if agent.temperature is not None else self.settings.default_temperature,
            max_tokens=agent.max_tokens or self.settings.default_max_tokens,
            max_attempts=self.settings.retry.max_attempts,
        )

    def _tool_calls(self, active: ActiveExecution, response: ModelResponse, number: int) -> list[ToolCall]:
        calls = []
        for index, requested in enumerate(response.tool_calls, start=1):
            calls.append(
                ToolCall(
                    id=requested.id or f"call_{number}_{index}",
                    name=requested.name,
                    parameters=dict(requested.arguments or {}),
                    requires_approval=self.gateway.requires_approval(
                        requested.name, active.tools.get(requested.name)
                    ),
                )
            )
        return calls

    async def _dispatch(self, active: ActiveExecution, step: Step, calls: list[ToolCall]) -> list[ToolResult]:
        """
        Run the step's tool calls concurrently and join them.

        Results come back in call order regardless of completion order.
        """
        execution = active.execution
        context = ExecutionContext(
            execution_id=execution.id,
            agent_id=execution.agent_id,
            owner_id=execution.owner_id,
            step_number=step.number,
            step_id=step.id,
            prior_steps=tuple(execution.steps[:-1]),
            metadata=dict(execution.metadata),
            cancel_event=active.cancel_event,
        )
        slots = asyncio.Semaphore(self.settings.tool_concurrency)

        for call in calls:
            self._emit(
                active,
                EventType.TOOL_CALL_REQUESTED,
                step=step.number,
                data={
                    "call_id": call.id,
                    "tool_name": call.name,
                    "parameters": call.parameters,
                    "requires_approval": call.requires_approval,
                },
            )

        def on_approval(approval: ApprovalRequest) -> None:
            self._emit(
                active,
                EventType.APPROVAL_REQUESTED,
                step=step.number,
                data={
                    "approval_id": approval.id,
                    "tool_name": approval.tool_name,
                    "parameters": approval.parameters,
                    "message": approval.message,
                },
            )

        async def run(call: ToolCall) -> ToolResult:
            result = await self.gateway.invoke(
                call,
                context,
                auto_approve=active.request.auto_approve,
                tools=active.tools,
                on_approval=on_approval,
                slots=slots,
            )
            self._emit(
                active,
                EventType.TOOL_RESULT,
                step=step.number,
                data={
                    "call_id": result.call_id,
                    "tool_name": result.tool_name,
                    "success": result.success,
                    "result": result.result,
                    "error": result.error,
                    "error_message": result.error_message,
                    "execution_time_ms": result.execution_time_ms,
                },
            )
            return result

        return list(await asyncio.gather(*(run(call) for call in calls)))

    def _close_step(self, step: Step, status: StepStatus, error: Optional[str] = None) -> None:
        step.status = status
        step.error = error
        step.completed_at = utc_now()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(
        self,
        active: ActiveExecution,
        event_type: EventType,
        step: Optional[int] = None,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        # Once cancellation is requested only the terminal event goes out
        if active.cancel_event.is_set() and not event_type.is_terminal:
            return

        active.sequence += 1
        event = ExecutionEvent(
            type=event_type,
            execution_id=active.execution.id,
            sequence=active.sequence,
            step_number=step,
            data=data or {},
        )
        self.logger.debug("execution_event", execution_id=event.execution_id, type=event_type.value, sequence=event.sequence)
        for listener in list(active.listeners):
            try:
                listener(event)
            except Exception as e:
                self.logger.warning("event_listener_failed", error=str(e), type=event_type.value)


def _step_type(calls: list[ToolCall]) -> StepType:
    if len(calls) > 1:
        return StepType.PARALLEL_TOOLS
    if calls:
        return StepType.TOOL_CALL
    return StepType.REASONING
