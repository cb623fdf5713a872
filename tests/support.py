"""Deterministic stubs shared by the test suite."""

import asyncio
from typing import Any, Iterable, Optional

from stepforce.config.settings import EngineSettings, RetryPolicy
from stepforce.core.domain.coordinator import ExecutionCoordinator
from stepforce.core.domain.models import AgentDefinition, TokenUsage
from stepforce.core.interfaces.llm import ModelRequest, ModelResponse, ModelToolCall
from stepforce.core.tools.approval import ApprovalBroker
from stepforce.core.tools.gateway import ToolInvocationGateway
from stepforce.core.tools.registry import CapabilityRegistry, FunctionTool


class ScriptedModel:
    """
    Model stub that replays a fixed script.

    Script items are ModelResponse objects or exceptions to raise. When the
    script runs out the model answers "done" and signals completion.
    """

    def __init__(self, script: Iterable[Any], supported: Optional[set[str]] = None):
        self.script = list(script)
        self.supported = supported
        self.requests: list[ModelRequest] = []

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if not self.script:
            return final_answer("done")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def supports_model(self, model: str) -> bool:
        return self.supported is None or model in self.supported


def final_answer(text: str, tokens: int = 10) -> ModelResponse:
    return ModelResponse(
        text=text,
        finished=True,
        usage=TokenUsage(input=tokens, output=tokens, total=2 * tokens),
    )


def tool_request(*calls: tuple, text: str = "", tokens: int = 10) -> ModelResponse:
    """Build a response requesting tools; each call is (id, name, arguments)."""
    return ModelResponse(
        text=text,
        tool_calls=[ModelToolCall(id=call_id, name=name, arguments=args) for call_id, name, args in calls],
        finished=False,
        usage=TokenUsage(input=tokens, output=tokens, total=2 * tokens),
    )


def make_agent(tools: Iterable[Any] = ("echo",), **overrides: Any) -> AgentDefinition:
    fields = {
        "id": "agent-1",
        "name": "Test Agent",
        "model": "test-model",
        "system_prompt": "You are a test agent.",
        "owner_id": "owner-1",
        "tools": tuple(tools),
    }
    fields.update(overrides)
    return AgentDefinition(**fields)


def make_settings(**overrides: Any) -> EngineSettings:
    fields: dict[str, Any] = {
        "retry": RetryPolicy(max_attempts=3, initial_backoff_seconds=0.0, max_backoff_seconds=0.0),
    }
    fields.update(overrides)
    return EngineSettings(**fields)


def build_coordinator(model: Any, tools: Iterable[Any] = (), **settings_overrides: Any) -> ExecutionCoordinator:
    settings = make_settings(**settings_overrides)
    registry = CapabilityRegistry(tools)
    broker = ApprovalBroker(timeout_seconds=settings.approval_timeout_seconds)
    gateway = ToolInvocationGateway(
        registry=registry,
        broker=broker,
        tool_timeout_seconds=settings.tool_timeout_seconds,
        required_approval_tools=settings.required_approval_tools,
        enable_human_approval=settings.enable_human_approval,
    )
    return ExecutionCoordinator(model_service=model, gateway=gateway, settings=settings)


TEXT_SCHEMA = {
    "type": "object",
    "properties": {"text": {"type": "string"}},
    "required": ["text"],
}


def echo_tool(name: str = "echo") -> FunctionTool:
    async def echo(params, context):
        return {"success": True, "result": params["text"]}

    return FunctionTool(name=name, description="Echo the text back", function=echo, parameters_schema=TEXT_SCHEMA)


def failing_tool() -> FunctionTool:
    async def fail(params, context):
        return {"success": False, "error": "disk full"}

    return FunctionTool(name="broken", description="Always fails", function=fail)


def gated_tool(calls: Optional[list] = None) -> FunctionTool:
    """Approval-gated tool; records each executed call into `calls`."""

    async def deploy(params, context):
        if calls is not None:
            calls.append(params)
        return {"success": True, "result": "deployed"}

    return FunctionTool(
        name="deploy",
        description="Deploy the service",
        function=deploy,
        requires_approval=True,
    )


class SleepTool:
    """Tool sleeping for `seconds`; tracks start/cancel and concurrency."""

    name = "sleeper"
    description = "Sleep for a while"
    parameters_schema = {
        "type": "object",
        "properties": {"seconds": {"type": "number", "minimum": 0}},
        "required": ["seconds"],
    }
    requires_approval = False

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False
        self.running = 0
        self.max_running = 0
        self.finished: list[float] = []

    async def execute(self, params, context):
        self.started.set()
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(params["seconds"])
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        finally:
            self.running -= 1
        self.finished.append(params["seconds"])
        return {"success": True, "result": {"slept": params["seconds"]}}


class HangingModel:
    """Model stub whose calls never return; tracks start and cancellation."""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False
        self.requests: list[ModelRequest] = []

    async def invoke(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        self.started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return final_answer("too late")

    def supports_model(self, model: str) -> bool:
        return True
