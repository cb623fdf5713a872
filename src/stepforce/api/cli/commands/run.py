"""Run command - Execute an instruction with an agent."""

import asyncio
import json
import logging
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.prompt import Confirm

from stepforce.application.factory import EngineFactory
from stepforce.application.templates import AGENT_TEMPLATES, create_agent_from_template
from stepforce.core.domain.coordinator import ExecutionCoordinator
from stepforce.core.domain.errors import ConfigurationError
from stepforce.core.domain.events import EventType, ExecutionEvent
from stepforce.core.domain.models import AgentDefinition, Execution, ExecutionRequest, ExecutionStatus

console = Console()


def run_instruction(
    ctx: typer.Context,
    instruction: str = typer.Argument(..., help="Instruction for the agent"),
    template: str = typer.Option("general", "--template", "-t", help=f"Agent template ({', '.join(AGENT_TEMPLATES)})"),
    agent_file: Optional[str] = typer.Option(None, "--agent", "-a", help="YAML agent definition (overrides --template)"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile (overrides global --profile)"),
    max_steps: Optional[int] = typer.Option(None, "--max-steps", help="Lower the agent's step budget"),
    auto_approve: bool = typer.Option(False, "--auto-approve", help="Run approval-gated tools without asking"),
    json_output: bool = typer.Option(False, "--json", help="Print the execution record as JSON"),
    debug: Optional[bool] = typer.Option(None, "--debug", help="Enable debug output (overrides global --debug)"),
):
    """Execute an instruction and stream progress.

    Examples:
        # Use the general template
        stepforce run "What is 17 * 23?"

        # Analysis agent, at most three steps
        stepforce run "Analyze this sentence." --template analysis --max-steps 3

        # Agent from a YAML file, gated tools run without asking
        stepforce run "Fetch https://example.com" --agent agent.yaml --auto-approve
    """
    # Get global options from context, allow local override
    global_opts = ctx.obj or {}
    profile = profile or global_opts.get("profile", "dev")
    debug = debug if debug is not None else global_opts.get("debug", False)

    # Configure logging level based on debug flag
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(level))

    factory = EngineFactory(config_dir=global_opts.get("config_dir", "configs"))
    try:
        coordinator = factory.create_coordinator(profile=profile)
        agent = _load_agent(factory, coordinator, template, agent_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    request = ExecutionRequest(instruction=instruction, max_steps=max_steps, auto_approve=auto_approve)

    if not json_output:
        console.print(f"[bold blue]Agent:[/bold blue] {agent.name} ({agent.model})")
        console.print(f"[bold blue]Instruction:[/bold blue] {instruction}")
        console.rule()

    try:
        execution = asyncio.run(
            stream_execution(coordinator, agent, request, quiet=json_output, interactive=not json_output)
        )
    except ConfigurationError as e:
        for error in e.errors:
            console.print(f"[red]Configuration error:[/red] {error}")
        raise typer.Exit(1)

    if json_output:
        console.print_json(json.dumps(execution.to_dict(), default=str))
    else:
        console.rule()
        _print_outcome(execution)

    if execution.status is not ExecutionStatus.COMPLETED:
        raise typer.Exit(1)


def _load_agent(
    factory: EngineFactory,
    coordinator: ExecutionCoordinator,
    template: str,
    agent_file: Optional[str],
) -> AgentDefinition:
    if agent_file:
        return factory.load_agent_definition(agent_file)
    return create_agent_from_template(
        name=f"{template}-agent",
        template=template,
        owner_id="local",
        model=coordinator.settings.default_model,
    )


async def stream_execution(
    coordinator: ExecutionCoordinator,
    agent: AgentDefinition,
    request: ExecutionRequest,
    quiet: bool = False,
    interactive: bool = True,
) -> Execution:
    """
    Stream an execution, rendering events and answering approval requests.

    Without an interactive terminal, approval requests are rejected.
    """
    execution: Optional[Execution] = None

    async for event in coordinator.stream_execute(agent, request):
        if execution is None:
            execution = coordinator.get_execution(event.execution_id)
        if not quiet:
            _render(event)

        if event.type is EventType.APPROVAL_REQUESTED:
            if interactive:
                question = (
                    f"Allow tool [cyan]{event.data['tool_name']}[/cyan] "
                    f"with {json.dumps(event.data['parameters'], ensure_ascii=False)}?"
                )
                approved = await asyncio.to_thread(Confirm.ask, question, console=console)
                note = "Approved via CLI" if approved else "Rejected via CLI"
            else:
                approved, note = False, "Interactive approval unavailable"
            coordinator.gateway.broker.respond(event.data["approval_id"], approved, note=note)

    return execution


def _render(event: ExecutionEvent) -> None:
    data = event.data
    if event.type is EventType.STEP_STARTED:
        console.print(f"[dim]Step {event.step_number}[/dim]")
    elif event.type is EventType.TOOL_CALL_REQUESTED:
        params = json.dumps(data["parameters"], ensure_ascii=False)
        console.print(f"  [cyan]-> {data['tool_name']}[/cyan] {params}")
    elif event.type is EventType.TOOL_RESULT:
        if data["success"]:
            console.print(f"  [green]OK[/green] {data['tool_name']} ({data['execution_time_ms']} ms)")
        else:
            console.print(f"  [red]FAILED[/red] {data['tool_name']}: {data['error']} - {data['error_message']}")
    elif event.type is EventType.STEP_COMPLETED and data.get("output"):
        console.print(f"  {data['output']}")


def _print_outcome(execution: Execution) -> None:
    if execution.status is ExecutionStatus.COMPLETED:
        result = execution.result
        suffix = " (step budget exhausted)" if result.truncated else ""
        console.print(f"[bold green]Completed{suffix}[/bold green] in {result.total_steps} step(s)")
        console.print(result.output)
    elif execution.status is ExecutionStatus.FAILED:
        console.print(f"[bold red]Failed:[/bold red] {execution.error.message}")
    else:
        console.print(f"[bold yellow]Execution {execution.status.value}[/bold yellow]")
