"""Tools command - List and inspect available tools."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from stepforce.application.factory import EngineFactory

app = typer.Typer(help="Tool management")
console = Console()


def _registry(ctx: typer.Context, profile: Optional[str]):
    global_opts = ctx.obj or {}
    factory = EngineFactory(config_dir=global_opts.get("config_dir", "configs"))
    try:
        return factory.registry_for_profile(profile or global_opts.get("profile", "dev"))
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command("list")
def list_tools(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """List available tools."""
    registry = _registry(ctx, profile)

    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Approval", style="yellow")
    table.add_column("Description", style="white")

    for tool in registry:
        table.add_row(tool.name, "required" if tool.requires_approval else "-", tool.description)

    console.print(table)


@app.command("inspect")
def inspect_tool(
    ctx: typer.Context,
    tool_name: str = typer.Argument(..., help="Tool name to inspect"),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Configuration profile"),
):
    """Inspect tool details and parameters."""
    tool = _registry(ctx, profile).get(tool_name)

    if not tool:
        console.print(f"[red]Tool '{tool_name}' not found[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold cyan]{tool.name}[/bold cyan]")
    console.print(f"{tool.description}\n")
    if tool.requires_approval:
        console.print("[yellow]Requires human approval[/yellow]\n")

    console.print("[bold]Parameters:[/bold]")
    console.print_json(data=tool.parameters_schema)
