"""Stepforce CLI entry point."""

from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from stepforce.api.cli.commands import run, tools
from stepforce.application.templates import AGENT_TEMPLATES

app = typer.Typer(
    name="stepforce",
    help="Stepforce - run step-bounded agents with approval-gated tools",
    add_completion=True,
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()

app.command("run")(run.run_instruction)
app.add_typer(tools.app, name="tools", help="List and inspect the tool catalog")


@app.callback()
def main(
    ctx: typer.Context,
    profile: str = typer.Option("dev", "--profile", "-p", help="Configuration profile"),
    config_dir: str = typer.Option("configs", "--config-dir", help="Directory containing profile YAML files"),
    env_file: Optional[str] = typer.Option(None, "--env-file", help="Load provider keys from this .env file"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Execute agents from the command line."""
    # Provider keys (OPENAI_API_KEY, ...) and STEPFORCE_* overrides
    if env_file:
        load_dotenv(env_file, override=True)
    else:
        load_dotenv()
    ctx.obj = {"profile": profile, "config_dir": config_dir, "debug": debug}


@app.command("templates")
def list_templates():
    """List the built-in agent templates usable with `run --template`."""
    table = Table(title="Agent Templates")
    table.add_column("Template", style="cyan")
    table.add_column("Tools", style="yellow")
    table.add_column("System prompt", style="white")

    for name, template in AGENT_TEMPLATES.items():
        table.add_row(name, ", ".join(template["tools"]), template["system_prompt"])

    console.print(table)


@app.command()
def version():
    """Show the installed version."""
    from stepforce import __version__

    console.print(f"Stepforce version {__version__}")


if __name__ == "__main__":
    app()
