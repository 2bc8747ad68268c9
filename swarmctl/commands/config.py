"""Configuration commands: validate, show-config and init-config."""
from pathlib import Path

import typer
from rich.markup import escape
from rich.table import Table

from ..config import render_template
from ..modules.swarm.errors import ConfigurationError
from . import console, handle_errors, load_cli_config


@handle_errors
def validate(ctx: typer.Context) -> None:
    """Load and validate the configuration file without touching any host."""
    config = load_cli_config(ctx.obj)
    inventory = config.inventory
    console.print(
        f"[green]✅ Configuration is valid[/green] "
        f"(manager {inventory.manager}, {len(inventory.workers)} worker(s))"
    )


@handle_errors
def show_config(ctx: typer.Context) -> None:
    """Print the resolved configuration with secrets masked."""
    config = load_cli_config(ctx.obj)
    table = Table(title="Configuration")
    table.add_column("Option", style="cyan")
    table.add_column("Value")
    for name, value in config.masked().items():
        table.add_row(name, escape(str(value)))
    console.print(table)


@handle_errors
def init_config(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Where to write the env file template"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
) -> None:
    """Write an env file template listing every option and its default."""
    if path.exists() and not force:
        raise ConfigurationError(f"{path} already exists (use --force to overwrite)")
    path.write_text(render_template())
    console.print(f"[green]✅ Wrote configuration template to {path}[/green]")
    console.print("Set MANAGER_HOST and MANAGER_ADVERTISE_ADDR before running 'swarmctl bootstrap'.")
