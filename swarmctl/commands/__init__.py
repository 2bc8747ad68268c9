"""Shared helpers for swarmctl commands."""
import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import SwarmConfig, load_config
from ..logging import cleanup_logs, set_console_level
from ..modules.swarm.errors import (
    INTERRUPTED_EXIT_CODE,
    ConfigurationError,
    SwarmBootstrapError,
)
from ..modules.swarm.models import RunReport, StackStatus

logger = logging.getLogger("swarm.cli")

console = Console()

_STATUS_STYLES = {
    StackStatus.READY: "green",
    StackStatus.DEPLOYED: "cyan",
    StackStatus.TIMED_OUT: "yellow",
    StackStatus.FAILED: "red",
    StackStatus.PENDING: "dim",
}


@dataclass
class CLIState:
    """Global options shared by every command."""
    env_file: str = ".env"
    log_dir: Optional[str] = "logs"
    verbosity: Optional[int] = None


def load_cli_config(state: CLIState) -> SwarmConfig:
    """Load the configuration and apply its LOG_LEVEL unless -v was given."""
    config = load_config(state.env_file)
    if state.verbosity is None:
        set_console_level(config.log_level)
    return config


def handle_errors(func):
    """Map swarmctl errors to exit codes and prune old logs when a command ends."""
    @functools.wraps(func)
    def wrapper(ctx: typer.Context, *args, **kwargs):
        state: CLIState = ctx.obj
        try:
            return func(ctx, *args, **kwargs)
        except ConfigurationError as e:
            console.print(f"[red]❌ {escape(e.message)}[/red]")
            for error in e.field_errors:
                console.print(f"   • {escape(str(error))}")
            raise typer.Exit(e.exit_code)
        except SwarmBootstrapError as e:
            console.print(f"[red]❌ {escape(str(e))}[/red]")
            if state.log_dir:
                console.print(f"See logs in {Path(state.log_dir).resolve()}")
            raise typer.Exit(e.exit_code)
        except KeyboardInterrupt:
            console.print("[yellow]⚠️ Interrupted[/yellow]")
            raise typer.Exit(INTERRUPTED_EXIT_CODE)
        except typer.Exit:
            raise
        except Exception as e:
            logger.debug("Unhandled exception", exc_info=True)
            console.print(f"[red]❌ Unexpected error: {escape(str(e))}[/red]")
            raise typer.Exit(1)
        finally:
            if state.log_dir:
                cleanup_logs(state.log_dir)
    return wrapper


def print_report(report: RunReport, title: str = "Bootstrap Summary") -> None:
    """Print node states, stacks, probes and counts as rich tables."""
    if report.states:
        nodes = Table(title=title)
        nodes.add_column("Host", style="cyan")
        nodes.add_column("State")
        for host, state in report.states.items():
            nodes.add_row(host, state.value)
        console.print(nodes)

    if report.stacks:
        stacks = Table(title="Stacks")
        stacks.add_column("Stack", style="cyan")
        stacks.add_column("Status")
        stacks.add_column("Attempts", justify="right")
        stacks.add_column("Replicas")
        for stack in report.stacks:
            style = _STATUS_STYLES.get(stack.status, "")
            stacks.add_row(
                stack.name,
                f"[{style}]{stack.status.value}[/{style}]" if style else stack.status.value,
                str(stack.attempts),
                stack.observed_summary() or "-",
            )
        console.print(stacks)

    if report.probes:
        probes = Table(title="Connectivity")
        probes.add_column("Service", style="cyan")
        probes.add_column("URL")
        probes.add_column("Result")
        for probe in report.probes:
            mark = "[green]✅[/green]" if probe.reachable else "[yellow]⚠️[/yellow]"
            probes.add_row(probe.name, probe.url, f"{mark} {escape(probe.detail)}")
        console.print(probes)

    for degradation in report.degradations:
        console.print(f"[yellow]⚠️ {escape(degradation.message)}[/yellow]")

    console.print(f"Errors: {report.error_count}  Warnings: {report.warning_count}")
    if report.success:
        console.print("[green]✅ Completed successfully[/green]")
    else:
        console.print(f"[red]❌ {escape(str(report.fatal))}[/red]")
