"""Cluster verification command."""
import typer

from ..modules import get_ssh_pool
from ..modules.swarm.deploy import ClusterBootstrap
from . import handle_errors, load_cli_config, print_report


@handle_errors
def verify(ctx: typer.Context) -> None:
    """Check nodes, services and published endpoints of the running swarm."""
    config = load_cli_config(ctx.obj)
    report = ClusterBootstrap(config, get_ssh_pool(config)).verify()
    print_report(report, title="Verification Summary")
    raise typer.Exit(report.exit_code)
