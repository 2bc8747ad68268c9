"""Swarm bootstrap command.

Installs Docker on every host, forms the swarm, deploys the enabled stacks
and verifies the result.
"""
import typer

from ..modules import get_ssh_pool
from ..modules.swarm.deploy import ClusterBootstrap
from . import handle_errors, load_cli_config, print_report


@handle_errors
def bootstrap(ctx: typer.Context) -> None:
    """Bootstrap the swarm: install Docker, form the cluster, deploy stacks.

    Example:
        swarmctl -c .env bootstrap
    """
    config = load_cli_config(ctx.obj)
    pipeline = ClusterBootstrap(config, get_ssh_pool(config))
    try:
        report = pipeline.run()
    finally:
        pipeline.cleanup()
    print_report(report)
    raise typer.Exit(report.exit_code)
