"""swarmctl command line entry point."""
import signal
from typing import Optional

import typer

from .commands import CLIState
from .commands import bootstrap, config, verify
from .logging import DEFAULT_LOG_DIR, setup_logging

app = typer.Typer(
    help="swarmctl - bootstrap a Docker Swarm cluster over SSH.",
    no_args_is_help=True,
)

app.command("bootstrap")(bootstrap.bootstrap)
app.command("verify")(verify.verify)
app.command("validate")(config.validate)
app.command("show-config")(config.show_config)
app.command("init-config")(config.init_config)


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt()


# Global options callback
@app.callback()
def main(
    ctx: typer.Context,
    verbosity: Optional[int] = typer.Option(
        None, "--verbosity", "-v", min=1, max=4,
        help="Console verbosity: 1=ERROR 2=WARN 3=INFO 4=DEBUG (default: LOG_LEVEL from the env file)",
    ),
    env_file: str = typer.Option(
        ".env", "--env-file", "-c",
        help="Configuration env file (falls back to ./env)",
    ),
    log_dir: str = typer.Option(DEFAULT_LOG_DIR, "--log-dir", help="Directory for log files"),
):
    """swarmctl - Docker Swarm Bootstrap CLI."""
    ctx.obj = CLIState(env_file=env_file, log_dir=log_dir, verbosity=verbosity)
    setup_logging(verbosity or 3, log_dir)
    signal.signal(signal.SIGTERM, _raise_interrupt)


if __name__ == "__main__":
    app()
