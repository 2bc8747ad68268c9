"""Remote workspace preparation and container engine installation.

This module brings every host from a bare operating system to
``BootstrapState.ENGINE_READY``.
"""

import logging
import shlex
from pathlib import Path
from typing import Dict

from .errors import EngineInstallError, WorkspacePreparationError
from .executor import RemoteExecutor
from .engine import DockerEngine
from .models import BootstrapState, Host, Inventory, NodeStateTracker

logger = logging.getLogger("swarm.installer")

ASSETS_DIR = Path(__file__).resolve().parent.parent.parent / "assets"
INSTALL_SCRIPT = "install_docker.sh"
STACK_ENV_FILE = "stack.env"
DATA_SUBDIRS = (
    "nexus-data",
    "nginx/conf.d",
    "nginx/certs",
    "prometheus",
    "grafana",
)


def render_env_file(values: Dict[str, str]) -> str:
    """Render KEY=value lines safe to ``source`` from a POSIX shell."""
    return "".join(f"{key}={shlex.quote(str(value))}\n" for key, value in values.items())


class WorkspacePreparer:
    """Creates remote directories and uploads scripts and stack assets."""

    def __init__(
        self,
        executor: RemoteExecutor,
        transport,
        config,
        staging_dir: Path,
        assets_dir: Path = ASSETS_DIR,
    ):
        """Initialize the preparer.

        Args:
            executor: Remote executor for the run
            transport: Transport used for file uploads
            config: Validated SwarmConfig
            staging_dir: Local temporary directory for rendered files
            assets_dir: Directory holding ``scripts/`` and ``stacks/``
        """
        self.executor = executor
        self.transport = transport
        self.config = config
        self.staging_dir = Path(staging_dir)
        self.assets_dir = Path(assets_dir)

    @property
    def setup_dir(self) -> str:
        return self.config.remote_setup_dir.rstrip("/")

    @property
    def data_dir(self) -> str:
        return self.config.remote_data_dir.rstrip("/")

    def prepare(self, inventory: Inventory) -> None:
        """Prepare every host, manager first.

        Raises:
            WorkspacePreparationError: If directories cannot be created
            TransportError: If a host is unreachable or an upload fails
        """
        logger.info("📁 Preparing remote directories on all nodes")
        for host in inventory.hosts:
            self.prepare_directories(host)
            self.upload_scripts(host)
        self.upload_stacks(inventory.manager)
        logger.info("✅ Remote workspace prepared on all nodes")

    def prepare_directories(self, host: Host) -> None:
        setup, data = shlex.quote(self.setup_dir), shlex.quote(self.data_dir)
        subdirs = " ".join(shlex.quote(f"{self.data_dir}/{d}") for d in DATA_SUBDIRS)
        command = (
            f"sudo mkdir -p {setup} {data} && "
            f"sudo chown -R $(id -u):$(id -g) {setup} {data} && "
            f"mkdir -p {setup}/scripts {setup}/stacks {subdirs}"
        )
        result = self.executor.execute(host, "Prepare remote directories", command)
        if not result.success:
            raise WorkspacePreparationError.from_result(
                "Failed to prepare remote directories", result
            )

    def upload_scripts(self, host: Host) -> None:
        local = self.assets_dir / "scripts" / INSTALL_SCRIPT
        remote = f"{self.setup_dir}/scripts/{INSTALL_SCRIPT}"
        logger.info(f"[{host}] 📤 Uploading {INSTALL_SCRIPT}")
        self.transport.copy(host.address, str(local), remote)

    def upload_stacks(self, host: Host) -> None:
        logger.info(f"[{host}] 📤 Uploading stack definitions")
        self.transport.copy(host.address, str(self.assets_dir / "stacks"), f"{self.setup_dir}/stacks")

        env_path = self.staging_dir / STACK_ENV_FILE
        env_path.write_text(render_env_file(self.config.stack_env()))
        env_path.chmod(0o600)
        self.transport.copy(host.address, str(env_path), f"{self.setup_dir}/{STACK_ENV_FILE}")


class NodeBootstrapper:
    """Ensures the container engine is installed and its daemon reachable."""

    def __init__(self, engine: DockerEngine, transport, tracker: NodeStateTracker, config):
        self.engine = engine
        self.transport = transport
        self.tracker = tracker
        self.config = config

    def engine_ready(self, host: Host) -> bool:
        """True when both the docker binary and the daemon answer."""
        if not self.engine.engine_version(host).success:
            return False
        return self.engine.daemon_status(host).success

    def ensure_engine(self, host: Host) -> BootstrapState:
        """Bring one host to ENGINE_READY, installing Docker when needed.

        Raises:
            EngineInstallError: If installation fails or the daemon stays unreachable
        """
        if self.tracker.get(host) != BootstrapState.ENGINE_ABSENT:
            return self.tracker.get(host)

        if self.engine_ready(host):
            logger.info(f"[{host}] ✅ Docker already installed and running")
            self.tracker.advance(host, BootstrapState.ENGINE_READY)
            return self.tracker.get(host)

        logger.info(f"[{host}] 🚀 Installing Docker")
        script = f"{self.config.remote_setup_dir.rstrip('/')}/scripts/{INSTALL_SCRIPT}"
        result = self.engine.executor.execute(
            host, "Install Docker", f"bash {shlex.quote(script)}"
        )
        if not result.success:
            raise EngineInstallError.from_result("Docker installation failed", result)

        # New docker group membership only applies to a fresh login.
        self.transport.disconnect(host.address)

        daemon = self.engine.daemon_status(host)
        if not daemon.success:
            raise EngineInstallError.from_result(
                "Docker daemon is not reachable after installation", daemon
            )
        self.tracker.advance(host, BootstrapState.ENGINE_READY)
        logger.info(f"[{host}] ✅ Docker installed")
        return self.tracker.get(host)

    def ensure_all(self, inventory: Inventory) -> None:
        """Run :meth:`ensure_engine` for the manager and then each worker in order."""
        logger.info("🐳 Ensuring Docker on all nodes")
        for host in inventory.hosts:
            self.ensure_engine(host)
        logger.info("✅ Docker ready on all nodes")
