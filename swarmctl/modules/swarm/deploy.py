"""Swarm cluster bootstrap pipeline."""
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional

import requests

from .engine import DockerEngine
from .errors import SwarmBootstrapError
from .executor import RemoteExecutor
from .installer import ASSETS_DIR, NodeBootstrapper, WorkspacePreparer
from .join import DEFAULT_PORT_CHECK_POLICY, JoinCoordinator
from .models import BootstrapState, Inventory, NodeStateTracker, RunReport
from .stacks import StackDeployer
from .verification import DEFAULT_PROBE_POLICY, Verifier

logger = logging.getLogger("swarm.deploy")


class ClusterBootstrap:
    """Runs the ordered bootstrap stages against one manager and its workers."""

    def __init__(
        self,
        config,
        transport,
        sleep: Optional[Callable[[float], None]] = None,
        http_get: Callable = requests.get,
        assets_dir: Path = ASSETS_DIR,
    ):
        """Initialize the pipeline.

        Args:
            config: Validated SwarmConfig
            transport: Remote transport (see ``modules.ssh.ConnectionPool``)
            sleep: Sleep function for retries; defaults to ``time.sleep``
            http_get: Function used for connectivity probes
            assets_dir: Directory holding the install script and stacks
        """
        self.config = config
        self.transport = transport
        self.inventory: Inventory = config.inventory
        self.tracker = NodeStateTracker(self.inventory.hosts)
        self.executor = RemoteExecutor(transport, command_timeout=config.command_timeout)
        self.engine = DockerEngine(self.executor)
        self.sleep = sleep
        self.http_get = http_get
        self.assets_dir = Path(assets_dir)
        self.staging_dir: Optional[Path] = None
        self.report = RunReport()

    def _stage(self, title: str) -> None:
        logger.info(f"===== {title} =====")

    def run(self) -> RunReport:
        """Execute every stage in order and return the run report.

        Fatal errors stop the remaining stages and are stored in
        ``report.fatal``. KeyboardInterrupt propagates after cleanup.
        """
        manager = self.inventory.manager
        logger.info(
            f"🚀 Bootstrapping swarm: manager {manager}, "
            f"{len(self.inventory.workers)} worker(s)"
        )
        self.staging_dir = Path(tempfile.mkdtemp(prefix="swarmctl-"))
        try:
            self._stage("Preparing remote workspace")
            WorkspacePreparer(
                self.executor, self.transport, self.config, self.staging_dir, self.assets_dir
            ).prepare(self.inventory)

            self._stage("Installing Docker")
            NodeBootstrapper(self.engine, self.transport, self.tracker, self.config).ensure_all(self.inventory)

            self._stage("Forming swarm")
            JoinCoordinator(
                self.engine, self.tracker, self.config,
                port_check_policy=DEFAULT_PORT_CHECK_POLICY, sleep=self.sleep,
            ).form_cluster(self.inventory)

            self._stage("Deploying stacks")
            deployer = StackDeployer(
                self.engine, self.config, sleep=self.sleep, assets_dir=self.assets_dir
            )
            try:
                deployer.deploy_all(manager)
            finally:
                self.report.stacks = deployer.deployments
                self.report.degradations.extend(deployer.degradations)

            self._stage("Verifying cluster")
            self._verifier().verify(manager, self.report)
        except SwarmBootstrapError as e:
            self.report.fatal = e
            logger.error(f"❌ {e}")
        finally:
            self.report.results = list(self.executor.results)
            self.report.states = self.tracker.snapshot()
            self.cleanup()

        self._log_summary()
        return self.report

    def verify(self) -> RunReport:
        """Run verification alone against the existing cluster."""
        try:
            self.observe_states()
            self._verifier().verify(self.inventory.manager, self.report)
        except SwarmBootstrapError as e:
            self.report.fatal = e
            logger.error(f"❌ {e}")
        finally:
            self.report.results = list(self.executor.results)
            self.report.states = self.tracker.snapshot()
            self.transport.close_all()
        self._log_summary()
        return self.report

    def observe_states(self) -> None:
        """Derive each host's bootstrap state from its current swarm status."""
        for host in self.inventory.hosts:
            status = self.engine.swarm_status(host)
            if status.is_active:
                self.tracker.advance(host, BootstrapState.CLUSTER_MEMBER)
            elif not status.error:
                self.tracker.advance(host, BootstrapState.ENGINE_READY)

    def _verifier(self) -> Verifier:
        return Verifier(
            self.engine, self.config,
            http_get=self.http_get, probe_policy=DEFAULT_PROBE_POLICY, sleep=self.sleep,
        )

    def cleanup(self) -> None:
        """Remove the local staging directory and close SSH sessions."""
        if self.staging_dir is not None:
            shutil.rmtree(self.staging_dir, ignore_errors=True)
            self.staging_dir = None
        self.transport.close_all()

    def _log_summary(self) -> None:
        logger.info(
            f"Summary: {self.report.error_count} error(s), {self.report.warning_count} warning(s)"
        )
        if self.report.success:
            logger.info("✅ Completed successfully")
        else:
            logger.error(f"❌ Failed with exit code {self.report.exit_code}")
