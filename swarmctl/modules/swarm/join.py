"""Cluster formation: manager initialization, token exchange and worker joins.

The manager is brought to ``CLUSTER_MEMBER`` first, the worker join token is
fetched exactly once, and each worker then joins in list order.
"""

import logging
from typing import Callable, Optional

from ...utils import RetryPolicy
from .engine import DockerEngine, manager_endpoint
from .errors import (
    ClusterConflictError,
    ClusterError,
    ClusterJoinError,
    JoinTimeoutError,
)
from .models import (
    BootstrapState,
    Host,
    Inventory,
    JoinToken,
    NodeStateTracker,
    SwarmStatus,
)

logger = logging.getLogger("swarm.join")

DEFAULT_PORT_CHECK_POLICY = RetryPolicy(attempts=5, delay=2.0, backoff=2.0, max_delay=15.0)


class JoinCoordinator:
    """Drives the manager→workers join protocol."""

    def __init__(
        self,
        engine: DockerEngine,
        tracker: NodeStateTracker,
        config,
        port_check_policy: RetryPolicy = DEFAULT_PORT_CHECK_POLICY,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize the coordinator.

        Args:
            engine: Docker wrapper bound to the run's executor
            tracker: Per-host bootstrap state
            config: Validated SwarmConfig
            port_check_policy: Retry budget for the manager port check
            sleep: Sleep function used between port check attempts
        """
        self.engine = engine
        self.tracker = tracker
        self.config = config
        self.port_check_policy = port_check_policy
        self.sleep = sleep
        self.token: Optional[JoinToken] = None

    @property
    def advertise_addr(self) -> str:
        return self.config.manager_advertise_addr

    def form_cluster(self, inventory: Inventory) -> None:
        """Initialize the manager, then join every worker in order."""
        self.ensure_manager(inventory.manager)
        self.ensure_network(inventory.manager)
        self.fetch_token(inventory.manager)
        for worker in inventory.workers:
            self.ensure_worker(worker)
        logger.info(f"✅ Swarm formed with {len(inventory.hosts)} node(s)")

    def ensure_manager(self, host: Host) -> SwarmStatus:
        """Make ``host`` the active manager of a swarm.

        Raises:
            ClusterConflictError: If the host is locked or a member without manager role
            ClusterError: If initialization fails
        """
        status = self.engine.swarm_status(host)

        if status.is_locked:
            raise ClusterConflictError(
                "Swarm is locked; unlock it with 'docker swarm unlock' and the unlock key, then re-run",
                host=host.address,
                operation="swarm status",
            )

        if status.is_active and not status.control_available:
            raise ClusterConflictError(
                "Host is a swarm member without the manager role; "
                "run 'docker swarm leave' on it or choose another manager",
                host=host.address,
                operation="swarm status",
            )

        if status.is_active:
            logger.info(f"[{host}] ✅ Swarm already initialized (node {status.node_id})")
        else:
            logger.info(f"[{host}] 🚀 Initializing swarm on {self.advertise_addr}")
            result = self.engine.cluster_init(host, self.advertise_addr)
            if not result.success:
                raise ClusterError.from_result("Swarm initialization failed", result)
            status = self.engine.swarm_status(host)
            if not (status.is_active and status.control_available):
                raise ClusterError(
                    f"Swarm is not active after initialization (state: {status.local_node_state})",
                    host=host.address,
                    operation="Initialize swarm",
                )

        self.tracker.advance(host, BootstrapState.CLUSTER_MEMBER)

        if self.config.swarm_autolock and status.autolock is not True:
            result = self.engine.cluster_update_autolock(host)
            if result.success:
                logger.info(f"[{host}] 🔑 Swarm autolock enabled; store the unlock key from 'docker swarm unlock-key'")
            else:
                logger.warning(f"[{host}] ⚠️ Failed to enable swarm autolock")
        return status

    def ensure_network(self, host: Host) -> None:
        """Create the shared overlay network on the manager if it is missing.

        Raises:
            ClusterError: If the network cannot be created
        """
        name = self.config.overlay_network_name
        if self.engine.network_exists(host, name):
            logger.info(f"[{host}] ✅ Overlay network '{name}' already exists")
            return
        result = self.engine.network_create(host, name, encrypted=self.config.overlay_network_encrypted)
        if not result.success:
            raise ClusterError.from_result(f"Failed to create overlay network '{name}'", result)

    def fetch_token(self, host: Host) -> JoinToken:
        """Fetch the worker join token once per run.

        Raises:
            ClusterError: If the token cannot be retrieved
        """
        if self.token is not None:
            return self.token
        token = self.engine.cluster_join_token(host)
        logger.info(f"[{host}] 🔑 Worker join token: {token}")
        self.token = token
        return token

    def is_member_of_this_cluster(self, status: SwarmStatus) -> bool:
        return status.is_active and manager_endpoint(self.advertise_addr) in status.remote_managers

    def ensure_worker(self, host: Host) -> None:
        """Join a worker to the manager's swarm, leaving a foreign swarm first.

        Raises:
            ClusterConflictError: If leaving a foreign swarm fails
            JoinTimeoutError: If the manager control port stays unreachable
            ClusterJoinError: If the join is rejected or does not take effect
        """
        if self.token is None:
            raise ClusterError("Worker join requested before the join token was fetched", host=host.address)

        status = self.engine.swarm_status(host)
        if self.is_member_of_this_cluster(status):
            logger.info(f"[{host}] ✅ Already a member of this swarm (node {status.node_id})")
            self.tracker.advance(host, BootstrapState.CLUSTER_MEMBER)
            return

        if not status.is_inactive:
            logger.warning(
                f"[{host}] ⚠️ Node is in swarm state '{status.local_node_state}' "
                f"outside this cluster; leaving before join"
            )
            result = self.engine.cluster_leave(host)
            if not result.success:
                raise ClusterConflictError.from_result(
                    "Failed to leave the existing swarm", result
                )
            self.tracker.reset(host)

        self.wait_for_manager_port(host)

        logger.info(f"[{host}] 🚀 Joining swarm at {manager_endpoint(self.advertise_addr)}")
        result = self.engine.cluster_join(host, self.token, self.advertise_addr)
        if not result.success:
            raise ClusterJoinError.from_result(
                "Join rejected by the manager; check that the worker join token is valid", result
            )

        status = self.engine.swarm_status(host)
        if not status.is_active:
            raise ClusterJoinError(
                f"Node is not active after join (state: {status.local_node_state})",
                host=host.address,
                operation="Join swarm as worker",
            )
        self.tracker.advance(host, BootstrapState.CLUSTER_MEMBER)
        logger.info(f"[{host}] ✅ Joined swarm as worker")

    def wait_for_manager_port(self, host: Host) -> None:
        """Check from the worker that the manager control port accepts connections."""
        kwargs = {"sleep": self.sleep} if self.sleep else {}
        outcome = self.port_check_policy.run(
            lambda attempt: self.engine.port_reachable(host, self.advertise_addr),
            **kwargs,
        )
        if not outcome.succeeded:
            raise JoinTimeoutError(
                f"Manager control port unreachable at {manager_endpoint(self.advertise_addr)} "
                f"after {outcome.attempts} attempts",
                host=host.address,
                operation="Check manager connectivity",
            )
