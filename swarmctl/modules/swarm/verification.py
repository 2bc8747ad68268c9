"""Cluster verification.

Lists nodes and stack services from the manager and probes each enabled
stack's published port over HTTP, recording outcomes in the run report.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from ...utils import RetryPolicy
from .engine import DockerEngine
from .errors import ConnectivityProbeFailure
from .models import Host, NodeStatus, ProbeResult, RunReport

logger = logging.getLogger("swarm.verification")

DEFAULT_PROBE_POLICY = RetryPolicy(attempts=2, delay=2.0)


@dataclass(frozen=True)
class Endpoint:
    """A published service port checked after deployment."""
    name: str
    port_option: str
    enabled_by: str


ENDPOINTS = (
    Endpoint("Registry", "registry_port", "deploy_registry_stack"),
    Endpoint("Ingress", "http_port", "deploy_ingress_stack"),
    Endpoint("Dashboard", "dashboard_port", "deploy_monitoring_stack"),
    Endpoint("Metrics", "metrics_port", "deploy_monitoring_stack"),
)


class Verifier:
    """Checks the state of a running cluster."""

    def __init__(
        self,
        engine: DockerEngine,
        config,
        http_get: Callable = requests.get,
        probe_policy: RetryPolicy = DEFAULT_PROBE_POLICY,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """Initialize the verifier.

        Args:
            engine: Docker wrapper bound to the run's executor
            config: Validated SwarmConfig
            http_get: Function used for HTTP probes (``requests.get`` signature)
            probe_policy: Retry budget per probe
            sleep: Sleep function used between probe attempts
        """
        self.engine = engine
        self.config = config
        self.http_get = http_get
        self.probe_policy = probe_policy
        self.sleep = sleep

    def endpoints(self) -> List[tuple]:
        """Return (name, url) for every enabled stack endpoint on the manager."""
        host = self.config.manager_host
        return [
            (endpoint.name, f"http://{host}:{getattr(self.config, endpoint.port_option)}")
            for endpoint in ENDPOINTS
            if getattr(self.config, endpoint.enabled_by)
        ]

    def list_nodes(self, manager: Host) -> List[NodeStatus]:
        nodes = self.engine.node_list(manager)
        for node in nodes:
            marker = "✅" if node.ready else "⚠️"
            role = node.manager_status or "Worker"
            logger.info(f"{marker} Node {node.hostname}: {node.status}/{node.availability} ({role})")
        not_ready = [n.hostname for n in nodes if not n.ready]
        if not_ready:
            logger.warning(f"⚠️ Nodes not ready: {', '.join(not_ready)}")
        return nodes

    def list_services(self, manager: Host) -> None:
        for service in self.engine.service_list(manager):
            logger.info(f"Service {service.name}: {service.replicas} ({service.mode})")

    def probe(self, name: str, url: str) -> ProbeResult:
        """Probe one URL; any HTTP response counts as reachable."""
        def attempt(_: int) -> ProbeResult:
            try:
                response = self.http_get(url, timeout=self.config.probe_timeout)
            except requests.RequestException as e:
                return ProbeResult(name=name, url=url, reachable=False, detail=str(e))
            return ProbeResult(name=name, url=url, reachable=True, detail=f"HTTP {response.status_code}")

        kwargs = {"sleep": self.sleep} if self.sleep else {}
        result = self.probe_policy.run(attempt, until=lambda r: r.reachable, **kwargs).value
        if result.reachable:
            logger.info(f"✅ {name} is accessible at {url} ({result.detail})")
        else:
            logger.warning(f"⚠️ {ConnectivityProbeFailure(name, url, result.detail).message}")
        return result

    def verify(self, manager: Host, report: RunReport) -> RunReport:
        """Record nodes, services and probe outcomes into ``report``."""
        logger.info("🔍 Verifying cluster")
        report.nodes = self.list_nodes(manager)
        self.list_services(manager)
        for name, url in self.endpoints():
            result = self.probe(name, url)
            report.probes.append(result)
            if not result.reachable:
                report.degradations.append(ConnectivityProbeFailure(name, url, result.detail))
        self.log_access_urls()
        return report

    def log_access_urls(self) -> None:
        endpoints = self.endpoints()
        if not endpoints:
            return
        logger.info("Service access URLs:")
        for name, url in endpoints:
            logger.info(f"  {name}: {url}")
        if self.config.deploy_monitoring_stack:
            logger.info(f"  Dashboard login: {self.config.dashboard_admin_user} / [REDACTED]")
