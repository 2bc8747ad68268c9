"""Stack deployment and readiness polling."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import yaml

from ...utils import RetryPolicy
from .engine import DockerEngine
from .errors import StackConvergenceTimeout, StackDeployError
from .installer import ASSETS_DIR, STACK_ENV_FILE
from .models import Host, ServiceStatus, StackDeployment, StackStatus

logger = logging.getLogger("swarm.stacks")

COMPOSE_FILE = "docker-compose.yml"


@dataclass(frozen=True)
class StackDefinition:
    """A stack shipped with swarmctl and the option that enables it."""
    name: str
    label: str
    enabled_by: str


STACKS = (
    StackDefinition("nexus", "registry", "deploy_registry_stack"),
    StackDefinition("nginx", "ingress", "deploy_ingress_stack"),
    StackDefinition("monitoring", "monitoring", "deploy_monitoring_stack"),
)


def enabled_stacks(config) -> List[StackDefinition]:
    return [stack for stack in STACKS if getattr(config, stack.enabled_by)]


def desired_replicas(compose_file: Path) -> Dict[str, str]:
    """Read the replica target of each service from a compose file.

    Returns:
        Mapping of service name to a replica count or ``"global"``
    """
    try:
        with open(compose_file, 'r') as f:
            compose = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"⚠️ Could not read {compose_file}: {e}")
        return {}

    desired = {}
    for name, service in (compose.get('services') or {}).items():
        deploy = (service or {}).get('deploy') or {}
        if deploy.get('mode') == 'global':
            desired[name] = 'global'
        else:
            desired[name] = str(deploy.get('replicas', 1))
    return desired


def stack_ready(services: List[ServiceStatus]) -> bool:
    """A stack is ready as soon as any of its services reports k/k with k >= 1."""
    return any(service.converged for service in services)


class StackDeployer:
    """Deploys enabled stacks on the manager and waits for them to converge."""

    def __init__(
        self,
        engine: DockerEngine,
        config,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
        assets_dir: Path = ASSETS_DIR,
    ):
        self.engine = engine
        self.config = config
        self.policy = policy or RetryPolicy(
            attempts=config.readiness_attempts,
            delay=config.readiness_delay,
        )
        self.sleep = sleep
        self.assets_dir = Path(assets_dir)
        self.deployments: List[StackDeployment] = []
        self.degradations: List[StackConvergenceTimeout] = []

    def deploy_all(self, manager: Host) -> List[StackDeployment]:
        """Deploy every enabled stack in order.

        A timed-out stack is recorded and the next stack deploys. A failed deploy
        command also lets the remaining stacks deploy, then aborts the run.

        Raises:
            StackDeployError: If any ``docker stack deploy`` command failed
        """
        stacks = enabled_stacks(self.config)
        if not stacks:
            logger.info("No stacks enabled for deployment")
            return self.deployments

        failures = []
        for definition in stacks:
            deployment = self.deploy(manager, definition)
            if deployment.status == StackStatus.FAILED:
                failures.append(deployment)
            elif deployment.status == StackStatus.DEPLOYED:
                self.wait_until_ready(manager, deployment)

        if failures:
            first = failures[0]
            names = ", ".join(d.name for d in failures)
            raise StackDeployError(
                f"Failed to deploy stack(s): {names}",
                host=manager.address,
                operation=f"Deploy stack {first.name}",
                exit_status=first.exit_code,
                output=first.output,
            )
        return self.deployments

    def deploy(self, manager: Host, definition: StackDefinition) -> StackDeployment:
        setup_dir = self.config.remote_setup_dir.rstrip('/')
        compose_path = f"{setup_dir}/stacks/{definition.name}/{COMPOSE_FILE}"
        deployment = StackDeployment(
            name=definition.name,
            compose_path=compose_path,
            desired=desired_replicas(self.assets_dir / "stacks" / definition.name / COMPOSE_FILE),
        )
        self.deployments.append(deployment)

        logger.info(f"📦 Deploying {definition.label} stack '{definition.name}'")
        result = self.engine.stack_deploy(
            manager, definition.name, compose_path, f"{setup_dir}/{STACK_ENV_FILE}"
        )
        if result.success:
            deployment.status = StackStatus.DEPLOYED
        else:
            deployment.status = StackStatus.FAILED
            deployment.exit_code = result.exit_code
            deployment.output = result.output
            logger.error(f"❌ Stack '{definition.name}' failed to deploy")
        return deployment

    def wait_until_ready(self, manager: Host, deployment: StackDeployment) -> bool:
        """Poll the stack's services until one converges or the budget runs out."""
        logger.info(f"⏳ Waiting for stack '{deployment.name}' to become ready")

        def poll(attempt: int) -> List[ServiceStatus]:
            deployment.attempts = attempt
            services = self.engine.service_list(manager, deployment.name)
            deployment.observed = {s.name: s.replicas for s in services}
            logger.debug(
                f"Stack '{deployment.name}' attempt {attempt}/{self.policy.attempts}: "
                f"{deployment.observed_summary() or 'no services yet'}"
            )
            return services

        kwargs = {"sleep": self.sleep} if self.sleep else {}
        outcome = self.policy.run(poll, until=stack_ready, **kwargs)

        if outcome.succeeded:
            deployment.status = StackStatus.READY
            logger.info(f"✅ Stack '{deployment.name}' is ready ({deployment.observed_summary()})")
            return True

        deployment.status = StackStatus.TIMED_OUT
        timeout = StackConvergenceTimeout(
            deployment.name, outcome.attempts, deployment.observed_summary()
        )
        self.degradations.append(timeout)
        logger.error(f"❌ {timeout.message}")
        return False
