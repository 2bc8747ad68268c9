import logging

import pytest
from conftest import MANAGER

from swarmctl.config import SwarmConfig
from swarmctl.modules.swarm.engine import DockerEngine
from swarmctl.modules.swarm.errors import StackConvergenceTimeout, StackDeployError
from swarmctl.modules.swarm.executor import RemoteExecutor
from swarmctl.modules.swarm.installer import ASSETS_DIR
from swarmctl.modules.swarm.models import Host, HostRole, ServiceStatus, StackStatus
from swarmctl.modules.swarm.stacks import StackDeployer, desired_replicas, stack_ready
from swarmctl.utils import RetryPolicy

HOST = Host(MANAGER, HostRole.MANAGER)


@pytest.fixture
def deployer(cluster, config, fake_sleep):
    return StackDeployer(DockerEngine(RemoteExecutor(cluster)), config, sleep=fake_sleep)


def test_all_enabled_stacks_deploy_and_become_ready(deployer, cluster):
    deployments = deployer.deploy_all(HOST)

    assert [d.name for d in deployments] == ["nexus", "nginx", "monitoring"]
    assert all(d.status == StackStatus.READY for d in deployments)
    assert all(d.attempts == 1 for d in deployments)
    assert cluster.commands_matching(
        "docker stack deploy -c /opt/swarm-setup/stacks/nexus/docker-compose.yml nexus"
    )
    assert cluster.commands_matching(". /opt/swarm-setup/stack.env")


def test_disabled_stack_is_skipped(cluster, key_file, fake_sleep):
    config = SwarmConfig(
        ssh_private_key_path=str(key_file),
        manager_host=MANAGER,
        manager_advertise_addr=MANAGER,
        deploy_ingress_stack=False,
    )
    deployer = StackDeployer(DockerEngine(RemoteExecutor(cluster)), config, sleep=fake_sleep)

    deployments = deployer.deploy_all(HOST)

    assert [d.name for d in deployments] == ["nexus", "monitoring"]
    assert cluster.commands_matching("docker stack deploy -c /opt/swarm-setup/stacks/nginx") == []


def test_convergence_timeout_is_recorded_and_next_stack_continues(deployer, cluster, config, sleeps):
    cluster.never_ready.add("nginx")

    deployments = deployer.deploy_all(HOST)

    statuses = {d.name: d.status for d in deployments}
    assert statuses == {
        "nexus": StackStatus.READY,
        "nginx": StackStatus.TIMED_OUT,
        "monitoring": StackStatus.READY,
    }
    assert len(deployer.degradations) == 1
    timeout = deployer.degradations[0]
    assert isinstance(timeout, StackConvergenceTimeout)
    assert not timeout.fatal
    assert timeout.attempts == config.readiness_attempts
    assert len(sleeps) == config.readiness_attempts - 1
    assert set(sleeps) == {config.readiness_delay}


def test_failed_deploy_continues_then_raises(deployer, cluster):
    cluster.fail(MANAGER, "docker stack deploy -c /opt/swarm-setup/stacks/nexus", exit_code=1,
                 output="failed to create service nexus_nexus")

    with pytest.raises(StackDeployError) as exc:
        deployer.deploy_all(HOST)

    statuses = {d.name: d.status for d in deployer.deployments}
    assert statuses["nexus"] == StackStatus.FAILED
    assert statuses["nginx"] == StackStatus.READY
    assert statuses["monitoring"] == StackStatus.READY
    assert exc.value.exit_code == 8
    assert "nexus_nexus" in str(exc.value)


def test_readiness_uses_injected_policy(cluster, config, fake_sleep, sleeps):
    cluster.never_ready.add("nexus")
    deployer = StackDeployer(
        DockerEngine(RemoteExecutor(cluster)), config,
        policy=RetryPolicy(attempts=3, delay=7), sleep=fake_sleep,
    )

    deployer.deploy_all(HOST)

    assert deployer.deployments[0].attempts == 3
    assert sleeps == [7, 7]


def test_stack_ready_requires_a_converged_service():
    assert not stack_ready([])
    assert not stack_ready([ServiceStatus("a", replicas="0/1"), ServiceStatus("b", replicas="0/0")])
    assert stack_ready([ServiceStatus("a", replicas="0/1"), ServiceStatus("b", replicas="2/2")])
    assert stack_ready([ServiceStatus("node-exporter", mode="global", replicas="3/3")])


def test_desired_replicas_read_from_packaged_compose_files():
    monitoring = desired_replicas(ASSETS_DIR / "stacks" / "monitoring" / "docker-compose.yml")

    assert monitoring == {"prometheus": "1", "grafana": "1", "node-exporter": "global"}


def test_desired_replicas_missing_file(tmp_path):
    assert desired_replicas(tmp_path / "missing.yml") == {}


def test_convergence_timeout_is_logged_as_error(deployer, cluster, caplog):
    cluster.never_ready.add("monitoring")

    with caplog.at_level(logging.INFO, logger="swarm.stacks"):
        deployer.deploy_all(HOST)

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "Stack 'monitoring' did not converge" in errors[0].getMessage()
    assert deployer.deployments[-1].status == StackStatus.TIMED_OUT
