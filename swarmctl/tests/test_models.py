import pytest

from swarmctl.modules.swarm.errors import JoinTimeoutError, TransportError
from swarmctl.modules.swarm.models import (
    BootstrapState,
    ExecutionResult,
    Host,
    HostRole,
    Inventory,
    JoinToken,
    NodeStateTracker,
    RunReport,
    ServiceStatus,
    Severity,
    SwarmStatus,
)


def test_inventory_orders_manager_first():
    inventory = Inventory.from_addresses("10.0.0.10", " 10.0.0.11, ,10.0.0.12 ")

    assert [h.address for h in inventory.hosts] == ["10.0.0.10", "10.0.0.11", "10.0.0.12"]
    assert inventory.manager.is_manager
    assert all(w.role == HostRole.WORKER for w in inventory.workers)


def test_join_token_never_renders_in_full():
    token = JoinToken("SWMTKN-1-abcdefghijklmnopqrstuvwxyz")

    assert str(token) == "SWMTKN-1-a..."
    assert "abcdefghij" not in repr(token)
    assert "abcdefghij" not in f"{token}"


@pytest.mark.parametrize("replicas,converged", [
    ("1/1", True),
    ("3/3 (max 1 per node)", True),
    ("0/1", False),
    ("0/0", False),
    ("", False),
])
def test_service_convergence(replicas, converged):
    assert ServiceStatus("svc", replicas=replicas).converged is converged


def test_swarm_status_from_docker_info():
    status = SwarmStatus.from_dict({
        "NodeID": "abc",
        "LocalNodeState": "active",
        "ControlAvailable": True,
        "RemoteManagers": [{"NodeID": "abc", "Addr": "10.0.0.10:2377"}],
        "Cluster": {"Spec": {"EncryptionConfig": {"AutoLockManagers": False}}},
    })

    assert status.is_active
    assert status.control_available
    assert status.remote_managers == ["10.0.0.10:2377"]
    assert status.autolock is False


def test_swarm_status_of_worker_has_unknown_autolock():
    status = SwarmStatus.from_dict({"LocalNodeState": "inactive", "RemoteManagers": None})

    assert status.is_inactive
    assert status.autolock is None
    assert status.remote_managers == []


def test_tracker_only_moves_forward():
    host = Host("10.0.0.11", HostRole.WORKER)
    tracker = NodeStateTracker([host])

    tracker.advance(host, BootstrapState.CLUSTER_MEMBER)
    with pytest.raises(ValueError):
        tracker.advance(host, BootstrapState.ENGINE_READY)

    tracker.reset(host)
    assert tracker.get(host) == BootstrapState.ENGINE_READY


def test_report_counts_and_exit_code():
    report = RunReport(results=[
        ExecutionResult("h", "a", "cmd", success=False, exit_code=1),
        ExecutionResult("h", "b", "cmd", success=False, exit_code=1, severity=Severity.WARNING),
        ExecutionResult("h", "c", "cmd", success=False, exit_code=1, severity=Severity.IGNORE),
        ExecutionResult("h", "d", "cmd", success=True),
    ])

    assert report.error_count == 1
    assert report.warning_count == 1
    assert report.exit_code == 0

    report.fatal = JoinTimeoutError("Manager control port unreachable", host="h")
    assert report.exit_code == 7
    report.fatal = TransportError("Cannot connect", host="h")
    assert report.exit_code == 3


def test_error_message_includes_output_tail():
    error = TransportError(
        "Command failed", host="10.0.0.11", operation="Install Docker", exit_status=100,
        output="\n".join(f"line {i}" for i in range(10)),
    )

    text = str(error)
    assert text.startswith("[10.0.0.11] Command failed (operation: Install Docker, exit code: 100)")
    assert "line 9" in text
    assert "line 4" not in text
