import json
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import pytest

from swarmctl.config import SwarmConfig
from swarmctl.modules.swarm.errors import TransportError

MANAGER = "10.0.0.10"
WORKERS = ("10.0.0.11", "10.0.0.12")
WORKER_TOKEN = "SWMTKN-1-3pu6hszjas19xyp7ghgosyx9k8atbfcr8p2is99znpy26u2lkl-1awxwuwd3z9j1z3puu7rcgdbx"


@dataclass
class FakeHost:
    address: str
    docker_installed: bool = True
    daemon_running: bool = True
    swarm_state: str = "inactive"
    is_manager: bool = False
    node_id: str = ""
    remote_managers: List[str] = field(default_factory=list)
    autolock: bool = False
    port_open: bool = True
    reachable: bool = True


class FakeCluster:
    """In-memory transport that answers docker CLI commands per host."""

    def __init__(self, hosts, token: str = WORKER_TOKEN):
        self.hosts: Dict[str, FakeHost] = {h: FakeHost(h) for h in hosts}
        self.token = token
        self.networks: Set[str] = set()
        self.stacks: List[str] = []
        self.never_ready: Set[str] = set()
        self.failures: Dict[tuple, tuple] = {}
        self.commands: List[tuple] = []
        self.copies: List[tuple] = []
        self.disconnects: List[str] = []
        self.closed = 0

    # Test helpers

    def fail(self, host: str, fragment: str, exit_code: int = 1, output: str = "error") -> None:
        self.failures[(host, fragment)] = (exit_code, output)

    def commands_matching(self, fragment: str, host: Optional[str] = None) -> List[str]:
        return [
            cmd for h, cmd in self.commands
            if fragment in cmd and (host is None or h == host)
        ]

    def join_foreign_swarm(self, host: str, manager_addr: str = "192.168.99.1:2377") -> None:
        node = self.hosts[host]
        node.swarm_state = "active"
        node.node_id = f"foreign-{host}"
        node.remote_managers = [manager_addr]

    # Transport interface

    def exec(self, host, command, timeout=None, on_line=None):
        self.commands.append((host, command))
        node = self.hosts[host]
        if not node.reachable:
            raise TransportError(f"Cannot connect to ubuntu@{host}:22", host=host, operation="connect")
        for (fail_host, fragment), outcome in self.failures.items():
            if fail_host == host and fragment in command:
                exit_code, output = outcome
                break
        else:
            exit_code, output = self._dispatch(node, command)
        if on_line:
            for line in output.splitlines():
                on_line(line)
        return exit_code, output

    def copy(self, host, local_path, remote_path):
        if not self.hosts[host].reachable:
            raise TransportError(f"Cannot connect to ubuntu@{host}:22", host=host, operation="copy")
        self.copies.append((host, local_path, remote_path))

    def disconnect(self, host):
        self.disconnects.append(host)

    def close_all(self):
        self.closed += 1

    # Docker simulation

    def _manager(self) -> Optional[FakeHost]:
        return next((h for h in self.hosts.values() if h.is_manager), None)

    def _swarm_json(self, node: FakeHost) -> str:
        data = {
            "NodeID": node.node_id,
            "NodeAddr": node.address if node.swarm_state == "active" else "",
            "LocalNodeState": node.swarm_state,
            "ControlAvailable": node.is_manager,
            "Error": "",
            "RemoteManagers": [{"NodeID": "m", "Addr": a} for a in node.remote_managers] or None,
        }
        if node.is_manager:
            data["Cluster"] = {"Spec": {"EncryptionConfig": {"AutoLockManagers": node.autolock}}}
        return json.dumps(data)

    def _service_rows(self, stack: str) -> List[dict]:
        if stack not in self.stacks:
            return []
        replicas = "0/1" if stack in self.never_ready else "1/1"
        return [{"Name": f"{stack}_{stack}", "Mode": "replicated", "Replicas": replicas}]

    def _dispatch(self, node: FakeHost, command: str):
        if command.startswith("sudo mkdir -p"):
            return 0, ""
        if command.startswith("set -a"):
            name = shlex.split(command.split("&& set +a &&", 1)[1])[-1]
            if name not in self.stacks:
                self.stacks.append(name)
            return 0, f"Creating service {name}_{name}"
        if command.startswith("timeout "):
            return (0, "") if node.port_open else (1, "Connection refused")

        tokens = shlex.split(command)
        if tokens[0] == "bash" and tokens[-1].endswith("install_docker.sh"):
            node.docker_installed = True
            node.daemon_running = True
            return 0, "Setting up docker-ce ..."
        if tokens[0] != "docker":
            return 127, f"{tokens[0]}: command not found"
        if not node.docker_installed:
            return 127, "docker: command not found"
        if tokens == ["docker", "--version"]:
            return 0, "Docker version 24.0.7, build afdd53b"
        if not node.daemon_running:
            return 1, "Cannot connect to the Docker daemon at unix:///var/run/docker.sock"

        if tokens[:2] == ["docker", "info"]:
            if tokens[-1] == "{{json .Swarm}}":
                return 0, self._swarm_json(node)
            return 0, '"24.0.7"'

        if tokens[:3] == ["docker", "swarm", "init"]:
            addr = tokens[tokens.index("--advertise-addr") + 1]
            node.swarm_state = "active"
            node.is_manager = True
            node.node_id = "manager-node"
            node.remote_managers = [f"{addr}:2377"]
            return 0, "Swarm initialized: current node (manager-node) is now a manager."
        if tokens[:3] == ["docker", "swarm", "update"]:
            node.autolock = True
            return 0, "Swarm updated.\nTo unlock a swarm manager after it restarts, run `docker swarm unlock`\n    SWMKEY-1-secret"
        if tokens[:3] == ["docker", "swarm", "join-token"]:
            return 0, self.token
        if tokens[:3] == ["docker", "swarm", "join"]:
            token = tokens[tokens.index("--token") + 1]
            manager = self._manager()
            if token != self.token or manager is None:
                return 1, "Error response from daemon: rpc error: code = InvalidArgument desc = A valid join token is necessary"
            node.swarm_state = "active"
            node.node_id = f"worker-{node.address}"
            node.remote_managers = [tokens[-1]]
            return 0, "This node joined a swarm as a worker."
        if tokens[:3] == ["docker", "swarm", "leave"]:
            node.swarm_state = "inactive"
            node.node_id = ""
            node.remote_managers = []
            return 0, "Node left the swarm."

        if tokens[:3] == ["docker", "network", "inspect"]:
            return (0, '"overlay"') if tokens[-1] in self.networks else (1, f"Error: No such network: {tokens[-1]}")
        if tokens[:3] == ["docker", "network", "create"]:
            self.networks.add(tokens[-1])
            return 0, "n1x2y3"

        if tokens[:3] == ["docker", "service", "ls"]:
            rows = []
            if "--filter" in tokens:
                stack = tokens[tokens.index("--filter") + 1].split("=", 2)[-1]
                rows = self._service_rows(stack)
            else:
                for stack in self.stacks:
                    rows.extend(self._service_rows(stack))
            return 0, "\n".join(json.dumps(r) for r in rows)
        if tokens[:3] == ["docker", "node", "ls"]:
            rows = [
                {
                    "Hostname": f"node-{h.address}",
                    "Status": "Ready",
                    "Availability": "Active",
                    "ManagerStatus": "Leader" if h.is_manager else "",
                }
                for h in self.hosts.values() if h.swarm_state == "active"
            ]
            return 0, "\n".join(json.dumps(r) for r in rows)

        return 1, f"unknown command: {command}"


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code


@pytest.fixture
def key_file(tmp_path):
    key = tmp_path / "id_ed25519"
    key.write_text("not a real key\n")
    return key


@pytest.fixture
def config(key_file):
    return SwarmConfig(
        ssh_private_key_path=str(key_file),
        manager_host=MANAGER,
        worker_hosts=",".join(WORKERS),
        manager_advertise_addr=MANAGER,
    )


@pytest.fixture
def cluster():
    return FakeCluster([MANAGER, *WORKERS])


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def http_ok():
    calls = []

    def get(url, timeout=None):
        calls.append((url, timeout))
        return FakeResponse(200)

    get.calls = calls
    return get


@pytest.fixture
def env_file(tmp_path, key_file):
    path = tmp_path / ".env"
    path.write_text(
        f"SSH_USER=ubuntu\n"
        f"SSH_PRIVATE_KEY_PATH={key_file}\n"
        f"MANAGER_HOST={MANAGER}\n"
        f"WORKER_HOSTS={','.join(WORKERS)}\n"
        f"MANAGER_ADVERTISE_ADDR={MANAGER}\n"
        f"DASHBOARD_ADMIN_PASSWORD=s3cret-pass\n"
    )
    return path
