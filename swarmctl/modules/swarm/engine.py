"""Docker control-plane wrappers.

Every call is a remote ``docker`` CLI invocation routed through the
:class:`RemoteExecutor`. Structured queries use ``--format '{{json ...}}'``
and are parsed here so callers only see models.
"""

import json
import logging
import shlex
from typing import List, Optional

from .errors import ClusterError
from .executor import RemoteExecutor
from .models import (
    MANAGER_CONTROL_PORT,
    ExecutionResult,
    Host,
    JoinToken,
    NodeStatus,
    ServiceStatus,
    Severity,
    SwarmStatus,
)

logger = logging.getLogger("swarm.engine")

STACK_LABEL = "com.docker.stack.namespace"
PORT_CHECK_TIMEOUT = 10


def _json_lines(output: str) -> List[dict]:
    """Parse one JSON document per line, skipping anything that is not JSON."""
    rows = []
    for line in (output or "").splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            rows.append(json.loads(line))
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparsable line: {line}")
    return rows


def manager_endpoint(advertise_addr: str) -> str:
    return f"{advertise_addr}:{MANAGER_CONTROL_PORT}"


class DockerEngine:
    """Thin wrapper around the remote docker CLI."""

    def __init__(self, executor: RemoteExecutor):
        self.executor = executor

    def engine_version(self, host: Host) -> ExecutionResult:
        return self.executor.execute(
            host, "Check Docker binary", "docker --version",
            quiet=True, severity=Severity.IGNORE,
        )

    def daemon_status(self, host: Host) -> ExecutionResult:
        return self.executor.execute(
            host, "Check Docker daemon",
            "docker info --format '{{json .ServerVersion}}'",
            quiet=True, severity=Severity.IGNORE,
        )

    def swarm_status(self, host: Host) -> SwarmStatus:
        """Read the structured swarm state of a host.

        An unreadable answer is treated as an inactive node.
        """
        result = self.executor.execute(
            host, "Read swarm status",
            "docker info --format '{{json .Swarm}}'",
            quiet=True, severity=Severity.IGNORE,
        )
        if not result.success:
            return SwarmStatus(error=result.output.strip())
        rows = _json_lines(result.output)
        if not rows:
            logger.warning(f"[{host}] ⚠️ Could not parse swarm status: {result.output.strip()}")
            return SwarmStatus(error="unparsable swarm status")
        status = SwarmStatus.from_dict(rows[0])
        logger.debug(
            f"[{host}] Swarm state={status.local_node_state} "
            f"manager={status.control_available} node_id={status.node_id}"
        )
        return status

    def cluster_init(self, host: Host, advertise_addr: str) -> ExecutionResult:
        command = shlex.join(["docker", "swarm", "init", "--advertise-addr", advertise_addr])
        return self.executor.execute(host, "Initialize swarm", command)

    def cluster_update_autolock(self, host: Host) -> ExecutionResult:
        # Output contains the unlock key.
        return self.executor.execute(
            host, "Enable swarm autolock", "docker swarm update --autolock=true",
            quiet=True, severity=Severity.WARNING,
        )

    def network_exists(self, host: Host, name: str) -> bool:
        command = shlex.join(
            ["docker", "network", "inspect", "--format", "{{json .Driver}}", name]
        )
        result = self.executor.execute(
            host, f"Check overlay network {name}", command,
            quiet=True, severity=Severity.IGNORE,
        )
        return result.success

    def network_create(self, host: Host, name: str, encrypted: bool = True) -> ExecutionResult:
        args = ["docker", "network", "create", "--driver", "overlay", "--attachable"]
        if encrypted:
            args += ["--opt", "encrypted"]
        args.append(name)
        return self.executor.execute(host, f"Create overlay network {name}", shlex.join(args))

    def cluster_join_token(self, host: Host) -> JoinToken:
        """Fetch the worker join token from the manager.

        Raises:
            ClusterError: If the command fails or prints no token
        """
        result = self.executor.execute(
            host, "Fetch worker join token", "docker swarm join-token -q worker",
            quiet=True,
        )
        if not result.success:
            raise ClusterError.from_result("Failed to retrieve worker join token", result)
        lines = result.output.strip().splitlines()
        value = lines[-1].strip() if lines else ""
        if not value:
            raise ClusterError.from_result("Manager returned an empty worker join token", result)
        return JoinToken(value)

    def cluster_join(self, host: Host, token: JoinToken, advertise_addr: str) -> ExecutionResult:
        command = shlex.join([
            "docker", "swarm", "join", "--token", token.value, manager_endpoint(advertise_addr),
        ])
        return self.executor.execute(host, "Join swarm as worker", command, redact=[token])

    def cluster_leave(self, host: Host) -> ExecutionResult:
        return self.executor.execute(host, "Leave current swarm", "docker swarm leave --force")

    def port_reachable(self, host: Host, address: str, port: int = MANAGER_CONTROL_PORT) -> bool:
        """Check from ``host`` that a TCP port on ``address`` accepts connections."""
        probe = f"cat < /dev/null > /dev/tcp/{address}/{port}"
        command = f"timeout {PORT_CHECK_TIMEOUT} bash -c {shlex.quote(probe)}"
        result = self.executor.execute(
            host, f"Check connectivity to {address}:{port}", command,
            quiet=True, severity=Severity.IGNORE,
        )
        return result.success

    def stack_deploy(self, host: Host, name: str, compose_path: str, env_file: str) -> ExecutionResult:
        command = (
            f"set -a && . {shlex.quote(env_file)} && set +a && "
            f"{shlex.join(['docker', 'stack', 'deploy', '-c', compose_path, name])}"
        )
        return self.executor.execute(host, f"Deploy stack {name}", command)

    def service_list(self, host: Host, stack: Optional[str] = None) -> List[ServiceStatus]:
        args = ["docker", "service", "ls"]
        if stack:
            args += ["--filter", f"label={STACK_LABEL}={stack}"]
        args += ["--format", "{{json .}}"]
        description = f"List services of stack {stack}" if stack else "List services"
        result = self.executor.execute(
            host, description, shlex.join(args), quiet=True, severity=Severity.IGNORE,
        )
        if not result.success:
            return []
        return [ServiceStatus.from_dict(row) for row in _json_lines(result.output)]

    def node_list(self, host: Host) -> List[NodeStatus]:
        result = self.executor.execute(
            host, "List swarm nodes", "docker node ls --format '{{json .}}'",
            quiet=True, severity=Severity.WARNING,
        )
        if not result.success:
            return []
        return [NodeStatus.from_dict(row) for row in _json_lines(result.output)]
