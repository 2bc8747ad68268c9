"""Data models for the swarm bootstrap pipeline."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

MANAGER_CONTROL_PORT = 2377
TOKEN_VISIBLE_CHARS = 10


class HostRole(str, Enum):
    """Node roles in the swarm."""
    MANAGER = 'manager'
    WORKER = 'worker'


class BootstrapState(str, Enum):
    """Per-host bootstrap progression."""
    ENGINE_ABSENT = 'engine_absent'
    ENGINE_READY = 'engine_ready'
    CLUSTER_MEMBER = 'cluster_member'


_STATE_ORDER = {
    BootstrapState.ENGINE_ABSENT: 0,
    BootstrapState.ENGINE_READY: 1,
    BootstrapState.CLUSTER_MEMBER: 2,
}


class Severity(str, Enum):
    """How a failed execution is tallied in the run report."""
    ERROR = 'error'
    WARNING = 'warning'
    IGNORE = 'ignore'


class StackStatus(str, Enum):
    """Lifecycle of a stack deployment within one run."""
    PENDING = 'pending'
    DEPLOYED = 'deployed'
    READY = 'ready'
    TIMED_OUT = 'timed_out'
    FAILED = 'failed'


@dataclass(frozen=True)
class Host:
    """A remote host addressed by IP or hostname."""
    address: str
    role: HostRole

    @property
    def is_manager(self) -> bool:
        return self.role == HostRole.MANAGER

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class Inventory:
    """One manager plus zero or more workers, in bootstrap order."""
    manager: Host
    workers: List[Host] = field(default_factory=list)

    @property
    def hosts(self) -> List[Host]:
        return [self.manager] + list(self.workers)

    @classmethod
    def from_addresses(cls, manager: str, workers: str = "") -> 'Inventory':
        """Build an inventory from a manager address and a comma-separated worker list."""
        return cls(
            manager=Host(manager.strip(), HostRole.MANAGER),
            workers=[Host(w, HostRole.WORKER) for w in split_hosts(workers)],
        )


def split_hosts(value: str) -> List[str]:
    """Split a comma-separated host list, dropping blanks."""
    return [item.strip() for item in (value or "").split(",") if item.strip()]


@dataclass(frozen=True)
class JoinToken:
    """Worker join credential; only a short prefix is ever rendered."""
    value: str = field(repr=False)

    @property
    def masked(self) -> str:
        return f"{self.value[:TOKEN_VISIBLE_CHARS]}..."

    def __str__(self) -> str:
        return self.masked

    def __repr__(self) -> str:
        return f"JoinToken({self.masked})"


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one remote command."""
    host: str
    description: str
    command: str
    success: bool
    output: str = field(default="", repr=False)
    exit_code: int = 0
    severity: Severity = Severity.ERROR

    @property
    def counts_as_error(self) -> bool:
        return not self.success and self.severity == Severity.ERROR

    @property
    def counts_as_warning(self) -> bool:
        return not self.success and self.severity == Severity.WARNING


@dataclass(frozen=True)
class SwarmStatus:
    """Structured view of `docker info --format '{{json .Swarm}}'`."""
    local_node_state: str = 'inactive'
    control_available: bool = False
    node_id: str = ''
    node_addr: str = ''
    remote_managers: List[str] = field(default_factory=list)
    autolock: Optional[bool] = None
    error: str = ''

    @property
    def is_active(self) -> bool:
        return self.local_node_state == 'active'

    @property
    def is_inactive(self) -> bool:
        return self.local_node_state == 'inactive'

    @property
    def is_locked(self) -> bool:
        return self.local_node_state == 'locked'

    @classmethod
    def from_dict(cls, data: Dict) -> 'SwarmStatus':
        data = data or {}
        managers = [
            m.get('Addr', '') for m in (data.get('RemoteManagers') or []) if m.get('Addr')
        ]
        cluster = data.get('Cluster') or {}
        encryption = (cluster.get('Spec') or {}).get('EncryptionConfig') or {}
        autolock = encryption.get('AutoLockManagers') if cluster else None
        return cls(
            local_node_state=data.get('LocalNodeState') or 'inactive',
            control_available=bool(data.get('ControlAvailable')),
            node_id=data.get('NodeID') or '',
            node_addr=data.get('NodeAddr') or '',
            remote_managers=managers,
            autolock=autolock,
            error=data.get('Error') or '',
        )


_REPLICAS_RE = re.compile(r'^\s*(\d+)/(\d+)')


@dataclass(frozen=True)
class ServiceStatus:
    """One row of `docker service ls --format '{{json .}}'`."""
    name: str
    mode: str = ''
    replicas: str = ''

    @property
    def counts(self) -> Optional[tuple]:
        match = _REPLICAS_RE.match(self.replicas or '')
        if not match:
            return None
        return int(match.group(1)), int(match.group(2))

    @property
    def converged(self) -> bool:
        """True when running replicas equal a non-zero target ("k/k")."""
        counts = self.counts
        return counts is not None and counts[1] > 0 and counts[0] == counts[1]

    @classmethod
    def from_dict(cls, data: Dict) -> 'ServiceStatus':
        return cls(
            name=data.get('Name', ''),
            mode=data.get('Mode', ''),
            replicas=data.get('Replicas', ''),
        )


@dataclass(frozen=True)
class NodeStatus:
    """One row of `docker node ls --format '{{json .}}'`."""
    hostname: str
    status: str = ''
    availability: str = ''
    manager_status: str = ''

    @property
    def ready(self) -> bool:
        return self.status == 'Ready'

    @classmethod
    def from_dict(cls, data: Dict) -> 'NodeStatus':
        return cls(
            hostname=data.get('Hostname', ''),
            status=data.get('Status', ''),
            availability=data.get('Availability', ''),
            manager_status=data.get('ManagerStatus', ''),
        )


@dataclass
class StackDeployment:
    """A stack deployed during this run and its observed convergence."""
    name: str
    compose_path: str
    desired: Dict[str, str] = field(default_factory=dict)
    observed: Dict[str, str] = field(default_factory=dict)
    status: StackStatus = StackStatus.PENDING
    attempts: int = 0
    exit_code: Optional[int] = None
    output: str = field(default="", repr=False)

    def observed_summary(self) -> str:
        return ", ".join(f"{name}={replicas}" for name, replicas in sorted(self.observed.items()))


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one connectivity probe against a published port."""
    name: str
    url: str
    reachable: bool
    detail: str = ''


class NodeStateTracker:
    """Tracks BootstrapState per host; states only move forward unless reset."""

    def __init__(self, hosts: List[Host]):
        self._states: Dict[str, BootstrapState] = {
            host.address: BootstrapState.ENGINE_ABSENT for host in hosts
        }

    def get(self, host: Host) -> BootstrapState:
        return self._states[host.address]

    def advance(self, host: Host, state: BootstrapState) -> None:
        current = self._states[host.address]
        if _STATE_ORDER[state] < _STATE_ORDER[current]:
            raise ValueError(
                f"Cannot move {host.address} backwards from {current.value} to {state.value}"
            )
        self._states[host.address] = state

    def reset(self, host: Host) -> None:
        """Return a cluster member to EngineReady after it left its swarm."""
        if self._states[host.address] == BootstrapState.CLUSTER_MEMBER:
            self._states[host.address] = BootstrapState.ENGINE_READY

    def snapshot(self) -> Dict[str, BootstrapState]:
        return dict(self._states)


@dataclass
class RunReport:
    """Aggregated outcome of one bootstrap or verification run."""
    results: List[ExecutionResult] = field(default_factory=list)
    states: Dict[str, BootstrapState] = field(default_factory=dict)
    stacks: List[StackDeployment] = field(default_factory=list)
    probes: List[ProbeResult] = field(default_factory=list)
    degradations: List[Exception] = field(default_factory=list)
    nodes: List[NodeStatus] = field(default_factory=list)
    fatal: Optional[Exception] = None

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if r.counts_as_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for r in self.results if r.counts_as_warning) + len(self.degradations)

    @property
    def success(self) -> bool:
        return self.fatal is None

    @property
    def exit_code(self) -> int:
        if self.fatal is None:
            return 0
        return getattr(self.fatal, 'exit_code', 1)
