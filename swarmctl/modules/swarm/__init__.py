"""
Docker Swarm bootstrap.

Brings a manager and its workers from a bare operating system to a running
swarm with the registry, ingress and monitoring stacks deployed.
"""

from .models import (
    BootstrapState,
    ExecutionResult,
    Host,
    HostRole,
    Inventory,
    JoinToken,
    NodeStateTracker,
    RunReport,
    Severity,
    StackDeployment,
    StackStatus,
    SwarmStatus,
)
from .errors import (
    INTERRUPTED_EXIT_CODE,
    ClusterConflictError,
    ClusterError,
    ClusterJoinError,
    ConfigurationError,
    ConnectivityProbeFailure,
    EngineInstallError,
    JoinTimeoutError,
    StackConvergenceTimeout,
    StackDeployError,
    SwarmBootstrapError,
    TransportError,
    WorkspacePreparationError,
)
from .executor import RemoteExecutor
from .engine import DockerEngine
from .deploy import ClusterBootstrap

__all__ = [
    # Models
    'BootstrapState',
    'ExecutionResult',
    'Host',
    'HostRole',
    'Inventory',
    'JoinToken',
    'NodeStateTracker',
    'RunReport',
    'Severity',
    'StackDeployment',
    'StackStatus',
    'SwarmStatus',

    # Errors
    'INTERRUPTED_EXIT_CODE',
    'ClusterConflictError',
    'ClusterError',
    'ClusterJoinError',
    'ConfigurationError',
    'ConnectivityProbeFailure',
    'EngineInstallError',
    'JoinTimeoutError',
    'StackConvergenceTimeout',
    'StackDeployError',
    'SwarmBootstrapError',
    'TransportError',
    'WorkspacePreparationError',

    # Pipeline
    'RemoteExecutor',
    'DockerEngine',
    'ClusterBootstrap',
]
