"""Error taxonomy for the swarm bootstrap pipeline.

Fatal errors abort the remaining stages and map to a distinct CLI exit code.
Non-fatal errors are recorded in the run report and never leave the pipeline.
"""

from typing import Optional

OUTPUT_TAIL_LINES = 5


def output_tail(output: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    """Return the last non-empty lines of captured command output."""
    kept = [line for line in (output or "").splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


class SwarmBootstrapError(Exception):
    """Base class for every error raised by the bootstrap pipeline."""

    exit_code = 1
    fatal = True

    def __init__(
        self,
        message: str,
        host: Optional[str] = None,
        operation: Optional[str] = None,
        exit_status: Optional[int] = None,
        output: str = "",
    ):
        self.message = message
        self.host = host
        self.operation = operation
        self.exit_status = exit_status
        self.output = output
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.host:
            parts.append(f"[{self.host}]")
        parts.append(self.message)
        if self.operation:
            parts.append(f"(operation: {self.operation}")
            if self.exit_status is not None:
                parts[-1] += f", exit code: {self.exit_status}"
            parts[-1] += ")"
        text = " ".join(parts)
        tail = output_tail(self.output)
        if tail:
            text += f"\nLast output:\n{tail}"
        return text

    @classmethod
    def from_result(cls, message: str, result) -> "SwarmBootstrapError":
        """Build an error from a failed ExecutionResult."""
        return cls(
            message,
            host=result.host,
            operation=result.description,
            exit_status=result.exit_code,
            output=result.output,
        )


class ConfigurationError(SwarmBootstrapError):
    """Configuration could not be loaded or failed validation."""

    exit_code = 2

    def __init__(self, message: str, field_errors=None):
        self.field_errors = list(field_errors or [])
        super().__init__(message)


class TransportError(SwarmBootstrapError):
    """A host could not be reached or the SSH session failed."""

    exit_code = 3


class WorkspacePreparationError(SwarmBootstrapError):
    """Remote directories or assets could not be prepared."""

    exit_code = 4


class EngineInstallError(SwarmBootstrapError):
    """The container engine could not be installed or its daemon is unreachable."""

    exit_code = 4


class ClusterError(SwarmBootstrapError):
    """Cluster formation failed (init, overlay network, join token, join)."""

    exit_code = 5


class ClusterJoinError(ClusterError):
    """A worker failed to join the cluster."""


class ClusterConflictError(ClusterError):
    """A host is a member of an unexpected cluster or holds the wrong role."""

    exit_code = 6


class JoinTimeoutError(ClusterError):
    """The manager control port stayed unreachable from a worker."""

    exit_code = 7


class StackDeployError(SwarmBootstrapError):
    """One or more stack deploy commands failed."""

    exit_code = 8


class StackConvergenceTimeout(SwarmBootstrapError):
    """A stack did not reach its replica target within the polling budget."""

    fatal = False

    def __init__(self, stack: str, attempts: int, observed: str = ""):
        self.stack = stack
        self.attempts = attempts
        self.observed = observed
        message = f"Stack '{stack}' did not converge after {attempts} attempts"
        if observed:
            message += f" (last observed: {observed})"
        super().__init__(message)


class ConnectivityProbeFailure(SwarmBootstrapError):
    """A published service port did not answer a connectivity probe."""

    fatal = False

    def __init__(self, name: str, url: str, reason: str = ""):
        self.name = name
        self.url = url
        self.reason = reason
        message = f"{name} is not accessible at {url}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


INTERRUPTED_EXIT_CODE = 130
