"""Remote command execution with logging and result aggregation.

Every remote operation of a run goes through :class:`RemoteExecutor` so that
one list of :class:`ExecutionResult` objects describes the whole run.
"""

import logging
from typing import Iterable, List, Optional

from ...utils import mask_secrets
from .errors import TransportError
from .models import ExecutionResult, Host, Severity

logger = logging.getLogger("swarm.executor")

TRANSPORT_FAILURE_EXIT_CODE = 255

_FAILURE_LEVELS = {
    Severity.ERROR: logging.ERROR,
    Severity.WARNING: logging.WARNING,
    Severity.IGNORE: logging.DEBUG,
}


class RemoteExecutor:
    """Runs commands on hosts through a transport and records every outcome."""

    def __init__(self, transport, command_timeout: Optional[int] = None):
        """Initialize the executor.

        Args:
            transport: Object providing ``exec(host, command, timeout, on_line)``
            command_timeout: Default per-command timeout in seconds
        """
        self.transport = transport
        self.command_timeout = command_timeout
        self.results: List[ExecutionResult] = []

    def execute(
        self,
        host: Host,
        description: str,
        command: str,
        quiet: bool = False,
        timeout: Optional[int] = None,
        severity: Severity = Severity.ERROR,
        redact: Iterable = (),
    ) -> ExecutionResult:
        """Execute a command on a host and record the result.

        Args:
            host: Target host
            description: Human readable name of the operation
            command: Shell command to run
            quiet: Do not relay output lines to the log
            timeout: Override of the default command timeout
            severity: How a failure is logged and tallied
            redact: Secrets to mask in the logged and recorded command

        Returns:
            ExecutionResult for the command

        Raises:
            TransportError: If the host cannot be reached or the session fails
        """
        address = host.address
        secrets = list(redact)
        shown = mask_secrets(command, secrets)

        logger.info(f"[{address}] Executing: {description}")
        logger.debug(f"[{address}] Command: {shown}")

        relay_errors = []

        def relay(line: str) -> None:
            if quiet:
                return
            try:
                logger.debug(f"[{address}]   {mask_secrets(line, secrets)}")
            except Exception as e:
                relay_errors.append(e)

        try:
            exit_code, output = self.transport.exec(
                address,
                command,
                timeout=timeout or self.command_timeout,
                on_line=relay,
            )
        except TransportError as e:
            self._record(ExecutionResult(
                host=address,
                description=description,
                command=shown,
                success=False,
                output=e.output,
                exit_code=TRANSPORT_FAILURE_EXIT_CODE,
                severity=Severity.ERROR,
            ))
            logger.error(f"[{address}] ❌ {description} failed: {e.message}")
            raise

        result = ExecutionResult(
            host=address,
            description=description,
            command=shown,
            success=exit_code == 0,
            output=mask_secrets(output, secrets),
            exit_code=exit_code,
            severity=severity,
        )
        self._record(result)

        if relay_errors:
            logger.warning(f"[{address}] Output relay failed: {relay_errors[0]}")
        if result.success:
            logger.info(f"[{address}] ✅ {description}")
        else:
            logger.log(
                _FAILURE_LEVELS[severity],
                f"[{address}] ❌ {description} failed (exit code: {exit_code})",
            )
        return result

    def _record(self, result: ExecutionResult) -> None:
        self.results.append(result)
