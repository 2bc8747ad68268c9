"""
SSH connection management using paramiko with one cached session per host.
"""
import logging
import os
import posixpath
import socket
import stat
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import paramiko

from .swarm.errors import TransportError

logger = logging.getLogger("swarm.ssh")

LineCallback = Callable[[str], None]

_KEY_CLASSES = (paramiko.Ed25519Key, paramiko.RSAKey, paramiko.ECDSAKey)


def load_private_key(key_path: str) -> paramiko.PKey:
    """Load a private key, trying Ed25519, RSA then ECDSA.

    Raises:
        TransportError: If the key cannot be read in any supported format
    """
    path = os.path.expanduser(key_path)
    last_error: Optional[Exception] = None
    for key_cls in _KEY_CLASSES:
        try:
            return key_cls.from_private_key_file(path)
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
        except OSError as e:
            raise TransportError(f"Cannot read SSH private key {path}: {e}") from e
    raise TransportError(f"Unsupported private key format for {path}: {last_error}")


class SSHConnection:
    """SSH session to a single host with exec and SFTP copy."""

    def __init__(
        self,
        host: str,
        username: str,
        key_path: str,
        port: int = 22,
        timeout: int = 30,
    ):
        """Initialize SSH connection.

        Args:
            host: Remote host to connect to
            username: Username for authentication
            key_path: Path to SSH private key
            port: SSH port (default: 22)
            timeout: Connection timeout in seconds (default: 30)
        """
        self.host = host
        self.username = username
        self.key_path = os.path.expanduser(key_path)
        self.port = port
        self.timeout = timeout
        self.client: Optional[paramiko.SSHClient] = None

    def connect(self) -> None:
        """Open the session.

        Raises:
            TransportError: If authentication or the TCP connection fails
        """
        try:
            pkey = load_private_key(self.key_path)
        except TransportError as e:
            raise TransportError(e.message, host=self.host, operation="connect") from e
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        logger.debug(f"Connecting to {self.username}@{self.host}:{self.port}")
        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.username,
                pkey=pkey,
                look_for_keys=False,
                allow_agent=False,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
            )
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise TransportError(
                f"Cannot connect to {self.username}@{self.host}:{self.port}: {e}",
                host=self.host,
                operation="connect",
            ) from e
        self.client = client

    @property
    def is_active(self) -> bool:
        if self.client is None:
            return False
        transport = self.client.get_transport()
        return bool(transport and transport.is_active())

    def execute(
        self,
        command: str,
        timeout: Optional[int] = None,
        on_line: Optional[LineCallback] = None,
    ) -> Tuple[int, str]:
        """Run a command, streaming combined stdout/stderr line by line.

        Args:
            command: Shell command to run on the remote host
            timeout: Seconds without output before the command is abandoned
            on_line: Called with each output line as it arrives

        Returns:
            tuple: (exit_code, combined output)

        Raises:
            TransportError: If the session drops or the command times out
        """
        if not self.is_active:
            self.connect()
        lines = []
        channel = None
        try:
            channel = self.client.get_transport().open_session()
            channel.set_combine_stderr(True)
            if timeout:
                channel.settimeout(timeout)
            channel.exec_command(command)
            stdout = channel.makefile('r', encoding='utf-8', errors='replace')
            for raw in stdout:
                line = raw.rstrip('\r\n')
                lines.append(line)
                if on_line:
                    on_line(line)
            exit_code = channel.recv_exit_status()
        except socket.timeout as e:
            raise TransportError(
                f"Command timed out after {timeout}s",
                host=self.host,
                operation=command.split(' ', 1)[0],
                output="\n".join(lines),
            ) from e
        except (paramiko.SSHException, socket.error, EOFError) as e:
            raise TransportError(
                f"SSH session to {self.host} failed: {e}",
                host=self.host,
                operation="exec",
                output="\n".join(lines),
            ) from e
        finally:
            if channel is not None:
                channel.close()
        return exit_code, "\n".join(lines)

    def put(self, local_path: str, remote_path: str) -> None:
        """Upload a file or a directory tree over SFTP.

        Raises:
            TransportError: If the transfer fails
        """
        if not self.is_active:
            self.connect()
        source = Path(local_path)
        try:
            sftp = self.client.open_sftp()
            try:
                if source.is_dir():
                    self._put_tree(sftp, source, remote_path)
                else:
                    self._ensure_remote_dir(sftp, posixpath.dirname(remote_path))
                    sftp.put(str(source), remote_path)
            finally:
                sftp.close()
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                f"Failed to upload {local_path} to {self.host}:{remote_path}: {e}",
                host=self.host,
                operation="copy",
            ) from e

    def _put_tree(self, sftp: paramiko.SFTPClient, source: Path, remote_root: str) -> None:
        self._ensure_remote_dir(sftp, remote_root)
        for entry in sorted(source.iterdir()):
            target = posixpath.join(remote_root, entry.name)
            if entry.is_dir():
                self._put_tree(sftp, entry, target)
            else:
                sftp.put(str(entry), target)
                if os.access(entry, os.X_OK):
                    sftp.chmod(target, 0o755)

    @staticmethod
    def _ensure_remote_dir(sftp: paramiko.SFTPClient, path: str) -> None:
        if not path or path == '/':
            return
        try:
            exists = stat.S_ISDIR(sftp.stat(path).st_mode)
        except IOError:
            exists = False
        if exists:
            return
        SSHConnection._ensure_remote_dir(sftp, posixpath.dirname(path))
        sftp.mkdir(path)

    def close(self) -> None:
        """Close the SSH connection."""
        if self.client is not None:
            self.client.close()
            self.client = None


class ConnectionPool:
    """SSH transport keeping one session per host for the duration of a run."""

    def __init__(
        self,
        username: str,
        key_path: str,
        port: int = 22,
        connect_timeout: int = 30,
    ):
        self.username = username
        self.key_path = key_path
        self.port = port
        self.connect_timeout = connect_timeout
        self.connections: Dict[str, SSHConnection] = {}
        self.lock = threading.RLock()

    def connect(self, host: str) -> SSHConnection:
        """Get a live connection to ``host``, opening one if needed."""
        with self.lock:
            conn = self.connections.get(host)
            if conn is not None and conn.is_active:
                return conn
            logger.debug(f"Creating new SSH connection to {self.username}@{host}")
            conn = SSHConnection(
                host=host,
                username=self.username,
                key_path=self.key_path,
                port=self.port,
                timeout=self.connect_timeout,
            )
            conn.connect()
            self.connections[host] = conn
            return conn

    def exec(
        self,
        host: str,
        command: str,
        timeout: Optional[int] = None,
        on_line: Optional[LineCallback] = None,
    ) -> Tuple[int, str]:
        return self.connect(host).execute(command, timeout=timeout, on_line=on_line)

    def copy(self, host: str, local_path: str, remote_path: str) -> None:
        self.connect(host).put(local_path, remote_path)

    def disconnect(self, host: str) -> None:
        """Drop the cached session so the next command logs in afresh."""
        with self.lock:
            conn = self.connections.pop(host, None)
            if conn is not None:
                conn.close()

    def close_all(self) -> None:
        """Close all connections in the pool."""
        with self.lock:
            for conn in self.connections.values():
                try:
                    conn.close()
                except Exception as e:
                    logger.debug(f"Error closing SSH connection to {conn.host}: {e}")
            self.connections.clear()


def get_ssh_pool(config) -> ConnectionPool:
    """Create the SSH connection pool for a run from a SwarmConfig."""
    return ConnectionPool(
        username=config.ssh_user,
        key_path=config.key_path,
        port=config.ssh_port,
        connect_timeout=config.ssh_connect_timeout,
    )
