import socket

import pytest

from swarmctl.modules import ssh
from swarmctl.modules.ssh import ConnectionPool, get_ssh_pool, load_private_key
from swarmctl.modules.swarm.errors import TransportError


class StubConnection:
    """Stands in for SSHConnection so the pool can be tested without a network."""

    instances = []

    def __init__(self, host, username, key_path, port=22, timeout=30):
        self.host = host
        self.active = False
        self.closed = False
        self.commands = []
        StubConnection.instances.append(self)

    def connect(self):
        self.active = True

    @property
    def is_active(self):
        return self.active and not self.closed

    def execute(self, command, timeout=None, on_line=None):
        self.commands.append((command, timeout))
        if on_line:
            on_line("ok")
        return 0, "ok"

    def close(self):
        self.closed = True


@pytest.fixture
def pool(monkeypatch):
    StubConnection.instances = []
    monkeypatch.setattr(ssh, "SSHConnection", StubConnection)
    return ConnectionPool("ubuntu", "~/.ssh/id_ed25519")


def test_missing_key_file(tmp_path):
    with pytest.raises(TransportError) as exc:
        load_private_key(str(tmp_path / "absent"))
    assert "Cannot read SSH private key" in str(exc.value)


def test_unsupported_key_format(key_file):
    with pytest.raises(TransportError) as exc:
        load_private_key(str(key_file))
    assert "Unsupported private key format" in str(exc.value)


def test_key_error_names_host(key_file):
    connection = ssh.SSHConnection("10.0.0.10", "ubuntu", str(key_file))

    with pytest.raises(TransportError) as exc:
        connection.connect()

    assert exc.value.host == "10.0.0.10"
    assert exc.value.exit_code == 3


def test_pool_reuses_session_per_host(pool):
    lines = []
    assert pool.exec("10.0.0.10", "docker --version", timeout=60, on_line=lines.append) == (0, "ok")
    pool.exec("10.0.0.10", "docker info")
    pool.exec("10.0.0.11", "docker info")

    assert [c.host for c in StubConnection.instances] == ["10.0.0.10", "10.0.0.11"]
    assert StubConnection.instances[0].commands == [("docker --version", 60), ("docker info", None)]
    assert lines == ["ok"]


def test_disconnect_forces_new_login(pool):
    pool.exec("10.0.0.10", "true")
    first = StubConnection.instances[0]

    pool.disconnect("10.0.0.10")
    pool.exec("10.0.0.10", "true")

    assert first.closed
    assert len(StubConnection.instances) == 2


def test_close_all(pool):
    pool.exec("10.0.0.10", "true")
    pool.exec("10.0.0.11", "true")

    pool.close_all()

    assert all(c.closed for c in StubConnection.instances)
    assert pool.connections == {}


def test_pool_from_config(config):
    pool = get_ssh_pool(config)

    assert pool.username == config.ssh_user
    assert pool.port == 22
    assert pool.key_path == config.key_path


class StalledChannel:
    """Channel whose output stream times out after one line."""

    def __init__(self):
        self.closed = False
        self.timeout = None

    def set_combine_stderr(self, combine):
        pass

    def settimeout(self, timeout):
        self.timeout = timeout

    def exec_command(self, command):
        pass

    def makefile(self, mode, encoding=None, errors=None):
        def lines():
            yield "Reading package lists...\n"
            raise socket.timeout("timed out")
        return lines()

    def close(self):
        self.closed = True


class StubTransport:
    def __init__(self, channel):
        self.channel = channel

    def is_active(self):
        return True

    def open_session(self):
        return self.channel


class StubClient:
    def __init__(self, channel):
        self.transport = StubTransport(channel)

    def get_transport(self):
        return self.transport


def test_command_timeout_closes_channel():
    channel = StalledChannel()
    connection = ssh.SSHConnection("10.0.0.11", "ubuntu", "~/.ssh/id_ed25519")
    connection.client = StubClient(channel)

    with pytest.raises(TransportError) as exc:
        connection.execute("bash install_docker.sh", timeout=5)

    assert channel.closed
    assert channel.timeout == 5
    assert "timed out after 5s" in str(exc.value)
    assert "Reading package lists..." in exc.value.output
