"""Configuration management for the swarmctl application.

Options are read from an env file with python-dotenv, defaulted by a pure
resolver, validated, and only then turned into a frozen :class:`SwarmConfig`
that is passed by reference to every component. The process environment is
never read or modified.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .modules.swarm.errors import ConfigurationError
from .modules.swarm.models import Inventory
from .utils import redact_sensitive_data

logger = logging.getLogger("swarm.config")

DEFAULT_ENV_FILE = ".env"
FALLBACK_ENV_FILE = "env"

TRUE_VALUES = ("true", "yes", "1")


def _option(default, *env: str, kind: str = "str", required: bool = False, description: str = ""):
    """Declare a config field together with its env-file keys."""
    return Field(
        default=default,
        description=description,
        json_schema_extra={"env": list(env), "kind": kind, "required": required},
    )


class SwarmConfig(BaseModel):
    """Immutable snapshot of every recognized option."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # SSH
    ssh_user: str = _option(
        "ubuntu", "SSH_USER", required=True,
        description="SSH username on every host",
    )
    ssh_private_key_path: str = _option(
        "~/.ssh/aws-swarm.pem", "SSH_PRIVATE_KEY_PATH", "SSH_PRIVATE_KEY", required=True,
        description="Path to the SSH private key",
    )
    ssh_port: int = _option(22, "SSH_PORT", kind="port", description="SSH port on every host")
    ssh_connect_timeout: int = _option(
        30, "SSH_CONNECT_TIMEOUT", kind="int",
        description="SSH connection timeout in seconds",
    )
    command_timeout: int = _option(
        900, "COMMAND_TIMEOUT", kind="int",
        description="Seconds a remote command may stay silent before it is abandoned",
    )

    # Hosts
    manager_host: str = _option(
        "", "MANAGER_HOST", kind="host", required=True,
        description="Address used to reach the manager over SSH",
    )
    worker_hosts: str = _option(
        "", "WORKER_HOSTS", kind="hosts",
        description="Comma-separated worker addresses",
    )
    manager_advertise_addr: str = _option(
        "", "MANAGER_ADVERTISE_ADDR", kind="ip", required=True,
        description="IPv4 address the manager advertises to the swarm",
    )

    # Swarm
    swarm_autolock: bool = _option(True, "SWARM_AUTOLOCK", kind="bool", description="Enable swarm autolock")
    overlay_network_name: str = _option("public", "OVERLAY_NETWORK_NAME", description="Shared overlay network")
    overlay_network_encrypted: bool = _option(
        True, "OVERLAY_NETWORK_ENCRYPTED", kind="bool",
        description="Encrypt overlay network traffic",
    )

    # Stacks
    deploy_registry_stack: bool = _option(
        True, "DEPLOY_REGISTRY_STACK", "DEPLOY_NEXUS", kind="bool",
        description="Deploy the artifact registry stack",
    )
    deploy_ingress_stack: bool = _option(
        True, "DEPLOY_INGRESS_STACK", "DEPLOY_NGINX", kind="bool",
        description="Deploy the ingress proxy stack",
    )
    deploy_monitoring_stack: bool = _option(
        True, "DEPLOY_MONITORING_STACK", "DEPLOY_MONITORING", kind="bool",
        description="Deploy the monitoring stack",
    )

    # Remote layout
    remote_setup_dir: str = _option(
        "/opt/swarm-setup", "REMOTE_SETUP_DIR", kind="path",
        description="Remote directory for scripts and stack files",
    )
    remote_data_dir: str = _option(
        "/opt/swarm-data", "REMOTE_DATA_DIR", kind="path",
        description="Remote directory for persistent stack data",
    )

    # Ports
    registry_port: int = _option(8081, "REGISTRY_PORT", "NEXUS_PORT", kind="port", description="Registry UI port")
    http_port: int = _option(80, "HTTP_PORT", "NGINX_HTTP_PORT", kind="port", description="Ingress HTTP port")
    https_port: int = _option(443, "HTTPS_PORT", "NGINX_HTTPS_PORT", kind="port", description="Ingress HTTPS port")
    dashboard_port: int = _option(3000, "DASHBOARD_PORT", "GRAFANA_PORT", kind="port", description="Dashboard port")
    metrics_port: int = _option(9090, "METRICS_PORT", "PROMETHEUS_PORT", kind="port", description="Metrics port")

    # Dashboard credentials
    dashboard_admin_user: str = _option(
        "admin", "DASHBOARD_ADMIN_USER", "GRAFANA_ADMIN_USER",
        description="Dashboard admin user",
    )
    dashboard_admin_password: str = _option(
        "admin", "DASHBOARD_ADMIN_PASSWORD", "GRAFANA_ADMIN_PASSWORD",
        description="Dashboard admin password (change it)",
    )

    # Readiness and probes
    readiness_attempts: int = _option(
        30, "READINESS_ATTEMPTS", kind="int",
        description="Readiness polls per stack",
    )
    readiness_delay: int = _option(2, "READINESS_DELAY", kind="int", description="Seconds between readiness polls")
    probe_timeout: int = _option(5, "PROBE_TIMEOUT", kind="int", description="Connectivity probe timeout in seconds")

    log_level: int = _option(3, "LOG_LEVEL", kind="level", description="1=ERROR 2=WARN 3=INFO 4=DEBUG")

    @property
    def key_path(self) -> str:
        return os.path.expanduser(self.ssh_private_key_path)

    @property
    def inventory(self) -> Inventory:
        return Inventory.from_addresses(self.manager_host, self.worker_hosts)

    @classmethod
    def from_options(cls, options: Mapping[str, str]) -> "SwarmConfig":
        """Build the typed snapshot from validated, resolved options.

        Raises:
            ConfigurationError: If a value cannot be coerced to its field type
        """
        values = {}
        for spec in option_schema():
            raw = options.get(spec.field, "")
            if spec.kind == "bool":
                values[spec.field] = raw.strip().lower() in TRUE_VALUES
            else:
                values[spec.field] = raw.strip() if isinstance(raw, str) else raw
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def stack_env(self) -> Dict[str, str]:
        """Variables rendered into the env file sourced by ``docker stack deploy``."""
        return {
            "DATA_DIR": self.remote_data_dir,
            "OVERLAY_NETWORK_NAME": self.overlay_network_name,
            "REGISTRY_PORT": str(self.registry_port),
            "HTTP_PORT": str(self.http_port),
            "HTTPS_PORT": str(self.https_port),
            "DASHBOARD_PORT": str(self.dashboard_port),
            "METRICS_PORT": str(self.metrics_port),
            "DASHBOARD_ADMIN_USER": self.dashboard_admin_user,
            "DASHBOARD_ADMIN_PASSWORD": self.dashboard_admin_password,
        }

    def masked(self) -> Dict[str, object]:
        return redact_sensitive_data(self.model_dump())


@dataclass(frozen=True)
class OptionSpec:
    """Schema entry of one option."""
    field: str
    env: Tuple[str, ...]
    kind: str
    required: bool
    default: str
    description: str

    @property
    def primary_key(self) -> str:
        return self.env[0]


def _as_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def option_schema() -> List[OptionSpec]:
    """Describe every option from the SwarmConfig field declarations."""
    schema = []
    for name, info in SwarmConfig.model_fields.items():
        extra = info.json_schema_extra or {}
        schema.append(OptionSpec(
            field=name,
            env=tuple(extra.get("env", [name.upper()])),
            kind=extra.get("kind", "str"),
            required=bool(extra.get("required", False)),
            default=_as_text(info.default),
            description=info.description or "",
        ))
    return schema


def resolve_options(
    raw: Mapping[str, Optional[str]],
    schema: Optional[List[OptionSpec]] = None,
) -> Mapping[str, str]:
    """Map env-file keys onto option fields and fill in defaults.

    The first key of an option that is present and non-empty wins; legacy keys
    are consulted after the primary key. Unknown keys are ignored.

    Args:
        raw: Key/value pairs as read from the env file
        schema: Option schema (defaults to :func:`option_schema`)

    Returns:
        Read-only mapping of field name to string value
    """
    resolved = {}
    for spec in schema if schema is not None else option_schema():
        value = None
        for key in spec.env:
            candidate = raw.get(key)
            if candidate is not None and str(candidate).strip() != "":
                value = str(candidate).strip()
                break
        resolved[spec.field] = value if value is not None else spec.default
    return MappingProxyType(resolved)


def find_env_file(path: Optional[Union[str, Path]] = None) -> Path:
    """Locate the env file, falling back from ``.env`` to ``env``.

    Raises:
        ConfigurationError: If no env file exists
    """
    candidates = [Path(path)] if path else []
    if not path or str(path) == DEFAULT_ENV_FILE:
        candidates = [Path(DEFAULT_ENV_FILE), Path(FALLBACK_ENV_FILE)]
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    tried = ", ".join(str(c) for c in candidates)
    raise ConfigurationError(
        f"Configuration file not found (tried: {tried}). "
        f"Run 'swarmctl init-config {DEFAULT_ENV_FILE}' to create one."
    )


def load_options(path: Optional[Union[str, Path]] = None) -> Mapping[str, str]:
    """Read the env file and resolve every option to a string."""
    env_file = find_env_file(path)
    logger.info(f"📄 Loading configuration from {env_file}")
    raw = dotenv_values(env_file)
    unknown = sorted(set(raw) - {key for spec in option_schema() for key in spec.env})
    if unknown:
        logger.debug(f"Ignoring unrecognized keys: {', '.join(unknown)}")
    return resolve_options(raw)


def render_template() -> str:
    """Render an env-file template listing every option with its default."""
    lines = ["# swarmctl configuration", ""]
    for spec in option_schema():
        comment = spec.description
        if spec.required:
            comment += " (required)"
        if len(spec.env) > 1:
            comment += f" [also: {', '.join(spec.env[1:])}]"
        lines.append(f"# {comment}")
        lines.append(f"{spec.primary_key}={spec.default}")
        lines.append("")
    return "\n".join(lines)


def load_config(path: Optional[Union[str, Path]] = None) -> SwarmConfig:
    """Load, validate and freeze the configuration.

    Raises:
        ConfigurationError: If the file is missing or any option is invalid
    """
    from .modules.validate import validate

    options = load_options(path)
    errors = validate(options)
    if errors:
        raise ConfigurationError(
            f"Configuration validation failed with {len(errors)} error(s)",
            field_errors=errors,
        )
    logger.info("✅ Configuration validation passed")
    return SwarmConfig.from_options(options)
