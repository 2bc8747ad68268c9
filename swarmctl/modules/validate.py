"""
Configuration validation.

Every check runs; problems are accumulated as FieldError entries and the
configuration is rejected iff at least one was found.
"""
import logging
import os
import re
from dataclasses import dataclass
from typing import List, Mapping, Optional

from .swarm.models import split_hosts

logger = logging.getLogger("swarm.validate")

IP_RE = re.compile(r'[0-9]{1,3}(\.[0-9]{1,3}){3}')
HOSTNAME_RE = re.compile(r'[a-zA-Z0-9.-]+')
PORT_RE = re.compile(r'[0-9]+')
BOOL_VALUES = ("true", "false", "yes", "no", "1", "0")
LOG_LEVELS = ("1", "2", "3", "4")
INSECURE_PASSWORDS = ("admin", "password", "")


@dataclass(frozen=True)
class FieldError:
    """A single configuration problem."""
    field: str
    key: str
    message: str

    def __str__(self) -> str:
        return f"{self.key}: {self.message}"


def validate_ip(value: str) -> bool:
    """Return True for a dotted-quad IPv4 address with every octet <= 255."""
    if not value or not IP_RE.fullmatch(value):
        return False
    return all(int(octet) <= 255 for octet in value.split('.'))


def validate_ip_or_hostname(value: str) -> bool:
    """Return True for an IPv4 address or a plain hostname."""
    if not value:
        return False
    return validate_ip(value) or bool(HOSTNAME_RE.fullmatch(value))


def validate_port(value: str) -> bool:
    """Return True for a purely numeric port in 1..65535."""
    value = str(value) if value is not None else ""
    if not PORT_RE.fullmatch(value):
        return False
    return 1 <= int(value) <= 65535


def _key_readable(path: str) -> Optional[str]:
    expanded = os.path.expanduser(path)
    if not os.path.isfile(expanded):
        return f"SSH private key not found: {expanded}"
    if not os.access(expanded, os.R_OK):
        return f"SSH private key is not readable: {expanded}"
    return None


def validate(options: Mapping[str, str], schema=None) -> List[FieldError]:
    """Validate resolved options.

    Args:
        options: Resolved option mapping (field name -> string)
        schema: Option schema; defaults to the SwarmConfig schema

    Returns:
        List of FieldError; empty when the configuration is usable
    """
    if schema is None:
        from ..config import option_schema
        schema = option_schema()

    errors: List[FieldError] = []

    def fail(spec, message: str) -> None:
        errors.append(FieldError(spec.field, spec.primary_key, message))

    for spec in schema:
        value = (options.get(spec.field) or "").strip()

        if spec.required and not value:
            fail(spec, "is required")
            continue
        if not value:
            continue

        if spec.kind == "port" and not validate_port(value):
            fail(spec, f"invalid port '{value}' (must be 1-65535)")
        elif spec.kind == "ip" and not validate_ip(value):
            fail(spec, f"invalid IPv4 address '{value}'")
        elif spec.kind == "host" and not validate_ip_or_hostname(value):
            fail(spec, f"invalid IP address or hostname '{value}'")
        elif spec.kind == "hosts":
            for entry in split_hosts(value):
                if not validate_ip_or_hostname(entry):
                    fail(spec, f"invalid worker host '{entry}'")
        elif spec.kind == "bool" and value.lower() not in BOOL_VALUES:
            fail(spec, f"invalid boolean '{value}' (use true/false)")
        elif spec.kind == "level" and value not in LOG_LEVELS:
            fail(spec, f"invalid log level '{value}' (must be 1-4)")
        elif spec.kind == "path" and not value.startswith("/"):
            fail(spec, f"must be an absolute path, got '{value}'")
        elif spec.kind == "int" and not (PORT_RE.fullmatch(value) and int(value) > 0):
            fail(spec, f"must be a positive integer, got '{value}'")

    key_path = (options.get("ssh_private_key_path") or "").strip()
    if key_path:
        problem = _key_readable(key_path)
        if problem:
            spec = next(s for s in schema if s.field == "ssh_private_key_path")
            fail(spec, problem)

    manager = (options.get("manager_host") or "").strip()
    hosts = ([manager] if manager else []) + split_hosts(options.get("worker_hosts") or "")
    seen = set()
    for host in hosts:
        if host in seen:
            spec = next(s for s in schema if s.field == "worker_hosts")
            fail(spec, f"duplicate host '{host}'")
        seen.add(host)

    if (options.get("dashboard_admin_password") or "") in INSECURE_PASSWORDS:
        logger.warning("⚠️ Dashboard admin password is insecure; set DASHBOARD_ADMIN_PASSWORD")

    for error in errors:
        logger.error(f"❌ {error}")
    return errors
