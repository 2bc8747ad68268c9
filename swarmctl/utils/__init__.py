"""Utility functions and helpers for the swarmctl application."""
from typing import Any, Iterable

from .retry import RetryOutcome, RetryPolicy

REDACT_KEYS = ("password", "secret", "token")
REDACTED = "[REDACTED]"


def redact_sensitive_data(data: Any) -> Any:
    """Recursively redact sensitive values from dictionaries and lists.

    Args:
        data: Input data that might contain sensitive information

    Returns:
        Data with values under sensitive keys replaced
    """
    if isinstance(data, dict):
        return {
            k: REDACTED if any(
                redact_key in str(k).lower()
                for redact_key in REDACT_KEYS
            ) else redact_sensitive_data(v)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive_data(item) for item in data]
    return data


def mask_secrets(text: str, secrets: Iterable[Any]) -> str:
    """Replace every occurrence of each secret in ``text`` with its string form.

    Secrets are usually JoinToken objects whose ``str`` is already masked;
    plain strings are replaced with a fixed marker.
    """
    for secret in secrets:
        raw = getattr(secret, "value", secret)
        if not raw:
            continue
        replacement = str(secret) if raw != str(secret) else REDACTED
        text = text.replace(raw, replacement)
    return text


__all__ = [
    'RetryOutcome',
    'RetryPolicy',
    'redact_sensitive_data',
    'mask_secrets',
]
