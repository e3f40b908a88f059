"""Redaction of secrets in commands and parameters before they are logged."""
from typing import Any

SENSITIVE_PATTERNS = (
    "password",
    "pre-shared-key",
    "secret",
    "community",  # SNMP community strings
    "token",
    "key",
    "credential",
)

SENSITIVE_FIELDS = frozenset({
    "password",
    "admin_password",
    "pre_shared_key",
    "secret",
    "community",
    "token",
    "api_key",
    "credential",
})

REDACTED = "[REDACTED]"


def contains_sensitive_pattern(text: str) -> bool:
    lower = text.lower()
    return any(pattern in lower for pattern in SENSITIVE_PATTERNS)


def sanitize_command(command: str) -> str:
    """Return the command, or REDACTED when any part of it may be a secret."""
    if command and contains_sensitive_pattern(command):
        return REDACTED
    return command


def is_sensitive_field(name: str) -> bool:
    return name.lower() in SENSITIVE_FIELDS


def sanitize_mapping(values: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``values`` with sensitive fields and secret-looking strings redacted."""
    result = {}
    for name, value in values.items():
        if is_sensitive_field(name):
            result[name] = REDACTED
        elif isinstance(value, str) and contains_sensitive_pattern(value):
            result[name] = REDACTED
        else:
            result[name] = value
    return result
