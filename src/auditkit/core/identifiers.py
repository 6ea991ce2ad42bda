"""
Identifier and hostname validation.

Database, table and namespace names are interpolated into SQL text because
they cannot be bound as parameters. They are validated here, once, at the
point of assignment.
"""

import ipaddress
import re

from auditkit.core.errors import InvalidConfigurationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MAX_IDENTIFIER_LENGTH = 255

RESERVED_KEYWORDS = frozenset({
    "SELECT",
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "TABLE",
    "DATABASE",
})

_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def is_identifier(value: str) -> bool:
    """Check the identifier grammar only (no length or keyword rules)."""
    return bool(IDENTIFIER_PATTERN.match(value))


def validate_identifier(value: str, kind: str = "Identifier") -> str:
    """
    Validate a SQL identifier.

    Args:
        value: The identifier to check
        kind: Name used in error messages (e.g. "Database", "Namespace")

    Returns:
        The identifier, unchanged

    Raises:
        InvalidConfigurationError: If the identifier is empty, too long,
            malformed, or a reserved keyword
    """
    setting = kind.lower()
    if not value:
        raise InvalidConfigurationError(f"{kind} cannot be empty", setting=setting)
    if len(value) > MAX_IDENTIFIER_LENGTH:
        raise InvalidConfigurationError(
            f"{kind} cannot exceed {MAX_IDENTIFIER_LENGTH} characters",
            setting=setting,
        )
    if not is_identifier(value):
        raise InvalidConfigurationError(
            f"{kind} must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores",
            setting=setting,
        )
    if value.upper() in RESERVED_KEYWORDS:
        raise InvalidConfigurationError(
            f"{kind} cannot be a reserved SQL keyword",
            setting=setting,
        )
    return value


def quote_identifier(name: str) -> str:
    """Quote an identifier with backticks, doubling embedded backticks."""
    return "`" + name.replace("`", "``") + "`"


def validate_hostname(host: str) -> str:
    """
    Validate a hostname or IP address literal.

    Raises:
        InvalidConfigurationError: If host is neither
    """
    if not host:
        raise InvalidConfigurationError("Host cannot be empty", setting="host")

    candidate = host[1:-1] if host.startswith("[") and host.endswith("]") else host
    try:
        ipaddress.ip_address(candidate)
        return host
    except ValueError:
        pass

    name = host[:-1] if host.endswith(".") else host
    if len(name) > 253 or not all(_HOSTNAME_LABEL.match(label) for label in name.split(".")):
        raise InvalidConfigurationError(
            "Host is not a valid hostname or IP address",
            setting="host",
        )
    return host
