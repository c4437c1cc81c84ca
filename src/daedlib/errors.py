"""Error types and error-message helpers for daedalus."""

from __future__ import annotations

from typing import Any


class DaedalusError(Exception):
    """Base class for every error raised by the daedalus core."""


class KeyStorageError(DaedalusError):
    """The master key file could not be created, written or read."""


class DecryptionError(DaedalusError):
    """Authenticated decryption failed.

    Wrong key, tampered ciphertext and tampered nonce are deliberately
    indistinguishable.
    """


class CredentialCorruptError(DaedalusError):
    """A stored password could not be decrypted while resolving a profile."""


class RegistryError(DaedalusError):
    pass


class DuplicateNameError(RegistryError):
    pass


class NotFoundError(RegistryError):
    pass


class InvalidNameError(RegistryError):
    pass


class ConnectionStringError(DaedalusError, ValueError):
    """A connection URL could not be parsed."""


class DatabaseConnectionError(DaedalusError):
    """The database could not be reached or refused the login."""


class QueryError(DaedalusError):
    """The database rejected or failed a statement."""


class FetchError(DaedalusError):
    """A page fetch failed; the previously displayed page stays valid."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def format_error_message(operation: str, error: Exception, context: dict[str, Any] | None = None) -> str:
    """Format a user-friendly error message based on the exception type and context."""
    error_str = str(error)
    context = context or {}

    if isinstance(error, KeyStorageError):
        return (
            f"Unable to access the master key. "
            f"Check permissions on {context.get('key_path', 'the data directory')}. "
            f"Original error: {error_str}"
        )

    if isinstance(error, CredentialCorruptError):
        name = context.get("connection", "this connection")
        return (
            f"The stored password for {name} could not be decrypted. "
            f"The key file may have changed; remove and re-add the connection."
        )

    if isinstance(error, ConnectionStringError):
        return f"Invalid connection string: {error_str}"

    lowered = error_str.lower()

    # Authentication errors
    if any(word in lowered for word in ["password authentication", "authentication failed", "permission denied"]):
        return (
            f"Authentication failed. Please check your credentials and permissions. "
            f"Original error: {error_str}"
        )

    # Connection-related errors
    if isinstance(error, DatabaseConnectionError) or "connection" in lowered or "timeout" in lowered:
        target = context.get("connection", "database")
        return (
            f"Failed to connect to {target}. "
            f"Please check that the PostgreSQL server is running and accessible. "
            f"Original error: {error_str}"
        )

    # Table not found
    if "does not exist" in lowered or "not found" in lowered:
        if "table" in operation.lower():
            table_name = context.get("table", "table")
            return (
                f"Table '{table_name}' not found. "
                f"Original error: {error_str}"
            )

    if "syntax error" in lowered:
        return f"SQL syntax error: {error_str}"

    # Generic error with helpful context
    return f"Failed to {operation}: {error_str}"


def suggest_troubleshooting_steps(operation: str, error: Exception) -> list[str]:
    """Suggest troubleshooting steps based on the operation and error."""
    error_str = str(error).lower()
    suggestions = []

    if isinstance(error, (KeyStorageError, CredentialCorruptError)):
        suggestions.extend([
            "Check that the data directory is writable (DAEDALUS_HOME or ~/.daedalus-cli)",
            "Make sure key.bin has not been replaced or truncated",
            "Remove and re-add the connection if the key was lost",
        ])

    elif "authentication" in error_str or "password" in error_str:
        suggestions.extend([
            "Verify the username and password in the connection string",
            "Check pg_hba.conf allows this user from your host",
        ])

    elif isinstance(error, DatabaseConnectionError) or "connection" in error_str or "timeout" in error_str:
        suggestions.extend([
            "Check that PostgreSQL is running: pg_isready -h <host> -p <port>",
            "Verify host and port of the saved connection: daedalus list-conns",
            "Increase connect_timeout in the settings file for slow networks",
        ])

    elif "does not exist" in error_str or "not found" in error_str:
        suggestions.extend([
            "List saved connections: daedalus list-conns",
            "Check the name spelling",
        ])

    if not suggestions:
        suggestions.extend([
            "Check the logs with -v/--verbose flag for more details",
            "Verify your settings file is correct: daedalus config show",
        ])

    return suggestions


def format_config_error(error: Exception) -> str:
    """Format configuration-related error messages."""
    error_str = str(error)

    if "daedalus_config path not found" in error_str.lower():
        return (
            f"{error_str}\n"
            "Unset DAEDALUS_CONFIG or point it at an existing settings file."
        )

    return f"Configuration error: {error_str}"
