"""Core library for the Daedalus PostgreSQL navigator.

Contains configuration loading, the credential vault, the connection registry,
the database client wrappers and the paginator shared by the CLI and the TUI.
"""

__all__ = [
    "clients",
    "config",
    "connstr",
    "errors",
    "paginator",
    "registry",
    "vault",
]
