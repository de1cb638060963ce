"""Centralized customized exceptions for Switchyard.

All project-specific exceptions live in this module so that callers (and the
HTTP layer that maps them to responses) have a single import location:

    from switchyard.core.exception import FetchError

Each connector error carries a ``status_code`` that the API layer uses as the
HTTP status when the error escapes a request.
"""

from __future__ import annotations

from typing import List, Sequence

__all__ = [
    "SpecError",
    "ConnectorError",
    "FetchError",
    "LoadError",
    "SchemaValidationError",
    "ActionNotFoundError",
    "ConnectorNotFoundError",
    "PreconditionError",
]


class SpecError(ValueError):
    """Raised when runner configuration (settings, installed connectors) is invalid."""


class ConnectorError(RuntimeError):
    """Base error for connector failures."""

    status_code: int = 500


class FetchError(ConnectorError):
    """Raised when a connector repository cannot be retrieved (auth, branch, network, timeout)."""

    def __init__(self, message: str, *, identity: str | None = None, stderr: str | None = None):
        super().__init__(message)
        self.identity = identity
        self.stderr = stderr


class LoadError(ConnectorError):
    """Raised when the connector artifact is missing or cannot be parsed."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(message)
        self.path = path


class SchemaValidationError(ConnectorError):
    """Raised when a loaded connector document violates the connector schema.

    ``issues`` holds every violation found (never only the first one); the
    message enumerates them in the same order.
    """

    def __init__(self, issues: Sequence, *, identity: str | None = None, prefix: str = "Connector schema validation error"):
        self.issues: List = list(issues)
        self.identity = identity
        head = f"{prefix} in '{identity}'" if identity else prefix
        body = "; ".join(f"{i.loc}: {i.msg}" for i in self.issues) or "unknown error"
        super().__init__(f"{head}: {body}")

    @property
    def messages(self) -> List[str]:
        return [f"{i.loc}: {i.msg}" for i in self.issues]


class ActionNotFoundError(ConnectorError, LookupError):
    """Raised when an action key is not declared by a ready connector."""

    status_code = 404

    def __init__(self, action_key: str, identity: str):
        super().__init__(f"Action '{action_key}' is not found in the '{identity}' connector.")
        self.action_key = action_key
        self.identity = identity


class ConnectorNotFoundError(ConnectorError, LookupError):
    """Raised when a registry lookup names a connector that is not installed."""

    status_code = 404

    def __init__(self, identity: str, known: Sequence[str] = ()):
        super().__init__(f"Connector '{identity}' is not installed. Installed: {sorted(known)}")
        self.identity = identity


class PreconditionError(ConnectorError):
    """Raised when schema/action accessors are used before the connector is READY."""
