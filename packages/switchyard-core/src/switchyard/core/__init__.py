"""Switchyard core package.

Public entrypoints:
- switchyard.core.api: stable API surface for the runner's HTTP layer and integrations
- switchyard.core.Connector / ConnectorRegistry: connector lifecycle and catalog

Internal modules may change without notice.
"""

from __future__ import annotations

# Strict architecture enforcement (default ON; set SWITCHYARD_STRICT_ARCH=0 to disable).
from switchyard.core._architecture_guard import assert_architecture as _assert_architecture

_assert_architecture()

from switchyard.core.connector import Connector
from switchyard.core.registry import ConnectorRegistry

__all__ = ["Connector", "ConnectorRegistry"]
