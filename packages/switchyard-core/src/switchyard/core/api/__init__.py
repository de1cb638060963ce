"""Public, stable API surface for Switchyard.

The runner's HTTP layer and other integrations should import from
**`switchyard.core.api`**. Everything outside this package is considered
internal and may change without notice, even in minor releases.
"""

from __future__ import annotations

# Connector lifecycle + actions
from switchyard.core.action import Action
from switchyard.core.base import ConnectorLike, ConnectorState
from switchyard.core.connector import Connector
# Errors
from switchyard.core.exception import (
    ActionNotFoundError,
    ConnectorError,
    ConnectorNotFoundError,
    FetchError,
    LoadError,
    PreconditionError,
    SchemaValidationError,
    SpecError,
)
# Building blocks
from switchyard.core.fetcher import IDENTITY_LOCKS, IdentityLocks, RepositoryFetcher, repository_url
from switchyard.core.loader import PackageLoader
from switchyard.core.registry import ConnectorRegistry, InitializationReport
# Configuration
from switchyard.core.runtime.config import RunnerConfig, load_runner_config, parse_runner_config
from switchyard.core.runtime.settings import Settings, load_settings
# Schemas (Pydantic models)
from switchyard.core.spec import (
    ActionSchemaSpec,
    ConnectorSchemaSpec,
    InstalledConnectorSpec,
    OperationSpec,
    ParameterSpec,
    RunnerContext,
)
from switchyard.core.validation import SchemaIssue, SchemaValidator, validate_connector_schema

__all__ = [
    # lifecycle
    "Connector",
    "ConnectorLike",
    "ConnectorState",
    "Action",
    "ConnectorRegistry",
    "InitializationReport",
    # errors
    "ConnectorError",
    "FetchError",
    "LoadError",
    "SchemaValidationError",
    "ActionNotFoundError",
    "ConnectorNotFoundError",
    "PreconditionError",
    "SpecError",
    # building blocks
    "RepositoryFetcher",
    "IdentityLocks",
    "IDENTITY_LOCKS",
    "repository_url",
    "PackageLoader",
    "SchemaValidator",
    "SchemaIssue",
    "validate_connector_schema",
    # configuration
    "Settings",
    "load_settings",
    "RunnerConfig",
    "load_runner_config",
    "parse_runner_config",
    # schemas
    "InstalledConnectorSpec",
    "RunnerContext",
    "ConnectorSchemaSpec",
    "ActionSchemaSpec",
    "ParameterSpec",
    "OperationSpec",
]
