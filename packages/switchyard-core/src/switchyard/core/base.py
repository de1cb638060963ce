from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, List, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from switchyard.core.action import Action
    from switchyard.core.loader import PackageLoader
    from switchyard.core.spec import ConnectorSchemaSpec


class ConnectorState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    FETCHING = "FETCHING"
    LOADING = "LOADING"
    READY = "READY"
    # terminal failures
    INVALID = "INVALID"
    UNREACHABLE = "UNREACHABLE"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectorState.READY, ConnectorState.INVALID, ConnectorState.UNREACHABLE)


@runtime_checkable
class ConnectorLike(Protocol):
    """
    Public connector contract.

    What the API layer (and Actions) may rely on:
      - identity and configuration parameters are readable in every state
      - schema / get_action / get_actions are only defined once READY and raise
        PreconditionError before that
    """

    @property
    def key(self) -> str: ...

    @property
    def state(self) -> ConnectorState: ...

    @property
    def configuration_parameters(self) -> Mapping[str, str]: ...

    @property
    def local_path(self) -> Path: ...

    @property
    def loader(self) -> "PackageLoader": ...

    @property
    def schema(self) -> "ConnectorSchemaSpec": ...

    def initialize(self) -> "ConnectorLike": ...

    def get_action(self, action_key: str) -> "Action": ...

    def get_actions(self) -> List["Action"]: ...
