from __future__ import annotations

import weakref
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from switchyard.core.base import ConnectorLike
from switchyard.core.exception import LoadError, PreconditionError
from switchyard.core.spec import ActionSchemaSpec, OperationSpec, ParameterSpec, RunnerContext


class Action:
    """Read-only view of one action declared by a ready connector.

    Actions are created on demand by ``Connector.get_action`` / ``get_actions``
    and hold only a weak reference to their connector.
    """

    __slots__ = ("_schema", "_connector_ref")

    def __init__(self, schema: ActionSchemaSpec, connector: ConnectorLike):
        self._schema = schema
        self._connector_ref = weakref.ref(connector)

    def __repr__(self) -> str:
        c = self._connector_ref()
        owner = c.key if c is not None else "<released>"
        return f"Action(key={self.key!r}, connector={owner!r})"

    @property
    def schema(self) -> ActionSchemaSpec:
        return self._schema

    @property
    def connector(self) -> ConnectorLike:
        c = self._connector_ref()
        if c is None:
            raise PreconditionError(f"Connector of action '{self.key}' no longer exists")
        return c

    @property
    def key(self) -> str:
        return self._schema.key

    @property
    def title(self) -> str:
        return self._schema.title

    @property
    def description(self) -> str:
        return self._schema.description

    @property
    def type(self) -> Optional[str]:
        return self._schema.type

    @property
    def input_parameters(self) -> List[ParameterSpec]:
        return list(self._schema.input_parameters)

    @property
    def output_parameters(self) -> List[ParameterSpec]:
        return list(self._schema.output_parameters)

    @property
    def operation(self) -> OperationSpec:
        return self._schema.operation

    @property
    def configuration_parameters(self) -> Mapping[str, str]:
        return self.connector.configuration_parameters

    def required_inputs(self) -> List[str]:
        return [p.key for p in self._schema.input_parameters if p.required]

    def validate_inputs(self, inputs: Mapping[str, Any]) -> List[str]:
        """Return the required input keys missing (or empty) in ``inputs``."""
        missing: List[str] = []
        for key in self.required_inputs():
            value = inputs.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(key)
        return missing

    def invocation_context(self, runner: RunnerContext | None = None) -> Dict[str, Any]:
        """Everything an invoker combines when running the operation.

        The runner GitHub token is not part of the context.
        """
        c = self.connector
        return {
            "connector": c.key,
            "action": self.key,
            "input_parameters": [p.model_dump() for p in self._schema.input_parameters],
            "output_parameters": [p.model_dump() for p in self._schema.output_parameters],
            "configuration_parameters": dict(c.configuration_parameters),
            "secrets": dict(runner.secrets) if runner is not None else {},
        }

    def resolve_handler(self) -> Callable[..., Any]:
        """Locate and bind the callable implementing this action.

        Callable handlers are returned as-is. ``"path.py:function"`` references
        are loaded relative to the connector's clone root and may not escape it.
        """
        handler = self._schema.operation.handler
        if callable(handler):
            return handler

        c = self.connector
        rel_path, _, attr = str(handler).partition(":")
        root = Path(c.local_path).resolve()
        target = (root / rel_path.strip()).resolve()
        if root != target and root not in target.parents:
            raise LoadError(
                f"Handler of action '{self.key}' in '{c.key}' points outside the connector: {rel_path}",
                path=str(target),
            )
        module = c.loader.load_module(target)
        fn = getattr(module, attr.strip(), None)
        if not callable(fn):
            raise LoadError(
                f"Handler '{handler}' of action '{self.key}' in '{c.key}' is not a callable",
                path=str(target),
            )
        return fn
