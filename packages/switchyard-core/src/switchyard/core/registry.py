from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping

from switchyard.core.action import Action
from switchyard.core.base import ConnectorState
from switchyard.core.concurrency import run_thread_pool
from switchyard.core.connector import Connector
from switchyard.core.exception import ConnectorNotFoundError, SpecError
from switchyard.core.observability import ensure_logging, log_event
from switchyard.core.runtime.config import RunnerConfig, load_runner_config
from switchyard.core.runtime.settings import Settings, load_settings
from switchyard.core.spec import InstalledConnectorSpec, RunnerContext

log = logging.getLogger("switchyard.core.registry")


@dataclass
class InitializationReport:
    ready: List[str] = field(default_factory=list)
    failed: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict:
        return {
            "ok": self.ok,
            "ready": list(self.ready),
            "failed": {k: f"{type(e).__name__}: {e}" for k, e in self.failed.items()},
        }


class ConnectorRegistry:
    """The statically installed connectors of one runner, keyed by identity.

    Usage:
        registry = ConnectorRegistry.from_file("runner.yaml")
        report = registry.initialize_all()
        action = registry.get_action("acme/demo@v1", "send")

    The connector list is fixed at construction; nothing here adds or removes
    connectors at runtime.
    """

    def __init__(
        self,
        installed: Iterable[InstalledConnectorSpec | Mapping[str, Any]],
        runner: RunnerContext | None = None,
        *,
        settings: Settings | None = None,
        connector_factory: Callable[..., Connector] = Connector,
        **connector_kwargs: Any,
    ):
        self.settings = settings or load_settings()
        self.runner = runner or RunnerContext()
        self._connectors: Dict[str, Connector] = {}
        for desc in installed:
            c = connector_factory(desc, self.runner, settings=self.settings, **connector_kwargs)
            if c.key in self._connectors:
                raise SpecError(f"Duplicate installed connector: {c.key}")
            self._connectors[c.key] = c

    @classmethod
    def from_config(cls, config: RunnerConfig, *, settings: Settings | None = None, **kwargs: Any) -> "ConnectorRegistry":
        return cls(config.installed_connectors, config.runner, settings=settings, **kwargs)

    @classmethod
    def from_file(
        cls,
        path: str,
        *,
        env: Mapping[str, str] | None = None,
        settings: Settings | None = None,
        **kwargs: Any,
    ) -> "ConnectorRegistry":
        settings = settings or load_settings(env=dict(env) if env is not None else None)
        ensure_logging(settings)
        return cls.from_config(load_runner_config(path, env=env), settings=settings, **kwargs)

    def __len__(self) -> int:
        return len(self._connectors)

    def __iter__(self):
        return iter(self._connectors.values())

    def __contains__(self, identity: object) -> bool:
        return identity in self._connectors

    def keys(self) -> List[str]:
        return list(self._connectors.keys())

    def get(self, identity: str) -> Connector:
        try:
            return self._connectors[identity]
        except KeyError:
            raise ConnectorNotFoundError(identity, self._connectors.keys()) from None

    def initialize_all(self, *, workers: int | None = None, strict: bool = False) -> InitializationReport:
        """Initialize every connector concurrently.

        Failures are isolated per connector and collected in the report; with
        ``strict=True`` the first failure (in configuration order) is raised.
        """
        connectors = list(self._connectors.values())
        results = run_thread_pool(
            connectors,
            lambda c: c.initialize(),
            workers=workers or self.settings.init_workers,
            fail_fast=False,
            return_exceptions=True,
        )
        report = InitializationReport()
        for c, res in zip(connectors, results):
            if isinstance(res, BaseException):
                report.failed[c.key] = res
            else:
                report.ready.append(c.key)

        log_event(
            log,
            settings=self.settings,
            level=logging.INFO if report.ok else logging.WARNING,
            event="connectors_initialized",
            ready=len(report.ready),
            failed=len(report.failed),
        )
        if strict and report.failed:
            raise next(iter(report.failed.values()))
        return report

    def states(self) -> Dict[str, ConnectorState]:
        return {k: c.state for k, c in self._connectors.items()}

    def get_action(self, identity: str, action_key: str) -> Action:
        return self.get(identity).get_action(action_key)

    def list_actions(self) -> List[Action]:
        """Actions of every READY connector, in configuration then declaration order."""
        out: List[Action] = []
        for c in self._connectors.values():
            if c.is_ready:
                out.extend(c.get_actions())
        return out
