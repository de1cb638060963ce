from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from types import MappingProxyType
from typing import Any, List, Mapping, Optional

from switchyard.core.action import Action
from switchyard.core.base import ConnectorState
from switchyard.core.exception import ActionNotFoundError, PreconditionError
from switchyard.core.fetcher import IDENTITY_LOCKS, IdentityLocks, RepositoryFetcher, cache_path, repository_url
from switchyard.core.loader import LOADER, PackageLoader
from switchyard.core.observability import MetricsSink, dur_ms, load_metrics_sink, log_event, notify_metrics
from switchyard.core.runtime.settings import Settings, load_settings
from switchyard.core.spec import ConnectorSchemaSpec, InstalledConnectorSpec, RunnerContext
from switchyard.core.validation import SchemaValidator

log = logging.getLogger("switchyard.core.connector")


class Connector:
    """One installed connector and its lifecycle.

    States::

        UNINITIALIZED -> FETCHING -> LOADING -> READY
                            |           |
                            v           v
                       UNREACHABLE   INVALID

    ``initialize()`` skips FETCHING when the artifact is already in the local
    cache. Initialization for one identity is serialized through the
    process-wide identity lock arena; concurrent callers wait for the
    in-flight run and observe its outcome. A failed connector stays failed:
    calling ``initialize()`` again re-raises the recorded error and never
    re-fetches. Re-create the connector (or evict the cache) to recover.

    Identity and configuration parameters are readable in every state;
    ``schema``, ``get_action`` and ``get_actions`` require READY.
    """

    def __init__(
        self,
        descriptor: InstalledConnectorSpec | Mapping[str, Any],
        runner: RunnerContext | Mapping[str, Any] | None = None,
        *,
        settings: Settings | None = None,
        fetcher: RepositoryFetcher | None = None,
        loader: PackageLoader | None = None,
        validator: SchemaValidator | None = None,
        locks: IdentityLocks | None = None,
        metrics: MetricsSink | None = None,
    ):
        if not isinstance(descriptor, InstalledConnectorSpec):
            descriptor = InstalledConnectorSpec.model_validate(descriptor)
        if runner is None:
            runner = RunnerContext()
        elif not isinstance(runner, RunnerContext):
            runner = RunnerContext.model_validate(runner)

        self._descriptor = descriptor
        self._runner = runner
        self.settings = settings or load_settings()
        self._locks = locks or IDENTITY_LOCKS
        self._fetcher = fetcher or RepositoryFetcher(self.settings, locks=self._locks)
        self._loader = loader or LOADER
        self._validator = validator or SchemaValidator()
        self._metrics = metrics or load_metrics_sink(self.settings)

        self._state_lock = threading.Lock()
        self._state = ConnectorState.UNINITIALIZED
        self._schema: Optional[ConnectorSchemaSpec] = None
        self._error: Optional[BaseException] = None

    def __repr__(self) -> str:
        return f"Connector({self.key!r}, state={self.state.value})"

    # ---- identity / configuration (any state) ----

    @property
    def key(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}@{self.repo_branch}"

    identity = key

    @property
    def repo_owner(self) -> str:
        return self._descriptor.repo_owner

    @property
    def repo_name(self) -> str:
        return self._descriptor.repo_name

    @property
    def repo_branch(self) -> str:
        return self._descriptor.repo_branch

    @property
    def descriptor(self) -> InstalledConnectorSpec:
        return self._descriptor

    @property
    def configuration_parameters(self) -> Mapping[str, str]:
        return MappingProxyType(self._descriptor.configuration_parameters)

    @property
    def local_path(self) -> Path:
        return cache_path(self.settings.connectors_root, self.repo_owner, self.repo_name, self.repo_branch)

    @property
    def artifact_path(self) -> Path:
        return self.local_path / self.settings.artifact_path

    @property
    def loader(self) -> PackageLoader:
        return self._loader

    @property
    def state(self) -> ConnectorState:
        with self._state_lock:
            return self._state

    @property
    def error(self) -> Optional[BaseException]:
        with self._state_lock:
            return self._error

    @property
    def is_ready(self) -> bool:
        return self.state is ConnectorState.READY

    def _repository_url(self) -> str:
        return repository_url(
            self.repo_owner,
            self.repo_name,
            self._runner.github_pat,
            base_url=self.settings.git_base_url,
        )

    # ---- lifecycle ----

    def _set_state(self, state: ConnectorState, *, schema: Optional[ConnectorSchemaSpec] = None, error: Optional[BaseException] = None) -> None:
        with self._state_lock:
            self._state = state
            self._schema = schema
            self._error = error
        log_event(log, settings=self.settings, level=logging.DEBUG, event="connector_state", connector=self.key, state=state.value)

    def is_artifact_present(self) -> bool:
        return self.artifact_path.is_file()

    def initialize(self) -> "Connector":
        """Fetch (when needed), load and validate the connector. Returns self."""
        with self._locks.hold(self.key):
            state = self.state
            if state is ConnectorState.READY:
                return self
            if state in (ConnectorState.INVALID, ConnectorState.UNREACHABLE):
                raise self._error  # type: ignore[misc]

            t0 = time.perf_counter()
            notify_metrics(self._metrics, "on_initialize_start", identity=self.key)
            try:
                if not self.is_artifact_present():
                    self._set_state(ConnectorState.FETCHING)
                    try:
                        self._fetcher.fetch(self.key, self._repository_url(), self.repo_branch, self.local_path)
                    except Exception as e:
                        self._fail(ConnectorState.UNREACHABLE, e)
                        raise
                self._load_and_validate()
            finally:
                state = self.state
                duration = dur_ms(t0, time.perf_counter())
                notify_metrics(self._metrics, "on_initialize_end", identity=self.key, state=state.value, duration_ms=duration)

            log_event(
                log,
                settings=self.settings,
                level=logging.INFO,
                event="connector_ready",
                connector=self.key,
                actions=len(self._schema.actions) if self._schema else 0,
                duration_ms=duration,
            )
            return self

    def revalidate(self) -> "Connector":
        """Re-load and re-validate the cached artifact (no fetch).

        Allowed once the connector was READY or INVALID; picks up an artifact
        replaced on disk by an operator. A READY connector keeps serving its
        current schema while the artifact is re-read, and stays READY with that
        schema when the new artifact fails (the error is still raised).
        """
        with self._locks.hold(self.key):
            state = self.state
            if state is ConnectorState.INVALID:
                self._load_and_validate()
                return self
            if state is not ConnectorState.READY:
                raise PreconditionError(
                    f"Connector '{self.key}' cannot be revalidated in state {state.value}"
                )

            try:
                raw = self._loader.load(self.artifact_path)
                schema = self._validator.validate(raw, identity=self.key)
            except Exception as e:
                log_event(
                    log,
                    settings=self.settings,
                    level=logging.WARNING,
                    event="connector_revalidate_failed",
                    connector=self.key,
                    error=f"{type(e).__name__}: {e}",
                )
                raise
            with self._state_lock:
                self._schema = schema
            log_event(log, settings=self.settings, level=logging.INFO, event="connector_revalidated", connector=self.key, actions=len(schema.actions))
            return self

    def _load_and_validate(self) -> None:
        self._set_state(ConnectorState.LOADING)
        try:
            raw = self._loader.load(self.artifact_path)
            schema = self._validator.validate(raw, identity=self.key)
        except Exception as e:
            self._fail(ConnectorState.INVALID, e)
            raise
        self._set_state(ConnectorState.READY, schema=schema)

    def _fail(self, state: ConnectorState, error: BaseException) -> None:
        self._set_state(state, error=error)
        log_event(
            log,
            settings=self.settings,
            level=logging.ERROR,
            event="connector_init_failed",
            connector=self.key,
            state=state.value,
            error=f"{type(error).__name__}: {error}",
        )

    # ---- READY-only accessors ----

    def _require_ready(self) -> ConnectorSchemaSpec:
        with self._state_lock:
            if self._state is not ConnectorState.READY or self._schema is None:
                raise PreconditionError(
                    f"Connector '{self.key}' is not ready (state={self._state.value}); call initialize() first."
                )
            return self._schema

    @property
    def schema(self) -> ConnectorSchemaSpec:
        return self._require_ready()

    def get_action(self, action_key: str) -> Action:
        schema = self._require_ready()
        for action_schema in schema.actions:
            if action_schema.key == action_key:
                return Action(action_schema, self)
        raise ActionNotFoundError(action_key, self.key)

    def get_actions(self) -> List[Action]:
        schema = self._require_ready()
        return [Action(action_schema, self) for action_schema in schema.actions]
