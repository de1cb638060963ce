from __future__ import annotations

import os
from importlib import import_module

from pydantic import BaseModel


class Settings(BaseModel):
    # Defaults are static. Use load_settings(env=...) to read from an env snapshot.

    # Connector cache: <connectors_root>/<owner>/<name>/<branch>/
    connectors_root: str = "connectors"
    # Build output inside each connector repository (yaml/yml/json/py)
    artifact_path: str = "dist/connector.yaml"

    # Fetching
    git_executable: str = "git"
    git_base_url: str = "https://github.com"
    fetch_timeout_seconds: float = 120.0

    # Registry: thread pool size used by initialize_all()
    init_workers: int = 8

    log_level: str = "INFO"

    # Observability
    # - log_format: "text" (default) or "json". When json, switchyard logs emit a single JSON
    #   object per line, suitable for log aggregation.
    log_format: str = "text"

    # Optional metrics sink module (exposes METRICS: MetricsSink)
    metrics_module: str | None = None

    @classmethod
    def from_env(cls, env: dict[str, str], overrides: dict | None = None) -> "Settings":
        """Build Settings from an explicit env snapshot (does not read os.environ)."""
        def g(key: str, default: str | None = None) -> str | None:
            return env.get(key, default)  # type: ignore[return-value]

        data = {
            "connectors_root": g("SWITCHYARD_CONNECTORS_ROOT", "connectors"),
            "artifact_path": g("SWITCHYARD_ARTIFACT_PATH", "dist/connector.yaml"),
            "git_executable": g("SWITCHYARD_GIT_EXECUTABLE", "git"),
            "git_base_url": g("SWITCHYARD_GIT_BASE_URL", "https://github.com"),
            "fetch_timeout_seconds": float(g("SWITCHYARD_FETCH_TIMEOUT_SECONDS", "120") or "120"),
            "init_workers": int(g("SWITCHYARD_INIT_WORKERS", "8") or "8"),
            "log_level": g("SWITCHYARD_LOG_LEVEL", "INFO"),
            "log_format": g("SWITCHYARD_LOG_FORMAT", "text"),
            "metrics_module": g("SWITCHYARD_METRICS_MODULE") or None,
        }
        if overrides:
            data.update(overrides)
        return cls(**data)


def load_settings(overrides: dict | None = None, *, env: dict[str, str] | None = None) -> Settings:
    """Load settings from (1) env snapshot, (2) optional settings module, (3) explicit overrides.

    If env is not provided, we build a snapshot from os.environ.
    """
    env2 = {k: str(v) for k, v in os.environ.items()} if env is None else env
    s = Settings.from_env(env2)
    mod = env2.get("SWITCHYARD_SETTINGS_MODULE")
    if mod:
        m = import_module(mod)
        data = getattr(m, "SETTINGS", {})
        if not isinstance(data, dict):
            raise TypeError("SWITCHYARD_SETTINGS_MODULE must expose SETTINGS: dict")
        s = s.model_copy(update=data)
    if overrides:
        s = s.model_copy(update=overrides)
    return s
