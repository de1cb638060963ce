"""Runner configuration: runner secrets + the static installed-connector list.

The runner file is YAML::

    runner:
      GitHubPat: "{{env.GITHUB_PAT:}}"
      secrets:
        OpenAiApiKey: "{{env.OPENAI_API_KEY}}"
    env_files:
      - {type: dotenv, path: runner.env, optional: true}
    installed_connectors:
      - RepoOwner: acme
        RepoName: demo
        RepoBranch: v1
        ConfigurationParameters:
          RunnerUrl: http://localhost

String values may reference the env snapshot with ``{{env.NAME}}`` or
``{{env.NAME:DEFAULT}}``; nothing else is templated. When the file does not
set a token, ``SWITCHYARD_GITHUB_PAT`` or ``GITHUB_PAT`` from the env snapshot
is used. Without a token only public repositories can be fetched.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml
from pydantic import ValidationError

from switchyard.core.exception import SpecError
from switchyard.core.runtime.envfiles import load_env_files, parse_env_files
from switchyard.core.spec import InstalledConnectorSpec, RunnerConfigSpec, RunnerContext

log = logging.getLogger("switchyard.core.runtime.config")

_TOKEN_RE = re.compile(r"\{\{\s*env\.([A-Za-z_][A-Za-z0-9_]*)\s*(?::([^}]*))?\}\}")

_TOKEN_ENV_KEYS = ("SWITCHYARD_GITHUB_PAT", "GITHUB_PAT")


@dataclass
class RunnerConfig:
    runner: RunnerContext
    installed_connectors: List[InstalledConnectorSpec] = field(default_factory=list)
    source: str | None = None


def _render_env(value: str, env: Mapping[str, str], *, loc: str) -> str:
    def _sub(m: re.Match) -> str:
        name, default = m.group(1), m.group(2)
        if name in env:
            return str(env[name])
        if default is not None:
            return default.strip()
        raise SpecError(f"{loc}: missing env {name}")

    if "{{" in value and not _TOKEN_RE.search(value):
        raise SpecError(f"{loc}: unsupported templating syntax. Use {{{{env.VAR}}}} or {{{{env.VAR:DEFAULT}}}}")
    return _TOKEN_RE.sub(_sub, value)


def _render_tree(obj: Any, env: Mapping[str, str], *, loc: str = "") -> Any:
    if isinstance(obj, str):
        return _render_env(obj, env, loc=loc or "<root>")
    if isinstance(obj, dict):
        return {k: _render_tree(v, env, loc=f"{loc}.{k}" if loc else str(k)) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_render_tree(v, env, loc=f"{loc}[{i}]") for i, v in enumerate(obj)]
    return obj


def _fmt_errors(exc: ValidationError) -> str:
    parts = []
    for e in exc.errors():
        loc = ".".join(str(x) for x in e.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {e.get('msg') or 'Invalid value'}")
    return "; ".join(parts)


def parse_runner_config(raw: Any, *, env: Mapping[str, str] | None = None, source: str | None = None) -> RunnerConfig:
    """Validate a runner config mapping against an env snapshot."""
    env_snapshot: Dict[str, str] = {k: str(v) for k, v in os.environ.items()} if env is None else dict(env)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise SpecError("Runner config must be a YAML mapping (object)")

    base_dir = Path(source).parent if source else None
    try:
        file_env = load_env_files(parse_env_files(raw.get("env_files")), base_dir=base_dir)
    except (OSError, TypeError, ValueError) as exc:
        raise SpecError(f"Invalid env_files in runner config{f' {source}' if source else ''}: {exc}") from exc
    # process env wins over env files
    merged_env = {**file_env, **env_snapshot}

    rendered = _render_tree({k: v for k, v in raw.items() if k != "env_files"}, merged_env)
    try:
        spec = RunnerConfigSpec.model_validate(rendered)
    except ValidationError as exc:
        raise SpecError(f"Invalid runner config{f' {source}' if source else ''}: {_fmt_errors(exc)}") from exc

    runner = spec.runner
    if runner.github_pat is None:
        for key in _TOKEN_ENV_KEYS:
            if merged_env.get(key):
                runner = runner.model_copy(update={"github_pat": merged_env[key]})
                break

    keys = [c.key for c in spec.installed_connectors]
    dups = sorted({k for k in keys if keys.count(k) > 1})
    if dups:
        raise SpecError(f"Duplicate installed connectors: {', '.join(dups)}")

    if runner.github_pat is None:
        log.info("No GitHub token configured; only public connector repositories can be fetched")
    return RunnerConfig(runner=runner, installed_connectors=list(spec.installed_connectors), source=source)


def load_runner_config(path: str, *, env: Mapping[str, str] | None = None) -> RunnerConfig:
    """Load and validate the runner YAML file."""
    p = Path(path).expanduser()
    with p.open("r", encoding="utf-8") as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise SpecError(f"Runner config is not valid YAML: {p}: {exc}") from exc
    return parse_runner_config(raw, env=env, source=str(p))
