from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from switchyard.core.exception import SpecError
from switchyard.core.runtime.config import load_runner_config, parse_runner_config
from switchyard.core.runtime.settings import Settings, load_settings
from switchyard.core.spec import InstalledConnectorSpec, RunnerContext


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(textwrap.dedent(text).strip() + "\n", encoding="utf-8")
    return p


def test_descriptor_identity_is_owner_name_at_branch():
    d = InstalledConnectorSpec.model_validate({"RepoOwner": "acme", "RepoName": "demo", "RepoBranch": "v1"})
    assert d.key == "acme/demo@v1"
    assert d.key == d.key
    assert d.configuration_parameters == {}


def test_descriptor_accepts_snake_case_and_stringifies_parameters():
    d = InstalledConnectorSpec(
        repo_owner="acme",
        repo_name="demo",
        repo_branch="release/1.x",
        configuration_parameters={"Port": 8080, "Debug": True, "Empty": None},
    )
    assert d.key == "acme/demo@release/1.x"
    assert d.configuration_parameters == {"Port": "8080", "Debug": "True", "Empty": ""}


@pytest.mark.parametrize(
    "field,value",
    [
        ("RepoOwner", "../etc"),
        ("RepoName", "a/b"),
        ("RepoName", ""),
        ("RepoBranch", "/abs"),
        ("RepoBranch", "v1/../../x"),
        ("RepoOwner", "a\\b"),
    ],
)
def test_descriptor_rejects_segments_escaping_the_cache(field, value):
    raw = {"RepoOwner": "acme", "RepoName": "demo", "RepoBranch": "v1", field: value}
    with pytest.raises(ValidationError):
        InstalledConnectorSpec.model_validate(raw)


def test_descriptor_is_frozen():
    d = InstalledConnectorSpec.model_validate({"RepoOwner": "acme", "RepoName": "demo", "RepoBranch": "v1"})
    with pytest.raises(ValidationError):
        d.repo_branch = "v2"


def test_runner_context_token_aliases_and_blank():
    assert RunnerContext.model_validate({"GitHubToken": "t1"}).github_pat == "t1"
    assert RunnerContext.model_validate({"GitHubPat": "t2"}).github_pat == "t2"
    assert RunnerContext.model_validate({"GitHubPat": "   "}).github_pat is None


def test_load_runner_config_renders_env_and_falls_back_to_token_env(tmp_path: Path):
    cfg = _write(
        tmp_path,
        "runner.yaml",
        """
        runner:
          secrets:
            OpenAiApiKey: "{{env.OPENAI_API_KEY}}"
        installed_connectors:
          - RepoOwner: acme
            RepoName: demo
            RepoBranch: v1
            ConfigurationParameters:
              RunnerUrl: "{{env.RUNNER_URL:http://localhost:8000}}"
        """,
    )
    rc = load_runner_config(str(cfg), env={"OPENAI_API_KEY": "sk-1", "GITHUB_PAT": "pat-1"})
    assert rc.runner.github_pat == "pat-1"
    assert rc.runner.secrets == {"OpenAiApiKey": "sk-1"}
    assert [c.key for c in rc.installed_connectors] == ["acme/demo@v1"]
    assert rc.installed_connectors[0].configuration_parameters == {"RunnerUrl": "http://localhost:8000"}
    assert rc.source == str(cfg)


def test_explicit_token_wins_over_env():
    rc = parse_runner_config({"runner": {"GitHubPat": "from-file"}}, env={"SWITCHYARD_GITHUB_PAT": "from-env"})
    assert rc.runner.github_pat == "from-file"


def test_missing_env_var_is_a_spec_error():
    with pytest.raises(SpecError, match="missing env NOPE"):
        parse_runner_config({"runner": {"secrets": {"X": "{{env.NOPE}}"}}}, env={})


def test_unsupported_templating_is_rejected():
    with pytest.raises(SpecError, match="unsupported templating"):
        parse_runner_config({"runner": {"secrets": {"X": "{{ secrets.X }}"}}}, env={})


def test_invalid_config_aggregates_locations():
    with pytest.raises(SpecError) as ei:
        parse_runner_config({"installed_connectors": [{"RepoOwner": "acme"}]}, env={})
    msg = str(ei.value)
    assert "RepoName" in msg
    assert "RepoBranch" in msg


def test_duplicate_installed_connectors_rejected():
    entry = {"RepoOwner": "acme", "RepoName": "demo", "RepoBranch": "v1"}
    with pytest.raises(SpecError, match="acme/demo@v1"):
        parse_runner_config({"installed_connectors": [entry, dict(entry)]}, env={})


def test_non_mapping_config_rejected(tmp_path: Path):
    cfg = _write(tmp_path, "runner.yaml", "- just\n- a list")
    with pytest.raises(SpecError, match="mapping"):
        load_runner_config(str(cfg), env={})


def test_invalid_yaml_is_spec_error(tmp_path: Path):
    cfg = _write(tmp_path, "runner.yaml", "runner: [unclosed")
    with pytest.raises(SpecError, match="not valid YAML"):
        load_runner_config(str(cfg), env={})


def test_env_files_feed_templates_and_process_env_wins(tmp_path: Path):
    _write(
        tmp_path,
        "runner.env",
        """
        # comment
        export RUNNER_URL="http://from-dotenv"
        API_KEY='k-dotenv'
        """,
    )
    (tmp_path / "extra.json").write_text(json.dumps({"REGION": "eu", "NESTED": {"x": 1}}), encoding="utf-8")
    secrets = tmp_path / "secrets"
    secrets.mkdir()
    (secrets / "TOKEN").write_text("tok-from-dir\n", encoding="utf-8")

    cfg = _write(
        tmp_path,
        "runner.yaml",
        """
        env_files:
          - {type: dotenv, path: runner.env}
          - {type: json, path: extra.json}
          - {type: dir, path: secrets, prefix: SECRET_}
          - {type: dotenv, path: missing.env, optional: true}
        runner:
          GitHubPat: "{{env.SECRET_TOKEN}}"
          secrets:
            ApiKey: "{{env.API_KEY}}"
            Region: "{{env.REGION}}"
        installed_connectors:
          - RepoOwner: acme
            RepoName: demo
            RepoBranch: v1
            ConfigurationParameters:
              RunnerUrl: "{{env.RUNNER_URL}}"
        """,
    )
    rc = load_runner_config(str(cfg), env={"API_KEY": "k-process"})
    assert rc.runner.github_pat == "tok-from-dir"
    assert rc.runner.secrets == {"ApiKey": "k-process", "Region": "eu"}
    assert rc.installed_connectors[0].configuration_parameters["RunnerUrl"] == "http://from-dotenv"


def test_required_env_file_missing_raises(tmp_path: Path):
    cfg = _write(tmp_path, "runner.yaml", "env_files:\n  - {type: dotenv, path: nope.env}\n")
    with pytest.raises(SpecError, match="Invalid env_files in runner config") as ei:
        load_runner_config(str(cfg), env={})
    assert str(cfg) in str(ei.value)
    assert isinstance(ei.value.__cause__, FileNotFoundError)


@pytest.mark.parametrize(
    "env_files,files",
    [
        ("env_files: not-a-list\n", {}),
        ("env_files:\n  - {type: yaml, path: x.env}\n", {"x.env": "A=1\n"}),
        ("env_files:\n  - {type: json, path: x.json}\n", {"x.json": "[1, 2]"}),
        ("env_files:\n  - {type: json, path: x.json}\n", {"x.json": "{broken"}),
    ],
)
def test_bad_env_files_are_spec_errors(tmp_path: Path, env_files: str, files: dict):
    for name, text in files.items():
        (tmp_path / name).write_text(text, encoding="utf-8")
    cfg = _write(tmp_path, "runner.yaml", env_files)
    with pytest.raises(SpecError, match="Invalid env_files"):
        load_runner_config(str(cfg), env={})


def test_settings_from_env_snapshot():
    s = Settings.from_env(
        {
            "SWITCHYARD_CONNECTORS_ROOT": "/var/cache/connectors",
            "SWITCHYARD_ARTIFACT_PATH": "build/connector.json",
            "SWITCHYARD_FETCH_TIMEOUT_SECONDS": "5",
            "SWITCHYARD_INIT_WORKERS": "2",
            "SWITCHYARD_LOG_FORMAT": "json",
        }
    )
    assert s.connectors_root == "/var/cache/connectors"
    assert s.artifact_path == "build/connector.json"
    assert s.fetch_timeout_seconds == 5.0
    assert s.init_workers == 2
    assert s.log_format == "json"
    assert s.git_base_url == "https://github.com"
    assert s.metrics_module is None


def test_load_settings_module_then_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    (tmp_path / "my_switchyard_settings.py").write_text(
        "SETTINGS = {'init_workers': 3, 'artifact_path': 'out/connector.yaml'}\n", encoding="utf-8"
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    s = load_settings({"init_workers": 4}, env={"SWITCHYARD_SETTINGS_MODULE": "my_switchyard_settings"})
    assert s.artifact_path == "out/connector.yaml"
    assert s.init_workers == 4
