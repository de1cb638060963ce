from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic.config import ConfigDict

# ---------------------------------------------------------------------------
# Runner configuration
# ---------------------------------------------------------------------------


def _check_path_segment(value: str, field_name: str, *, allow_slash: bool = False) -> str:
    """Owner/name/branch become cache directories; keep them inside the cache root."""
    v = (value or "").strip()
    if not v:
        raise ValueError(f"{field_name} must be a non-empty string")
    if "\\" in v or v.startswith("/") or (not allow_slash and "/" in v):
        raise ValueError(f"{field_name} must not contain path separators: {value!r}")
    if any(part in {"", ".", ".."} for part in v.split("/")):
        raise ValueError(f"{field_name} must not contain empty, '.' or '..' segments: {value!r}")
    return v


class InstalledConnectorSpec(BaseModel):
    """One installed connector: a GitHub repository pinned to a branch.

    Accepts both the snake_case field names and the original
    ``RepoOwner``/``RepoName``/``RepoBranch``/``ConfigurationParameters`` keys.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    repo_owner: str = Field(alias="RepoOwner")
    repo_name: str = Field(alias="RepoName")
    repo_branch: str = Field(alias="RepoBranch")
    configuration_parameters: Dict[str, str] = Field(default_factory=dict, alias="ConfigurationParameters")

    @field_validator("repo_owner", "repo_name", "repo_branch")
    @classmethod
    def _safe_segment(cls, v: str, info) -> str:
        # git branches may be namespaced (release/1.x); owners and names may not
        return _check_path_segment(v, info.field_name, allow_slash=info.field_name == "repo_branch")

    @field_validator("configuration_parameters", mode="before")
    @classmethod
    def _stringify_params(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v

    @property
    def key(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}@{self.repo_branch}"


class RunnerContext(BaseModel):
    """Runner-wide secrets. ``github_pat`` is only used to build fetch URLs."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    github_pat: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("github_pat", "GitHubPat", "GitHubToken"),
    )
    secrets: Dict[str, str] = Field(default_factory=dict)

    @field_validator("github_pat", mode="before")
    @classmethod
    def _blank_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class RunnerConfigSpec(BaseModel):
    """Runner YAML root: runner context + statically installed connectors."""

    model_config = ConfigDict(extra="forbid")

    runner: RunnerContext = Field(default_factory=RunnerContext)
    installed_connectors: List[InstalledConnectorSpec] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Connector schema (remote package contract)
# Unknown fields are ignored: packages may carry metadata of their own.
# ---------------------------------------------------------------------------

ActionType = Literal["create", "read", "update", "delete"]
ParameterType = Literal["string", "number", "boolean", "object", "array"]


class ParameterValidationSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    required: bool = False


class ParameterSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: Optional[str] = None
    type: ParameterType = "string"
    validation: ParameterValidationSpec = Field(default_factory=ParameterValidationSpec)

    @property
    def required(self) -> bool:
        return self.validation.required


class OperationSpec(BaseModel):
    """Reference to the code an action runs.

    ``handler`` is either a callable (Python artifacts) or a
    ``"relative/path.py:function"`` reference resolved against the connector's
    clone root.
    """

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    type: Literal["python"] = "python"
    handler: Union[Callable[..., Any], str]

    @field_validator("handler")
    @classmethod
    def _handler_ref(cls, v: Any) -> Any:
        if isinstance(v, str):
            path, sep, attr = v.partition(":")
            if not sep or not path.strip() or not attr.strip():
                raise ValueError("handler reference must look like 'path/to/module.py:function'")
        return v


class ActionSchemaSpec(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    key: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str
    type: Optional[ActionType] = None
    input_parameters: List[ParameterSpec] = Field(default_factory=list, alias="inputParameters")
    output_parameters: List[ParameterSpec] = Field(default_factory=list, alias="outputParameters")
    operation: OperationSpec


class ConnectorSchemaSpec(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    title: Optional[str] = None
    description: Optional[str] = None
    version: Optional[str] = None
    actions: List[ActionSchemaSpec]


# ---------------------------------------------------------------------------
# Env files
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EnvFileSpec:
    """Spec for loading env vars from disk.

    Supported types:
      - dotenv: KEY=VALUE lines, UTF-8, '#' comments.
      - json: top-level object {"KEY": "VALUE", ...}
      - dir: directory where each file name is a key; file content is the value.
    """

    type: str
    path: str
    optional: bool = False
    prefix: str = ""


__all__ = [
    # runner
    "InstalledConnectorSpec",
    "RunnerContext",
    "RunnerConfigSpec",
    # connector schema
    "ActionType",
    "ParameterType",
    "ParameterValidationSpec",
    "ParameterSpec",
    "OperationSpec",
    "ActionSchemaSpec",
    "ConnectorSchemaSpec",
    # env
    "EnvFileSpec",
]
