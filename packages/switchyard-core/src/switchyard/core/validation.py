from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from pydantic import ValidationError

from switchyard.core.exception import SchemaValidationError
from switchyard.core.spec import ConnectorSchemaSpec

log = logging.getLogger("switchyard.core.validation")


@dataclass(frozen=True)
class SchemaIssue:
    code: str
    loc: str
    msg: str

    def as_dict(self) -> dict:
        return {"code": self.code, "loc": self.loc, "msg": self.msg}


def _fmt_loc(loc: Any) -> str:
    """Format a pydantic 'loc' tuple/list into a readable path (actions[0].key)."""
    if not loc:
        return "<root>"
    parts: List[str] = []
    for x in loc:
        if isinstance(x, int):
            # list index
            if not parts:
                parts.append(f"[{x}]")
            else:
                parts[-1] = f"{parts[-1]}[{x}]"
        else:
            parts.append(str(x))
    return ".".join(parts)


def _collect_pydantic_issues(err: ValidationError) -> List[SchemaIssue]:
    out: List[SchemaIssue] = []
    for e in err.errors():
        loc = _fmt_loc(e.get("loc"))
        msg = e.get("msg") or "Invalid value"
        etype = e.get("type") or "schema_error"
        out.append(SchemaIssue(code=f"schema:{etype}", loc=loc, msg=msg))
    return out


def _duplicates(values: List[Any]) -> List[Any]:
    seen: set = set()
    dups: List[Any] = []
    for v in values:
        if v in seen and v not in dups:
            dups.append(v)
        seen.add(v)
    return dups


def _semantic_issues(raw: dict) -> List[SchemaIssue]:
    """Uniqueness checks, run on the raw document so they are reported even when
    the schema check fails elsewhere."""
    issues: List[SchemaIssue] = []
    actions = raw.get("actions")
    if not isinstance(actions, list):
        return issues

    keys = [a.get("key") for a in actions if isinstance(a, dict) and isinstance(a.get("key"), str)]
    for key in _duplicates(keys):
        idx = [i for i, a in enumerate(actions) if isinstance(a, dict) and a.get("key") == key]
        issues.append(
            SchemaIssue(
                code="semantic:duplicate_action_key",
                loc="actions",
                msg=f"Duplicate action key '{key}' at actions{idx}",
            )
        )

    for a_i, action in enumerate(actions):
        if not isinstance(action, dict):
            continue
        for section in ("inputParameters", "outputParameters", "input_parameters", "output_parameters"):
            params = action.get(section)
            if not isinstance(params, list):
                continue
            pkeys = [p.get("key") for p in params if isinstance(p, dict) and isinstance(p.get("key"), str)]
            for pkey in _duplicates(pkeys):
                issues.append(
                    SchemaIssue(
                        code="semantic:duplicate_parameter_key",
                        loc=f"actions[{a_i}].{section}",
                        msg=f"Duplicate parameter key '{pkey}'",
                    )
                )
    return issues


class SchemaValidator:
    """Validates raw connector documents against ``ConnectorSchemaSpec``.

    Every violation is collected (schema and semantic) before failing, in a
    deterministic order: pydantic errors first, then uniqueness checks in
    declaration order.
    """

    def check(self, raw: Any) -> tuple[Optional[ConnectorSchemaSpec], List[SchemaIssue]]:
        if not isinstance(raw, dict):
            return None, [SchemaIssue(code="schema:dict_type", loc="<root>", msg="Connector schema must be a mapping (object)")]

        issues: List[SchemaIssue] = []
        spec: Optional[ConnectorSchemaSpec] = None
        try:
            spec = ConnectorSchemaSpec.model_validate(raw)
        except ValidationError as e:
            issues.extend(_collect_pydantic_issues(e))
        issues.extend(_semantic_issues(raw))
        if issues:
            return None, issues
        return spec, issues

    def validate(self, raw: Any, *, identity: str | None = None) -> ConnectorSchemaSpec:
        spec, issues = self.check(raw)
        if issues or spec is None:
            raise SchemaValidationError(issues, identity=identity)
        return spec

    def report(self, raw: Any) -> dict:
        """Return {ok, errors: [{code, loc, msg}...]} without raising."""
        _spec, issues = self.check(raw)
        return {"ok": not issues, "errors": [x.as_dict() for x in issues]}


def validate_connector_schema(raw: Any, *, identity: str | None = None) -> ConnectorSchemaSpec:
    return SchemaValidator().validate(raw, identity=identity)
