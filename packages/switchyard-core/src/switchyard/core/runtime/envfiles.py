from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from switchyard.core.spec import EnvFileSpec


def _read_dotenv(p: Path) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for raw in p.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip()
        v = v.strip()
        # strip simple quotes
        if len(v) >= 2 and ((v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'"))):
            v = v[1:-1]
        if k:
            out[k] = v
    return out


def _read_json(p: Path) -> Dict[str, str]:
    obj = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(obj, dict):
        raise TypeError(f"json env file must be a JSON object: {p}")
    return {str(k): str(v) for k, v in obj.items() if v is not None and not isinstance(v, (dict, list))}


def _read_dir(p: Path) -> Dict[str, str]:
    # Kubernetes-style secret mounts: one file per key
    if not p.is_dir():
        raise NotADirectoryError(str(p))
    return {fp.name: fp.read_text(encoding="utf-8").rstrip("\n") for fp in sorted(p.iterdir()) if fp.is_file()}


_READERS = {
    "dotenv": _read_dotenv,
    "json": _read_json,
    "dir": _read_dir,
    "directory": _read_dir,
}


def load_env_files(specs: Iterable[EnvFileSpec], *, base_dir: Optional[Path] = None) -> Dict[str, str]:
    """Load env vars for a list of EnvFileSpec.

    Later specs override earlier ones (deterministic).
    """
    merged: Dict[str, str] = {}
    for s in specs:
        kind = (s.type or "").strip().lower()
        path = Path(s.path).expanduser()
        if base_dir and not path.is_absolute():
            path = base_dir / path

        if not path.exists():
            if s.optional:
                continue
            raise FileNotFoundError(str(path))

        reader = _READERS.get(kind)
        if reader is None:
            raise ValueError(f"Unsupported env_files type: {s.type}")
        data = reader(path)

        if s.prefix:
            data = {f"{s.prefix}{k}": v for k, v in data.items()}
        merged.update(data)
    return merged


def parse_env_files(entries: Any) -> List[EnvFileSpec]:
    """Parse the runner config ``env_files`` list into specs."""
    if not entries:
        return []
    if not isinstance(entries, list):
        raise TypeError("env_files must be a list")
    out: List[EnvFileSpec] = []
    for it in entries:
        if not isinstance(it, dict):
            raise TypeError("env_files entry must be a mapping")
        out.append(
            EnvFileSpec(
                type=str(it.get("type") or "dotenv"),
                path=str(it.get("path") or ""),
                optional=bool(it.get("optional", False)),
                prefix=str(it.get("prefix") or ""),
            )
        )
    return out
