from __future__ import annotations

import copy
import hashlib
import importlib.util
import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Optional

import yaml

from switchyard.core.exception import LoadError

log = logging.getLogger("switchyard.core.loader")

# Attribute a Python artifact must expose.
PY_ARTIFACT_ATTR = "connector"


def _sha256_bytes(b: bytes) -> str:
    h = hashlib.sha256()
    h.update(b)
    return h.hexdigest()


@dataclass
class _Entry:
    sha256: str
    value: Any


def exec_python_file(path: Path, data: bytes, *, digest: str) -> ModuleType:
    """Execute python source bytes as a fresh module.

    The module is never registered in ``sys.modules`` and the source is compiled
    from the bytes just read, so bytecode caches cannot serve stale content.
    """
    mod_name = f"switchyard_connector_{digest[:16]}"
    spec = importlib.util.spec_from_file_location(mod_name, path)
    if not spec:
        raise LoadError(f"Unable to load python artifact: {path}", path=str(path))
    m = importlib.util.module_from_spec(spec)
    # not spec.loader.exec_module: SourceFileLoader may serve a __pycache__ entry
    # whose mtime/size still match a replaced file
    code = compile(data, str(path), "exec")
    exec(code, m.__dict__)
    return m


class PackageLoader:
    """Reads connector artifacts, re-parsing only when their content changed.

    Freshness is tracked per resolved path with a sha256 of the file bytes, so
    an artifact replaced on disk is observed on the next ``load`` without a
    process restart.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._documents: Dict[str, _Entry] = {}
        self._modules: Dict[str, _Entry] = {}

    def _read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise LoadError(f"Connector artifact not found: {path}", path=str(path)) from e
        except OSError as e:
            raise LoadError(f"Connector artifact cannot be read: {path}: {e}", path=str(path)) from e

    def load(self, artifact_path: str | Path) -> Dict[str, Any]:
        """Return the raw connector document stored at ``artifact_path``."""
        path = Path(artifact_path).expanduser().resolve()
        data = self._read(path)
        digest = _sha256_bytes(data)
        key = str(path)

        with self._lock:
            entry = self._documents.get(key)
            if entry is not None and entry.sha256 == digest:
                return copy.deepcopy(entry.value)

        doc = self._parse(path, data, digest)
        if not isinstance(doc, dict):
            raise LoadError(
                f"Connector artifact must contain a mapping (object), got {type(doc).__name__}: {path}",
                path=key,
            )
        with self._lock:
            if key in self._documents:
                log.info("Connector artifact changed on disk; reloaded %s", path)
            self._documents[key] = _Entry(sha256=digest, value=doc)
        return copy.deepcopy(doc)

    def load_module(self, path: str | Path) -> ModuleType:
        """Load a python file (fresh when its content changed)."""
        p = Path(path).expanduser().resolve()
        data = self._read(p)
        digest = _sha256_bytes(data)
        key = str(p)
        with self._lock:
            entry = self._modules.get(key)
            if entry is not None and entry.sha256 == digest:
                return entry.value
        try:
            m = exec_python_file(p, data, digest=digest)
        except LoadError:
            raise
        except Exception as e:
            raise LoadError(f"Failed executing python file: {p}: {e}", path=key) from e
        with self._lock:
            self._modules[key] = _Entry(sha256=digest, value=m)
        return m

    def _parse(self, path: Path, data: bytes, digest: str) -> Any:
        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            try:
                return yaml.safe_load(data.decode("utf-8"))
            except (yaml.YAMLError, UnicodeDecodeError) as e:
                raise LoadError(f"Connector artifact is not valid YAML: {path}: {e}", path=str(path)) from e
        if suffix == ".json":
            try:
                return json.loads(data.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise LoadError(f"Connector artifact is not valid JSON: {path}: {e}", path=str(path)) from e
        if suffix == ".py":
            m = self.load_module(path)
            if not hasattr(m, PY_ARTIFACT_ATTR):
                raise LoadError(f"Python connector artifact must define '{PY_ARTIFACT_ATTR}': {path}", path=str(path))
            return getattr(m, PY_ARTIFACT_ATTR)
        raise LoadError(f"Unsupported connector artifact type {suffix or '(none)'}: {path}", path=str(path))

    def invalidate(self, path: Optional[str | Path] = None) -> None:
        with self._lock:
            if path is None:
                self._documents.clear()
                self._modules.clear()
                return
            key = str(Path(path).expanduser().resolve())
            self._documents.pop(key, None)
            self._modules.pop(key, None)


# Shared loader; connectors may also be given their own.
LOADER = PackageLoader()
