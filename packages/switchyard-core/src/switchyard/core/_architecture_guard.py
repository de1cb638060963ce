"""Switchyard strict architecture guard.

Enforced at import time:

1) Customized exceptions are defined only in `switchyard/core/exception.py`.
2) `*Spec` (pydantic schema) classes are defined only in `switchyard/core/spec.py`.

Violations raise RuntimeError naming every offending file + class.
Set SWITCHYARD_STRICT_ARCH=0 to disable.
"""

from __future__ import annotations

import ast
import os
from pathlib import Path
from typing import Iterable, List, Tuple

_EXCLUDED_PARTS = {"__pycache__", "tests", "build", "dist", ".git"}


def _iter_python_files(package_root: Path) -> Iterable[Path]:
    for path in sorted(package_root.rglob("*.py")):
        if _EXCLUDED_PARTS.intersection(path.parts):
            continue
        yield path


def _base_name(node: ast.expr) -> str:
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    if isinstance(node, ast.Subscript):
        return _base_name(node.value)
    return ""


def _is_exception_class(cls: ast.ClassDef) -> bool:
    for base in cls.bases:
        name = _base_name(base)
        if name in {"BaseException", "Exception"} or name.endswith(("Error", "Exception")):
            return True
    return False


def find_violations(package_root: Path) -> Tuple[List[Tuple[str, Path]], List[Tuple[str, Path]]]:
    exception_file = (package_root / "exception.py").resolve()
    spec_file = (package_root / "spec.py").resolve()

    exc_violations: List[Tuple[str, Path]] = []
    spec_violations: List[Tuple[str, Path]] = []
    for path in _iter_python_files(package_root):
        resolved = path.resolve()
        try:
            tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))
        except (OSError, UnicodeDecodeError, SyntaxError) as e:
            raise RuntimeError(f"[switchyard strict-arch] Cannot parse source file: {path}") from e

        for node in ast.walk(tree):
            if not isinstance(node, ast.ClassDef):
                continue
            if resolved != exception_file and _is_exception_class(node):
                exc_violations.append((node.name, path))
            if resolved != spec_file and node.name.endswith("Spec"):
                spec_violations.append((node.name, path))
    return exc_violations, spec_violations


def assert_architecture() -> None:
    if os.getenv("SWITCHYARD_STRICT_ARCH", "1") == "0":
        return

    exc_violations, spec_violations = find_violations(Path(__file__).resolve().parent)
    if not exc_violations and not spec_violations:
        return

    lines: List[str] = ["Switchyard strict architecture check failed:"]
    if exc_violations:
        lines.append("RULE #1 (exceptions):")
        lines.extend(f"  - {cls} defined in {path}" for cls, path in exc_violations)
        lines.append("Fix: move these classes into switchyard/core/exception.py.")
    if spec_violations:
        lines.append("RULE #2 (specs):")
        lines.extend(f"  - {cls} defined in {path}" for cls, path in spec_violations)
        lines.append("Fix: move these classes into switchyard/core/spec.py.")
    raise RuntimeError("\n".join(lines))
