"""Shallow, branch-pinned retrieval of connector repositories into the local cache.

Cache layout::

    <connectors_root>/<owner>/<name>/<branch>/      <- clone root

A destination that already holds a completed clone is treated as immutable
content: fetching it again is a successful no-op, never an update. Clones are
made into a temporary sibling directory and renamed into place, so an
interrupted clone never looks "already present" on the next start.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from switchyard.core.exception import FetchError
from switchyard.core.observability import log_event
from switchyard.core.runtime.settings import Settings

log = logging.getLogger("switchyard.core.fetcher")


class IdentityLocks:
    """Arena of re-entrant locks keyed by connector identity (``owner/name@branch``).

    All mutation of one identity's cache directory happens while holding its lock.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, identity: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(identity)
            if lock is None:
                lock = threading.RLock()
                self._locks[identity] = lock
            return lock

    @contextmanager
    def hold(self, identity: str) -> Iterator[None]:
        lock = self.get(identity)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Process-wide arena: the cache directory tree is shared by every Connector.
IDENTITY_LOCKS = IdentityLocks()


def cache_path(connectors_root: str | Path, owner: str, name: str, branch: str) -> Path:
    return Path(connectors_root) / owner / name / branch


def repository_url(owner: str, name: str, token: Optional[str] = None, *, base_url: str = "https://github.com") -> str:
    """Build the clone URL; credentials are only embedded for http(s) remotes.

    If token is not provided, only public repositories are available.
    """
    base = base_url.rstrip("/")
    scheme, sep, rest = base.partition("://")
    if token and sep and scheme in {"http", "https"}:
        base = f"{scheme}://oauth2:{token}@{rest}"
    return f"{base}/{owner}/{name}.git"


def _redact(text: str, secret: Optional[str]) -> str:
    if secret:
        text = text.replace(secret, "***")
    return text


def _secret_from_url(url: str) -> Optional[str]:
    _, sep, rest = url.partition("://")
    if not sep or "@" not in rest.split("/", 1)[0]:
        return None
    userinfo = rest.split("@", 1)[0]
    return userinfo.split(":", 1)[1] if ":" in userinfo else userinfo


def _rm_rf(p: Path) -> None:
    if not p.exists() and not p.is_symlink():
        return
    if p.is_symlink() or p.is_file():
        p.unlink()
        return
    shutil.rmtree(p)


@dataclass(frozen=True)
class FetchResult:
    destination: Path
    fetched: bool


class RepositoryFetcher:
    """Clones connector repositories with ``git clone --depth 1 --single-branch``."""

    def __init__(self, settings: Settings, *, locks: IdentityLocks | None = None):
        self.settings = settings
        self.locks = locks or IDENTITY_LOCKS

    @staticmethod
    def is_fetched(destination: str | Path) -> bool:
        return (Path(destination) / ".git").exists()

    def fetch(self, identity: str, url: str, branch: str, destination: str | Path) -> FetchResult:
        """Ensure ``destination`` holds a clone of ``branch``.

        Returns ``FetchResult(fetched=False)`` when the clone is already present.
        Any other failure raises FetchError.
        """
        dest = Path(destination)
        with self.locks.hold(identity):
            if self.is_fetched(dest):
                log_event(log, settings=self.settings, level=logging.INFO, event="connector_cache_hit", connector=identity, path=str(dest))
                return FetchResult(destination=dest, fetched=False)

            if dest.exists():
                # Left over from a crashed run outside the temp-dir protocol
                log.warning("Removing incomplete connector cache directory %s (%s)", dest, identity)
                _rm_rf(dest)

            dest.parent.mkdir(parents=True, exist_ok=True)
            tmp_dir = Path(tempfile.mkdtemp(prefix=f".{dest.name}.clone-", dir=str(dest.parent)))
            try:
                self._clone(identity, url, branch, tmp_dir)
                os.replace(str(tmp_dir), str(dest))
            except BaseException:
                shutil.rmtree(tmp_dir, ignore_errors=True)
                raise

            log_event(log, settings=self.settings, level=logging.INFO, event="connector_fetched", connector=identity, path=str(dest))
            return FetchResult(destination=dest, fetched=True)

    def _clone(self, identity: str, url: str, branch: str, target: Path) -> None:
        secret = _secret_from_url(url)
        cmd = [
            self.settings.git_executable,
            "clone",
            "--depth",
            "1",
            "--single-branch",
            "--branch",
            branch,
            "--",
            url,
            str(target),
        ]
        env = dict(os.environ)
        # never block on an interactive credential prompt
        env["GIT_TERMINAL_PROMPT"] = "0"
        timeout = self.settings.fetch_timeout_seconds

        log_event(log, settings=self.settings, level=logging.INFO, event="connector_fetch_start", connector=identity, url=_redact(url, secret))
        try:
            proc = subprocess.run(cmd, env=env, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise FetchError(
                f"Fetching connector '{identity}' timed out after {timeout}s",
                identity=identity,
            ) from e
        except OSError as e:
            raise FetchError(
                f"Unable to run {self.settings.git_executable!r} to fetch connector '{identity}': {e}",
                identity=identity,
            ) from e

        if proc.returncode != 0:
            stderr = _redact((proc.stderr or "").strip(), secret)
            raise FetchError(
                f"Failed to fetch connector '{identity}' (branch {branch!r}): {stderr or f'git exited with {proc.returncode}'}",
                identity=identity,
                stderr=stderr,
            )
