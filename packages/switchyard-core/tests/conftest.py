import shutil
import subprocess
import sys
import threading
from pathlib import Path

# Allow running tests without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import pytest
import yaml

from switchyard.core.fetcher import FetchResult, IdentityLocks
from switchyard.core.exception import FetchError
from switchyard.core.loader import PackageLoader
from switchyard.core.runtime.settings import Settings


def connector_document(*keys: str) -> dict:
    """A well-formed connector schema declaring one action per key."""
    return {
        "title": "Demo connector",
        "actions": [
            {
                "key": k,
                "title": k.capitalize(),
                "description": f"{k} something",
                "type": "create",
                "inputParameters": [
                    {"key": "recipient", "title": "Recipient", "validation": {"required": True}},
                    {"key": "note", "title": "Note"},
                ],
                "outputParameters": [{"key": "status", "title": "Status"}],
                "operation": {"type": "python", "handler": "handlers.py:run"},
            }
            for k in keys
        ],
    }


def write_artifact(root: Path, doc: dict, artifact_path: str = "dist/connector.yaml") -> Path:
    p = root / artifact_path
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(doc, sort_keys=False), encoding="utf-8")
    return p


class FakeFetcher:
    """Stands in for RepositoryFetcher: "clones" by writing a document to disk."""

    def __init__(self, doc: dict | None = None, *, error: Exception | None = None, delay: threading.Event | None = None):
        self.doc = doc
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str, str, Path]] = []
        self._lock = threading.Lock()

    def fetch(self, identity, url, branch, destination):
        with self._lock:
            self.calls.append((identity, url, branch, Path(destination)))
        if self.delay is not None:
            self.delay.wait(timeout=5)
        if self.error is not None:
            raise self.error
        dest = Path(destination)
        (dest / ".git").mkdir(parents=True, exist_ok=True)
        if self.doc is not None:
            write_artifact(dest, self.doc)
        return FetchResult(destination=dest, fetched=True)


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        connectors_root=str(tmp_path / "connectors"),
        artifact_path="dist/connector.yaml",
        fetch_timeout_seconds=30,
        log_level="INFO",
    )


@pytest.fixture()
def locks():
    return IdentityLocks()


@pytest.fixture()
def loader():
    return PackageLoader()


@pytest.fixture()
def descriptor():
    return {
        "RepoOwner": "acme",
        "RepoName": "demo",
        "RepoBranch": "v1",
        "ConfigurationParameters": {"RunnerUrl": "http://localhost", "RunnerApiKey": "k-123"},
    }


def _git(*args: str, cwd: Path | None = None) -> None:
    subprocess.run(
        ["git", "-c", "user.name=switchyard", "-c", "user.email=ci@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=str(cwd) if cwd else None,
        check=True,
        capture_output=True,
    )


@pytest.fixture()
def git_remote(tmp_path):
    """Factory creating bare repositories under a file:// base URL.

    make(owner, name, branch, files) -> base_url
    """
    if shutil.which("git") is None:
        pytest.skip("git executable not available")

    remotes = tmp_path / "remotes"

    def make(owner: str, name: str, branch: str, files: dict[str, str]) -> str:
        work = tmp_path / "work" / owner / name / branch.replace("/", "_")
        work.mkdir(parents=True, exist_ok=True)
        _git("init", "-q", cwd=work)
        _git("checkout", "-q", "-b", branch, cwd=work)
        for rel, text in files.items():
            p = work / rel
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(text, encoding="utf-8")
        _git("add", "-A", cwd=work)
        _git("commit", "-q", "-m", "build", cwd=work)
        bare = remotes / owner / f"{name}.git"
        if bare.exists():
            _git("push", "-q", str(bare), f"{branch}:{branch}", cwd=work)
        else:
            bare.parent.mkdir(parents=True, exist_ok=True)
            _git("clone", "-q", "--bare", str(work), str(bare))
        return remotes.resolve().as_uri()

    return make


@pytest.fixture()
def failing_fetcher():
    return FakeFetcher(error=FetchError("Failed to fetch connector 'acme/demo@v1': Remote branch nope not found", identity="acme/demo@v1"))
