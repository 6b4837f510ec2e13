"""Shared fixtures: an in-memory source control provider and git upstreams."""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from vendman.exceptions import (
    CloneFailedError,
    EmptyRepositoryError,
    InvalidRefError,
    RemoteNotFoundError,
    SourceUnavailableError,
    WorkspaceMissingError,
)
from vendman.manifest.store import ManifestStore
from vendman.sync.engine import SyncEngine
from vendman.utils.git_ops import RepoHandle, SourceControlProvider

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")

STATE_FILE = "fake-head.json"


class FakeProvider(SourceControlProvider):
    """Provider that never touches git or the network.

    ``upstreams`` maps a locator to ``{branch: commit}``; ``main`` is the
    default branch. Clone state lives in a small JSON file inside the
    destination so it follows the directory when the engine renames it.
    ``failures`` maps ``(operation, key)`` to an exception to raise, where
    the key is the locator for clones and the directory name otherwise.
    """

    def __init__(self, upstreams: dict[str, dict[str, str]] | None = None):
        self.upstreams = upstreams or {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple] = []

    def _maybe_fail(self, op: str, key: str) -> None:
        error = self.failures.get((op, key))
        if error is not None:
            raise error

    def _read(self, handle: RepoHandle) -> dict:
        return json.loads((handle.path / STATE_FILE).read_text())

    def _write(self, handle: RepoHandle, state: dict) -> None:
        (handle.path / STATE_FILE).write_text(json.dumps(state))

    def clone(self, locator, destination, initial_ref=None):
        self.calls.append(("clone", locator, Path(destination).name, initial_ref))
        self._maybe_fail("clone", locator)
        if locator not in self.upstreams:
            raise SourceUnavailableError(f"Cannot reach {locator}")
        branches = self.upstreams[locator]
        branch = initial_ref or "main"
        if branch not in branches:
            raise CloneFailedError(f"Branch not found in {locator}: {branch}")

        Path(destination).mkdir(parents=True)
        handle = RepoHandle(path=Path(destination))
        self._write(
            handle,
            {"source": locator, "branch": branch, "commit": branches[branch], "fetched": None},
        )
        return handle

    def open(self, path):
        path = Path(path)
        if not (path / STATE_FILE).is_file():
            raise WorkspaceMissingError(f"{path} is not a git repository")
        return RepoHandle(path=path)

    def fetch(self, handle, remote, refs=None):
        self.calls.append(("fetch", handle.path.name, remote, refs))
        self._maybe_fail("fetch", handle.path.name)
        if remote != "origin":
            raise RemoteNotFoundError(f"No remote '{remote}'")
        state = self._read(handle)
        branches = self.upstreams[state["source"]]
        branch = refs or state["branch"]
        if branch not in branches:
            raise InvalidRefError(f"couldn't find remote ref {branch}")
        state["fetched"] = branches[branch]
        self._write(handle, state)

    def checkout_head(self, handle, branch):
        self.calls.append(("checkout", handle.path.name, branch))
        self._maybe_fail("checkout", handle.path.name)
        state = self._read(handle)
        state["branch"] = branch
        state["commit"] = state["fetched"]
        self._write(handle, state)

    def fast_forward(self, handle):
        self.calls.append(("fast_forward", handle.path.name))
        self._maybe_fail("fast_forward", handle.path.name)
        state = self._read(handle)
        if state["fetched"]:
            state["commit"] = state["fetched"]
        self._write(handle, state)

    def current_head(self, handle):
        self._maybe_fail("current_head", handle.path.name)
        state = self._read(handle)
        if not state["commit"]:
            raise EmptyRepositoryError(f"{handle.path} has no commits yet")
        return state["branch"], state["commit"]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider(
        {
            "https://github.com/acme/alpha": {"main": "a" * 40, "dev": "d" * 40},
            "https://github.com/acme/beta.git": {"main": "b" * 40},
            "https://github.com/acme/gamma": {"main": "c" * 40, "release": "e" * 40},
        }
    )


@pytest.fixture
def store(tmp_path: Path) -> ManifestStore:
    store = ManifestStore(tmp_path / "vendman", lock_timeout=1.0)
    store.initialize()
    return store


@pytest.fixture
def engine(store: ManifestStore, provider: FakeProvider) -> SyncEngine:
    return SyncEngine(store, provider)


# --- Real git upstreams ---

AUTHOR = {"name": "vendman tests", "email": "tests@vendman.invalid"}


def commit_file(repo, relpath: str, content: str, message: str) -> str:
    """Write ``relpath`` in ``repo``, commit it, and return the new hexsha."""
    from git import Actor

    path = Path(repo.working_tree_dir) / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([relpath])
    actor = Actor(AUTHOR["name"], AUTHOR["email"])
    return repo.index.commit(message, author=actor, committer=actor).hexsha


def commit_on_branch(repo, branch: str, relpath: str, content: str) -> str:
    """Commit on ``branch`` and switch the upstream back to ``main``."""
    repo.git.checkout(branch)
    try:
        return commit_file(repo, relpath, content, f"update {relpath} on {branch}")
    finally:
        repo.git.checkout("main")


@pytest.fixture
def make_upstream(tmp_path):
    """Factory for upstream repos with a ``main`` and a ``dev`` branch."""
    from git import Repo

    def _make(name: str = "upstream"):
        repo = Repo.init(tmp_path / "remotes" / name, mkdir=True)
        commit_file(repo, "README.md", f"# {name}\n", "initial commit")
        repo.git.branch("-M", "main")
        repo.git.checkout("-b", "dev")
        commit_file(repo, "dev.txt", "dev work\n", "dev commit")
        repo.git.checkout("main")
        return repo

    return _make
