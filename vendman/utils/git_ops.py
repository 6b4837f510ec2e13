"""Git operations — clone, fetch, checkout and head inspection for vendored repos.

``SourceControlProvider`` is the contract the sync engine consumes;
``GitProvider`` fulfils it with GitPython. Every git failure is translated
into a ``ProviderError`` subclass so callers never see ``GitCommandError``.
"""

from __future__ import annotations

import functools
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from git import Git, GitCommandError, GitError, InvalidGitRepositoryError, NoSuchPathError, Repo

from vendman.exceptions import (
    AuthFailedError,
    CloneFailedError,
    DirtyWorkingTreeError,
    EmptyRepositoryError,
    InvalidRefError,
    NetworkError,
    PathConflictError,
    ProviderError,
    RemoteNotFoundError,
    SourceUnavailableError,
    WorkspaceMissingError,
)

logger = logging.getLogger(__name__)

DETACHED_HEAD = "HEAD"
"""Ref name reported by ``current_head`` when HEAD is detached."""


@dataclass
class RepoHandle:
    """A local clone the provider has opened or created."""

    path: Path
    """Filesystem path to the clone's working tree."""

    repo: Any = field(default=None, repr=False, compare=False)
    """Provider-specific repository object, if the provider keeps one."""


class SourceControlProvider(ABC):
    """What the sync engine needs from a version control backend."""

    @abstractmethod
    def clone(
        self, locator: str, destination: Path, initial_ref: Optional[str] = None
    ) -> RepoHandle:
        """Clone ``locator`` into ``destination``, checking out ``initial_ref`` if given."""

    @abstractmethod
    def open(self, path: Path) -> RepoHandle:
        """Open an existing clone."""

    @abstractmethod
    def fetch(self, handle: RepoHandle, remote: str, refs: Optional[str] = None) -> None:
        """Fetch ``remote``, optionally restricted to ``refs``."""

    @abstractmethod
    def checkout_head(self, handle: RepoHandle, branch: str) -> None:
        """Point ``branch`` at the just-fetched head and check it out."""

    @abstractmethod
    def fast_forward(self, handle: RepoHandle) -> None:
        """Fast-forward the checked-out branch to its upstream, if it has one."""

    @abstractmethod
    def current_head(self, handle: RepoHandle) -> tuple[str, str]:
        """Return ``(ref_name, commit_id)`` for HEAD."""


# ── stderr classification ────────────────────────────────────────────

_AUTH_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "permission denied (publickey",
    "access denied",
)
_UNAVAILABLE_MARKERS = (
    "not found",
    "does not exist",
    "does not appear to be a git repository",
    "could not resolve host",
    "unable to access",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "could not read from remote repository",
)
_DIRTY_MARKERS = (
    "would be overwritten",
    "your local changes",
    "untracked working tree files",
)


def _stderr(error: GitCommandError) -> str:
    text = error.stderr or ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    text = " ".join(text.split())
    if text.startswith("stderr:"):
        text = text[len("stderr:"):].strip().strip("'")
    return text


def _matches(text: str, markers: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(m in lowered for m in markers)


def classify_clone_error(locator: str, error: GitCommandError) -> CloneFailedError:
    detail = _stderr(error) or str(error)
    if "already exists and is not an empty directory" in detail:
        return PathConflictError(f"Clone destination for {locator} already exists: {detail}")
    if _matches(detail, _AUTH_MARKERS):
        return AuthFailedError(f"Authentication failed for {locator}: {detail}")
    if "remote branch" in detail.lower() and "not found" in detail.lower():
        return CloneFailedError(f"Branch not found in {locator}: {detail}")
    if _matches(detail, _UNAVAILABLE_MARKERS):
        return SourceUnavailableError(f"Cannot reach {locator}: {detail}")
    return CloneFailedError(f"Cloning {locator} failed: {detail}")


def classify_fetch_error(path: Path, error: GitCommandError) -> ProviderError:
    detail = _stderr(error) or str(error)
    lowered = detail.lower()
    if "couldn't find remote ref" in lowered or "invalid refspec" in lowered:
        return InvalidRefError(f"Fetch in {path} failed: {detail}")
    if _matches(detail, _AUTH_MARKERS):
        return AuthFailedError(f"Fetch in {path} was refused: {detail}")
    return NetworkError(f"Fetch in {path} failed: {detail}")


def classify_checkout_error(path: Path, error: GitCommandError) -> ProviderError:
    detail = _stderr(error) or str(error)
    if _matches(detail, _DIRTY_MARKERS):
        return DirtyWorkingTreeError(f"Local changes in {path} block checkout: {detail}")
    return InvalidRefError(f"Checkout in {path} failed: {detail}")


# ── GitPython implementation ─────────────────────────────────────────


def _translate_git_errors(error_cls: type[ProviderError]):
    """Re-raise any other GitPython, OS or value error as ``error_cls``.

    Covers failures the per-call handlers do not classify, such as a
    missing ``git`` binary or a damaged object database.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except ProviderError:
                raise
            except (GitError, ValueError, OSError) as e:
                op = fn.__name__.replace("_", " ")
                raise error_cls(f"git {op} failed: {e}") from e

        return wrapper

    return decorator


class GitProvider(SourceControlProvider):
    """``SourceControlProvider`` backed by the ``git`` binary through GitPython.

    Args:
        timeout: Seconds a network call may run before git gives up.
            ``None`` disables the limit.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def _ssh_overridden(self, repo: Optional[Repo] = None) -> bool:
        """True when the user already chose an ssh command for git."""
        if "GIT_SSH_COMMAND" in os.environ or "GIT_SSH" in os.environ:
            return True
        git_cmd = repo.git if repo is not None else Git()
        try:
            git_cmd.config("--get", "core.sshCommand")
        except GitCommandError:
            return False
        return True

    def _network_env(self, repo: Optional[Repo] = None) -> dict[str, str]:
        """Environment that makes git fail instead of prompting or hanging."""
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.timeout:
            seconds = str(max(1, int(self.timeout)))
            env["GIT_HTTP_LOW_SPEED_LIMIT"] = "1"
            env["GIT_HTTP_LOW_SPEED_TIME"] = seconds
            if not self._ssh_overridden(repo):
                env["GIT_SSH_COMMAND"] = (
                    f"ssh -o BatchMode=yes -o ConnectTimeout={seconds}"
                )
        return env

    @_translate_git_errors(CloneFailedError)
    def clone(
        self, locator: str, destination: Path, initial_ref: Optional[str] = None
    ) -> RepoHandle:
        destination = Path(destination)
        if destination.exists() and any(destination.iterdir()):
            raise PathConflictError(f"Clone destination {destination} is not empty")

        kwargs: dict[str, Any] = {}
        if initial_ref:
            kwargs["branch"] = initial_ref

        logger.debug("git clone %s -> %s (ref=%s)", locator, destination, initial_ref)
        try:
            repo = Repo.clone_from(locator, destination, env=self._network_env(), **kwargs)
        except GitCommandError as e:
            raise classify_clone_error(locator, e) from e
        return RepoHandle(path=destination, repo=repo)

    @_translate_git_errors(WorkspaceMissingError)
    def open(self, path: Path) -> RepoHandle:
        path = Path(path)
        try:
            repo = Repo(path)
        except NoSuchPathError as e:
            raise WorkspaceMissingError(f"Workspace directory {path} does not exist") from e
        except InvalidGitRepositoryError as e:
            raise WorkspaceMissingError(f"{path} is not a git repository") from e
        return RepoHandle(path=path, repo=repo)

    def _repo(self, handle: RepoHandle) -> Repo:
        if handle.repo is None:
            handle.repo = self.open(handle.path).repo
        return handle.repo

    @_translate_git_errors(NetworkError)
    def fetch(self, handle: RepoHandle, remote: str, refs: Optional[str] = None) -> None:
        repo = self._repo(handle)
        try:
            origin = repo.remote(remote)
        except ValueError as e:
            raise RemoteNotFoundError(f"No remote '{remote}' in {handle.path}") from e

        logger.debug("git fetch %s %s in %s", remote, refs or "", handle.path)
        try:
            with repo.git.custom_environment(**self._network_env(repo)):
                origin.fetch(refspec=refs, kill_after_timeout=self.timeout)
        except GitCommandError as e:
            raise classify_fetch_error(handle.path, e) from e

    @_translate_git_errors(ProviderError)
    def checkout_head(self, handle: RepoHandle, branch: str) -> None:
        repo = self._repo(handle)
        logger.debug("git checkout -B %s FETCH_HEAD in %s", branch, handle.path)
        try:
            repo.git.checkout("-B", branch, "FETCH_HEAD")
        except GitCommandError as e:
            raise classify_checkout_error(handle.path, e) from e

    @_translate_git_errors(ProviderError)
    def fast_forward(self, handle: RepoHandle) -> None:
        repo = self._repo(handle)
        if not repo.head.is_valid() or repo.head.is_detached:
            logger.debug("Nothing to fast-forward in %s", handle.path)
            return

        upstream = repo.active_branch.tracking_branch()
        if upstream is None or not upstream.is_valid():
            logger.debug("%s has no upstream; fetch only", handle.path)
            return

        logger.debug("git merge --ff-only %s in %s", upstream.name, handle.path)
        try:
            repo.git.merge("--ff-only", upstream.name)
        except GitCommandError as e:
            detail = _stderr(e) or str(e)
            if _matches(detail, _DIRTY_MARKERS):
                raise DirtyWorkingTreeError(
                    f"Local changes in {handle.path} block fast-forward: {detail}"
                ) from e
            raise ProviderError(
                f"Cannot fast-forward {handle.path} to {upstream.name}: {detail}"
            ) from e

    @_translate_git_errors(ProviderError)
    def current_head(self, handle: RepoHandle) -> tuple[str, str]:
        repo = self._repo(handle)
        if not repo.head.is_valid():
            raise EmptyRepositoryError(f"{handle.path} has no commits yet")

        ref = DETACHED_HEAD if repo.head.is_detached else repo.active_branch.name
        return ref, repo.head.commit.hexsha
