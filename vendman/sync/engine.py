"""Sync engine — vend, update, list, remove and clean.

Batch workflows (``update`` and ``list``) isolate failures per dependency:
each item yields a success or a typed failure, and the batch itself only
fails when the manifest cannot be loaded. Results are always sorted by
name, including when items run concurrently.
"""

from __future__ import annotations

import concurrent.futures
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, TypeVar

from vendman.exceptions import (
    DependencyNotFoundError,
    InvalidLocatorError,
    ManifestIOError,
    PathConflictError,
    VendmanError,
)
from vendman.manifest.models import (
    Dependency,
    Pinned,
    Tracking,
    derive_name,
    make_dependency,
)
from vendman.manifest.store import ManifestStore
from vendman.utils.git_ops import SourceControlProvider

logger = logging.getLogger(__name__)

ORIGIN = "origin"
STAGING_PREFIX = ".staging-"
RESERVED_NAMES = frozenset({ManifestStore.MANIFEST_FILE})

T = TypeVar("T")


class OutcomeStatus(Enum):
    UPDATED = "updated"
    FAILED = "failed"


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of refreshing a single dependency."""

    name: str
    status: OutcomeStatus
    ref: Optional[str] = None  # Pinned branch, None for tracking entries
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.UPDATED

    @classmethod
    def updated(cls, name: str, ref: Optional[str] = None) -> "UpdateOutcome":
        return cls(name=name, status=OutcomeStatus.UPDATED, ref=ref)

    @classmethod
    def failed(cls, name: str, reason: str) -> "UpdateOutcome":
        return cls(name=name, status=OutcomeStatus.FAILED, reason=reason)


@dataclass(frozen=True)
class ListRow:
    """Current local state of one dependency's clone."""

    name: str
    ref: str = ""
    commit: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


@dataclass(frozen=True)
class VendResult:
    name: str
    dependency: Dependency
    replaced: Optional[Dependency] = None


def _describe(error: VendmanError) -> str:
    return f"{error.category}: {error}"


class SyncEngine:
    """Drives the source control provider according to the manifest."""

    def __init__(
        self,
        store: ManifestStore,
        provider: SourceControlProvider,
        jobs: int = 1,
    ):
        self.store = store
        self.provider = provider
        self.jobs = max(1, jobs)

    # ── init ─────────────────────────────────────────────────────────

    def init(self) -> bool:
        """Create the workspace; returns ``False`` if it already existed."""
        return self.store.initialize()

    # ── vend ─────────────────────────────────────────────────────────

    def vend(self, locator: str, branch: Optional[str] = None) -> VendResult:
        """Clone ``locator`` and declare it in the manifest.

        The clone lands in a staging directory first. Only once it succeeds
        is any previous clone with the same derived name replaced and the
        manifest saved, so a failed clone leaves both untouched.

        Raises:
            NotInitializedError: The workspace has not been initialized.
            InvalidLocatorError: No name can be derived from ``locator``.
            CloneFailedError: The provider could not clone (manifest unchanged).
        """
        name = derive_name(locator)
        if name in RESERVED_NAMES or name.startswith(STAGING_PREFIX):
            raise InvalidLocatorError(f"'{name}' is reserved by vendman")

        with self.store.lock():
            manifest = self.store.load()
            target = self.store.workspace_dir(name)
            if target.exists() and name not in manifest:
                raise PathConflictError(
                    f"{target} exists but is not a declared dependency"
                )

            staging = self.store.workspace_dir(STAGING_PREFIX + name)
            _remove_tree(staging)

            logger.info("Cloning %s into %s", locator, target)
            try:
                self.provider.clone(locator, staging, branch)
            except Exception:
                _remove_tree(staging)
                raise

            dep = make_dependency(locator, branch)
            previous = manifest.add(name, dep)
            if previous is not None:
                logger.warning("Replacing existing dependency %s (was %s)", name, previous)

            try:
                _remove_tree(target)
                staging.rename(target)
            except OSError as e:
                _remove_tree(staging)
                raise ManifestIOError(f"Cannot move clone into {target}: {e}") from e

            self.store.save(manifest)

        return VendResult(name=name, dependency=dep, replaced=previous)

    # ── update ───────────────────────────────────────────────────────

    def update(self) -> list[UpdateOutcome]:
        """Fetch every declared dependency from ``origin``.

        Tracking entries are fetched and fast-forwarded; pinned entries fetch
        their branch and check it out. The manifest is not modified.
        """
        manifest = self.store.load()
        return self._run_all(manifest.dependencies, self._update_one)

    def _update_one(self, name: str, dep: Dependency) -> UpdateOutcome:
        try:
            handle = self.provider.open(self.store.workspace_dir(name))
            if isinstance(dep, Pinned):
                self.provider.fetch(handle, ORIGIN, dep.branch)
                self.provider.checkout_head(handle, dep.branch)
                outcome = UpdateOutcome.updated(name, dep.branch)
            elif isinstance(dep, Tracking):
                self.provider.fetch(handle, ORIGIN)
                self.provider.fast_forward(handle)
                outcome = UpdateOutcome.updated(name)
            else:
                raise TypeError(f"Unknown dependency type: {type(dep).__name__}")
        except VendmanError as e:
            logger.warning("Updating %s failed: %s", name, e)
            return UpdateOutcome.failed(name, _describe(e))

        logger.info("Updated %s", name)
        return outcome

    # ── list ─────────────────────────────────────────────────────────

    def list(self) -> list[ListRow]:
        """Report the checked-out ref and commit for every dependency."""
        manifest = self.store.load()
        return self._run_all(manifest.dependencies, self._inspect_one)

    def _inspect_one(self, name: str, dep: Dependency) -> ListRow:
        try:
            handle = self.provider.open(self.store.workspace_dir(name))
            ref, commit = self.provider.current_head(handle)
        except VendmanError as e:
            logger.warning("Inspecting %s failed: %s", name, e)
            return ListRow(name=name, error=_describe(e))
        return ListRow(name=name, ref=ref, commit=commit)

    # ── remove ───────────────────────────────────────────────────────

    def remove(self, name: str) -> Dependency:
        """Un-declare ``name`` and delete its clone.

        Raises:
            DependencyNotFoundError: ``name`` is not in the manifest.
        """
        with self.store.lock():
            manifest = self.store.load()
            if name not in manifest:
                raise DependencyNotFoundError(name)

            dep = manifest.remove(name)
            self.store.save(manifest)
            try:
                _remove_tree(self.store.workspace_dir(name))
            except OSError as e:
                raise ManifestIOError(
                    f"Removed {name} from the manifest but could not delete its clone: {e}"
                ) from e

        logger.info("Removed %s", name)
        return dep

    # ── clean ────────────────────────────────────────────────────────

    def clean(self) -> None:
        """Delete the whole managed root, manifest and clones included."""
        root = self.store.root
        with self.store.lock():
            try:
                shutil.rmtree(root)
            except OSError as e:
                raise ManifestIOError(f"Cannot remove {root}: {e}") from e
        logger.info("Removed %s", root)

    # ── helpers ──────────────────────────────────────────────────────

    def _run_all(
        self,
        dependencies: dict[str, Dependency],
        fn: Callable[[str, Dependency], T],
    ) -> list[T]:
        names = sorted(dependencies)
        if self.jobs == 1 or len(names) < 2:
            return [fn(name, dependencies[name]) for name in names]

        results: dict[str, T] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=self.jobs) as executor:
            futures = {
                executor.submit(fn, name, dependencies[name]): name for name in names
            }
            for future in concurrent.futures.as_completed(futures):
                results[futures[future]] = future.result()
        return [results[name] for name in names]


def _remove_tree(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
