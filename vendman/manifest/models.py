"""Dependency model — tracking/pinned entries and the whole-manifest container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from vendman.exceptions import CorruptManifestError, InvalidLocatorError


@dataclass(frozen=True)
class Tracking:
    """Follows the upstream default branch."""

    source: str


@dataclass(frozen=True)
class Pinned:
    """Follows a specific branch, checked out explicitly after each fetch."""

    source: str
    branch: str


Dependency = Union[Tracking, Pinned]


def make_dependency(source: str, branch: Optional[str] = None) -> Dependency:
    """Build the variant implied by whether a branch was supplied."""
    if branch:
        return Pinned(source=source, branch=branch)
    return Tracking(source=source)


def describe_ref(dep: Dependency) -> str:
    """Return the declared ref for display: the pinned branch or ``(default)``."""
    if isinstance(dep, Pinned):
        return dep.branch
    if isinstance(dep, Tracking):
        return "(default)"
    raise TypeError(f"Unknown dependency type: {type(dep).__name__}")


def derive_name(locator: str) -> str:
    """Derive a dependency name from the final path segment of ``locator``.

    Handles URLs, local paths and scp-style ``host:owner/repo`` locators.
    A trailing ``.git`` is dropped, matching the directory ``git clone``
    would create.

    Raises:
        InvalidLocatorError: If no usable segment remains.
    """
    trimmed = locator.strip().rstrip("/\\")
    segment = trimmed.replace("\\", "/").rsplit("/", 1)[-1]
    # scp-style: git@host:repo.git with no slash after the colon
    if ":" in segment and "/" not in trimmed.split(":", 1)[-1]:
        segment = segment.rsplit(":", 1)[-1]
    if segment.endswith(".git"):
        segment = segment[: -len(".git")]

    if segment in ("", ".", ".."):
        raise InvalidLocatorError(f"Cannot derive a dependency name from '{locator}'")
    return segment


@dataclass
class Manifest:
    """The persisted whole-of-state: schema version plus dependencies by name."""

    version: str
    dependencies: dict[str, Dependency] = field(default_factory=dict)

    def add(self, name: str, dep: Dependency) -> Dependency | None:
        """Insert ``dep`` under ``name``; return the entry it replaced, if any."""
        previous = self.dependencies.get(name)
        self.dependencies[name] = dep
        return previous

    def remove(self, name: str) -> Dependency:
        return self.dependencies.pop(name)

    def names(self) -> list[str]:
        return sorted(self.dependencies)

    def __contains__(self, name: object) -> bool:
        return name in self.dependencies

    def __len__(self) -> int:
        return len(self.dependencies)


# ── Serialization ────────────────────────────────────────────────────


def dependency_to_dict(dep: Dependency) -> dict[str, str]:
    if isinstance(dep, Pinned):
        return {"source": dep.source, "branch": dep.branch}
    if isinstance(dep, Tracking):
        return {"source": dep.source}
    raise TypeError(f"Unknown dependency type: {type(dep).__name__}")


def dependency_from_dict(name: str, data: Any) -> Dependency:
    if not isinstance(data, dict):
        raise CorruptManifestError(f"Dependency '{name}' must be a mapping")

    unknown = set(data) - {"source", "branch"}
    if unknown:
        raise CorruptManifestError(
            f"Dependency '{name}' has unknown fields: {', '.join(sorted(map(str, unknown)))}"
        )

    source = data.get("source")
    if not isinstance(source, str) or not source:
        raise CorruptManifestError(f"Dependency '{name}' is missing a 'source' string")

    if "branch" not in data:
        return Tracking(source=source)

    branch = data["branch"]
    if not isinstance(branch, str) or not branch:
        raise CorruptManifestError(f"Dependency '{name}' has an invalid 'branch'")
    return Pinned(source=source, branch=branch)


def manifest_to_dict(manifest: Manifest) -> dict[str, Any]:
    return {
        "version": manifest.version,
        "dependencies": {
            name: dependency_to_dict(dep) for name, dep in manifest.dependencies.items()
        },
    }


def manifest_from_dict(data: Any) -> Manifest:
    if not isinstance(data, dict):
        raise CorruptManifestError("Manifest must be a mapping at the top level")

    version = data.get("version")
    if not isinstance(version, str) or not version:
        raise CorruptManifestError("Manifest is missing a 'version' string")

    raw_deps = data.get("dependencies") or {}
    if not isinstance(raw_deps, dict):
        raise CorruptManifestError("'dependencies' must be a mapping")

    dependencies: dict[str, Dependency] = {}
    for name, entry in raw_deps.items():
        if not isinstance(name, str) or not name:
            raise CorruptManifestError(f"Invalid dependency name: {name!r}")
        dependencies[name] = dependency_from_dict(name, entry)

    return Manifest(version=version, dependencies=dependencies)
