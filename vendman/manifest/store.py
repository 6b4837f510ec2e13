"""Manifest store — file-backed persistence of the dependency manifest.

The manifest is a single YAML document under the managed root::

    version: 0.1.0
    dependencies:
      requests:
        source: https://github.com/psf/requests
      rich:
        branch: dev
        source: https://github.com/Textualize/rich

Saves are whole-file overwrites. Mutating workflows hold ``lock()`` so two
concurrent invocations cannot both read-modify-write the same file. The lock
file sits beside the root (``~/.vendman.lock``), not inside it, so removing
the workspace never removes a lock somebody is holding or waiting on.
"""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from contextlib import ExitStack, contextmanager
from pathlib import Path
from typing import Iterator

import yaml

from vendman import __version__
from vendman.exceptions import CorruptManifestError, ManifestIOError, NotInitializedError
from vendman.manifest.models import Manifest, manifest_from_dict, manifest_to_dict
from vendman.utils.locking import acquire_file_lock

logger = logging.getLogger(__name__)


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class ManifestStore:
    """Loads and saves the manifest for one managed root directory."""

    MANIFEST_FILE = "config.yaml"
    LOCK_SUFFIX = ".lock"

    def __init__(self, root: str | Path, lock_timeout: float = 10.0):
        self.root = Path(root)
        self.manifest_path = self.root / self.MANIFEST_FILE
        self.lock_path = self.root.with_name(self.root.name + self.LOCK_SUFFIX)
        self.lock_timeout = lock_timeout

    def workspace_dir(self, name: str) -> Path:
        """Return the clone directory for dependency ``name``."""
        return self.root / name

    def is_initialized(self) -> bool:
        return self.manifest_path.is_file()

    def require_initialized(self) -> None:
        if not self.is_initialized():
            raise NotInitializedError(self.root)

    def initialize(self) -> bool:
        """Create the root directory and an empty manifest.

        Idempotent: returns ``False`` without touching anything when the
        manifest already exists.
        """
        if self.is_initialized():
            logger.debug("Workspace already initialized at %s", self.root)
            return False

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ManifestIOError(f"Cannot create {self.root}: {e}") from e

        self.save(Manifest(version=__version__))
        logger.info("Initialized workspace at %s", self.root)
        return True

    def load(self) -> Manifest:
        """Read and validate the manifest.

        Raises:
            NotInitializedError: No manifest file exists.
            CorruptManifestError: The file is not UTF-8 YAML or breaks the schema.
            ManifestIOError: The file exists but cannot be read.
        """
        self.require_initialized()

        try:
            raw = self.manifest_path.read_bytes()
        except OSError as e:
            raise ManifestIOError(f"Cannot read {self.manifest_path}: {e}") from e

        try:
            data = yaml.safe_load(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise CorruptManifestError(f"{self.manifest_path} is not valid UTF-8: {e}") from e
        except yaml.YAMLError as e:
            raise CorruptManifestError(f"{self.manifest_path} is not valid YAML: {e}") from e

        try:
            manifest = manifest_from_dict(data)
        except CorruptManifestError as e:
            raise CorruptManifestError(f"{self.manifest_path}: {e}") from e

        if manifest.version != __version__:
            logger.warning(
                "Manifest version %s differs from vendman %s",
                manifest.version,
                __version__,
            )
        return manifest

    def save(self, manifest: Manifest) -> None:
        """Overwrite the manifest with ``manifest``.

        Writes to a temporary sibling file first and renames it over the
        target, so readers never observe a half-written manifest. The
        existing file's permissions are kept; a new file gets the umask
        default.
        """
        text = dump_manifest(manifest)
        try:
            try:
                mode = stat.S_IMODE(self.manifest_path.stat().st_mode)
            except FileNotFoundError:
                mode = _default_file_mode()

            fd, tmp_name = tempfile.mkstemp(
                prefix=".config-", suffix=".tmp", dir=self.root
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.chmod(tmp_name, mode)
                os.replace(tmp_name, self.manifest_path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ManifestIOError(f"Cannot write {self.manifest_path}: {e}") from e
        logger.debug("Saved manifest with %d dependencies", len(manifest))

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the workspace lock; requires an initialized root.

        Initialization is checked again once the lock is held, since a
        ``clean`` may have finished while this call was waiting.
        """
        self.require_initialized()
        with ExitStack() as stack:
            try:
                stack.enter_context(
                    acquire_file_lock(self.lock_path, timeout=self.lock_timeout)
                )
            except FileNotFoundError as e:
                raise NotInitializedError(self.root) from e
            self.require_initialized()
            yield


def dump_manifest(manifest: Manifest) -> str:
    return yaml.safe_dump(
        manifest_to_dict(manifest),
        sort_keys=True,
        default_flow_style=False,
    )
