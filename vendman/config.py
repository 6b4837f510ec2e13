"""Runtime settings — where the managed workspace lives and how long network calls may take."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_ROOT_NAME = ".vendman"
DEFAULT_TIMEOUT = 300.0
DEFAULT_JOBS = 1

ENV_ROOT = "VENDMAN_HOME"
ENV_TIMEOUT = "VENDMAN_TIMEOUT"
ENV_JOBS = "VENDMAN_JOBS"


def default_root() -> Path:
    """Return ``~/.vendman``."""
    return Path.home() / DEFAULT_ROOT_NAME


@dataclass
class Settings:
    """Explicit configuration threaded into every component at construction.

    The CLI fills this from its options, which also read the ``VENDMAN_*``
    environment variables.
    """

    root: Path = field(default_factory=default_root)
    timeout: Optional[float] = DEFAULT_TIMEOUT
    """Seconds allowed for a single network call; ``None`` waits forever."""

    jobs: int = DEFAULT_JOBS

    def __post_init__(self) -> None:
        self.root = Path(self.root).expanduser()
        if self.timeout is not None and self.timeout <= 0:
            self.timeout = None
        if self.jobs < 1:
            raise ValueError(f"jobs must be at least 1, got {self.jobs}")
