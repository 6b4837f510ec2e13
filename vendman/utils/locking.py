"""Exclusive workspace lock so concurrent invocations cannot clobber the manifest."""

from __future__ import annotations

import fcntl
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator

from vendman.exceptions import LockTimeoutError

logger = logging.getLogger(__name__)


@contextmanager
def acquire_file_lock(
    lock_path: Path | str,
    timeout: float = 10.0,
    *,
    poll_interval: float = 0.1,
) -> Iterator[IO]:
    """Hold an exclusive ``flock`` on ``lock_path`` for the duration of the context.

    Uses ``LOCK_EX | LOCK_NB`` in a retry loop so a stuck holder surfaces as
    ``LockTimeoutError`` instead of hanging the invocation.

    Args:
        lock_path: File to lock. Its parent directory must already exist.
        timeout: Maximum seconds to wait before raising ``LockTimeoutError``.
        poll_interval: Sleep duration between non-blocking attempts.
    """
    target = Path(lock_path)
    start = time.monotonic()

    fh = open(target, "a+")
    acquired = False
    try:
        while True:
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                acquired = True
                break
            except OSError:
                if (time.monotonic() - start) >= timeout:
                    raise LockTimeoutError(
                        f"Could not lock {target} within {timeout}s; "
                        "is another vendman process running?"
                    )
                time.sleep(poll_interval)

        logger.debug("Acquired lock %s", target)
        yield fh
    finally:
        if acquired:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
            logger.debug("Released lock %s", target)
        fh.close()
