"""Advisory file locking across cooperating mulch processes.

A lock is a sidecar ``<path>.lock`` marker created with an exclusive-create
open. Contenders poll until the marker disappears, until it is older than the
stale threshold (then it is reaped and acquisition retried), or until the
timeout elapses.
"""
from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, TypeVar

from mulch.config.constants import (
    LOCK_FILE_SUFFIX,
    LOCK_RETRY_INTERVAL_SECONDS,
    LOCK_STALE_SECONDS,
    LOCK_TIMEOUT_SECONDS,
)
from mulch.core.errors import LockTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def lock_path_for(path: Path) -> Path:
    return Path(f"{path}{LOCK_FILE_SUFFIX}")


def _stale_marker(lock_path: Path, stale_seconds: float) -> os.stat_result | None:
    """The marker's stat when it is older than ``stale_seconds``, else None."""
    try:
        seen = lock_path.stat()
    except OSError:
        return None
    return seen if (time.time() - seen.st_mtime) > stale_seconds else None


def _reap_stale_lock(lock_path: Path, seen: os.stat_result) -> None:
    """Remove the stale marker described by ``seen``.

    The marker is renamed to a unique side name before it is deleted, so only
    one contender can claim it. If the claimed file is not the one judged
    stale, another contender has already reaped and re-created the marker in
    between; that live marker is linked back into place.
    """
    side_path = lock_path.with_name(f"{lock_path.name}.{uuid.uuid4().hex[:12]}.stale")
    try:
        os.rename(lock_path, side_path)
    except FileNotFoundError:
        return
    claimed = os.stat(side_path)
    if (claimed.st_ino, claimed.st_mtime_ns) != (seen.st_ino, seen.st_mtime_ns):
        try:
            os.link(side_path, lock_path)
        except FileExistsError:
            pass
        os.unlink(side_path)
        return
    os.unlink(side_path)
    logger.warning("Removed stale lock %s", lock_path)


def acquire_lock(
    lock_path: Path,
    *,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    retry_interval: float = LOCK_RETRY_INTERVAL_SECONDS,
    stale_seconds: float = LOCK_STALE_SECONDS,
) -> None:
    """Create the lock marker, waiting for a current holder to release it.

    Raises:
        LockTimeoutError: If the marker is still held after ``timeout`` seconds.
        OSError: For any failure other than the marker already existing.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            seen = _stale_marker(lock_path, stale_seconds)
            if seen is not None:
                _reap_stale_lock(lock_path, seen)
                continue
            if time.monotonic() >= deadline:
                raise LockTimeoutError(str(lock_path)) from None
            time.sleep(retry_interval)
        else:
            os.close(fd)
            logger.debug("Acquired lock %s", lock_path)
            return


def release_lock(lock_path: Path) -> None:
    try:
        os.unlink(lock_path)
    except FileNotFoundError:
        pass
    logger.debug("Released lock %s", lock_path)


@contextmanager
def file_lock(
    path: Path,
    *,
    timeout: float = LOCK_TIMEOUT_SECONDS,
    retry_interval: float = LOCK_RETRY_INTERVAL_SECONDS,
    stale_seconds: float = LOCK_STALE_SECONDS,
) -> Iterator[Path]:
    """Hold the advisory lock guarding ``path`` for the duration of the block."""
    lock_path = lock_path_for(Path(path))
    acquire_lock(lock_path, timeout=timeout, retry_interval=retry_interval, stale_seconds=stale_seconds)
    try:
        yield lock_path
    finally:
        release_lock(lock_path)


def with_file_lock(path: Path, body: Callable[[], T], **lock_options: float) -> T:
    """Run ``body`` while holding the lock on ``path`` and return its result."""
    with file_lock(path, **lock_options):
        return body()
