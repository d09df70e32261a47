"""
Filesystem helpers: create-with-retry, delete, and recycle.
"""

from __future__ import annotations

import errno
import itertools
import logging
import os
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from ..core.errors import FilesystemError

logger = logging.getLogger(__name__)

RECYCLER_DIRNAME = "rush-recycler"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient filesystem errors."""

    max_attempts: int = 5
    initial_delay_seconds: float = 0.1
    backoff_factor: float = 2.0

    def delays(self):
        delay = self.initial_delay_seconds
        for _ in range(self.max_attempts - 1):
            yield delay
            delay *= self.backoff_factor


def create_folder_with_retry(
    path: Path,
    policy: RetryPolicy = RetryPolicy(),
    *,
    sleep: Callable[[float], None] = time.sleep,
    mkdir: Optional[Callable[[Path], None]] = None,
) -> None:
    """Create *path* (and parents), retrying on transient ``OSError``.

    Antivirus scanners and slow network drives can briefly hold a folder that
    was just deleted; the create is retried with backoff and a
    ``FilesystemError`` is raised once the attempts are exhausted.
    """
    make = mkdir or (lambda p: p.mkdir(parents=True, exist_ok=True))
    delays = policy.delays()
    attempt = 0
    while True:
        attempt += 1
        try:
            make(path)
            return
        except OSError as e:
            delay = next(delays, None)
            if delay is None:
                raise FilesystemError(
                    f"Failed to create folder after {attempt} attempts: {e}",
                    path=path,
                ) from e
            logger.warning(
                "Creating %s failed (attempt %d/%d): %s; retrying in %.2fs",
                path, attempt, policy.max_attempts, e, delay,
            )
            sleep(delay)


def delete_path(path: Path) -> None:
    """Delete a file or directory tree; missing paths are ignored."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
    except OSError as e:
        raise FilesystemError(f"Failed to delete: {e}", path=path) from e


def write_text_file(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise FilesystemError(f"Failed to write file: {e}", path=path) from e


def make_folder(path: Path) -> None:
    try:
        path.mkdir()
    except OSError as e:
        raise FilesystemError(f"Failed to create folder: {e}", path=path) from e


class Recycler:
    """Moves folders aside, then deletes them.

    Folders are renamed into ``<common>/rush-recycler/<bucket>/``; the rename
    is atomic, so an interrupted run never leaves a half-deleted install tree.
    With ``async_delete`` the bucket is removed by a detached background
    process that the caller does not wait for; otherwise it is deleted before
    ``recycle`` returns. Buckets left over by an interrupted run are removed
    by ``purge``.
    """

    def __init__(self, common_folder: Path, async_delete: bool = True) -> None:
        self.recycler_folder = common_folder / RECYCLER_DIRNAME
        self.async_delete = async_delete
        self._counter = itertools.count(1)

    def _new_bucket(self) -> Path:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        while True:
            bucket = self.recycler_folder / f"{stamp}-{os.getpid()}-{next(self._counter)}"
            if not bucket.exists():
                return bucket

    def purge(self) -> int:
        """Dispose of every bucket already in the recycler; returns how many."""
        if not self.recycler_folder.is_dir():
            return 0
        try:
            leftovers = sorted(self.recycler_folder.iterdir())
        except OSError as e:
            raise FilesystemError(f"Failed to list recycler folder: {e}", path=self.recycler_folder) from e
        for bucket in leftovers:
            self._dispose(bucket)
        if leftovers:
            logger.info("Purged %d leftover bucket(s) from %s", len(leftovers), self.recycler_folder)
        return len(leftovers)

    def recycle(self, path: Path) -> Optional[Path]:
        """Move *path* into a fresh recycler bucket and dispose of it.

        Returns the moved folder's location while its background delete is
        pending, or None when the folder is already gone (synchronous delete,
        or a cross-device fallback).
        """
        bucket = self._new_bucket()
        try:
            bucket.mkdir(parents=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create recycler folder: {e}", path=bucket) from e

        target = bucket / path.name
        try:
            os.rename(path, target)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise FilesystemError(f"Failed to recycle folder: {e}", path=path) from e
            logger.warning("Cannot move %s across devices; deleting it in place", path)
            delete_path(path)
            delete_path(bucket)
            return None

        logger.debug("Recycled %s -> %s", path, target)
        self._dispose(bucket)
        return target if self.async_delete else None

    def _dispose(self, bucket: Path) -> None:
        if self.async_delete:
            self._spawn_delete(bucket)
        else:
            delete_path(bucket)

    def _spawn_delete(self, bucket: Path) -> None:
        script = "import shutil, sys; shutil.rmtree(sys.argv[1], ignore_errors=True)"
        try:
            subprocess.Popen(
                [sys.executable, "-c", script, str(bucket)],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            # The folder is already out of the way; it stays in the recycler.
            logger.warning("Could not start background delete of %s: %s", bucket, e)
