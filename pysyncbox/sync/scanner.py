"""Local directory scanning utilities for sync operations."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..utils import FILE_READY_DELAY, FILE_READY_RETRIES
from .ignore import should_ignore

logger = logging.getLogger(__name__)


@dataclass
class LocalFile:
    """Snapshot of a local file's metadata.

    Snapshots are read fresh for every reconciliation step and never
    reused afterwards.
    """

    path: Path
    """Absolute path to the file"""

    name: str
    """File name (the key matched against remote records)"""

    size: int
    """File size in bytes"""

    mtime: float
    """Last modification time (Unix timestamp)"""

    @classmethod
    def from_path(cls, file_path: Path) -> "LocalFile":
        """Create a LocalFile from a path.

        Raises:
            OSError: If the file cannot be stat'ed
        """
        stat = file_path.stat()
        return cls(
            path=file_path,
            name=file_path.name,
            size=stat.st_size,
            mtime=stat.st_mtime,
        )


def snapshot(file_path: Path) -> Optional[LocalFile]:
    """Read a file's metadata, or None if it is gone or not a regular file."""
    try:
        if not file_path.is_file():
            return None
        return LocalFile.from_path(file_path)
    except OSError:
        return None


def scan_local(
    directory: Path, include_ignored: bool = False
) -> Optional[list[LocalFile]]:
    """List the regular files directly inside a directory.

    Subdirectories are not descended into.

    Args:
        directory: Directory to scan
        include_ignored: Also return files rejected by the ignore filter

    Returns:
        List of LocalFile objects sorted by name, or None if the directory
        cannot be read (missing, unmounted or not permitted)
    """
    files: list[LocalFile] = []

    try:
        for item in directory.iterdir():
            if not include_ignored and should_ignore(item):
                continue
            local_file = snapshot(item)
            if local_file is not None:
                files.append(local_file)
    except OSError as e:
        logger.warning(f"Cannot scan {directory}: {e}")
        return None

    return sorted(files, key=lambda f: f.name)


def wait_for_file_ready(
    file_path: Path,
    retries: int = FILE_READY_RETRIES,
    delay: float = FILE_READY_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Wait until a file can be opened for reading.

    Another process may still be writing the file when its notification
    arrives; opening it fails until the writer releases it.

    Args:
        file_path: File to open
        retries: Number of attempts
        delay: Pause between attempts in seconds
        sleep: Sleep function (injectable for tests)

    Returns:
        True once the file could be opened, False if every attempt failed
    """
    for attempt in range(retries):
        try:
            with open(file_path, "rb"):
                return True
        except OSError as e:
            logger.debug(
                f"{file_path.name} not ready (attempt {attempt + 1}/{retries}): {e}"
            )
            if attempt < retries - 1:
                sleep(delay)
    return False
