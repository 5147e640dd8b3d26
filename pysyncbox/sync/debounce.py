"""Per-path bookkeeping used to debounce notifications and suppress echoes.

A single write to a file usually produces several raw notifications
(write, flush, close). The tracker remembers when each path was last seen
so that bursts collapse into one reconciliation, and when the engine itself
last wrote the path to or from the server so that its own writes are not
mistaken for user edits.
"""

import logging
import os
import threading
import time
from typing import Callable, Optional

from ..utils import DEFAULT_DEBOUNCE_MS, ECHO_SUPPRESSION_WINDOW

logger = logging.getLogger(__name__)


class DebounceTracker:
    """Thread-safe map of per-path event and upload timestamps.

    Every public method holds one lock for its whole read-modify-write
    sequence, so concurrent callers never interleave between the read of a
    previous timestamp and the write of the new one.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """Initialize the tracker.

        Args:
            clock: Source of the current time in seconds (injectable for tests)
        """
        self._clock = clock
        self._lock = threading.Lock()
        self._last_event_at: dict[str, float] = {}
        self._last_uploaded_at: dict[str, float] = {}
        self._pushed_versions: dict[str, float] = {}

    @staticmethod
    def _key(path: "os.PathLike[str] | str") -> str:
        return os.path.abspath(os.fspath(path))

    def is_rapid_duplicate(
        self, path: "os.PathLike[str] | str", window_ms: int = DEFAULT_DEBOUNCE_MS
    ) -> bool:
        """Record a notification for a path and report whether it is a duplicate.

        The "last seen" timestamp is updated on every call.

        Args:
            path: Path the notification refers to
            window_ms: Debounce window in milliseconds

        Returns:
            True if the previous notification for the path was less than
            ``window_ms`` ago
        """
        key = self._key(path)
        with self._lock:
            now = self._clock()
            previous = self._last_event_at.get(key)
            self._last_event_at[key] = now

        if previous is None:
            return False
        duplicate = (now - previous) * 1000 < window_ms
        if duplicate:
            logger.debug(f"Debouncing rapid event for: {os.path.basename(key)}")
        return duplicate

    def mark_uploaded(self, path: "os.PathLike[str] | str") -> None:
        """Record that the engine itself just wrote this path."""
        key = self._key(path)
        with self._lock:
            self._last_uploaded_at[key] = self._clock()

    def last_uploaded(self, path: "os.PathLike[str] | str") -> Optional[float]:
        with self._lock:
            return self._last_uploaded_at.get(self._key(path))

    def mark_pushed(self, path: "os.PathLike[str] | str", remote_mtime: float) -> None:
        """Record the server timestamp of the version the engine just pushed."""
        key = self._key(path)
        with self._lock:
            self._pushed_versions[key] = remote_mtime

    def pushed_version(self, path: "os.PathLike[str] | str") -> Optional[float]:
        with self._lock:
            return self._pushed_versions.get(self._key(path))

    def time_since_upload(self, path: "os.PathLike[str] | str") -> Optional[float]:
        """Seconds since the engine last wrote the path, or None if never."""
        key = self._key(path)
        with self._lock:
            uploaded_at = self._last_uploaded_at.get(key)
            if uploaded_at is None:
                return None
            return self._clock() - uploaded_at

    def is_echo(
        self,
        path: "os.PathLike[str] | str",
        mtime: float,
        window: float = ECHO_SUPPRESSION_WINDOW,
        tolerance: float = 0.0,
    ) -> bool:
        """Check whether a notification was caused by the engine's own write.

        Args:
            path: Path the notification refers to
            mtime: Current on-disk modification time of the path
            window: Seconds after a self-write during which echoes are expected
            tolerance: Slack allowed between the write mark and the file mtime

        Returns:
            True if the path was written by the engine less than ``window``
            seconds ago and the file has not been modified since
        """
        key = self._key(path)
        with self._lock:
            uploaded_at = self._last_uploaded_at.get(key)
            if uploaded_at is None:
                return False
            since = self._clock() - uploaded_at

        if since >= window:
            return False
        echo = mtime <= uploaded_at + tolerance
        if echo:
            logger.debug(
                f"Suppressing echo for {os.path.basename(key)} "
                f"(self-write {since:.1f}s ago)"
            )
        return echo

    def forget(self, path: "os.PathLike[str] | str") -> None:
        """Drop all bookkeeping for a path."""
        key = self._key(path)
        with self._lock:
            self._last_event_at.pop(key, None)
            self._last_uploaded_at.pop(key, None)
            self._pushed_versions.pop(key, None)

    def prune(self, exists: Callable[[str], bool] = os.path.exists) -> int:
        """Drop entries for paths that no longer exist.

        Args:
            exists: Existence check (injectable for tests)

        Returns:
            Number of paths removed
        """
        with self._lock:
            keys = (
                set(self._last_event_at)
                | set(self._last_uploaded_at)
                | set(self._pushed_versions)
            )

        stale = [key for key in keys if not exists(key)]
        if not stale:
            return 0

        with self._lock:
            for key in stale:
                self._last_event_at.pop(key, None)
                self._last_uploaded_at.pop(key, None)
                self._pushed_versions.pop(key, None)
        logger.debug(f"Pruned {len(stale)} stale debounce entries")
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._last_event_at.clear()
            self._last_uploaded_at.clear()
            self._pushed_versions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(
                set(self._last_event_at)
                | set(self._last_uploaded_at)
                | set(self._pushed_versions)
            )
