"""Change notifier for a single, non-recursive local directory."""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

PathCallback = Callable[[Path], None]


class _ChildEventHandler(FileSystemEventHandler):
    """Forwards watchdog events for immediate children of a directory."""

    def __init__(self, watcher: "DirectoryWatcher"):
        self.watcher = watcher

    def _is_child(self, path: "str | bytes") -> bool:
        return Path(os.fsdecode(path)).parent == self.watcher.directory

    def _dispatch(self, callback: Callable[..., None], *args: object) -> None:
        try:
            callback(*args)
        except Exception as e:
            # Never let a callback failure kill the observer thread
            logger.error(f"Watch callback failed: {e}", exc_info=True)
            self.watcher.report_error(e)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory or not self._is_child(event.src_path):
            return
        logger.debug(f"[FSW] Created: {os.fsdecode(event.src_path)}")
        self._dispatch(self.watcher.on_created, Path(os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory or not self._is_child(event.src_path):
            return
        logger.debug(f"[FSW] Changed: {os.fsdecode(event.src_path)}")
        self._dispatch(self.watcher.on_changed, Path(os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        if event.is_directory:
            return
        src = Path(os.fsdecode(event.src_path))
        dest = Path(os.fsdecode(event.dest_path))
        src_inside = src.parent == self.watcher.directory
        dest_inside = dest.parent == self.watcher.directory
        logger.debug(f"[FSW] Renamed: {src} -> {dest}")

        if src_inside and dest_inside:
            self._dispatch(self.watcher.on_renamed, src, dest)
        elif dest_inside:
            # Moved in from elsewhere
            self._dispatch(self.watcher.on_created, dest)
        elif src_inside:
            # Moved out of the watched directory
            self._dispatch(self.watcher.on_deleted, src.name)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory or not self._is_child(event.src_path):
            return
        name = Path(os.fsdecode(event.src_path)).name
        logger.debug(f"[FSW] Deleted: {name}")
        self._dispatch(self.watcher.on_deleted, name)


class DirectoryWatcher:
    """Raises callbacks for file changes directly inside one directory.

    Callbacks run on the watchdog observer thread and must return quickly;
    the sync engine hands the actual work to its worker pool.
    """

    def __init__(
        self,
        directory: Path,
        on_created: PathCallback,
        on_changed: PathCallback,
        on_renamed: Callable[[Path, Path], None],
        on_deleted: Callable[[str], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """Initialize the watcher.

        Args:
            directory: Directory to watch (subdirectories are not watched)
            on_created: Called with the path of a created file
            on_changed: Called with the path of a modified file
            on_renamed: Called with the old and new path of a renamed file
            on_deleted: Called with the name of a deleted file
            on_error: Called with any error raised while watching
        """
        self.directory = Path(os.path.abspath(directory))
        self.on_created = on_created
        self.on_changed = on_changed
        self.on_renamed = on_renamed
        self.on_deleted = on_deleted
        self.on_error = on_error
        self._observer: Optional[Observer] = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def report_error(self, error: Exception) -> None:
        if self.on_error is not None:
            try:
                self.on_error(error)
            except Exception:
                logger.exception("Watch error callback failed")

    def start(self) -> None:
        """Start watching. Restarts if already running."""
        if self._observer is not None:
            self.stop()

        observer = Observer()
        observer.schedule(
            _ChildEventHandler(self), str(self.directory), recursive=False
        )
        try:
            observer.start()
        except OSError as e:
            logger.error(f"Failed to watch {self.directory}: {e}")
            self.report_error(e)
            raise
        self._observer = observer
        logger.debug(f"Watching {self.directory}")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop watching and wait for the observer thread to exit.

        Safe to call when not running.
        """
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        observer.stop()
        observer.join(timeout)
        logger.debug(f"Stopped watching {self.directory}")
