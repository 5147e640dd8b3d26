"""Sync engine for PySyncbox - bidirectional folder synchronization."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .debounce import DebounceTracker
from .engine import SyncEngine
from .ignore import IGNORED_EXTENSIONS, should_ignore
from .operations import SyncOperations
from .scanner import LocalFile, scan_local, wait_for_file_ready
from .session import EngineSettings, SessionState, SyncConfigError, SyncSession
from .watcher import DirectoryWatcher

__all__ = [
    "SyncEngine",
    "SyncSession",
    "SessionState",
    "EngineSettings",
    "SyncConfigError",
    "SyncOperations",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "DebounceTracker",
    "DirectoryWatcher",
    "LocalFile",
    "scan_local",
    "wait_for_file_ready",
    "should_ignore",
    "IGNORED_EXTENSIONS",
]
