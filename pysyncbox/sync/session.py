"""Sync session state and engine settings."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from ..utils import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_POLL_INTERVAL,
    DELETE_SETTLE_DELAY,
    ECHO_SUPPRESSION_WINDOW,
    FILE_READY_DELAY,
    FILE_READY_RETRIES,
    MODIFY_DEBOUNCE_MS,
    SIZE_TOLERANCE,
    TIMESTAMP_TOLERANCE,
)


class SyncConfigError(Exception):
    """Raised when a sync session cannot be configured."""


class SessionState(str, Enum):
    """Lifecycle states of a sync session."""

    UNCONFIGURED = "unconfigured"
    INITIAL_SYNC = "initial_sync"
    """Full bidirectional pass running before watching starts"""

    WATCHING = "watching"
    """Watcher and remote poll armed"""

    STOPPED = "stopped"
    """Watcher and poll torn down; configuration still queryable"""


@dataclass
class EngineSettings:
    """Timings and tolerances used by the sync engine."""

    poll_interval: float = DEFAULT_POLL_INTERVAL
    create_debounce_ms: int = DEFAULT_DEBOUNCE_MS
    modify_debounce_ms: int = MODIFY_DEBOUNCE_MS
    echo_window: float = ECHO_SUPPRESSION_WINDOW
    timestamp_tolerance: float = TIMESTAMP_TOLERANCE
    size_tolerance: int = SIZE_TOLERANCE
    ready_retries: int = FILE_READY_RETRIES
    ready_delay: float = FILE_READY_DELAY
    delete_settle_delay: float = DELETE_SETTLE_DELAY
    max_workers: int = DEFAULT_MAX_WORKERS


@dataclass(eq=False)
class SyncSession:
    """The active pairing of a local directory with a remote folder.

    Returned by ``SyncEngine.configure_sync`` as a handle; pass it back to
    ``SyncEngine.stop`` to tear it down.
    """

    local_path: Path
    """Local directory being synchronized (not recursive)"""

    remote_folder_id: int
    """Remote folder the directory is paired with"""

    auto_sync: bool = True
    """Whether the watcher and remote poll are armed"""

    last_sync_time: Optional[datetime] = None
    """End of the last completed pass"""

    state: SessionState = SessionState.UNCONFIGURED

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def set_state(self, state: SessionState) -> None:
        with self._lock:
            self.state = state

    @property
    def is_watching(self) -> bool:
        """True while event and poll handlers may act for this session."""
        with self._lock:
            return self.state == SessionState.WATCHING

    @property
    def is_stopped(self) -> bool:
        with self._lock:
            return self.state == SessionState.STOPPED

    def touch(self) -> None:
        """Record the end of a completed pass."""
        self.last_sync_time = datetime.now()

    def to_dict(self) -> dict:
        return {
            "local_path": str(self.local_path),
            "remote_folder_id": self.remote_folder_id,
            "auto_sync": self.auto_sync,
            "last_sync_time": (
                self.last_sync_time.isoformat() if self.last_sync_time else None
            ),
            "state": self.state.value,
        }
