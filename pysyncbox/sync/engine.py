"""Core sync engine keeping a local directory and a remote folder in step.

The engine runs two manual passes (local to remote and remote to local) on
the caller's thread. When auto-sync is enabled it also reacts to local file
notifications and polls the server periodically; that work runs on a
bounded worker pool owned by the active session.
"""

import logging
import os
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from ..api import SyncboxClient
from ..models import RemoteFileRecord
from ..utils import is_plain_file_name
from .comparator import FileComparator, SyncAction, SyncDecision, find_by_name
from .debounce import DebounceTracker
from .ignore import should_ignore
from .operations import SyncOperations
from .scanner import LocalFile, scan_local, snapshot, wait_for_file_ready
from .session import EngineSettings, SessionState, SyncConfigError, SyncSession
from .watcher import DirectoryWatcher

logger = logging.getLogger(__name__)

StatusListener = Callable[[str], None]

WORKER_THREAD_PREFIX = "pysyncbox-worker"
POLL_THREAD_NAME = "pysyncbox-poll"


class SyncEngine:
    """Reconciles one local directory with one remote folder."""

    def __init__(
        self,
        client: SyncboxClient,
        settings: Optional[EngineSettings] = None,
        tracker: Optional[DebounceTracker] = None,
        sleep: Callable[[float], None] = time.sleep,
        watcher_factory: Callable[..., DirectoryWatcher] = DirectoryWatcher,
    ):
        """Initialize sync engine.

        Args:
            client: Syncbox API client
            settings: Timings and tolerances (defaults to EngineSettings())
            tracker: Debounce tracker (a fresh one if omitted)
            sleep: Sleep function used for ready waits and the delete settle
            watcher_factory: Builds the change notifier for a session
        """
        self.client = client
        self.settings = settings or EngineSettings()
        self.operations = SyncOperations(client)
        self.comparator = FileComparator(
            timestamp_tolerance=self.settings.timestamp_tolerance,
            size_tolerance=self.settings.size_tolerance,
        )
        self.tracker = tracker or DebounceTracker()
        self._sleep = sleep
        self._watcher_factory = watcher_factory

        self._session: Optional[SyncSession] = None
        self._lifecycle_lock = threading.RLock()
        self._poll_lock = threading.Lock()
        self._listeners: list[StatusListener] = []
        self._listeners_lock = threading.Lock()

        self._watcher: Optional[DirectoryWatcher] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._poll_stop: Optional[threading.Event] = None

    # ------------------------------------------------------------------
    # Status stream
    # ------------------------------------------------------------------

    def add_status_listener(self, listener: StatusListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_status_listener(self, listener: StatusListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, message: str) -> None:
        logger.info(message)
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.exception("Status listener failed")

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def get_session(self) -> Optional[SyncSession]:
        return self._session

    def configure_sync(
        self,
        local_path: "Path | str",
        remote_folder_id: Optional[int] = None,
        auto_sync: bool = True,
        perform_initial_sync: bool = True,
    ) -> SyncSession:
        """Pair a local directory with a remote folder.

        Any previous session is stopped first. Without a folder id a remote
        folder named after the local directory is created.

        Args:
            local_path: Existing local directory to synchronize
            remote_folder_id: Remote folder to pair with
            auto_sync: Start watching and polling after configuration
            perform_initial_sync: Run a full bidirectional pass first

        Returns:
            The new session handle

        Raises:
            SyncConfigError: If the directory does not exist or the remote
                folder cannot be created
        """
        local = Path(os.path.abspath(os.path.expanduser(os.fspath(local_path))))
        if not local.is_dir():
            raise SyncConfigError(f"Local path is not a directory: {local}")

        with self._lifecycle_lock:
            self._teardown()

            folder_id = self._resolve_remote_folder(local, remote_folder_id)
            session = SyncSession(
                local_path=local, remote_folder_id=folder_id, auto_sync=auto_sync
            )
            self._session = session

            if perform_initial_sync:
                session.set_state(SessionState.INITIAL_SYNC)
                self._emit(f"Initial sync of {local} with folder {folder_id}...")
                uploaded, downloaded = self._sync_both_ways(session)
                self._emit(
                    f"✓ Initial sync complete: {uploaded} uploaded, "
                    f"{downloaded} downloaded"
                )
            else:
                self._emit(f"Sync activated for {local} (folder {folder_id})")

            if auto_sync:
                self._start_watching(session)
            else:
                session.set_state(SessionState.STOPPED)
            return session

    def activate_existing_sync(
        self, local_path: "Path | str", remote_folder_id: int
    ) -> SyncSession:
        """Resume auto-sync for an already paired folder without a full pass."""
        return self.configure_sync(
            local_path,
            remote_folder_id=remote_folder_id,
            auto_sync=True,
            perform_initial_sync=False,
        )

    def _resolve_remote_folder(
        self, local: Path, remote_folder_id: Optional[int]
    ) -> int:
        sync_path = str(local)
        if remote_folder_id is None:
            name = local.name or sync_path
            folder = self.operations.create_folder(name, None, sync_path)
            if folder is None:
                raise SyncConfigError(f"Could not create remote folder '{name}'")
            self._emit(f"Created remote folder '{folder.name}' (id {folder.id})")
            return folder.id

        folders = self.operations.get_all_folders()
        if folders is None:
            logger.warning(
                f"Could not verify remote folder {remote_folder_id}, using it as is"
            )
            return remote_folder_id

        folder = next((f for f in folders if f.id == remote_folder_id), None)
        if folder is None:
            logger.warning(f"Remote folder {remote_folder_id} not found on server")
        elif folder.sync_path != sync_path:
            logger.debug(
                f"Updating sync path of folder {remote_folder_id}: "
                f"{folder.sync_path!r} -> {sync_path!r}"
            )
            self.operations.update_folder_sync_path(remote_folder_id, sync_path)
        return remote_folder_id

    def stop_auto_sync(self) -> None:
        """Stop watching and polling for the current session.

        When this returns no new reconciliation can start and queued work has
        been cancelled. The session stays queryable in the STOPPED state.
        """
        with self._lifecycle_lock:
            self._teardown()
        self._emit("Auto-sync stopped")

    def stop(self, session: SyncSession) -> None:
        """Stop a specific session; a no-op if it is no longer current."""
        with self._lifecycle_lock:
            if session is not self._session:
                logger.debug("Ignoring stop for a session that is not current")
                session.set_state(SessionState.STOPPED)
                return
            self.stop_auto_sync()

    def _start_watching(self, session: SyncSession) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=self.settings.max_workers,
            thread_name_prefix=WORKER_THREAD_PREFIX,
        )

        def on_created(path: Path) -> None:
            self._submit(session, self.handle_created, path, session)

        def on_changed(path: Path) -> None:
            self._submit(session, self.handle_changed, path, session)

        def on_renamed(old_path: Path, new_path: Path) -> None:
            self._submit(session, self.handle_renamed, old_path, new_path, session)

        def on_deleted(name: str) -> None:
            self._submit(session, self.handle_deleted, name, session)

        self._watcher = self._watcher_factory(
            session.local_path,
            on_created=on_created,
            on_changed=on_changed,
            on_renamed=on_renamed,
            on_deleted=on_deleted,
            on_error=self._on_watch_error,
        )
        session.set_state(SessionState.WATCHING)
        try:
            self._watcher.start()
        except OSError as e:
            self._teardown()
            raise SyncConfigError(f"Cannot watch {session.local_path}: {e}") from e

        stop_event = threading.Event()
        self._poll_stop = stop_event
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            args=(session, stop_event),
            name=POLL_THREAD_NAME,
            daemon=True,
        )
        self._poll_thread.start()
        self._emit(f"Auto-sync enabled for {session.local_path}")

    def _teardown(self) -> None:
        session = self._session
        if session is not None:
            session.set_state(SessionState.STOPPED)

        current = threading.current_thread()

        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

        stop_event, self._poll_stop = self._poll_stop, None
        poll_thread, self._poll_thread = self._poll_thread, None
        if stop_event is not None:
            stop_event.set()
        if poll_thread is not None and poll_thread is not current:
            poll_thread.join()

        executor, self._executor = self._executor, None
        if executor is not None:
            # A worker cannot wait for its own pool to drain
            in_worker = current.name.startswith(WORKER_THREAD_PREFIX)
            executor.shutdown(wait=not in_worker, cancel_futures=True)

    def _on_watch_error(self, error: Exception) -> None:
        self._emit(f"⚠ Watcher error: {error}")

    # ------------------------------------------------------------------
    # Task supervision
    # ------------------------------------------------------------------

    def _is_active(self, session: Optional[SyncSession]) -> bool:
        return (
            session is not None
            and session is self._session
            and session.is_watching
        )

    def _submit(
        self, session: SyncSession, func: Callable[..., object], *args: object
    ) -> Optional[Future]:
        executor = self._executor
        if executor is None or not self._is_active(session):
            return None
        try:
            return executor.submit(self._run_task, func, *args)
        except RuntimeError:
            # Pool already shut down
            return None

    def _run_task(self, func: Callable[..., object], *args: object) -> None:
        try:
            func(*args)
        except Exception as e:
            logger.error(f"Sync task {func.__name__} failed: {e}", exc_info=True)
            self._emit(f"⚠ Sync error: {e}")

    # ------------------------------------------------------------------
    # Manual passes
    # ------------------------------------------------------------------

    def sync_both_ways(self) -> tuple[int, int]:
        """Run a local to remote pass followed by a remote to local pass.

        Returns:
            Tuple of (files uploaded or updated, files downloaded or deleted)
        """
        session = self._session
        if session is None:
            self._emit("⚠ No sync configured")
            return 0, 0
        return self._sync_both_ways(session)

    def _sync_both_ways(self, session: SyncSession) -> tuple[int, int]:
        uploaded = self._push_all(session)
        downloaded = self._pull_all(session)
        return uploaded, downloaded

    def sync_local_to_remote(self) -> int:
        """Push new and newer local files to the remote folder.

        Remote files without a local counterpart are left alone.

        Returns:
            Number of files uploaded or updated
        """
        session = self._session
        if session is None:
            self._emit("⚠ No sync configured")
            return 0
        return self._push_all(session)

    def sync_remote_to_local(self) -> int:
        """Pull new and newer remote files and mirror remote deletions.

        Returns:
            Number of files downloaded plus local files deleted
        """
        session = self._session
        if session is None:
            self._emit("⚠ No sync configured")
            return 0
        return self._pull_all(session)

    def _push_all(self, session: SyncSession) -> int:
        remote_files = self.operations.list_files(session.remote_folder_id)
        if remote_files is None:
            self._emit("⚠ Server unreachable, local changes not uploaded")
            return 0

        local_files = scan_local(session.local_path)
        if local_files is None:
            self._emit(
                f"⚠ Cannot read {session.local_path}, local changes not uploaded"
            )
            return 0
        decisions = self.comparator.plan_local_to_remote(local_files, remote_files)
        logger.debug(
            f"Local to remote: {len(local_files)} local, {len(remote_files)} remote"
        )

        count = 0
        for decision in decisions:
            if session is not self._session:
                logger.debug("Session replaced, aborting local to remote pass")
                break
            if self._execute_push(session, decision):
                count += 1

        session.touch()
        logger.debug(f"Local to remote pass pushed {count} file(s)")
        return count

    def _execute_push(self, session: SyncSession, decision: SyncDecision) -> bool:
        local_file = decision.local_file
        if decision.action == SyncAction.SKIP or local_file is None:
            logger.debug(f"Skip {decision.name}: {decision.reason}")
            return False
        if not local_file.path.exists():
            logger.debug(f"{decision.name} vanished before upload")
            return False

        if decision.action == SyncAction.UPLOAD:
            record = self.operations.upload_file(
                local_file.path, session.remote_folder_id
            )
            label = "Uploaded"
        else:
            if decision.remote_file is None:
                return False
            record = self._push_update(
                decision.remote_file, local_file.path, session.remote_folder_id
            )
            label = "Updated"

        if record is None:
            self._emit(f"⚠ Failed to upload: {decision.name}")
            return False
        self._record_push(local_file.path, record)
        self._emit(f"↑ {label}: {decision.name}")
        return True

    def _pull_all(self, session: SyncSession, require_watching: bool = False) -> int:
        remote_files = self.operations.list_files(session.remote_folder_id)
        if remote_files is None:
            if require_watching:
                logger.debug("Remote listing failed, will retry next poll")
            else:
                self._emit("⚠ Server unreachable, nothing downloaded or deleted")
            return 0

        local_files = scan_local(session.local_path, include_ignored=True)
        if local_files is None:
            self._emit(
                f"⚠ Cannot read {session.local_path}, nothing downloaded or deleted"
            )
            return 0
        decisions = self.comparator.plan_remote_to_local(remote_files, local_files)

        count = 0
        for decision in decisions:
            if require_watching and not self._is_active(session):
                logger.debug("Session no longer watching, aborting poll")
                break
            if session is not self._session:
                logger.debug("Session replaced, aborting remote to local pass")
                break
            if decision.action == SyncAction.DOWNLOAD:
                if self._execute_download(session, decision):
                    count += 1
            elif decision.action == SyncAction.DELETE_LOCAL:
                if decision.local_file is not None and self._delete_local(
                    decision.local_file
                ):
                    count += 1
            else:
                logger.debug(f"Skip {decision.name}: {decision.reason}")

        session.touch()
        return count

    def _execute_download(self, session: SyncSession, decision: SyncDecision) -> bool:
        remote_file = decision.remote_file
        if remote_file is None:
            return False
        if not is_plain_file_name(remote_file.name):
            logger.warning(f"Unsafe remote file name: {remote_file.name!r}")
            self._emit(f"⚠ Skipped unsafe remote name: {remote_file.name}")
            return False
        local_file = decision.local_file
        target = (
            local_file.path if local_file else session.local_path / remote_file.name
        )

        if local_file is not None and self._is_own_push(target, remote_file):
            logger.debug(f"Skip {decision.name}: remote copy is our own upload")
            return False

        if not self._download_into_place(remote_file, target):
            self._emit(f"⚠ Failed to download: {remote_file.name}")
            return False
        self._emit(f"↓ Downloaded: {remote_file.name}")
        return True

    def _is_own_push(self, path: Path, remote_file: RemoteFileRecord) -> bool:
        """Check whether the remote version is the one this engine pushed.

        The server stamps an upload after the local file was written, so a
        freshly pushed file always looks newer remotely. Only the exact
        version returned by the push is skipped; any later remote edit has a
        different timestamp and is downloaded.
        """
        pushed_version = self.tracker.pushed_version(path)
        remote_mtime = remote_file.mtime
        if pushed_version is None or remote_mtime is None:
            return False
        return remote_mtime == pushed_version

    def _record_push(self, path: Path, record: RemoteFileRecord) -> None:
        self.tracker.mark_uploaded(path)
        if record.mtime is not None:
            self.tracker.mark_pushed(path, record.mtime)

    def _download_into_place(self, remote_file: RemoteFileRecord, target: Path) -> bool:
        """Download to a hidden temporary file and move it over the target.

        The local mtime is set to the remote timestamp so the next pass sees
        both sides as equal.
        """
        temp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.part")
        if not self.operations.download_file(remote_file, temp_path):
            return False

        try:
            remote_mtime = remote_file.mtime
            if remote_mtime is not None:
                os.utime(temp_path, (time.time(), remote_mtime))
            self.tracker.mark_uploaded(target)
            os.replace(temp_path, target)
        except OSError as e:
            logger.warning(f"Could not move download into place for {target.name}: {e}")
            try:
                os.remove(temp_path)
            except OSError as cleanup_error:
                logger.debug(f"Could not remove {temp_path.name}: {cleanup_error}")
            return False

        self.tracker.mark_uploaded(target)
        return True

    def _delete_local(self, local_file: LocalFile) -> bool:
        try:
            os.remove(local_file.path)
        except FileNotFoundError:
            logger.debug(f"{local_file.name} already gone locally")
            self.tracker.forget(local_file.path)
            return False
        except OSError as e:
            logger.warning(f"Could not delete {local_file.name}: {e}")
            self._emit(f"⚠ Failed to delete locally: {local_file.name}")
            return False
        self.tracker.forget(local_file.path)
        self._emit(f"✗ Deleted locally (removed from server): {local_file.name}")
        return True

    def _push_update(
        self, remote_file: RemoteFileRecord, local_path: Path, folder_id: int
    ) -> Optional[RemoteFileRecord]:
        """Update a remote file, falling back once to delete and re-upload."""
        record = self.operations.update_file(remote_file, local_path)
        if record is not None:
            return record

        logger.info(f"Update of {local_path.name} failed, re-uploading instead")
        if not self.operations.delete_remote(remote_file):
            return None
        return self.operations.upload_file(local_path, folder_id)

    # ------------------------------------------------------------------
    # Change notifications
    # ------------------------------------------------------------------

    def _wait_until_ready(self, path: Path) -> bool:
        ready = wait_for_file_ready(
            path,
            retries=self.settings.ready_retries,
            delay=self.settings.ready_delay,
            sleep=self._sleep,
        )
        if not ready:
            self._emit(f"⚠ File is locked, skipped: {path.name}")
        return ready

    def _is_echo(self, path: Path) -> bool:
        local_file = snapshot(path)
        if local_file is None:
            return False
        return self.tracker.is_echo(
            path, local_file.mtime, window=self.settings.echo_window
        )

    def handle_created(
        self,
        path: Path,
        session: Optional[SyncSession] = None,
        debounce: bool = True,
    ) -> None:
        """Upload a newly created local file, or update its remote twin."""
        session = session or self._session
        if session is None or not self._is_active(session):
            return
        path = Path(path)

        if should_ignore(path) or not path.exists():
            logger.debug(f"Ignoring created event for {path.name}")
            return
        if debounce and self.tracker.is_rapid_duplicate(
            path, self.settings.create_debounce_ms
        ):
            return
        if self._is_echo(path):
            return
        if not self._wait_until_ready(path):
            return
        if not path.exists():
            logger.debug(f"{path.name} vanished before upload")
            return

        remote_files = self.operations.list_files(session.remote_folder_id)
        if remote_files is None:
            self._emit(f"⚠ Server unreachable, not uploaded: {path.name}")
            return
        if not self._is_active(session):
            return

        existing = find_by_name(remote_files, path.name)
        if existing is not None:
            record = self._push_update(existing, path, session.remote_folder_id)
            label = "Updated"
        else:
            record = self.operations.upload_file(path, session.remote_folder_id)
            label = "Uploaded"

        if record is None:
            self._emit(f"⚠ Failed to upload: {path.name}")
            return
        self._record_push(path, record)
        self._emit(f"↑ {label}: {path.name}")

    def handle_changed(self, path: Path, session: Optional[SyncSession] = None) -> None:
        """Push a modified local file when it really differs from the server."""
        session = session or self._session
        if session is None or not self._is_active(session):
            return
        path = Path(path)

        if should_ignore(path) or not path.exists():
            return
        if self.tracker.is_rapid_duplicate(path, self.settings.modify_debounce_ms):
            return
        if self._is_echo(path):
            return
        if not self._wait_until_ready(path):
            return

        local_file = snapshot(path)
        if local_file is None:
            logger.debug(f"{path.name} vanished before update")
            return

        remote_files = self.operations.list_files(session.remote_folder_id)
        if remote_files is None:
            self._emit(f"⚠ Server unreachable, not updated: {path.name}")
            return

        remote_file = find_by_name(remote_files, path.name)
        if remote_file is None:
            self.handle_created(path, session, debounce=False)
            return

        decision = self.comparator.decide_change(local_file, remote_file)
        if decision.action != SyncAction.UPDATE:
            logger.debug(f"Skip {path.name}: {decision.reason}")
            return
        if not self._is_active(session):
            return

        record = self._push_update(remote_file, path, session.remote_folder_id)
        if record is None:
            self._emit(f"⚠ Failed to update: {path.name}")
            return
        self._record_push(path, record)
        self._emit(f"↑ Updated: {path.name}")

    def handle_renamed(
        self, old_path: Path, new_path: Path, session: Optional[SyncSession] = None
    ) -> None:
        """Treat a rename as a deletion of the old name plus a new file."""
        self.handle_deleted(Path(old_path).name, session)
        self.handle_created(Path(new_path), session)

    def handle_deleted(self, name: str, session: Optional[SyncSession] = None) -> None:
        """Delete the remote twin of a locally deleted file."""
        session = session or self._session
        if session is None or not self._is_active(session):
            return
        path = session.local_path / name

        if should_ignore(path):
            return

        self._sleep(self.settings.delete_settle_delay)
        self.tracker.forget(path)
        if path.exists():
            logger.debug(f"{name} reappeared, not deleting remotely")
            return

        remote_files = self.operations.list_files(session.remote_folder_id)
        if remote_files is None:
            self._emit(f"⚠ Server unreachable, not deleted remotely: {name}")
            return
        remote_file = find_by_name(remote_files, name)
        if remote_file is None:
            logger.debug(f"{name} not on server, nothing to delete")
            return
        if not self._is_active(session):
            return

        if self.operations.delete_remote(remote_file):
            self._emit(f"✗ Deleted from server: {name}")
        else:
            self._emit(f"⚠ Failed to delete from server: {name}")

    # ------------------------------------------------------------------
    # Remote poll
    # ------------------------------------------------------------------

    def _poll_loop(self, session: SyncSession, stop_event: threading.Event) -> None:
        logger.debug(f"Polling every {self.settings.poll_interval}s")
        while not stop_event.wait(self.settings.poll_interval):
            if not self._is_active(session):
                break
            self._submit(session, self.poll_once, session)
        logger.debug("Poll loop exited")

    def poll_once(self, session: Optional[SyncSession] = None) -> bool:
        """Apply remote changes once.

        Overlapping calls are skipped rather than queued.

        Returns:
            False if the tick was skipped because another one was running
            or the session is not watching
        """
        session = session or self._session
        if session is None or not self._is_active(session):
            return False

        if not self._poll_lock.acquire(blocking=False):
            logger.debug("Previous poll still running, skipping tick")
            return False
        try:
            changed = self._pull_all(session, require_watching=True)
            if changed:
                logger.debug(f"Poll applied {changed} remote change(s)")
            self.tracker.prune()
            return True
        finally:
            self._poll_lock.release()
