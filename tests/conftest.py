"""Shared fixtures for the sync engine tests."""

import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from unittest.mock import Mock

import pytest

from pysyncbox.api import SyncboxClient
from pysyncbox.exceptions import SyncboxNetworkError, SyncboxNotFoundError
from pysyncbox.models import FolderRecord, RemoteFileRecord
from pysyncbox.sync import EngineSettings, SyncEngine

FOLDER_ID = 7


def iso(timestamp: float) -> str:
    """Format a Unix timestamp the way the server does."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


class FakeRemote:
    """In-memory Syncbox folder behind a ``Mock(spec=SyncboxClient)``."""

    def __init__(self):
        self.files: dict[int, dict] = {}
        self.folders: list[FolderRecord] = []
        self.online = True
        self._next_id = 1

        client = Mock(spec=SyncboxClient)
        client.list_files.side_effect = self._list_files
        client.upload_file.side_effect = self._upload_file
        client.update_file.side_effect = self._update_file
        client.download_file.side_effect = self._download_file
        client.delete_file.side_effect = self._delete_file
        client.get_all_folders.side_effect = lambda: list(self.folders)
        client.create_folder.side_effect = self._create_folder
        client.update_folder_sync_path.side_effect = self._update_folder_sync_path
        self.client = client

    def add(
        self, name: str, content: bytes = b"", mtime: Optional[float] = None
    ) -> RemoteFileRecord:
        file_id = self._next_id
        self._next_id += 1
        self.files[file_id] = {
            "name": name,
            "content": content,
            "updated_at": iso(time.time() if mtime is None else mtime),
        }
        return self.record(file_id)

    def record(self, file_id: int) -> RemoteFileRecord:
        entry = self.files[file_id]
        return RemoteFileRecord(
            id=file_id,
            name=entry["name"],
            size=len(entry["content"]),
            updated_at=entry["updated_at"],
            folder_id=FOLDER_ID,
        )

    def names(self) -> list[str]:
        return sorted(entry["name"] for entry in self.files.values())

    def content(self, name: str) -> bytes:
        for entry in self.files.values():
            if entry["name"] == name:
                return entry["content"]
        raise KeyError(name)

    def _check_online(self) -> None:
        if not self.online:
            raise SyncboxNetworkError("Network error: server offline")

    def _list_files(self, folder_id):
        self._check_online()
        return [self.record(file_id) for file_id in self.files]

    def _upload_file(self, file_path, folder_id=None):
        self._check_online()
        return self.add(Path(file_path).name, Path(file_path).read_bytes())

    def _update_file(self, file_id, file_path):
        self._check_online()
        if file_id not in self.files:
            raise SyncboxNotFoundError("Resource not found")
        self.files[file_id]["content"] = Path(file_path).read_bytes()
        self.files[file_id]["updated_at"] = iso(time.time())
        return self.record(file_id)

    def _download_file(self, file_id, output_path):
        self._check_online()
        if file_id not in self.files:
            raise SyncboxNotFoundError("Resource not found")
        Path(output_path).write_bytes(self.files[file_id]["content"])
        return Path(output_path)

    def _delete_file(self, file_id):
        self._check_online()
        if file_id not in self.files:
            raise SyncboxNotFoundError("Resource not found")
        del self.files[file_id]

    def _create_folder(self, name, parent_id=None, sync_path=None):
        self._check_online()
        folder = FolderRecord(
            id=100 + len(self.folders),
            name=name,
            parent_id=parent_id,
            sync_path=sync_path,
        )
        self.folders.append(folder)
        return folder

    def _update_folder_sync_path(self, folder_id, sync_path):
        self._check_online()
        for folder in self.folders:
            if folder.id == folder_id:
                folder.sync_path = sync_path
                return folder
        raise SyncboxNotFoundError("Resource not found")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_remote(temp_dir):
    """A remote folder already paired with temp_dir."""
    remote = FakeRemote()
    remote.folders.append(
        FolderRecord(id=FOLDER_ID, name=temp_dir.name, sync_path=str(temp_dir))
    )
    return remote


@pytest.fixture
def settings():
    """Engine settings without real waits."""
    return EngineSettings(
        poll_interval=3600,
        ready_retries=2,
        ready_delay=0.0,
        delete_settle_delay=0.0,
    )


@pytest.fixture
def engine(fake_remote, settings):
    """A sync engine whose watcher is a mock."""
    sync_engine = SyncEngine(
        fake_remote.client,
        settings,
        sleep=lambda seconds: None,
        watcher_factory=Mock(),
    )
    yield sync_engine
    sync_engine.stop_auto_sync()


@pytest.fixture
def manual_engine(engine, temp_dir):
    """An engine configured for manual passes only."""
    engine.configure_sync(
        temp_dir,
        remote_folder_id=FOLDER_ID,
        auto_sync=False,
        perform_initial_sync=False,
    )
    return engine


@pytest.fixture
def watching_engine(engine, temp_dir):
    """An engine watching temp_dir (events are fed to its handlers directly)."""
    engine.activate_existing_sync(temp_dir, FOLDER_ID)
    return engine
