"""Sync operations wrapper around the Syncbox API client.

The engine treats remote failures as values rather than exceptions: a
failed listing is ``None`` (distinct from an empty folder), a failed upload
or update is ``None`` and a failed download or delete is ``False``.
"""

import logging
from pathlib import Path
from typing import Optional

from ..api import SyncboxClient
from ..exceptions import SyncboxAPIError, SyncboxNotFoundError
from ..models import FolderRecord, RemoteFileRecord

logger = logging.getLogger(__name__)


class SyncOperations:
    """Remote Directory Client operations used by the sync engine."""

    def __init__(self, client: SyncboxClient):
        """Initialize sync operations.

        Args:
            client: Syncbox API client
        """
        self.client = client

    def list_files(self, folder_id: Optional[int]) -> Optional[list[RemoteFileRecord]]:
        """List a remote folder.

        Returns:
            The folder's records, or None if the server could not be reached
        """
        try:
            return self.client.list_files(folder_id)
        except SyncboxAPIError as e:
            logger.warning(f"Failed to list remote folder {folder_id}: {e}")
            return None

    def upload_file(
        self, local_path: Path, folder_id: Optional[int]
    ) -> Optional[RemoteFileRecord]:
        try:
            return self.client.upload_file(local_path, folder_id)
        except (SyncboxAPIError, OSError) as e:
            logger.warning(f"Upload of {local_path.name} failed: {e}")
            return None

    def update_file(
        self, remote_file: RemoteFileRecord, local_path: Path
    ) -> Optional[RemoteFileRecord]:
        try:
            return self.client.update_file(remote_file.id, local_path)
        except (SyncboxAPIError, OSError) as e:
            logger.warning(f"Update of {local_path.name} failed: {e}")
            return None

    def download_file(self, remote_file: RemoteFileRecord, local_path: Path) -> bool:
        """Download a remote file; a partially written target is removed."""
        try:
            self.client.download_file(remote_file.id, local_path)
            return True
        except SyncboxAPIError as e:
            logger.warning(f"Download of {remote_file.name} failed: {e}")
            try:
                local_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                logger.debug(f"Could not remove {local_path}: {cleanup_error}")
            return False

    def delete_remote(self, remote_file: RemoteFileRecord) -> bool:
        try:
            self.client.delete_file(remote_file.id)
            return True
        except SyncboxNotFoundError as e:
            logger.debug(f"Remote file {remote_file.name} already gone: {e}")
            return True
        except SyncboxAPIError as e:
            logger.warning(f"Delete of {remote_file.name} failed: {e}")
            return False

    def get_all_folders(self) -> Optional[list[FolderRecord]]:
        try:
            return self.client.get_all_folders()
        except SyncboxAPIError as e:
            logger.warning(f"Failed to list remote folders: {e}")
            return None

    def create_folder(
        self, name: str, parent_id: Optional[int], sync_path: Optional[str]
    ) -> Optional[FolderRecord]:
        try:
            return self.client.create_folder(name, parent_id, sync_path)
        except SyncboxAPIError as e:
            logger.warning(f"Failed to create remote folder {name}: {e}")
            return None

    def update_folder_sync_path(
        self, folder_id: int, sync_path: Optional[str]
    ) -> Optional[FolderRecord]:
        try:
            return self.client.update_folder_sync_path(folder_id, sync_path)
        except SyncboxAPIError as e:
            logger.warning(f"Failed to update sync path of folder {folder_id}: {e}")
            return None
