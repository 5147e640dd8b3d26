"""PySyncbox - keep a local folder in sync with a Syncbox server folder."""

from .api import SyncboxClient
from .exceptions import (
    SyncboxAPIError,
    SyncboxAuthenticationError,
    SyncboxConfigError,
    SyncboxDownloadError,
    SyncboxFileNotFoundError,
    SyncboxInvalidResponseError,
    SyncboxNetworkError,
    SyncboxNotFoundError,
    SyncboxPermissionError,
    SyncboxRateLimitError,
    SyncboxUploadError,
)
from .models import FolderRecord, RemoteFileRecord

__all__ = [
    "SyncboxClient",
    "SyncboxAPIError",
    "SyncboxAuthenticationError",
    "SyncboxConfigError",
    "SyncboxDownloadError",
    "SyncboxFileNotFoundError",
    "SyncboxInvalidResponseError",
    "SyncboxNetworkError",
    "SyncboxNotFoundError",
    "SyncboxPermissionError",
    "SyncboxRateLimitError",
    "SyncboxUploadError",
    "FolderRecord",
    "RemoteFileRecord",
]
