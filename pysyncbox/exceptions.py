"""Exceptions raised by the Syncbox API client."""


class SyncboxAPIError(Exception):
    """Base exception for all Syncbox API errors."""


class SyncboxAuthenticationError(SyncboxAPIError):
    """Raised when the API token is missing, invalid or expired."""


class SyncboxConfigError(SyncboxAPIError):
    """Raised when the client is not configured (no token or server URL)."""


class SyncboxPermissionError(SyncboxAPIError):
    """Raised when the server refuses access to a resource."""


class SyncboxNotFoundError(SyncboxAPIError):
    """Raised when a file or folder does not exist on the server."""


class SyncboxRateLimitError(SyncboxAPIError):
    """Raised when the server rate-limits the client."""


class SyncboxNetworkError(SyncboxAPIError):
    """Raised when the server cannot be reached."""


class SyncboxInvalidResponseError(SyncboxAPIError):
    """Raised when the server returns a body that is not the expected JSON."""


class SyncboxUploadError(SyncboxAPIError):
    """Raised when an upload or update is rejected."""


class SyncboxDownloadError(SyncboxAPIError):
    """Raised when a download fails or cannot be written to disk."""


class SyncboxFileNotFoundError(SyncboxAPIError):
    """Raised when a local file to upload does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}")
