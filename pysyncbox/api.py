"""API client for the Syncbox file server."""

from __future__ import annotations

import random
import threading
import time
from pathlib import Path
from typing import Any

import httpx

from .config import config
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
from .utils import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT


class SyncboxClient:
    """Client for the Syncbox REST API.

    Every endpoint answers with an envelope of the form
    ``{"success": bool, "data": ..., "error": str}``; the client unwraps
    ``data`` and raises on ``success: false``.
    """

    def __init__(
        self,
        api_token: str | None = None,
        server_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Syncbox API client.

        Args:
            api_token: Optional bearer token (uses config if not provided)
            server_url: Optional server base URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            transport: Optional httpx transport (used by tests)
        """
        self.api_token = api_token or config.api_token
        self.server_url = (server_url or config.server_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._transport = transport

        if not self.api_token:
            raise SyncboxConfigError(
                "API token not configured. "
                "Please set SYNCBOX_API_TOKEN environment variable."
            )

        self._client: httpx.Client | None = None
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client shared by all threads."""
        with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.Client(
                    headers={"Authorization": f"Bearer {self.api_token}"},
                    timeout=httpx.Timeout(self.timeout),
                    follow_redirects=True,
                    transport=self._transport,
                )
            return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        with self._client_lock:
            if self._client is not None and not self._client.is_closed:
                self._client.close()
            self._client = None

    def __enter__(self) -> SyncboxClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _retry_delay(
        self, attempt: int, response: httpx.Response | None = None
    ) -> float:
        """Seconds to wait before retrying.

        Honours a numeric ``Retry-After`` header, otherwise uses exponential
        backoff with +/- 25% jitter.
        """
        if response is not None:
            retry_after = response.headers.get("Retry-After", "")
            if retry_after.isdigit():
                return float(retry_after)

        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    @staticmethod
    def _error_for_status(response: httpx.Response) -> SyncboxAPIError:
        """Map an HTTP error response to a Syncbox exception."""
        status_code = response.status_code

        if status_code == 401:
            return SyncboxAuthenticationError(
                "Invalid API token or unauthorized access"
            )
        if status_code == 403:
            return SyncboxPermissionError(
                "Access forbidden - check your permissions"
            )
        if status_code == 404:
            return SyncboxNotFoundError("Resource not found")
        if status_code == 429:
            return SyncboxRateLimitError(
                "Rate limit exceeded - please try again later"
            )

        error_msg = f"API request failed with status {status_code}"
        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            error_msg = f"{error_msg}: {body['error']}"
        return SyncboxAPIError(error_msg)

    def _unwrap(self, response: httpx.Response) -> Any:
        """Validate the JSON envelope and return its ``data`` member."""
        content_type = response.headers.get("Content-Type", "")
        if not response.content:
            return None
        if "application/json" not in content_type:
            if "text/html" in content_type:
                raise SyncboxAuthenticationError(
                    "Server returned HTML instead of JSON - check the server URL"
                )
            raise SyncboxInvalidResponseError(
                f"Unexpected response type: {content_type}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SyncboxInvalidResponseError(
                "Invalid JSON response from server"
            ) from e

        if not isinstance(body, dict):
            raise SyncboxInvalidResponseError("Response is not a JSON object")
        if not body.get("success", False):
            raise SyncboxAPIError(body.get("error") or "Request was not successful")
        return body.get("data")

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an API request, retrying network errors, 429 and 5xx.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            The ``data`` member of the response envelope

        Raises:
            SyncboxAPIError: If the request fails after all retries
        """
        url = f"{self.server_url}/{endpoint.lstrip('/')}"
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            retries_left = attempt < self.max_retries
            try:
                response = client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                if retries_left:
                    time.sleep(self._retry_delay(attempt))
                    continue
                raise SyncboxNetworkError(f"Network error: {e}") from e

            if response.is_error:
                transient = response.status_code == 429 or response.is_server_error
                if transient and retries_left:
                    time.sleep(self._retry_delay(attempt, response))
                    continue
                raise self._error_for_status(response)

            return self._unwrap(response)

        raise SyncboxAPIError("Request failed after all retry attempts")

    def _detect_mime_type(self, file_path: Path) -> str:
        """Detect MIME type of a file.

        Args:
            file_path: Path to the file

        Returns:
            MIME type string (defaults to 'application/octet-stream')
        """
        import mimetypes

        mime_type = None

        # python-magic gives more accurate results when installed
        try:
            import magic  # type: ignore

            try:
                mime_type = magic.from_file(str(file_path), mime=True)
            except Exception:
                mime_type = None
        except ImportError:
            pass

        if not mime_type:
            mime_type, _ = mimetypes.guess_type(str(file_path))

        return mime_type or "application/octet-stream"

    def _file_part(self, file_path: Path) -> dict[str, Any]:
        """Read a local file into a multipart ``file`` field."""
        if not file_path.is_file():
            raise SyncboxFileNotFoundError(str(file_path))
        # Read up front so retries resend the same bytes
        content = file_path.read_bytes()
        return {"file": (file_path.name, content, self._detect_mime_type(file_path))}

    # =========================
    # File Operations
    # =========================

    def list_files(self, folder_id: int | None = None) -> list[RemoteFileRecord]:
        """List the files of a folder.

        Args:
            folder_id: Folder to list; None lists files outside any folder

        Returns:
            Records of the folder's files (empty if the folder is empty)
        """
        params = {"folder_id": str(folder_id) if folder_id is not None else "null"}
        data = self._request("GET", "/api/files", params=params)
        if data is None:
            return []
        if not isinstance(data, list):
            raise SyncboxInvalidResponseError("Expected a list of files")
        return [RemoteFileRecord.from_dict(item) for item in data]

    def upload_file(
        self, file_path: Path, folder_id: int | None = None
    ) -> RemoteFileRecord:
        """Upload a new file.

        Args:
            file_path: Local path to the file
            folder_id: Destination folder (None for root)

        Returns:
            Record of the created file
        """
        data: dict[str, str] = {}
        if folder_id is not None:
            data["folder_id"] = str(folder_id)

        result = self._request(
            "POST", "/api/files/upload", files=self._file_part(file_path), data=data
        )
        if not result:
            raise SyncboxUploadError(f"Upload of {file_path.name} returned no record")
        return RemoteFileRecord.from_dict(result)

    def update_file(self, file_id: int, file_path: Path) -> RemoteFileRecord:
        """Replace the content of an existing file.

        The server keeps ``created_at`` and bumps ``updated_at``.

        Args:
            file_id: ID of the file to replace
            file_path: Local path holding the new content

        Returns:
            Record of the updated file
        """
        result = self._request(
            "PUT", f"/api/files/{file_id}", files=self._file_part(file_path)
        )
        if not result:
            raise SyncboxUploadError(f"Update of file {file_id} returned no record")
        return RemoteFileRecord.from_dict(result)

    def download_file(self, file_id: int, output_path: Path) -> Path:
        """Download a file's content.

        Args:
            file_id: ID of the file to download
            output_path: Where to save the file

        Returns:
            Path where the file was saved

        Raises:
            SyncboxDownloadError: If download fails
        """
        url = f"{self.server_url}/api/files/{file_id}/download"
        client = self._get_client()

        try:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(output_path, "wb") as f:
                    for chunk in response.iter_bytes(chunk_size=8192):
                        f.write(chunk)

                return output_path

        except httpx.HTTPStatusError as e:
            raise SyncboxDownloadError(f"Download failed: {e}") from e
        except httpx.RequestError as e:
            raise SyncboxNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            raise SyncboxDownloadError(f"Failed to write file: {e}") from e

    def delete_file(self, file_id: int) -> None:
        """Delete a file from the server."""
        self._request("DELETE", f"/api/files/{file_id}")

    # =========================
    # Folder Operations
    # =========================

    def get_all_folders(self) -> list[FolderRecord]:
        """List every folder of the current user, at any depth."""
        data = self._request("GET", "/api/folders/all") or []
        return [FolderRecord.from_dict(item) for item in data]

    def get_folders(self, parent_id: int | None = None) -> list[FolderRecord]:
        """List the child folders of a folder (root when parent_id is None)."""
        params = {"parent_id": str(parent_id)} if parent_id is not None else None
        data = self._request("GET", "/api/folders", params=params) or []
        return [FolderRecord.from_dict(item) for item in data]

    def create_folder(
        self,
        name: str,
        parent_id: int | None = None,
        sync_path: str | None = None,
    ) -> FolderRecord:
        """Create a new folder.

        Args:
            name: Name of the new folder
            parent_id: ID of parent folder (None for root)
            sync_path: Local directory the folder is synchronized with

        Returns:
            Record of the created folder
        """
        payload = {"name": name, "parent_id": parent_id, "sync_path": sync_path}
        data = self._request("POST", "/api/folders", json=payload)
        return FolderRecord.from_dict(data)

    def update_folder_sync_path(
        self, folder_id: int, sync_path: str | None
    ) -> FolderRecord:
        """Set or clear (None) the local sync path of a folder."""
        data = self._request(
            "PUT", f"/api/folders/{folder_id}", json={"sync_path": sync_path}
        )
        return FolderRecord.from_dict(data)

    # =========================
    # Status
    # =========================

    def check_connection(self) -> bool:
        """Check that the server is reachable and accepts the token."""
        self._request("GET", "/api/folders")
        return True

