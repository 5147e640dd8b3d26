"""Unit tests for the Syncbox API client."""

import json
import threading
from unittest.mock import patch

import httpx
import pytest

from pysyncbox.api import SyncboxClient
from pysyncbox.exceptions import (
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
)

SERVER = "http://syncbox.test"


def envelope(data=None, success=True, error=None, status_code=200):
    return httpx.Response(
        status_code, json={"success": success, "data": data, "error": error}
    )


def make_client(handler, **kwargs):
    kwargs.setdefault("max_retries", 0)
    return SyncboxClient(
        api_token="secret",
        server_url=SERVER,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


FILE_ITEM = {
    "id": 5,
    "name": "a.txt",
    "size": 12,
    "updated_at": "2025-01-15T10:30:00Z",
    "created_at": "2025-01-15T10:00:00Z",
    "folder_id": 7,
}


class TestSyncboxClient:
    """Tests for client initialization."""

    def test_init_with_token(self):
        client = SyncboxClient(api_token="secret", server_url=SERVER + "/")
        assert client.api_token == "secret"
        assert client.server_url == SERVER

    def test_init_without_token_raises_error(self):
        with patch("pysyncbox.api.config") as mock_config:
            mock_config.api_token = None
            mock_config.server_url = SERVER
            with pytest.raises(SyncboxConfigError, match="API token not configured"):
                SyncboxClient()

    def test_bearer_header_is_sent(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            return envelope([])

        make_client(handler).list_files(7)

        assert seen["auth"] == "Bearer secret"

    def test_context_manager_closes(self):
        with make_client(lambda request: envelope([])) as client:
            client.list_files(7)
            assert client._client is not None
        assert client._client is None

    def test_concurrent_callers_share_one_http_client(self):
        client = make_client(lambda request: envelope([]))
        barrier = threading.Barrier(8)
        seen = []

        def worker():
            barrier.wait()
            seen.append(client._get_client())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(http_client) for http_client in seen}) == 1
        client.close()

    def test_client_is_recreated_after_close(self):
        client = make_client(lambda request: envelope([]))
        first = client._get_client()
        client.close()

        assert client.list_files(7) == []
        assert client._get_client() is not first
        client.close()


class TestRequest:
    """Tests for envelope handling, error mapping and retries."""

    def test_unsuccessful_envelope_raises_server_error(self):
        client = make_client(
            lambda request: envelope(success=False, error="Folder not found")
        )
        with pytest.raises(SyncboxAPIError, match="Folder not found"):
            client.get_all_folders()

    @pytest.mark.parametrize(
        "status_code,exception",
        [
            (401, SyncboxAuthenticationError),
            (403, SyncboxPermissionError),
            (404, SyncboxNotFoundError),
            (429, SyncboxRateLimitError),
            (500, SyncboxAPIError),
        ],
    )
    def test_http_errors_are_mapped(self, status_code, exception):
        client = make_client(lambda request: envelope(status_code=status_code))
        with pytest.raises(exception):
            client.list_files(7)

    def test_error_message_from_body(self):
        client = make_client(
            lambda request: envelope(success=False, error="disk full", status_code=500)
        )
        with pytest.raises(SyncboxAPIError, match="disk full"):
            client.list_files(7)

    def test_html_response_raises_authentication_error(self):
        client = make_client(
            lambda request: httpx.Response(
                200, text="<html></html>", headers={"Content-Type": "text/html"}
            )
        )
        with pytest.raises(SyncboxAuthenticationError, match="HTML"):
            client.list_files(7)

    def test_non_object_body_is_invalid(self):
        client = make_client(lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(SyncboxInvalidResponseError):
            client.list_files(7)

    @patch("pysyncbox.api.time.sleep")
    def test_server_errors_are_retried(self, mock_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return envelope(status_code=503)
            return envelope([FILE_ITEM])

        files = make_client(handler, max_retries=3).list_files(7)

        assert len(calls) == 3
        assert mock_sleep.call_count == 2
        assert files[0].name == "a.txt"

    @patch("pysyncbox.api.time.sleep")
    def test_rate_limit_honours_retry_after(self, mock_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "7"})
            return envelope([])

        make_client(handler, max_retries=2).list_files(7)

        mock_sleep.assert_called_once_with(7.0)

    @patch("pysyncbox.api.time.sleep")
    def test_network_errors_are_retried_then_raised(self, mock_sleep):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SyncboxNetworkError):
            make_client(handler, max_retries=2).list_files(7)
        assert mock_sleep.call_count == 2

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return envelope(status_code=403)

        with pytest.raises(SyncboxAPIError):
            make_client(handler, max_retries=3).list_files(7)
        assert len(calls) == 1


class TestFileOperations:
    """Tests for the file endpoints."""

    def test_list_files(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return envelope([FILE_ITEM])

        files = make_client(handler).list_files(7)

        assert seen == {"path": "/api/files", "params": {"folder_id": "7"}}
        assert files[0].id == 5
        assert files[0].size == 12
        assert files[0].mtime is not None

    def test_list_files_without_folder(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return envelope([])

        assert make_client(handler).list_files(None) == []
        assert seen["params"] == {"folder_id": "null"}

    def test_list_files_null_data_is_empty(self):
        assert make_client(lambda request: envelope(None)).list_files(7) == []

    def test_list_files_rejects_non_list(self):
        client = make_client(lambda request: envelope({"id": 1}))
        with pytest.raises(SyncboxInvalidResponseError):
            client.list_files(7)

    def test_upload_file(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("hello world!")
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = request.read()
            return envelope(FILE_ITEM)

        record = make_client(handler).upload_file(path, 7)

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/files/upload"
        assert b'filename="a.txt"' in seen["body"]
        assert b"hello world!" in seen["body"]
        assert b'name="folder_id"' in seen["body"]
        assert record.id == 5

    def test_upload_missing_file(self, temp_dir):
        client = make_client(lambda request: envelope(FILE_ITEM))
        with pytest.raises(SyncboxFileNotFoundError):
            client.upload_file(temp_dir / "missing.txt", 7)

    def test_update_file(self, temp_dir):
        path = temp_dir / "a.txt"
        path.write_text("new content")
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            return envelope(FILE_ITEM)

        make_client(handler).update_file(5, path)

        assert seen == {"method": "PUT", "path": "/api/files/5"}

    def test_download_file(self, temp_dir):
        def handler(request):
            assert request.url.path == "/api/files/5/download"
            return httpx.Response(200, content=b"file body")

        output = make_client(handler).download_file(5, temp_dir / "a.txt")

        assert output.read_bytes() == b"file body"

    def test_download_missing_file(self, temp_dir):
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(SyncboxDownloadError):
            client.download_file(5, temp_dir / "a.txt")

    def test_delete_file(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            return envelope()

        make_client(handler).delete_file(5)

        assert seen == {"method": "DELETE", "path": "/api/files/5"}


class TestFolderOperations:
    """Tests for the folder endpoints."""

    def test_get_all_folders(self):
        def handler(request):
            assert request.url.path == "/api/folders/all"
            return envelope(
                [{"id": 7, "name": "docs", "parent_id": None, "sync_path": "/d"}]
            )

        folders = make_client(handler).get_all_folders()

        assert folders[0].id == 7
        assert folders[0].sync_path == "/d"

    def test_get_folders_with_parent(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return envelope([])

        make_client(handler).get_folders(parent_id=3)

        assert seen["params"] == {"parent_id": "3"}

    def test_create_folder(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["json"] = json.loads(request.content)
            return envelope({"id": 9, "name": "docs", "sync_path": "/home/u/docs"})

        folder = make_client(handler).create_folder(
            "docs", sync_path="/home/u/docs"
        )

        assert seen["method"] == "POST"
        assert seen["json"] == {
            "name": "docs",
            "parent_id": None,
            "sync_path": "/home/u/docs",
        }
        assert folder.id == 9

    def test_update_folder_sync_path(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["json"] = json.loads(request.content)
            return envelope({"id": 7, "name": "docs", "sync_path": None})

        make_client(handler).update_folder_sync_path(7, None)

        assert seen == {"path": "/api/folders/7", "json": {"sync_path": None}}

    def test_check_connection(self):
        assert make_client(lambda request: envelope([])).check_connection() is True
