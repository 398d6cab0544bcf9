"""API client for Google Drive v3."""

from __future__ import annotations

import random
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import httpx

from .config import config
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveFileNotFoundError,
    DriveInvalidResponseError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveUploadError,
)
from .models import FILE_FIELDS, DriveFile, FileListResult
from .utils import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    DOWNLOAD_BLOCK_SIZE,
    FOLDER_MIME_TYPE,
    format_iso_timestamp,
)

# HTTP status Google uses for "resume incomplete" during resumable uploads
RESUME_INCOMPLETE = 308


def _escape_query_value(value: str) -> str:
    """Escape a string literal for use inside a Drive ``q`` expression."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient:
    """Client for interacting with the Google Drive v3 API.

    Implements the remote storage interface consumed by the sync engine:
    listing folder children, creating and updating files, streamed
    downloads and folder lookup/creation.
    """

    def __init__(
        self,
        access_token: str | None = None,
        api_url: str | None = None,
        upload_url: str | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        token_refresher: Callable[[], str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Drive API client.

        Args:
            access_token: OAuth access token (uses config if not provided)
            api_url: Optional metadata API base URL (uses config if not provided)
            upload_url: Optional upload API base URL (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
            chunk_size: Resumable upload chunk size, a multiple of 256 KB
            token_refresher: Optional callable returning a fresh access token,
                used once when the server rejects the current token
            transport: Optional httpx transport (used by tests)
        """
        self.access_token = access_token or config.access_token
        self.api_url = (api_url or config.api_url).rstrip("/")
        self.upload_url = (upload_url or config.upload_url).rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.token_refresher = token_refresher
        self._transport = transport

        if not self.access_token:
            raise DriveConfigError(
                "Access token not configured. Run 'pydrivesync login' or set "
                "PYDRIVESYNC_ACCESS_TOKEN environment variable."
            )

        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                headers={"Authorization": f"Bearer {self.access_token}"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> DriveClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _refresh_token(self) -> bool:
        """Replace the access token using the refresher, if one is set.

        Raises:
            DriveAuthenticationError: If the refresher cannot produce a token
        """
        if self.token_refresher is None:
            return False
        try:
            self.access_token = self.token_refresher()
        except DriveAuthenticationError:
            raise
        except Exception as e:
            raise DriveAuthenticationError(
                f"Could not refresh access token: {e} - run 'pydrivesync login'"
            ) from e
        self._get_client().headers["Authorization"] = f"Bearer {self.access_token}"
        return True

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Jitter of +/- 25% to avoid synchronized retries
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _handle_http_error(
        self, e: httpx.HTTPStatusError, attempt: int
    ) -> tuple[Exception, bool]:
        """Map an HTTP error to an exception and decide whether to retry.

        Args:
            e: The HTTP error exception
            attempt: Current attempt number

        Returns:
            Tuple of (exception to raise, should_retry)
        """
        status_code = e.response.status_code
        message = self._extract_error_message(e.response)

        if status_code == 401:
            return (
                DriveAuthenticationError(
                    "Invalid or expired access token - run 'pydrivesync login'"
                ),
                False,
            )
        if status_code == 403:
            # Drive reports quota exhaustion as 403 with a rate limit reason
            if message and "rate limit" in message.lower():
                return (DriveRateLimitError(message), attempt < self.max_retries)
            return (
                DrivePermissionError(
                    f"Access forbidden - check your permissions: {message}"
                ),
                False,
            )
        if status_code == 404:
            return (DriveNotFoundError(f"Resource not found: {message}"), False)
        if status_code == 429:
            error = DriveRateLimitError("Rate limit exceeded - please try again later")
            return (error, attempt < self.max_retries)

        error_msg = f"API request failed with status {status_code}"
        if message:
            error_msg = f"{error_msg}: {message}"
        should_retry = 500 <= status_code < 600 and attempt < self.max_retries
        return (DriveAPIError(error_msg), should_retry)

    @staticmethod
    def _extract_error_message(response: httpx.Response) -> str:
        """Pull the human-readable message out of a Drive error body."""
        try:
            if response.content:
                data = response.json()
                if isinstance(data, dict):
                    error = data.get("error")
                    if isinstance(error, dict):
                        return str(error.get("message", ""))
                    if error:
                        return str(error)
        except ValueError:
            pass
        return ""

    def _send(
        self,
        method: str,
        url: str,
        ok_statuses: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request with retry logic.

        Args:
            method: HTTP method
            url: Absolute URL
            ok_statuses: Non-2xx status codes to return instead of raising
            **kwargs: Additional arguments passed to httpx

        Returns:
            The HTTP response

        Raises:
            DriveAPIError: If the request fails after all retries
        """
        last_exception: Exception | None = None
        refreshed = False
        client = self._get_client()

        attempt = 0
        while attempt <= self.max_retries:
            try:
                response = client.request(method, url, **kwargs)
                if response.status_code in ok_statuses:
                    return response
                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                if e.response.status_code == 401 and not refreshed:
                    refreshed = True
                    if self._refresh_token():
                        continue

                error, should_retry = self._handle_http_error(e, attempt)
                last_exception = error

                if should_retry:
                    retry_after = e.response.headers.get("Retry-After")
                    if isinstance(error, DriveRateLimitError) and (
                        retry_after and retry_after.isdigit()
                    ):
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    time.sleep(delay)
                    attempt += 1
                    continue
                raise error from e
            except httpx.RequestError as e:
                error = DriveNetworkError(f"Network error: {e}")
                last_exception = error
                if attempt < self.max_retries:
                    time.sleep(self._calculate_retry_delay(attempt))
                    attempt += 1
                    continue
                raise error from e

        if last_exception:
            raise last_exception
        raise DriveAPIError("Request failed after all retry attempts")

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        """Decode a JSON response body."""
        if not response.content:
            return {}

        content_type = response.headers.get("Content-Type", "")
        if "application/json" not in content_type:
            raise DriveInvalidResponseError(
                f"Unexpected response type: {content_type}"
            )
        try:
            return response.json()
        except ValueError as e:
            raise DriveInvalidResponseError("Invalid JSON response from server") from e

    def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make a metadata API request and return the decoded JSON."""
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        return self._parse_json(self._send(method, url, **kwargs))

    # =========================
    # Listing Operations
    # =========================

    def list_files(self, query: str, page_size: int = 1000) -> list[DriveFile]:
        """List all files matching a Drive search query, following pagination.

        Args:
            query: Drive ``q`` search expression
            page_size: Entries requested per page

        Returns:
            List of matching files
        """
        all_files: list[DriveFile] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {
                "q": query,
                "fields": f"nextPageToken, files({FILE_FIELDS})",
                "pageSize": page_size,
                "supportsAllDrives": "true",
                "includeItemsFromAllDrives": "true",
            }
            if page_token:
                params["pageToken"] = page_token

            result = FileListResult.from_api_response(
                self._request("GET", "/files", params=params)
            )
            all_files.extend(result.files)

            page_token = result.next_page_token
            if not page_token:
                break

        return all_files

    def list_children(self, folder_id: str) -> list[DriveFile]:
        """List the non-trashed files and folders directly inside a folder.

        Args:
            folder_id: Drive folder ID

        Returns:
            List of child entries
        """
        query = f"'{_escape_query_value(folder_id)}' in parents and trashed = false"
        files = self.list_files(query)
        # The query already filters, but shared drives can return stale entries
        return [f for f in files if not f.trashed]

    def get_file(self, file_id: str) -> DriveFile:
        """Get metadata for a single file or folder.

        Raises:
            DriveNotFoundError: If the entry does not exist
        """
        data = self._request(
            "GET",
            f"/files/{file_id}",
            params={"fields": FILE_FIELDS, "supportsAllDrives": "true"},
        )
        return DriveFile.from_dict(data)

    # =========================
    # Folder Operations
    # =========================

    def find_folder(self, name: str, parent_id: str) -> str | None:
        """Find a folder by exact name inside a parent folder.

        Args:
            name: Folder name
            parent_id: Parent folder ID

        Returns:
            ID of the first matching folder, or None if there is none
        """
        query = (
            f"name = '{_escape_query_value(name)}' "
            f"and '{_escape_query_value(parent_id)}' in parents "
            f"and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        )
        for entry in self.list_files(query, page_size=10):
            if entry.name == name and entry.is_folder:
                return entry.id
        return None

    def create_folder(self, name: str, parent_id: str) -> str:
        """Create a folder.

        Args:
            name: Name of the new folder
            parent_id: ID of the parent folder

        Returns:
            ID of the created folder
        """
        data = self._request(
            "POST",
            "/files",
            params={"fields": "id", "supportsAllDrives": "true"},
            json={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
        )
        folder_id = data.get("id")
        if not folder_id:
            raise DriveInvalidResponseError("Create folder response missing 'id'")
        return folder_id

    # =========================
    # Upload Operations
    # =========================

    def create_file(
        self,
        parent_id: str,
        name: str,
        content_type: str,
        file_path: Path,
        modified_time: datetime | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> str:
        """Upload a new file.

        Args:
            parent_id: ID of the folder the file is created in
            name: Remote file name
            content_type: MIME type of the content
            file_path: Local file providing the content
            modified_time: Modification time to store on the remote file
            progress_callback: Optional callback function(bytes_uploaded,
                total_bytes)

        Returns:
            ID of the created file
        """
        metadata: dict[str, Any] = {"name": name, "parents": [parent_id]}
        if modified_time is not None:
            metadata["modifiedTime"] = format_iso_timestamp(modified_time)

        result = self._resumable_upload(
            "POST",
            f"{self.upload_url}/files",
            metadata,
            content_type,
            file_path,
            progress_callback,
        )
        file_id = result.get("id")
        if not file_id:
            raise DriveUploadError("Upload response missing file 'id'")
        return file_id

    def update_file_content(
        self,
        file_id: str,
        file_path: Path,
        content_type: str,
        modified_time: datetime | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> None:
        """Replace the content of an existing file, keeping its ID.

        Args:
            file_id: ID of the file to overwrite
            file_path: Local file providing the new content
            content_type: MIME type of the content
            modified_time: Modification time to store on the remote file
            progress_callback: Optional callback function(bytes_uploaded,
                total_bytes)
        """
        metadata: dict[str, Any] = {}
        if modified_time is not None:
            metadata["modifiedTime"] = format_iso_timestamp(modified_time)

        self._resumable_upload(
            "PATCH",
            f"{self.upload_url}/files/{file_id}",
            metadata,
            content_type,
            file_path,
            progress_callback,
        )

    def _resumable_upload(
        self,
        method: str,
        url: str,
        metadata: dict[str, Any],
        content_type: str,
        file_path: Path,
        progress_callback: Callable[[int, int], None] | None,
    ) -> Any:
        """Run a resumable upload session and return the final file resource.

        The file is sent in ``chunk_size`` pieces; after each piece the
        server reports how many bytes it persisted and the next piece
        continues from there.
        """
        if not file_path.exists():
            raise DriveFileNotFoundError(str(file_path))

        total_size = file_path.stat().st_size

        session = self._send(
            method,
            url,
            params={
                "uploadType": "resumable",
                "fields": "id",
                "supportsAllDrives": "true",
            },
            json=metadata,
            headers={
                "X-Upload-Content-Type": content_type,
                "X-Upload-Content-Length": str(total_size),
            },
        )
        session_url = session.headers.get("Location")
        if not session_url:
            raise DriveUploadError("Upload session response missing 'Location'")

        offset = 0
        reported = 0
        try:
            with open(file_path, "rb") as f:
                while True:
                    f.seek(offset)
                    chunk = f.read(self.chunk_size)
                    if chunk:
                        end = offset + len(chunk) - 1
                        content_range = f"bytes {offset}-{end}/{total_size}"
                    else:
                        content_range = f"bytes */{total_size}"

                    response = self._send(
                        "PUT",
                        session_url,
                        ok_statuses=(RESUME_INCOMPLETE,),
                        content=chunk,
                        headers={"Content-Range": content_range},
                    )

                    if response.status_code != RESUME_INCOMPLETE:
                        if progress_callback and reported < total_size:
                            progress_callback(total_size, total_size)
                        return self._parse_json(response)

                    if not chunk:
                        raise DriveUploadError(
                            "Server expects more data than the file contains"
                        )

                    # Range: bytes=0-N lists what the server has persisted
                    persisted = response.headers.get("Range")
                    if persisted and "-" in persisted:
                        offset = int(persisted.rsplit("-", 1)[1]) + 1
                    else:
                        offset = 0

                    if progress_callback and offset > reported:
                        reported = offset
                        progress_callback(reported, total_size)
        except OSError as e:
            raise DriveUploadError(f"Failed to read file: {e}") from e

    # =========================
    # Download Operations
    # =========================

    def download_file(
        self,
        file_id: str,
        output_path: Path,
        progress_callback: Callable[[int, int], None] | None = None,
        timeout: int = 60,
    ) -> Path:
        """Download a file's content.

        Args:
            file_id: ID of the file to download
            output_path: Path where the content is written
            progress_callback: Optional callback function(bytes_downloaded,
                total_bytes)
            timeout: Request timeout in seconds (default: 60)

        Returns:
            Path where the file was saved

        Raises:
            DriveDownloadError: If the download fails
        """
        url = f"{self.api_url}/files/{file_id}"
        client = self._get_client()
        refreshed = False

        while True:
            try:
                with client.stream(
                    "GET",
                    url,
                    params={"alt": "media", "supportsAllDrives": "true"},
                    timeout=timeout,
                ) as response:
                    response.raise_for_status()

                    total_size = int(response.headers.get("Content-Length", 0))
                    bytes_downloaded = 0

                    with open(output_path, "wb") as f:
                        for chunk in response.iter_bytes(
                            chunk_size=DOWNLOAD_BLOCK_SIZE
                        ):
                            if chunk:
                                f.write(chunk)
                                bytes_downloaded += len(chunk)
                                if progress_callback:
                                    progress_callback(bytes_downloaded, total_size)

                    return output_path

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code == 401 and not refreshed:
                    refreshed = True
                    if self._refresh_token():
                        continue
                if status_code == 401:
                    raise DriveAuthenticationError(
                        "Invalid or expired access token - run 'pydrivesync login'"
                    ) from e
                if status_code == 404:
                    raise DriveNotFoundError(f"File not found: {file_id}") from e
                raise DriveDownloadError(f"Download failed: {e}") from e
            except httpx.RequestError as e:
                raise DriveNetworkError(f"Network error during download: {e}") from e
            except OSError as e:
                raise DriveDownloadError(f"Failed to write file: {e}") from e
