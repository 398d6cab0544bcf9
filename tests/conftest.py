"""Shared fixtures for pydrivesync tests."""

import itertools
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from unittest.mock import Mock

import pytest

from pydrivesync.exceptions import (
    DriveAPIError,
    DriveDownloadError,
    DriveNotFoundError,
    DriveUploadError,
)
from pydrivesync.models import DriveFile
from pydrivesync.output import OutputFormatter
from pydrivesync.utils import FOLDER_MIME_TYPE, format_iso_timestamp

ROOT_ID = "root-folder"


class FakeRemoteStorage:
    """In-memory stand-in for the Drive client.

    Entries are kept as Drive API style dicts so listings go through
    ``DriveFile.from_dict`` exactly like real responses.
    """

    def __init__(self) -> None:
        self.root_id = ROOT_ID
        self.entries: dict[str, dict] = {
            ROOT_ID: {"id": ROOT_ID, "name": "Root", "mimeType": FOLDER_MIME_TYPE}
        }
        self.contents: dict[str, bytes] = {}
        self.fail_uploads: set[str] = set()
        self.fail_downloads: set[str] = set()
        self.fail_listings: set[str] = set()
        self.reverse_listing = False
        self.uploads: list[str] = []
        self.updates: list[str] = []
        self.downloads: list[str] = []
        self.folders_created: list[str] = []
        self._ids = itertools.count(1)

    # Test setup helpers

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_folder(self, name: str, parent_id: str = ROOT_ID) -> str:
        folder_id = self._new_id("folder")
        self.entries[folder_id] = {
            "id": folder_id,
            "name": name,
            "mimeType": FOLDER_MIME_TYPE,
            "parents": [parent_id],
            "modifiedTime": "2025-01-01T00:00:00.000Z",
        }
        return folder_id

    def add_file(
        self,
        name: str,
        parent_id: str = ROOT_ID,
        content: bytes = b"remote content",
        modified: Optional[str] = "2025-01-15T10:30:00.000Z",
        mime_type: str = "text/plain",
    ) -> str:
        file_id = self._new_id("file")
        entry = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": [parent_id],
            "size": str(len(content)),
        }
        if modified is not None:
            entry["modifiedTime"] = modified
        self.entries[file_id] = entry
        self.contents[file_id] = content
        return file_id

    def touch(self, file_id: str, content: bytes, modified: str) -> None:
        """Simulate another client changing a remote file."""
        self.entries[file_id]["modifiedTime"] = modified
        self.entries[file_id]["size"] = str(len(content))
        self.contents[file_id] = content

    def children_named(self, name: str, parent_id: str = ROOT_ID) -> list[dict]:
        return [
            e
            for e in self.entries.values()
            if e.get("name") == name and parent_id in e.get("parents", [])
        ]

    def file_count(self) -> int:
        return sum(1 for e in self.entries.values() if e["mimeType"] != FOLDER_MIME_TYPE)

    # DriveClient surface used by the CLI

    def get_file(self, file_id: str) -> DriveFile:
        if file_id not in self.entries:
            raise DriveNotFoundError(f"Resource not found: {file_id}")
        return DriveFile.from_dict(self.entries[file_id])

    def close(self) -> None:
        pass

    def __enter__(self) -> "FakeRemoteStorage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # RemoteStorage interface

    def list_children(self, folder_id: str) -> list[DriveFile]:
        if folder_id in self.fail_listings:
            raise DriveAPIError(f"Listing {folder_id} failed")
        if folder_id not in self.entries:
            raise DriveNotFoundError(f"Folder {folder_id} not found")
        children = [
            DriveFile.from_dict(e)
            for e in self.entries.values()
            if folder_id in e.get("parents", [])
        ]
        if self.reverse_listing:
            children.reverse()
        return children

    def create_file(
        self,
        parent_id: str,
        name: str,
        content_type: str,
        file_path: Path,
        modified_time: Optional[datetime] = None,
        progress_callback=None,
    ) -> str:
        if name in self.fail_uploads:
            raise DriveUploadError(f"Upload of {name} failed")
        content = Path(file_path).read_bytes()
        file_id = self.add_file(
            name,
            parent_id,
            content=content,
            modified=format_iso_timestamp(modified_time or datetime.now(timezone.utc)),
            mime_type=content_type,
        )
        if progress_callback:
            progress_callback(len(content), len(content))
        self.uploads.append(name)
        return file_id

    def update_file_content(
        self,
        file_id: str,
        file_path: Path,
        content_type: str,
        modified_time: Optional[datetime] = None,
        progress_callback=None,
    ) -> None:
        if file_id not in self.entries:
            raise DriveNotFoundError(f"File {file_id} not found")
        name = self.entries[file_id]["name"]
        if name in self.fail_uploads:
            raise DriveUploadError(f"Upload of {name} failed")
        content = Path(file_path).read_bytes()
        self.touch(
            file_id,
            content,
            format_iso_timestamp(modified_time or datetime.now(timezone.utc)),
        )
        if progress_callback:
            progress_callback(len(content), len(content))
        self.updates.append(name)

    def download_file(
        self, file_id: str, output_path: Path, progress_callback=None
    ) -> Path:
        name = self.entries[file_id]["name"]
        if name in self.fail_downloads:
            # Leave a partial file behind like an interrupted stream would
            Path(output_path).write_bytes(b"partial")
            raise DriveDownloadError(f"Download of {name} failed")
        content = self.contents[file_id]
        Path(output_path).write_bytes(content)
        if progress_callback:
            progress_callback(len(content), len(content))
        self.downloads.append(name)
        return Path(output_path)

    def find_folder(self, name: str, parent_id: str) -> Optional[str]:
        for entry in self.children_named(name, parent_id):
            if entry["mimeType"] == FOLDER_MIME_TYPE:
                return entry["id"]
        return None

    def create_folder(self, name: str, parent_id: str) -> str:
        folder_id = self.add_folder(name, parent_id)
        self.folders_created.append(name)
        return folder_id


@pytest.fixture
def remote():
    """Create an empty fake remote store."""
    return FakeRemoteStorage()


@pytest.fixture
def mock_output():
    """Create a mock output formatter."""
    output = Mock(spec=OutputFormatter)
    output.quiet = True  # Suppress output during tests
    output.json_output = False
    return output


@pytest.fixture
def local_root(tmp_path):
    """Create an empty local sync root."""
    root = tmp_path / "local"
    root.mkdir()
    return root
