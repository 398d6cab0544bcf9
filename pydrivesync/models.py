"""Data models for Google Drive API responses."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .utils import (
    FOLDER_MIME_TYPE,
    GOOGLE_APPS_MIME_PREFIX,
    format_size,
    parse_iso_timestamp,
)

# Fields requested for every file listing
FILE_FIELDS = "id, name, mimeType, modifiedTime, md5Checksum, size, trashed, parents"


@dataclass
class DriveFile:
    """A file or folder entry returned by the Drive API."""

    id: str
    name: str
    mime_type: str
    modified_time: Optional[str] = None
    md5_checksum: Optional[str] = None
    size: Optional[int] = None
    trashed: bool = False
    parents: Optional[list[str]] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DriveFile":
        """Create a DriveFile from a Drive API ``files`` resource."""
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            modified_time=data.get("modifiedTime"),
            md5_checksum=data.get("md5Checksum"),
            size=int(size) if size is not None else None,
            trashed=bool(data.get("trashed", False)),
            parents=data.get("parents"),
        )

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def is_google_document(self) -> bool:
        """Whether this is a Docs/Sheets/Slides document without binary content."""
        return not self.is_folder and self.mime_type.startswith(
            GOOGLE_APPS_MIME_PREFIX
        )

    @property
    def modified(self) -> Optional[datetime]:
        """Modification time as a canonical UTC datetime."""
        return parse_iso_timestamp(self.modified_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mimeType": self.mime_type,
            "modifiedTime": self.modified_time,
            "md5Checksum": self.md5_checksum,
            "size": self.size,
        }

    def to_table_row(self) -> dict[str, Any]:
        return {
            "name": f"{self.name}/" if self.is_folder else self.name,
            "id": self.id,
            "size": "" if self.size is None else format_size(self.size),
            "modified": self.modified_time or "",
        }


@dataclass
class FileListResult:
    """One page of a ``files.list`` response."""

    files: list[DriveFile]
    next_page_token: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "FileListResult":
        return cls(
            files=[DriveFile.from_dict(item) for item in data.get("files", [])],
            next_page_token=data.get("nextPageToken"),
        )
