"""Interfaces the sync engine depends on."""

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Protocol

from ..models import DriveFile

ProgressCallback = Callable[[int, int], None]


class RemoteStorage(Protocol):
    """Remote store capabilities used by the sync engine.

    Implemented by :class:`pydrivesync.api.DriveClient`. The engine never
    authenticates; it receives an already-authorized implementation.
    """

    def list_children(self, folder_id: str) -> list[DriveFile]: ...

    def create_file(
        self,
        parent_id: str,
        name: str,
        content_type: str,
        file_path: Path,
        modified_time: Optional[datetime] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> str: ...

    def update_file_content(
        self,
        file_id: str,
        file_path: Path,
        content_type: str,
        modified_time: Optional[datetime] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None: ...

    def download_file(
        self,
        file_id: str,
        output_path: Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Path: ...

    def find_folder(self, name: str, parent_id: str) -> Optional[str]: ...

    def create_folder(self, name: str, parent_id: str) -> str: ...


class ProgressObserver(Protocol):
    """Receives byte progress of transfers.

    Progress is a side channel: it never influences what gets transferred
    or recorded.
    """

    def on_progress(self, name: str, transferred: int, total: int) -> None: ...


class NullProgressObserver:
    """Progress observer that ignores all notifications."""

    def on_progress(self, name: str, transferred: int, total: int) -> None:
        pass
