"""Transfer operations against the remote store."""

import logging
import os
from pathlib import Path
from typing import Optional

from ..utils import guess_content_type, timestamp_to_ns
from .protocols import (
    NullProgressObserver,
    ProgressCallback,
    ProgressObserver,
    RemoteStorage,
)
from .scanner import PARTIAL_SUFFIX, LocalNode, RemoteNode

logger = logging.getLogger(__name__)


class TransferExecutor:
    """Uploads, downloads and folder creation for one sync invocation.

    Keeps an explicit mapping from local relative directories to remote
    folder IDs, populated as folders are found or created. The mapping
    lives only as long as the executor.
    """

    def __init__(
        self,
        client: RemoteStorage,
        root_folder_id: str,
        observer: Optional[ProgressObserver] = None,
    ):
        """Initialize transfer executor.

        Args:
            client: Remote storage client
            root_folder_id: Remote folder the sync root maps to
            observer: Receives byte progress of every transfer
        """
        self.client = client
        self.root_folder_id = root_folder_id
        self.observer = observer or NullProgressObserver()
        self.folder_ids: dict[str, str] = {"": root_folder_id}

    def _progress_callback(self, name: str) -> ProgressCallback:
        """Build a callback forwarding monotonically increasing progress."""
        last = -1

        def callback(transferred: int, total: int) -> None:
            nonlocal last
            if transferred <= last:
                return
            last = transferred
            try:
                self.observer.on_progress(name, transferred, total)
            except Exception as e:
                logger.debug(f"Progress observer failed for {name}: {e}")

        return callback

    def ensure_folder(self, name: str, parent_id: str) -> str:
        """Return the ID of the named folder under a parent, creating it if needed.

        Looks for an existing folder with exactly this name first, so
        repeated runs never create duplicates.

        Args:
            name: Folder name
            parent_id: Parent folder ID

        Returns:
            Folder ID
        """
        folder_id = self.client.find_folder(name, parent_id)
        if folder_id is not None:
            logger.debug(f"Found remote folder {name!r} ({folder_id})")
            return folder_id

        folder_id = self.client.create_folder(name, parent_id)
        logger.debug(f"Created remote folder {name!r} ({folder_id})")
        return folder_id

    def ensure_folder_path(self, relative_dir: str) -> str:
        """Resolve a local relative directory to a remote folder ID.

        Every missing level is looked up or created beneath the root folder.

        Args:
            relative_dir: Directory relative to the sync root ("" for the root)

        Returns:
            Remote folder ID
        """
        if relative_dir in ("", "."):
            return self.root_folder_id
        if relative_dir in self.folder_ids:
            return self.folder_ids[relative_dir]

        parent_dir, _, name = relative_dir.rpartition("/")
        parent_id = self.ensure_folder_path(parent_dir)
        folder_id = self.ensure_folder(name, parent_id)
        self.folder_ids[relative_dir] = folder_id
        return folder_id

    def upload(self, local_node: LocalNode, remote_folder_id: str) -> str:
        """Upload a local file as a new remote file.

        Args:
            local_node: Local file to upload
            remote_folder_id: Folder the file is created in

        Returns:
            ID of the new remote file
        """
        name = local_node.path.name
        return self.client.create_file(
            parent_id=remote_folder_id,
            name=name,
            content_type=guess_content_type(name),
            file_path=local_node.path,
            modified_time=local_node.modified,
            progress_callback=self._progress_callback(local_node.relative_path),
        )

    def update_content(self, remote_id: str, local_node: LocalNode) -> None:
        """Overwrite a remote file's content with a local file, keeping its ID.

        Args:
            remote_id: Remote file to overwrite
            local_node: Local file providing the content
        """
        self.client.update_file_content(
            file_id=remote_id,
            file_path=local_node.path,
            content_type=guess_content_type(local_node.path.name),
            modified_time=local_node.modified,
            progress_callback=self._progress_callback(local_node.relative_path),
        )

    def download(
        self, remote_node: RemoteNode, local_path: Path, label: Optional[str] = None
    ) -> Path:
        """Download a remote file, replacing any existing local content.

        Content is streamed into a partial file next to the target, which
        replaces the target only once complete. The local modification time
        is then set to the remote one.

        Args:
            remote_node: Remote file to download
            local_path: Destination path
            label: Name reported to the progress observer

        Returns:
            Path where the file was saved
        """
        local_path.parent.mkdir(parents=True, exist_ok=True)
        partial = local_path.with_name(local_path.name + PARTIAL_SUFFIX)

        try:
            self.client.download_file(
                file_id=remote_node.id,
                output_path=partial,
                progress_callback=self._progress_callback(label or local_path.name),
            )
            os.replace(partial, local_path)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        if remote_node.modified is not None:
            mtime_ns = timestamp_to_ns(remote_node.modified)
            os.utime(local_path, ns=(mtime_ns, mtime_ns))

        return local_path
