"""Directory walking for sync operations."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import DriveAPIError, DriveAuthenticationError
from ..models import DriveFile
from ..utils import is_safe_name, timestamp_from_mtime_ns
from .protocols import RemoteStorage
from .results import SyncOutcome, SyncResult

logger = logging.getLogger(__name__)

# Suffix of in-progress downloads, never treated as a syncable file
PARTIAL_SUFFIX = ".pydrivesync-part"

ResultReporter = Callable[[SyncResult], None]


def _ignore_result(result: SyncResult) -> None:
    pass


@dataclass
class LocalNode:
    """Represents a local file with metadata."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    modified: datetime
    """Last modification time, canonical UTC"""

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalNode":
        """Create LocalNode from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Base path for calculating relative paths

        Returns:
            LocalNode instance
        """
        stat = file_path.stat()
        return cls(
            path=file_path,
            relative_path=file_path.relative_to(base_path).as_posix(),
            size=stat.st_size,
            modified=timestamp_from_mtime_ns(stat.st_mtime_ns),
        )


class NodeKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


@dataclass
class RemoteNode:
    """Represents a remote file or folder with metadata."""

    id: str
    name: str
    kind: NodeKind
    modified: Optional[datetime]
    md5_checksum: Optional[str] = None
    size: Optional[int] = None
    mime_type: str = ""
    is_google_document: bool = False

    @classmethod
    def from_drive_file(cls, entry: DriveFile) -> "RemoteNode":
        return cls(
            id=entry.id,
            name=entry.name,
            kind=NodeKind.FOLDER if entry.is_folder else NodeKind.FILE,
            modified=entry.modified,
            md5_checksum=entry.md5_checksum,
            size=entry.size,
            mime_type=entry.mime_type,
            is_google_document=entry.is_google_document,
        )

    @property
    def is_folder(self) -> bool:
        return self.kind == NodeKind.FOLDER


class LocalWalker:
    """Lazily enumerates every regular file below a root directory.

    Hidden files and symlinked files are included; symlinked directories
    are followed, but each real directory is visited at most once. Files
    left behind by interrupted downloads are ignored.
    """

    def __init__(
        self,
        root: Path,
        report: Optional[ResultReporter] = None,
        create_root: bool = True,
    ):
        """Initialize local walker.

        Args:
            root: Sync root directory
            report: Callback receiving FAILED results for unreadable entries
            create_root: Create the root directory if it does not exist
        """
        self.root = root
        self.report = report or _ignore_result
        self.create_root = create_root

    def walk(self) -> Iterator[LocalNode]:
        """Yield a LocalNode for every regular file under the root."""
        if not self.root.exists():
            if not self.create_root:
                return
            self.root.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created sync root {self.root}")

        yield from self._walk_dir(self.root, set())

    def _walk_dir(self, directory: Path, visited: set[Path]) -> Iterator[LocalNode]:
        real = directory.resolve()
        if real in visited:
            logger.debug(f"Skipping already visited directory {directory}")
            return
        visited.add(real)

        try:
            items = sorted(directory.iterdir())
        except OSError as e:
            logger.warning(f"Cannot read directory {directory}: {e}")
            self.report(
                SyncResult(
                    SyncOutcome.FAILED,
                    self._relative(directory),
                    reason=f"Cannot read directory: {e}",
                )
            )
            return

        subdirs = []
        for item in items:
            if item.is_file():
                if item.name.endswith(PARTIAL_SUFFIX):
                    logger.debug(f"Skipping partial download {item}")
                    continue
                try:
                    yield LocalNode.from_path(item, self.root)
                except OSError as e:
                    logger.warning(f"Cannot stat {item}: {e}")
                    self.report(
                        SyncResult(
                            SyncOutcome.FAILED,
                            self._relative(item),
                            reason=f"Cannot read file: {e}",
                        )
                    )
            elif item.is_dir():
                subdirs.append(item)

        for subdir in subdirs:
            yield from self._walk_dir(subdir, visited)

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix() or "."


class RemoteWalker:
    """Recursively enumerates a remote folder, mirroring its folders locally.

    Each remote folder maps to a local directory of the same name, which
    is created if missing. A folder that cannot be listed or mirrored is
    reported as FAILED and its sub-tree skipped; siblings carry on.
    """

    def __init__(
        self,
        client: RemoteStorage,
        local_root: Path,
        report: Optional[ResultReporter] = None,
        dry_run: bool = False,
    ):
        """Initialize remote walker.

        Args:
            client: Remote storage client
            local_root: Local sync root the remote root folder maps to
            report: Callback receiving folder results
            dry_run: Report folders without creating local directories
        """
        self.client = client
        self.local_root = local_root
        self.report = report or _ignore_result
        self.dry_run = dry_run

    def walk(self, folder_id: str) -> Iterator[tuple[RemoteNode, Path]]:
        """Yield (file node, local target directory) for every remote file.

        Args:
            folder_id: Remote root folder identifier
        """
        yield from self._walk_folder(folder_id, self.local_root)

    def _walk_folder(
        self, folder_id: str, target_dir: Path
    ) -> Iterator[tuple[RemoteNode, Path]]:
        try:
            entries = self.client.list_children(folder_id)
            children = [RemoteNode.from_drive_file(e) for e in entries]
        except DriveAuthenticationError:
            raise
        except DriveAPIError as e:
            logger.warning(f"Cannot list remote folder {folder_id}: {e}")
            self.report(
                SyncResult(
                    SyncOutcome.FAILED,
                    self._relative(target_dir),
                    reason=f"Cannot list remote folder: {e}",
                    remote_id=folder_id,
                )
            )
            return

        logger.debug(f"Listed {len(children)} entries in remote folder {folder_id}")

        subfolders: list[tuple[RemoteNode, Path]] = []
        for node in children:
            if not node.is_folder:
                yield node, target_dir
                continue

            if not is_safe_name(node.name):
                parent = self._relative(target_dir)
                self.report(
                    SyncResult(
                        SyncOutcome.FAILED,
                        node.name if parent == "." else f"{parent}/{node.name}",
                        reason=f"Unsafe remote folder name {node.name!r}",
                        remote_id=node.id,
                    )
                )
                continue

            sub_dir = target_dir / node.name
            mirrored = self._mirror_folder(node, sub_dir)
            if mirrored:
                subfolders.append((node, sub_dir))

        for node, sub_dir in subfolders:
            yield from self._walk_folder(node.id, sub_dir)

    def _mirror_folder(self, node: RemoteNode, sub_dir: Path) -> bool:
        """Ensure the local directory for a remote folder exists."""
        relative = self._relative(sub_dir)

        if sub_dir.is_dir():
            self.report(SyncResult(SyncOutcome.EXISTS, relative, remote_id=node.id))
            return True

        if not self.dry_run:
            try:
                sub_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning(f"Cannot create local directory {sub_dir}: {e}")
                self.report(
                    SyncResult(
                        SyncOutcome.FAILED,
                        relative,
                        reason=f"Cannot create directory: {e}",
                        remote_id=node.id,
                    )
                )
                return False

        self.report(
            SyncResult(
                SyncOutcome.FOLDER_CREATED,
                relative,
                remote_id=node.id,
                dry_run=self.dry_run,
            )
        )
        return True

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.local_root).as_posix() or "."
