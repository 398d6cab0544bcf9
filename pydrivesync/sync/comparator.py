"""File comparison logic for sync operations."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .scanner import LocalNode, RemoteNode


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    CREATE = "create"
    """Upload local file as a new remote file"""

    UPDATE = "update"
    """Overwrite the content of the mapped remote file"""

    FETCH = "fetch"
    """Download remote file to local"""

    SKIP = "skip"
    """Skip file (no action needed)"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    relative_path: str
    """Relative path of the file"""

    remote_id: Optional[str] = None
    """Remote file the action applies to (None for CREATE)"""


class FileComparator:
    """Decides sync actions from a file's state and its index record.

    Timestamps are compared with strict inequality only: a source that is
    exactly as old as the recorded timestamp is never transferred again.
    """

    def compare_local(
        self,
        local_node: LocalNode,
        record: Optional[tuple[str, datetime]],
    ) -> SyncDecision:
        """Decide what to do with a local file during the local-to-remote pass.

        Args:
            local_node: Local file
            record: Index entry for its path as (remote_id, last_synced_modified)

        Returns:
            SyncDecision for this file
        """
        path = local_node.relative_path

        if record is None:
            return SyncDecision(
                action=SyncAction.CREATE,
                reason="New local file",
                relative_path=path,
            )

        remote_id, last_synced = record
        if local_node.modified > last_synced:
            return SyncDecision(
                action=SyncAction.UPDATE,
                reason="Local file changed since last sync",
                relative_path=path,
                remote_id=remote_id,
            )

        return SyncDecision(
            action=SyncAction.SKIP,
            reason="Unchanged since last sync",
            relative_path=path,
            remote_id=remote_id,
        )

    def compare_remote(
        self,
        remote_node: RemoteNode,
        relative_path: str,
        last_synced: Optional[datetime],
    ) -> SyncDecision:
        """Decide what to do with a remote file during the remote-to-local pass.

        Args:
            remote_node: Remote file
            relative_path: Local path it maps to, relative to the sync root
            last_synced: Index timestamp recorded for its remote ID, if any

        Returns:
            SyncDecision for this file
        """
        if remote_node.is_google_document:
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="Google Workspace document has no downloadable content",
                relative_path=relative_path,
                remote_id=remote_node.id,
            )

        if remote_node.modified is None:
            # No remote mtime - can't compare and can't record a timestamp
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="Remote modification time unavailable",
                relative_path=relative_path,
                remote_id=remote_node.id,
            )

        if last_synced is None:
            return SyncDecision(
                action=SyncAction.FETCH,
                reason="New remote file",
                relative_path=relative_path,
                remote_id=remote_node.id,
            )

        if remote_node.modified > last_synced:
            return SyncDecision(
                action=SyncAction.FETCH,
                reason="Remote file changed since last sync",
                relative_path=relative_path,
                remote_id=remote_node.id,
            )

        return SyncDecision(
            action=SyncAction.SKIP,
            reason="Unchanged since last sync",
            relative_path=relative_path,
            remote_id=remote_node.id,
        )
