"""Persistent sync index.

The index remembers, for every synced file, which remote object it maps
to and the modification time of the copy that was made authoritative at
the last successful transfer. It is what lets a sync run skip files that
have not changed since the previous run.
"""

import logging
import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..exceptions import SyncIndexError
from ..utils import format_iso_timestamp, parse_iso_timestamp

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"

# Used when a stored timestamp cannot be parsed, so the file is re-transferred
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS synced_files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    local_path TEXT NOT NULL UNIQUE,
    remote_id TEXT NOT NULL,
    last_synced_modified TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_synced_files_remote_id ON synced_files(remote_id);
"""


@dataclass(frozen=True)
class SyncRecord:
    """One tracked file in the sync index."""

    local_path: str
    """Path relative to the sync root, using forward slashes"""

    remote_id: str
    """Remote object identifier"""

    last_synced_modified: datetime
    """Source modification time at the last successful transfer"""


class SyncIndex:
    """SQLite-backed index of synced files.

    The connection runs in autocommit mode: every upsert is durable before
    the call returns, so a crash after a transfer but before the index
    write results in a re-transfer on the next run, never a skipped change.

    Examples:
        >>> with SyncIndex(Path("/tmp/sync.db")) as index:
        ...     index.upsert("docs/a.txt", "1AbC", modified)
        ...     index.lookup_by_local_path("docs/a.txt")
        ('1AbC', datetime.datetime(...))
    """

    def __init__(self, db_path: Union[Path, str]):
        """Open (and create if needed) the index database.

        Args:
            db_path: Database file path, or ":memory:" for a throwaway index

        Raises:
            SyncIndexError: If the database cannot be opened or initialized
        """
        self.db_path = db_path
        try:
            if db_path != IN_MEMORY:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(db_path), isolation_level=None)
            self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as e:
            raise SyncIndexError(f"Cannot open sync index {db_path}: {e}") from e

        logger.debug(f"Opened sync index at {db_path}")

    @classmethod
    def in_memory(cls) -> "SyncIndex":
        """Create an index that lives only for the current invocation."""
        return cls(IN_MEMORY)

    @property
    def is_persistent(self) -> bool:
        return self.db_path != IN_MEMORY

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise SyncIndexError(f"Sync index query failed: {e}") from e

    @staticmethod
    def _parse_stored(value: str, local_path: str) -> datetime:
        parsed = parse_iso_timestamp(value)
        if parsed is None:
            logger.warning(
                f"Unparsable timestamp {value!r} for {local_path} in sync index, "
                "file will be transferred again"
            )
            return _EPOCH
        return parsed

    def lookup_by_local_path(self, local_path: str) -> Optional[tuple[str, datetime]]:
        """Find the record for a local path.

        Args:
            local_path: Path relative to the sync root

        Returns:
            Tuple of (remote_id, last_synced_modified), or None
        """
        row = self._execute(
            "SELECT remote_id, last_synced_modified FROM synced_files "
            "WHERE local_path = ?",
            (local_path,),
        ).fetchone()
        if row is None:
            return None
        return row[0], self._parse_stored(row[1], local_path)

    def lookup_by_remote_id(self, remote_id: str) -> Optional[datetime]:
        """Find the last synced modification time for a remote object.

        When several local paths map to the same remote object, the most
        recently written record wins.

        Args:
            remote_id: Remote object identifier

        Returns:
            last_synced_modified, or None if the object is not tracked
        """
        row = self._execute(
            "SELECT local_path, last_synced_modified FROM synced_files "
            "WHERE remote_id = ? ORDER BY id DESC LIMIT 1",
            (remote_id,),
        ).fetchone()
        if row is None:
            return None
        return self._parse_stored(row[1], row[0])

    def upsert(self, local_path: str, remote_id: str, modified_time: datetime) -> None:
        """Create or overwrite the record for a local path.

        Call only after a transfer has completed successfully.

        Args:
            local_path: Path relative to the sync root
            remote_id: Remote object identifier
            modified_time: Modification time of the source copy
        """
        # REPLACE re-inserts the row, so its id always reflects the latest write
        self._execute(
            "INSERT OR REPLACE INTO synced_files "
            "(local_path, remote_id, last_synced_modified) VALUES (?, ?, ?)",
            (local_path, remote_id, format_iso_timestamp(modified_time)),
        )
        logger.debug(f"Indexed {local_path} -> {remote_id}")

    def get(self, local_path: str) -> Optional[SyncRecord]:
        found = self.lookup_by_local_path(local_path)
        if found is None:
            return None
        return SyncRecord(local_path, found[0], found[1])

    def records(self) -> Iterator[SyncRecord]:
        """Iterate over all records ordered by local path."""
        rows = self._execute(
            "SELECT local_path, remote_id, last_synced_modified FROM synced_files "
            "ORDER BY local_path"
        ).fetchall()
        for local_path, remote_id, modified in rows:
            yield SyncRecord(
                local_path, remote_id, self._parse_stored(modified, local_path)
            )

    def clear(self) -> int:
        """Delete all records.

        Returns:
            Number of records deleted
        """
        cursor = self._execute("DELETE FROM synced_files")
        logger.debug(f"Cleared {cursor.rowcount} record(s) from sync index")
        return cursor.rowcount

    def __len__(self) -> int:
        return self._execute("SELECT COUNT(*) FROM synced_files").fetchone()[0]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SyncIndex":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
