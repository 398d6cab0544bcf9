"""CLI progress display for sync transfers.

This module provides a Rich-based progress display that receives byte
progress from the transfer executor through the progress observer
interface.
"""

from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)


class TransferProgressDisplay:
    """Rich-based progress display for file transfers.

    Shows a single bar for the file currently being transferred. When a
    transfer for a different file starts, the bar is reset and relabelled.
    Also counts finished transfers for the final description.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display.

        Args:
            console: Console to render on, shared with regular output so
                log lines and the bar do not interleave
        """
        self._console = console
        self._progress: Optional[Progress] = None
        self._task: Optional[TaskID] = None
        self._current_name: Optional[str] = None
        self.files_completed = 0

    def on_progress(self, name: str, transferred: int, total: int) -> None:
        """Update the bar with progress of one transfer.

        Args:
            name: Relative path of the file being transferred
            transferred: Bytes transferred so far
            total: Total bytes of the file
        """
        if self._progress is None or self._task is None:
            return

        if name != self._current_name:
            self._current_name = name
            self._progress.update(
                self._task,
                description=escape(name),
                total=total,
                completed=0,
            )

        self._progress.update(self._task, completed=transferred, total=total)
        if total and transferred >= total:
            self.files_completed += 1

    def __enter__(self) -> "TransferProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeElapsedColumn(),
            console=self._console,
            refresh_per_second=4,
        )
        self._progress.__enter__()
        self._task = self._progress.add_task("Waiting for transfers...", total=None)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            if self._task is not None:
                self._progress.update(
                    self._task,
                    description=f"Transferred {self.files_completed} file(s)",
                )
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._task = None
