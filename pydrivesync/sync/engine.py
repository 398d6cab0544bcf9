"""Core sync engine for executing sync operations."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..exceptions import DriveAuthenticationError, DriveConfigError, SyncIndexError
from ..output import OutputFormatter
from ..utils import is_safe_name
from .comparator import FileComparator, SyncAction, SyncDecision
from .index import SyncIndex
from .operations import TransferExecutor
from .protocols import NullProgressObserver, ProgressObserver, RemoteStorage
from .results import SyncOutcome, SyncResult, SyncSummary
from .scanner import LocalNode, LocalWalker, RemoteNode, RemoteWalker

logger = logging.getLogger(__name__)

# Errors that abort the whole invocation instead of a single file
FATAL_ERRORS = (SyncIndexError, DriveAuthenticationError)

_ACTION_OUTCOMES = {
    SyncAction.CREATE: SyncOutcome.CREATED,
    SyncAction.UPDATE: SyncOutcome.UPDATED,
    SyncAction.FETCH: SyncOutcome.FETCHED,
}

# outcome -> (symbol, label, dry-run label)
_DISPLAY_LABELS = {
    SyncOutcome.CREATED: ("↑", "Created", "Would create"),
    SyncOutcome.UPDATED: ("↑", "Updated", "Would update"),
    SyncOutcome.FETCHED: ("↓", "Fetched", "Would fetch"),
    SyncOutcome.FOLDER_CREATED: ("+", "Created folder", "Would create folder"),
}


@dataclass
class SyncContext:
    """Everything one sync invocation works with.

    Built once per invocation and handed to the engine, which passes the
    relevant parts on to the walkers and the transfer executor.
    """

    client: RemoteStorage
    local_root: Path
    remote_folder_id: str
    index: SyncIndex
    output: OutputFormatter = field(default_factory=OutputFormatter)
    observer: ProgressObserver = field(default_factory=NullProgressObserver)
    dry_run: bool = False


class SyncEngine:
    """Core sync engine that reconciles a local folder with a remote folder.

    A run is two sequential passes over the files, one file at a time:
    local-to-remote uploads new and changed local files, remote-to-local
    downloads new and changed remote files and mirrors the folder tree.
    The index is updated right after each successful transfer, so a file
    uploaded in the first pass is recognised and skipped in the second.
    """

    def __init__(self, context: SyncContext):
        """Initialize sync engine.

        Args:
            context: Per-invocation sync context

        Raises:
            DriveConfigError: If the remote folder identifier is missing
        """
        if not context.remote_folder_id:
            raise DriveConfigError("Remote folder ID must be specified")

        self.context = context
        self.output = context.output
        self.comparator = FileComparator()
        self.executor = TransferExecutor(
            context.client, context.remote_folder_id, context.observer
        )

    def run(self, pull_only: bool = False) -> SyncSummary:
        """Run a full sync.

        Args:
            pull_only: Skip the local-to-remote pass

        Returns:
            Summary of all outcomes

        Examples:
            >>> engine = SyncEngine(SyncContext(client, Path("~/docs"), "1AbC", index))
            >>> summary = engine.run()
            >>> print(f"Uploaded {summary.count(SyncOutcome.CREATED)} new file(s)")
        """
        ctx = self.context
        summary = SyncSummary(dry_run=ctx.dry_run)
        start_time = time.time()

        if not self.output.quiet:
            self.output.info(
                f"Syncing: {ctx.local_root} <-> Drive folder {ctx.remote_folder_id}"
            )
            if ctx.dry_run:
                self.output.info("Dry run: No changes will be made")
            self.output.print("")

        if not pull_only:
            self.sync_local_to_remote(summary)
        self.sync_remote_to_local(summary)

        logger.debug(f"Sync finished in {time.time() - start_time:.2f}s")

        if not self.output.quiet:
            self._display_summary(summary)

        return summary

    # =========================
    # Local -> Remote
    # =========================

    def sync_local_to_remote(self, summary: Optional[SyncSummary] = None) -> SyncSummary:
        """Upload new and changed local files.

        Args:
            summary: Summary to add outcomes to (a new one if omitted)

        Returns:
            The summary
        """
        if summary is None:
            summary = SyncSummary(dry_run=self.context.dry_run)

        def report(result: SyncResult) -> None:
            self._record(summary, result)

        if not self.output.quiet:
            self.output.info("Syncing local changes to Drive...")

        walker = LocalWalker(
            self.context.local_root, report=report, create_root=not self.context.dry_run
        )
        for local_node in walker.walk():
            report(self._sync_local_file(local_node))

        return summary

    def _sync_local_file(self, local_node: LocalNode) -> SyncResult:
        """Reconcile one local file against the index."""
        path = local_node.relative_path
        record = self.context.index.lookup_by_local_path(path)
        decision = self.comparator.compare_local(local_node, record)

        if decision.action == SyncAction.SKIP:
            return self._skipped(decision)
        if self.context.dry_run:
            return self._planned(decision)

        action_start = time.time()
        try:
            # UPDATE decisions carry the mapped remote id, CREATE decisions none
            remote_id = decision.remote_id
            if remote_id is None:
                parent_dir = path.rpartition("/")[0]
                folder_id = self.executor.ensure_folder_path(parent_dir)
                remote_id = self.executor.upload(local_node, folder_id)
            else:
                self.executor.update_content(remote_id, local_node)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            return self._failed(decision, e)

        logger.debug(f"Upload of {path} took {time.time() - action_start:.2f}s")
        self.context.index.upsert(path, remote_id, local_node.modified)
        return SyncResult(
            _ACTION_OUTCOMES[decision.action],
            path,
            reason=decision.reason,
            remote_id=remote_id,
        )

    # =========================
    # Remote -> Local
    # =========================

    def sync_remote_to_local(self, summary: Optional[SyncSummary] = None) -> SyncSummary:
        """Download new and changed remote files, mirroring remote folders.

        Args:
            summary: Summary to add outcomes to (a new one if omitted)

        Returns:
            The summary
        """
        if summary is None:
            summary = SyncSummary(dry_run=self.context.dry_run)

        def report(result: SyncResult) -> None:
            self._record(summary, result)

        if not self.output.quiet:
            self.output.info("Syncing Drive changes to local folder...")

        walker = RemoteWalker(
            self.context.client,
            self.context.local_root,
            report=report,
            dry_run=self.context.dry_run,
        )
        for remote_node, target_dir in walker.walk(self.context.remote_folder_id):
            report(self._sync_remote_file(remote_node, target_dir))

        return summary

    def _sync_remote_file(self, remote_node: RemoteNode, target_dir: Path) -> SyncResult:
        """Reconcile one remote file against the index."""
        root = self.context.local_root
        parent = target_dir.relative_to(root).as_posix()
        path = remote_node.name if parent == "." else f"{parent}/{remote_node.name}"

        if not is_safe_name(remote_node.name):
            return SyncResult(
                SyncOutcome.FAILED,
                path,
                reason=f"Unsafe remote file name {remote_node.name!r}",
                remote_id=remote_node.id,
            )

        last_synced = self.context.index.lookup_by_remote_id(remote_node.id)
        decision = self.comparator.compare_remote(remote_node, path, last_synced)
        modified = remote_node.modified

        # compare_remote skips nodes without a modification time
        if decision.action == SyncAction.SKIP or modified is None:
            return self._skipped(decision)
        if self.context.dry_run:
            return self._planned(decision)

        action_start = time.time()
        try:
            self.executor.download(remote_node, target_dir / remote_node.name, path)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            return self._failed(decision, e)

        logger.debug(f"Download of {path} took {time.time() - action_start:.2f}s")
        self.context.index.upsert(path, remote_node.id, modified)
        return SyncResult(
            SyncOutcome.FETCHED,
            path,
            reason=decision.reason,
            remote_id=remote_node.id,
        )

    # =========================
    # Results and reporting
    # =========================

    @staticmethod
    def _skipped(decision: SyncDecision) -> SyncResult:
        return SyncResult(
            SyncOutcome.SKIPPED,
            decision.relative_path,
            reason=decision.reason,
            remote_id=decision.remote_id,
        )

    @staticmethod
    def _planned(decision: SyncDecision) -> SyncResult:
        return SyncResult(
            _ACTION_OUTCOMES[decision.action],
            decision.relative_path,
            reason=decision.reason,
            remote_id=decision.remote_id,
            dry_run=True,
        )

    @staticmethod
    def _failed(decision: SyncDecision, error: Exception) -> SyncResult:
        logger.warning(
            f"Failed to {decision.action.value} {decision.relative_path}: {error}"
        )
        return SyncResult(
            SyncOutcome.FAILED,
            decision.relative_path,
            reason=str(error) or type(error).__name__,
            remote_id=decision.remote_id,
        )

    def _record(self, summary: SyncSummary, result: SyncResult) -> None:
        summary.record(result)
        self._display_result(result)

    def _display_result(self, result: SyncResult) -> None:
        """Print one line per file or folder action."""
        path = result.relative_path

        if result.outcome == SyncOutcome.FAILED:
            self.output.error(f"Failed: {path}: {result.reason}")
            return

        if self.output.quiet:
            return

        if result.outcome == SyncOutcome.SKIPPED:
            self.output.info(f"  = Skipped: {path} ({result.reason})")
            return
        if result.outcome == SyncOutcome.EXISTS:
            self.output.info(f"  = Exists: {path}/")
            return

        symbol, done, planned = _DISPLAY_LABELS[result.outcome]
        label = planned if result.dry_run else done
        suffix = "/" if result.outcome == SyncOutcome.FOLDER_CREATED else ""
        self.output.info(f"  {symbol} {label}: {path}{suffix}")

    def _display_summary(self, summary: SyncSummary) -> None:
        """Display sync summary.

        Args:
            summary: Outcomes of this run
        """
        self.output.print("")
        if summary.dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")

        if summary.transfers > 0:
            self.output.info(f"Total transfers: {summary.transfers}")
            created = summary.count(SyncOutcome.CREATED)
            updated = summary.count(SyncOutcome.UPDATED)
            fetched = summary.count(SyncOutcome.FETCHED)
            if created > 0:
                self.output.info(f"  Uploaded (new): {created}")
            if updated > 0:
                self.output.info(f"  Uploaded (changed): {updated}")
            if fetched > 0:
                self.output.info(f"  Downloaded: {fetched}")
        elif summary.failed == 0:
            self.output.info("No changes needed - everything is in sync!")

        if summary.failed > 0:
            self.output.warning(
                f"{summary.failed} item(s) failed and will be retried on the next run"
            )
