"""Per-file sync outcomes and their aggregation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SyncOutcome(str, Enum):
    """Outcome of a single file or folder action."""

    CREATED = "created"
    """New remote file uploaded"""

    UPDATED = "updated"
    """Existing remote file overwritten"""

    FETCHED = "fetched"
    """Remote file downloaded"""

    SKIPPED = "skipped"
    """No transfer needed"""

    FAILED = "failed"
    """Action failed, the index was left untouched"""

    FOLDER_CREATED = "folder_created"
    """Local directory created to mirror a remote folder"""

    EXISTS = "exists"
    """Local directory for a remote folder already present"""


TRANSFER_OUTCOMES = (SyncOutcome.CREATED, SyncOutcome.UPDATED, SyncOutcome.FETCHED)


@dataclass
class SyncResult:
    """Result of one file or folder action."""

    outcome: SyncOutcome
    relative_path: str
    reason: str = ""
    remote_id: Optional[str] = None
    dry_run: bool = False

    @property
    def failed(self) -> bool:
        return self.outcome == SyncOutcome.FAILED


@dataclass
class SyncSummary:
    """Counts of outcomes over one invocation."""

    counts: dict[SyncOutcome, int] = field(
        default_factory=lambda: {outcome: 0 for outcome in SyncOutcome}
    )
    failures: list[SyncResult] = field(default_factory=list)
    dry_run: bool = False

    def record(self, result: SyncResult) -> None:
        self.counts[result.outcome] += 1
        if result.failed:
            self.failures.append(result)

    def count(self, outcome: SyncOutcome) -> int:
        return self.counts[outcome]

    @property
    def transfers(self) -> int:
        """Number of files uploaded or downloaded."""
        return sum(self.counts[outcome] for outcome in TRANSFER_OUTCOMES)

    @property
    def failed(self) -> int:
        return self.counts[SyncOutcome.FAILED]

    def to_dict(self) -> dict:
        """Convert summary to a JSON-serializable dictionary."""
        return {
            "created": self.counts[SyncOutcome.CREATED],
            "updated": self.counts[SyncOutcome.UPDATED],
            "fetched": self.counts[SyncOutcome.FETCHED],
            "skipped": self.counts[SyncOutcome.SKIPPED],
            "failed": self.counts[SyncOutcome.FAILED],
            "folders_created": self.counts[SyncOutcome.FOLDER_CREATED],
            "folders_existing": self.counts[SyncOutcome.EXISTS],
            "dry_run": self.dry_run,
            "failures": [
                {"path": r.relative_path, "reason": r.reason} for r in self.failures
            ],
        }
