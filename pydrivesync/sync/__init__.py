"""Sync engine for pydrivesync - bidirectional local/Drive folder sync."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .engine import SyncContext, SyncEngine
from .index import SyncIndex, SyncRecord
from .operations import TransferExecutor
from .protocols import NullProgressObserver, ProgressObserver, RemoteStorage
from .results import SyncOutcome, SyncResult, SyncSummary
from .scanner import LocalNode, LocalWalker, NodeKind, RemoteNode, RemoteWalker

__all__ = [
    "SyncEngine",
    "SyncContext",
    "SyncIndex",
    "SyncRecord",
    "TransferExecutor",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "SyncOutcome",
    "SyncResult",
    "SyncSummary",
    "LocalNode",
    "LocalWalker",
    "NodeKind",
    "RemoteNode",
    "RemoteWalker",
    "RemoteStorage",
    "ProgressObserver",
    "NullProgressObserver",
]
