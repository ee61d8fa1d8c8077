"""Sync engine for gemindex - scan, plan and execute store reconciliation."""

from .cancellation import CancellationToken, interrupt_handler
from .engine import SyncEngine, SyncReport
from .executor import ProgressTotals, TransferExecutor, TransferResult
from .hasher import ContentHasher, compute_sha256
from .planner import SyncAction, SyncActionKind, SyncPlan, SyncPlanner
from .reporter import SyncReporter, SyncSummary
from .scanner import FileScanner, LocalFile

__all__ = [
    "SyncEngine",
    "SyncReport",
    "CancellationToken",
    "interrupt_handler",
    "TransferExecutor",
    "TransferResult",
    "ProgressTotals",
    "ContentHasher",
    "compute_sha256",
    "SyncAction",
    "SyncActionKind",
    "SyncPlan",
    "SyncPlanner",
    "SyncReporter",
    "SyncSummary",
    "FileScanner",
    "LocalFile",
]
