"""Core sync engine for executing sync operations."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..api import RemoteStoreClient
from ..output import OutputFormatter
from ..utils import (
    DEFAULT_BASE_DELAY,
    DEFAULT_CONCURRENCY,
    DEFAULT_CONNECTION_FAILURE_THRESHOLD,
    DEFAULT_MAX_ATTEMPTS,
)
from .cancellation import CancellationToken
from .executor import TransferExecutor, TransferResult
from .hasher import ContentHasher
from .planner import SyncPlan, SyncPlanner
from .reporter import SyncReporter, SyncSummary, build_summary
from .scanner import FileScanner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    """Everything a finished (or stopped) sync run produced."""

    plan: SyncPlan
    results: tuple[TransferResult, ...]
    summary: SyncSummary
    executed: bool
    """False for dry runs, declined confirmations and no-op runs"""

    cancelled: bool = False
    """Cancellation was requested while executing"""

    @property
    def failures(self) -> list[TransferResult]:
        return [r for r in self.results if r.failed]

    @property
    def has_failures(self) -> bool:
        return any(r.failed for r in self.results)

    def to_dict(self) -> dict:
        """Machine-readable form used by the CLI's --json output."""
        return {
            "plan": self.plan.counts(),
            "executed": self.executed,
            "cancelled": self.cancelled,
            "summary": self.summary.to_dict(),
            "failures": [
                {
                    "path": r.action.display_path,
                    "action": r.action.kind.value,
                    "error": r.error,
                }
                for r in self.failures
            ],
        }


class SyncEngine:
    """Orchestrates scan, hash, listing, planning and execution.

    Examples:
        >>> engine = SyncEngine(client, "my-store", token=CancellationToken())
        >>> plan = engine.build_plan(Path("docs"), ["**/*.md"], [], delete_remote=True)
        >>> report = engine.execute(plan)
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        store: str,
        token: Optional[CancellationToken] = None,
        output: Optional[OutputFormatter] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        connection_failure_threshold: int = DEFAULT_CONNECTION_FAILURE_THRESHOLD,
        hash_workers: int = 1,
    ):
        """Initialize sync engine.

        Args:
            client: Remote store client
            store: Store name
            token: Cancellation token for this run
            output: Output formatter for displaying progress/status
            concurrency: Maximum number of transfers in flight
            max_attempts: Upload attempts per file
            base_delay: Backoff base in seconds
            connection_failure_threshold: Consecutive connection failures
                before remaining transfers fail fast
            hash_workers: Number of files hashed in parallel
        """
        self.client = client
        self.store = store
        self.token = token or CancellationToken()
        self.output = output or OutputFormatter()
        self.reporter = SyncReporter(self.output)
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.connection_failure_threshold = connection_failure_threshold
        self.hash_workers = hash_workers

    def _spinner(self) -> Progress:
        return Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.output.console,
            transient=True,
            disable=self.output.quiet or self.output.json_output,
        )

    def build_plan(
        self,
        base_dir: Path,
        include: list[str],
        exclude: Optional[list[str]] = None,
        delete_remote: bool = False,
    ) -> SyncPlan:
        """Scan, hash and list, then diff local files against the store.

        Args:
            base_dir: Directory patterns are relative to
            include: Include glob patterns
            exclude: Exclude glob patterns
            delete_remote: Whether orphaned remote documents are deleted

        Returns:
            SyncPlan

        Raises:
            GemindexScanError: If the local tree cannot be read
            GemindexAPIError: If the remote store cannot be listed
            GemindexCancelledError: If cancelled during setup
        """
        with self._spinner() as progress:
            task = progress.add_task("Scanning local files...", total=None)
            start = time.time()
            local_files = FileScanner(include=include, exclude=exclude).scan(base_dir)
            logger.debug(
                "Local scan took %.2fs for %d files",
                time.time() - start,
                len(local_files),
            )
            progress.update(task, description=f"Found {len(local_files)} local file(s)")
        self.output.success(f"Found [cyan]{len(local_files)}[/cyan] local file(s)")
        self.token.raise_if_cancelled()

        with self._spinner() as progress:
            progress.add_task("Computing file hashes...", total=None)
            hasher = ContentHasher(token=self.token, workers=self.hash_workers)
            local_hashes = hasher.hash_files(local_files)
        self.output.success("Hashes computed")
        self.token.raise_if_cancelled()

        with self._spinner() as progress:
            progress.add_task("Fetching remote files...", total=None)
            remote_files = self.client.list_files(self.store)
        self.output.success(f"Found [cyan]{len(remote_files)}[/cyan] remote file(s)")
        self.token.raise_if_cancelled()

        planner = SyncPlanner(delete_remote=delete_remote)
        return planner.build_plan(local_files, local_hashes, remote_files)

    def execute(self, plan: SyncPlan, started_at: Optional[float] = None) -> SyncReport:
        """Execute a plan's uploads and deletes and report the outcome.

        Args:
            plan: Plan to execute
            started_at: Start time of the run (default: now)

        Returns:
            SyncReport with all transfer results
        """
        started_at = started_at if started_at is not None else time.time()
        total = len(plan.actionable)

        with self.reporter.progress(total) as display:
            self.token.on_cancel(display.stop)
            executor = TransferExecutor(
                self.client,
                self.store,
                token=self.token,
                concurrency=self.concurrency,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                connection_failure_threshold=self.connection_failure_threshold,
                progress_callback=display.update,
            )
            results = executor.execute_plan(plan)
            self.token.remove_callback(display.stop)

        summary = build_summary(results, len(plan.skips), time.time() - started_at)
        report = SyncReport(
            plan=plan,
            results=tuple(results),
            summary=summary,
            executed=True,
            cancelled=self.token.is_cancelled,
        )
        self.reporter.show_summary(summary)
        self.reporter.show_failures(results)
        return report

    def sync(
        self,
        base_dir: Path,
        include: list[str],
        exclude: Optional[list[str]] = None,
        delete_remote: bool = False,
        dry_run: bool = False,
        confirm: Optional[Callable[[SyncPlan], bool]] = None,
    ) -> SyncReport:
        """Run a complete sync.

        Args:
            base_dir: Directory patterns are relative to
            include: Include glob patterns
            exclude: Exclude glob patterns
            delete_remote: Whether orphaned remote documents are deleted
            dry_run: Only show the plan
            confirm: Called with the plan before any mutation; returning
                False stops the run

        Returns:
            SyncReport
        """
        started_at = time.time()
        plan = self.build_plan(base_dir, include, exclude, delete_remote)

        self.output.print("")
        self.reporter.show_plan(plan)

        if not plan.has_changes:
            self.output.print("")
            self.output.print("[green]Everything is up to date![/green]")
            return self._not_executed(plan, started_at)

        if dry_run:
            self.output.print("")
            self.output.print("[dim]Dry run - no changes made.[/dim]")
            return self._not_executed(plan, started_at)

        if confirm is not None and not confirm(plan):
            self.output.print("")
            self.output.print("[dim]Cancelled. No changes were made.[/dim]")
            return self._not_executed(plan, started_at)

        self.token.raise_if_cancelled()
        return self.execute(plan, started_at=started_at)

    def _not_executed(self, plan: SyncPlan, started_at: float) -> SyncReport:
        summary = build_summary([], len(plan.skips), time.time() - started_at)
        return SyncReport(plan=plan, results=(), summary=summary, executed=False)
