"""Terminal rendering of sync plans, progress and summaries.

The reporter only consumes executor output; it holds no sync state of its
own.
"""

from dataclasses import asdict, dataclass
from typing import Optional

from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from ..output import OutputFormatter
from ..utils import format_duration, format_size
from .executor import ProgressTotals, TransferResult
from .planner import SyncActionKind, SyncPlan


@dataclass(frozen=True)
class SyncSummary:
    """Aggregate counts of a finished sync run."""

    uploaded: int = 0
    upload_failed: int = 0
    deleted: int = 0
    delete_failed: int = 0
    skipped: int = 0
    cancelled: int = 0
    duration: float = 0.0

    @property
    def failed(self) -> int:
        return self.upload_failed + self.delete_failed

    def to_dict(self) -> dict:
        data = asdict(self)
        data["failed"] = self.failed
        return data


def build_summary(
    results: list[TransferResult], skipped: int, duration: float
) -> SyncSummary:
    """Build summary counts from transfer results.

    Args:
        results: Results of all executed actions
        skipped: Number of unchanged files
        duration: Run duration in seconds

    Returns:
        SyncSummary
    """
    uploads = [r for r in results if r.action.kind == SyncActionKind.UPLOAD]
    deletes = [r for r in results if r.action.kind == SyncActionKind.DELETE]
    return SyncSummary(
        uploaded=sum(1 for r in uploads if r.success),
        upload_failed=sum(1 for r in uploads if r.failed),
        deleted=sum(1 for r in deletes if r.success),
        delete_failed=sum(1 for r in deletes if r.failed),
        skipped=skipped,
        cancelled=sum(1 for r in results if r.cancelled),
        duration=duration,
    )


class SyncReporter:
    """Renders sync output through an OutputFormatter."""

    def __init__(self, output: Optional[OutputFormatter] = None):
        self.output = output or OutputFormatter()

    def show_plan(self, plan: SyncPlan) -> None:
        """Display the sync plan."""
        out = self.output
        out.print("[bold]Sync Plan:[/bold]")

        if plan.uploads:
            out.print(f"  [green]{len(plan.uploads)} file(s) to upload:[/green]")
            for action in plan.uploads:
                size = action.local_file.size if action.local_file else 0
                out.print(
                    f"    [green]+[/green] {escape(action.display_path)} "
                    f"({action.reason}, {format_size(size)})"
                )

        if plan.deletes:
            out.print(f"  [red]{len(plan.deletes)} file(s) to delete:[/red]")
            for action in plan.deletes:
                out.print(
                    f"    [red]-[/red] {escape(action.display_path)} ({action.reason})"
                )

        if plan.skips:
            out.print(f"  [dim]{len(plan.skips)} file(s) unchanged (skipped)[/dim]")

        if not plan.has_changes:
            out.print("  [dim]No changes detected.[/dim]")

    def progress(self, total: int) -> "TransferProgress":
        """Create a live progress display for ``total`` actions."""
        return TransferProgress(self.output, total)

    def show_summary(self, summary: SyncSummary) -> None:
        """Display the summary of a finished run.

        The summary is shown in quiet mode as well; only JSON mode hides it.
        """
        report = self.output.report
        report("")
        report("[bold]Summary:[/bold]")
        if summary.uploaded or summary.upload_failed:
            line = f"  Uploaded: [green]{summary.uploaded} success[/green]"
            if summary.upload_failed:
                line += f", [red]{summary.upload_failed} failed[/red]"
            report(line)
        if summary.deleted or summary.delete_failed:
            line = f"  Deleted: [green]{summary.deleted} success[/green]"
            if summary.delete_failed:
                line += f", [red]{summary.delete_failed} failed[/red]"
            report(line)
        if summary.skipped:
            report(f"  Skipped: [dim]{summary.skipped}[/dim]")
        if summary.cancelled:
            report(f"  Cancelled: [yellow]{summary.cancelled} remaining[/yellow]")
        report(f"  Duration: [dim]{format_duration(summary.duration)}[/dim]")

    def show_failures(self, results: list[TransferResult]) -> None:
        """List every failed action with its error."""
        failures = [r for r in results if r.failed]
        if not failures:
            return
        self.output.error("")
        self.output.error("[bold]Failures:[/bold]")
        for result in failures:
            self.output.error(
                f"  ✗ {escape(result.action.display_path)}: "
                f"{escape(result.error or 'Unknown error')}"
            )


class TransferProgress:
    """Rich progress bar fed by the executor's progress callback."""

    def __init__(self, output: OutputFormatter, total: int):
        self.output = output
        self.total = total
        self._progress: Optional[Progress] = None
        self._task = None

    def __enter__(self) -> "TransferProgress":
        if not (self.output.quiet or self.output.json_output):
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=self.output.console,
                transient=True,
            )
            self._progress.start()
            self._task = self._progress.add_task("Syncing...", total=self.total)
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

    def stop(self) -> None:
        """Stop the live display early (e.g. on cancellation)."""
        self.__exit__(None, None, None)

    def update(self, result: TransferResult, totals: ProgressTotals) -> None:
        """Progress callback for TransferExecutor."""
        if self._progress is None or self._task is None:
            return
        if result.success:
            status = "[green]✓[/green]"
        elif result.cancelled:
            status = "[yellow]-[/yellow]"
        else:
            status = "[red]✗[/red]"
        self._progress.update(
            self._task,
            completed=totals.completed,
            description=(
                f"Syncing {status} [dim]{escape(result.action.display_path)}[/dim]"
            ),
        )
