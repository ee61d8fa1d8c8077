"""Concurrent execution of sync plan actions with retry and cancellation."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional

from ..api import RemoteStoreClient
from ..exceptions import ErrorKind
from ..utils import (
    DEFAULT_BASE_DELAY,
    DEFAULT_CONCURRENCY,
    DEFAULT_CONNECTION_FAILURE_THRESHOLD,
    DEFAULT_MAX_ATTEMPTS,
    identity_key,
)
from .cancellation import CancellationToken
from .planner import SyncAction, SyncActionKind, SyncPlan

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled"
UNREACHABLE_MESSAGE = "Remote unreachable, skipped after repeated connection failures"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of one upload or delete action."""

    action: SyncAction
    """Action that was executed"""

    success: bool
    """Whether the remote accepted the change"""

    error: Optional[str] = None
    """Error message of the last failed attempt"""

    retries: int = 0
    """Number of failed attempts before the outcome"""

    cancelled: bool = False
    """Action was stopped by cancellation (never counted as a failure)"""

    @property
    def failed(self) -> bool:
        return not self.success and not self.cancelled


@dataclass(frozen=True)
class ProgressTotals:
    """Running totals passed to the progress callback."""

    completed: int
    total: int
    succeeded: int
    failed: int
    cancelled: int


ProgressCallback = Callable[[TransferResult, ProgressTotals], None]


class ConnectionCircuitBreaker:
    """Trips after repeated consecutive connection-level failures.

    Once open, remaining actions fail fast instead of each one spending its
    own retry budget against a remote that is down.
    """

    def __init__(self, threshold: int = DEFAULT_CONNECTION_FAILURE_THRESHOLD):
        """Initialize circuit breaker.

        Args:
            threshold: Consecutive connection failures that open the breaker.
                Values below 1 disable the breaker.
        """
        self.threshold = threshold
        self._consecutive = 0
        self._open = False
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._open

    def record(self, kind: Optional[ErrorKind]) -> None:
        """Record the outcome of a remote call.

        Args:
            kind: ErrorKind of the failure, or None if the call succeeded
        """
        with self._lock:
            if kind != ErrorKind.CONNECTION:
                # The remote answered, so it is reachable
                self._consecutive = 0
                return
            self._consecutive += 1
            if self.threshold > 0 and self._consecutive >= self.threshold:
                if not self._open:
                    logger.warning(
                        "%d consecutive connection failures, failing remaining "
                        "actions fast",
                        self._consecutive,
                    )
                self._open = True


class TransferExecutor:
    """Runs upload and delete actions on a bounded worker pool.

    Each action is independent: a failure, retry or cancellation of one
    action never blocks another. Uploads are retried with exponential
    backoff; deletes get a single attempt.

    Examples:
        >>> executor = TransferExecutor(client, "my-store", token, concurrency=4)
        >>> results = executor.execute_plan(plan)
        >>> failed = [r for r in results if r.failed]
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        store: str,
        token: Optional[CancellationToken] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
        connection_failure_threshold: int = DEFAULT_CONNECTION_FAILURE_THRESHOLD,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """Initialize transfer executor.

        Args:
            client: Remote store client
            store: Store name
            token: Cancellation token for the run
            concurrency: Maximum number of actions in flight (default: 8)
            max_attempts: Upload attempts per action, including the first
                (default: 3)
            base_delay: Backoff base in seconds; attempt n waits
                base_delay * 2 ** (n - 1) before starting (default: 1.0)
            connection_failure_threshold: Consecutive connection failures
                before the remaining actions fail fast (default: 3)
            progress_callback: Called once per completed action with the
                result and running totals
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.client = client
        self.store = store
        self.token = token or CancellationToken()
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.connection_failure_threshold = connection_failure_threshold
        self.progress_callback = progress_callback

        self._lock = threading.Lock()
        self._results: list[TransferResult] = []
        self._total = 0
        self._breaker = ConnectionCircuitBreaker(connection_failure_threshold)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before a zero-based attempt index (0 for the first attempt)."""
        if attempt <= 0:
            return 0.0
        return self.base_delay * (2 ** (attempt - 1))

    # =========================
    # Batch execution
    # =========================

    def execute_plan(self, plan: SyncPlan) -> list[TransferResult]:
        """Execute the uploads and deletes of a plan (skips need no work)."""
        return self.execute(list(plan.actionable))

    def execute(self, actions: list[SyncAction]) -> list[TransferResult]:
        """Execute actions concurrently.

        Args:
            actions: Upload and delete actions

        Returns:
            Results in completion order, one per action
        """
        actionable = [a for a in actions if a.kind != SyncActionKind.SKIP]
        with self._lock:
            self._results = []
            self._total = len(actionable)
            self._breaker = ConnectionCircuitBreaker(self.connection_failure_threshold)

        if not actionable:
            return []

        logger.debug(
            "Executing %d action(s) with %d worker(s)",
            len(actionable),
            self.concurrency,
        )
        start = time.time()

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures: dict[Future, SyncAction] = {}
            for action in actionable:
                if self.token.is_cancelled:
                    self._record(self._cancelled(action, 0))
                    continue
                futures[executor.submit(self._run_action, action)] = action

            for future in as_completed(futures):
                try:
                    future.result()
                except Exception as e:
                    # _run_action records its own result; this is a bug guard
                    logger.exception("Unexpected error in transfer worker")
                    self._record(
                        TransferResult(
                            action=futures[future], success=False, error=str(e)
                        )
                    )

        with self._lock:
            results = list(self._results)
        logger.debug(
            "Executed %d action(s) in %.2fs", len(results), time.time() - start
        )
        return results

    def _record(self, result: TransferResult) -> None:
        """Append a result and notify the progress callback."""
        with self._lock:
            self._results.append(result)
            if self.progress_callback is None:
                return
            totals = ProgressTotals(
                completed=len(self._results),
                total=self._total,
                succeeded=sum(1 for r in self._results if r.success),
                failed=sum(1 for r in self._results if r.failed),
                cancelled=sum(1 for r in self._results if r.cancelled),
            )
            try:
                self.progress_callback(result, totals)
            except Exception:
                logger.exception("Progress callback failed")

    def _run_action(self, action: SyncAction) -> None:
        if action.kind == SyncActionKind.UPLOAD:
            result = self._upload(action)
        elif action.kind == SyncActionKind.DELETE:
            result = self._delete(action)
        else:
            raise ValueError(f"Cannot execute action of kind {action.kind.value}")

        if result.success:
            logger.debug("%s %s succeeded", action.kind.value, action.display_path)
        elif result.cancelled:
            logger.debug("%s %s cancelled", action.kind.value, action.display_path)
        else:
            logger.debug(
                "%s %s failed after %d retries: %s",
                action.kind.value,
                action.display_path,
                result.retries,
                result.error,
            )
        self._record(result)

    # =========================
    # Single actions
    # =========================

    @staticmethod
    def _cancelled(action: SyncAction, retries: int) -> TransferResult:
        return TransferResult(
            action=action,
            success=False,
            error=CANCELLED_MESSAGE,
            retries=retries,
            cancelled=True,
        )

    def _upload(self, action: SyncAction) -> TransferResult:
        """Upload a file with retry and exponential backoff."""
        local_file = action.local_file
        if local_file is None:
            return TransferResult(action=action, success=False, error="No local file")

        display_name = identity_key(local_file.relative_path)
        last_error: Optional[str] = None

        for attempt in range(self.max_attempts):
            if self.token.is_cancelled:
                return self._cancelled(action, attempt)
            if self._breaker.is_open:
                return TransferResult(
                    action=action,
                    success=False,
                    error=last_error or UNREACHABLE_MESSAGE,
                    retries=attempt,
                )

            if attempt > 0:
                delay = self.backoff_delay(attempt)
                logger.debug(
                    "Upload of %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    display_name,
                    attempt,
                    self.max_attempts,
                    delay,
                    last_error,
                )
                if self.token.wait(delay):
                    return self._cancelled(action, attempt)

            try:
                outcome = self.client.upload_file(
                    self.store, local_file.path, display_name
                )
                success, error, kind = outcome.success, outcome.error, outcome.kind
            except Exception as e:
                success, error = False, str(e)
                kind = getattr(e, "kind", ErrorKind.TRANSIENT)

            if success:
                self._breaker.record(None)
                return TransferResult(action=action, success=True, retries=attempt)

            self._breaker.record(kind)
            last_error = error or "Unknown error"

            if self.token.is_cancelled:
                return self._cancelled(action, attempt + 1)
            if kind == ErrorKind.CLIENT:
                return TransferResult(
                    action=action, success=False, error=last_error, retries=attempt
                )

        return TransferResult(
            action=action,
            success=False,
            error=last_error,
            retries=self.max_attempts,
        )

    def _delete(self, action: SyncAction) -> TransferResult:
        """Delete a remote document with a single attempt."""
        remote_file = action.remote_file
        if remote_file is None:
            return TransferResult(action=action, success=False, error="No remote file")

        if self.token.is_cancelled:
            return self._cancelled(action, 0)
        if self._breaker.is_open:
            return TransferResult(
                action=action, success=False, error=UNREACHABLE_MESSAGE
            )

        try:
            self.client.delete_file(self.store, remote_file.name)
        except Exception as e:
            self._breaker.record(getattr(e, "kind", ErrorKind.TRANSIENT))
            if self.token.is_cancelled:
                return self._cancelled(action, 0)
            return TransferResult(action=action, success=False, error=str(e))

        self._breaker.record(None)
        return TransferResult(action=action, success=True)
