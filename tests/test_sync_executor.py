"""Tests for concurrent transfer execution."""

import threading
from pathlib import Path

import httpx
import pytest

from gemindex.api import GemindexClient
from gemindex.exceptions import (
    ErrorKind,
    GemindexClientError,
    GemindexConnectionError,
    GemindexTransientError,
)
from gemindex.models import UploadOutcome
from gemindex.sync.cancellation import CancellationToken
from gemindex.sync.executor import (
    CANCELLED_MESSAGE,
    UNREACHABLE_MESSAGE,
    ConnectionCircuitBreaker,
    TransferExecutor,
)
from gemindex.sync.planner import (
    REASON_NEW,
    REASON_ORPHAN,
    SyncAction,
    SyncActionKind,
    SyncPlan,
)
from gemindex.sync.scanner import LocalFile
from tests.conftest import FakeStoreClient, remote_file, transient


def upload_action(relative_path: str) -> SyncAction:
    local = LocalFile(
        path=Path("/base") / relative_path, relative_path=relative_path, size=1
    )
    return SyncAction(SyncActionKind.UPLOAD, REASON_NEW, local_file=local)


def delete_action(name: str) -> SyncAction:
    return SyncAction(
        SyncActionKind.DELETE, REASON_ORPHAN, remote_file=remote_file(name)
    )


def make_executor(client, **kwargs) -> TransferExecutor:
    kwargs.setdefault("base_delay", 0)
    return TransferExecutor(client, "test-store", **kwargs)


class TestRetryAccounting:
    """Test upload retry and backoff behaviour."""

    @pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
    def test_exhausted_budget_reports_all_attempts(self, max_attempts):
        """Test that N transient failures with a budget of N report N retries."""
        client = FakeStoreClient(
            upload_outcomes={"a.md": [transient() for _ in range(max_attempts)]}
        )
        results = make_executor(client, max_attempts=max_attempts).execute(
            [upload_action("a.md")]
        )

        assert len(results) == 1
        assert results[0].failed
        assert results[0].retries == max_attempts
        assert results[0].error == "HTTP 503: unavailable"
        assert len(client.uploads) == max_attempts

    @pytest.mark.parametrize("max_attempts", [1, 2, 3, 5])
    def test_success_on_last_attempt(self, max_attempts):
        """Test that N-1 failures then success report N-1 retries."""
        client = FakeStoreClient(
            upload_outcomes={"a.md": [transient() for _ in range(max_attempts - 1)]}
        )
        results = make_executor(client, max_attempts=max_attempts).execute(
            [upload_action("a.md")]
        )

        assert results[0].success
        assert results[0].retries == max_attempts - 1
        assert results[0].error is None

    def test_raised_transient_error_is_retried(self):
        """Test that exceptions from the client consume attempts too."""
        client = FakeStoreClient(
            upload_outcomes={"a.md": [GemindexTransientError("timeout")]}
        )
        results = make_executor(client).execute([upload_action("a.md")])

        assert results[0].success
        assert results[0].retries == 1

    def test_client_error_fails_without_retry(self):
        """Test that client errors fail immediately regardless of budget."""
        client = FakeStoreClient(
            upload_outcomes={
                "a.md": [
                    UploadOutcome.failed("HTTP 400: bad request", ErrorKind.CLIENT)
                ]
            }
        )
        results = make_executor(client, max_attempts=5).execute([upload_action("a.md")])

        assert results[0].failed
        assert results[0].error == "HTTP 400: bad request"
        assert client.uploads == ["a.md"]

    def test_raised_client_error_fails_without_retry(self):
        """Test that a raised client error is not retried."""
        client = FakeStoreClient(
            upload_outcomes={"a.md": [GemindexClientError("HTTP 403: forbidden", 403)]}
        )
        results = make_executor(client, max_attempts=3).execute([upload_action("a.md")])

        assert results[0].failed
        assert len(client.uploads) == 1

    def test_backoff_delay_doubles(self):
        """Test exponential backoff delays."""
        executor = TransferExecutor(FakeStoreClient(), "s", base_delay=1.0)
        assert executor.backoff_delay(0) == 0.0
        assert executor.backoff_delay(1) == 1.0
        assert executor.backoff_delay(2) == 2.0
        assert executor.backoff_delay(3) == 4.0

    def test_invalid_settings(self):
        """Test that invalid concurrency and attempts are rejected."""
        with pytest.raises(ValueError):
            TransferExecutor(FakeStoreClient(), "s", concurrency=0)
        with pytest.raises(ValueError):
            TransferExecutor(FakeStoreClient(), "s", max_attempts=0)


class TestIndependence:
    """Test that actions never affect each other's outcome."""

    def test_one_failure_does_not_block_others(self):
        """Test that a failing upload leaves other actions untouched."""
        client = FakeStoreClient(
            upload_outcomes={"bad.md": [transient(), transient(), transient()]},
            delete_errors={
                "fileSearchStores/test/documents/old.md": GemindexClientError("nope")
            },
        )
        actions = [
            upload_action("bad.md"),
            upload_action("good.md"),
            delete_action("old.md"),
            delete_action("older.md"),
        ]
        results = make_executor(client, concurrency=2).execute(actions)

        by_path = {r.action.display_path: r for r in results}
        assert len(results) == 4
        assert by_path["bad.md"].failed
        assert by_path["good.md"].success
        assert by_path["old.md"].failed
        assert by_path["older.md"].success

    def test_delete_single_attempt(self):
        """Test that deletes are never retried."""
        name = "fileSearchStores/test/documents/x.md"
        client = FakeStoreClient(delete_errors={name: GemindexTransientError("503")})
        results = make_executor(client, max_attempts=3).execute([delete_action("x.md")])

        assert results[0].failed
        assert results[0].retries == 0
        assert client.deletes == [name]

    def test_execute_plan_ignores_skips(self):
        """Test that skip actions need no remote work."""
        client = FakeStoreClient()
        skip = SyncAction(
            SyncActionKind.SKIP, "unchanged", upload_action("s.md").local_file
        )
        plan = SyncPlan(uploads=(upload_action("u.md"),), skips=(skip,))

        results = make_executor(client).execute_plan(plan)

        assert [r.action.display_path for r in results] == ["u.md"]
        assert client.uploads == ["u.md"]

    def test_progress_callback_totals(self):
        """Test that the progress callback sees running totals."""
        seen = []
        client = FakeStoreClient(upload_outcomes={"b.md": [transient()]})
        executor = make_executor(
            client,
            concurrency=1,
            max_attempts=1,
            progress_callback=lambda result, totals: seen.append(totals),
        )
        executor.execute([upload_action("a.md"), upload_action("b.md")])

        assert [t.completed for t in seen] == [1, 2]
        assert seen[-1].total == 2
        assert seen[-1].succeeded == 1
        assert seen[-1].failed == 1
        assert seen[-1].cancelled == 0

    def test_progress_callback_error_is_contained(self):
        """Test that a broken progress callback does not lose results."""

        def explode(result, totals):
            raise RuntimeError("display broke")

        results = make_executor(FakeStoreClient(), progress_callback=explode).execute(
            [upload_action("a.md")]
        )
        assert results[0].success


class TestConcurrencyBound:
    """Test that in-flight remote calls never exceed the limit."""

    @pytest.mark.parametrize("concurrency", [1, 2, 8])
    def test_in_flight_never_exceeds_limit(self, concurrency):
        """Test the bound with more actions than workers."""
        client = FakeStoreClient(call_delay=0.01)
        actions = [upload_action(f"f{i}.md") for i in range(20)]
        actions += [delete_action(f"d{i}.md") for i in range(5)]

        results = make_executor(client, concurrency=concurrency).execute(actions)

        assert len(results) == 25
        assert all(r.success for r in results)
        assert 1 <= client.max_in_flight <= concurrency


class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancelled_before_start(self):
        """Test that nothing reaches the remote when already cancelled."""
        token = CancellationToken()
        token.cancel()
        client = FakeStoreClient()
        actions = [upload_action("a.md"), delete_action("b.md")]

        results = make_executor(client, token=token).execute(actions)

        assert len(results) == 2
        assert all(r.cancelled and not r.failed for r in results)
        assert all(r.error == CANCELLED_MESSAGE for r in results)
        assert client.uploads == []
        assert client.deletes == []

    def test_cancel_mid_batch(self):
        """Test that actions not yet started are cancelled, never failed."""
        token = CancellationToken()
        started = threading.Event()

        class SlowClient(FakeStoreClient):
            def upload_file(self, store, file_path, display_name):
                started.set()
                # Cancel while the first upload is in flight
                token.cancel()
                return super().upload_file(store, file_path, display_name)

        client = SlowClient()
        actions = [upload_action(f"f{i}.md") for i in range(10)]

        results = make_executor(client, token=token, concurrency=1).execute(actions)

        assert started.is_set()
        assert len(results) == 10
        assert len(client.uploads) <= len(actions)
        assert sum(1 for r in results if r.success) == 1
        assert sum(1 for r in results if r.cancelled) == 9
        assert not any(r.failed for r in results)

    def test_cancel_during_backoff(self):
        """Test that cancellation interrupts the backoff sleep."""
        token = CancellationToken()

        class FailingClient(FakeStoreClient):
            def upload_file(self, store, file_path, display_name):
                super().upload_file(store, file_path, display_name)
                threading.Timer(0.05, token.cancel).start()
                return transient()

        client = FailingClient()
        executor = make_executor(client, token=token, base_delay=30.0, max_attempts=3)

        results = executor.execute([upload_action("a.md")])

        assert results[0].cancelled
        assert results[0].retries == 1
        assert len(client.uploads) == 1


class TestConnectionCircuitBreaker:
    """Test failing fast when the remote is unreachable."""

    def test_breaker_opens_after_threshold(self):
        """Test that consecutive connection failures open the breaker."""
        breaker = ConnectionCircuitBreaker(threshold=2)
        breaker.record(ErrorKind.CONNECTION)
        assert not breaker.is_open
        breaker.record(ErrorKind.CONNECTION)
        assert breaker.is_open

    def test_other_outcomes_reset_counter(self):
        """Test that any answer from the remote resets the count."""
        breaker = ConnectionCircuitBreaker(threshold=2)
        breaker.record(ErrorKind.CONNECTION)
        breaker.record(ErrorKind.TRANSIENT)
        breaker.record(ErrorKind.CONNECTION)
        assert not breaker.is_open
        breaker.record(None)
        breaker.record(ErrorKind.CONNECTION)
        assert not breaker.is_open

    def test_zero_threshold_disables_breaker(self):
        """Test that a threshold below 1 never opens."""
        breaker = ConnectionCircuitBreaker(threshold=0)
        for _ in range(10):
            breaker.record(ErrorKind.CONNECTION)
        assert not breaker.is_open

    def test_remote_down_fails_fast(self):
        """Test that a dead remote is not retried action by action."""

        class DownClient(FakeStoreClient):
            def upload_file(self, store, file_path, display_name):
                super().upload_file(store, file_path, display_name)
                raise GemindexConnectionError("Cannot connect", "http://x")

        client = DownClient()
        actions = [upload_action(f"f{i}.md") for i in range(10)]
        actions.append(delete_action("old.md"))

        results = make_executor(
            client, concurrency=1, max_attempts=3, connection_failure_threshold=3
        ).execute(actions)

        assert len(results) == 11
        assert all(r.failed for r in results)
        # The first action spends its whole budget, the rest fail fast
        assert len(client.uploads) == 3
        assert client.deletes == []
        delete_result = next(
            r for r in results if r.action.kind == SyncActionKind.DELETE
        )
        assert delete_result.error == UNREACHABLE_MESSAGE

    def test_connect_timeouts_open_breaker(self, temp_dir):
        """Test that a host dropping connection attempts trips the breaker."""
        attempts = []

        def handler(request):
            attempts.append(request.url.path)
            raise httpx.ConnectTimeout("timed out", request=request)

        client = GemindexClient(endpoint="http://api.test")
        client._client = httpx.Client(transport=httpx.MockTransport(handler))
        actions = []
        for i in range(5):
            path = temp_dir / f"f{i}.md"
            path.write_text("x")
            local = LocalFile(path=path, relative_path=path.name, size=1)
            actions.append(
                SyncAction(SyncActionKind.UPLOAD, REASON_NEW, local_file=local)
            )

        results = make_executor(
            client, concurrency=1, max_attempts=3, connection_failure_threshold=3
        ).execute(actions)

        assert all(r.failed for r in results)
        assert len(attempts) == 3
        assert sum(1 for r in results if r.error == UNREACHABLE_MESSAGE) == 4
