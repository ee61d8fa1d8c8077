"""Cooperative cancellation for sync runs.

A :class:`CancellationToken` is created once per invocation by the caller and
passed to every operation that can block or retry. Core code only observes
the token; raising it in response to an interrupt is the host's job (see
:func:`interrupt_handler`).
"""

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, Optional

from ..exceptions import GemindexCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """A cancellation signal that is set at most once.

    Cleanup callbacks registered with :meth:`on_cancel` run synchronously, in
    registration order, in the thread that calls :meth:`cancel`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.RLock()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            True if this call set the signal, False if it was already set
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        logger.debug("Cancellation requested, running %d cleanup(s)", len(callbacks))
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register a cleanup callback.

        If the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            self._callbacks.append(callback)
            if not self._event.is_set():
                return
            # A signal handler may have cancelled and run it already
            if callback not in self._callbacks:
                return
            self._callbacks.remove(callback)
        self._run_callback(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        """Unregister a cleanup callback that has not run yet."""
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep until cancelled or until ``timeout`` elapses.

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """Raise GemindexCancelledError if cancellation was requested."""
        if self._event.is_set():
            raise GemindexCancelledError()

    @staticmethod
    def _run_callback(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Cleanup callback %r failed", callback)


@contextmanager
def interrupt_handler(
    token: CancellationToken,
    on_first_interrupt: Optional[Callable[[], None]] = None,
) -> Iterator[CancellationToken]:
    """Route SIGINT/SIGTERM to a cancellation token.

    The first signal cancels the token so running work drains gracefully.
    A second signal raises KeyboardInterrupt in the main thread to terminate
    immediately. Previous handlers are restored on exit.

    Args:
        token: Token to cancel on the first interrupt
        on_first_interrupt: Optional callback run after the token is cancelled

    Yields:
        The same token
    """
    if threading.current_thread() is not threading.main_thread():
        # Signal handlers can only be installed from the main thread
        yield token
        return

    def _handler(signum: int, frame: Any) -> None:
        if token.is_cancelled:
            raise KeyboardInterrupt
        logger.debug("Received signal %d, cancelling", signum)
        token.cancel()
        if on_first_interrupt is not None:
            on_first_interrupt()

    previous = {
        sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextmanager
def default_interrupts() -> Iterator[None]:
    """Temporarily restore Python's default SIGINT behaviour.

    Used around interactive prompts so Ctrl+C aborts the prompt instead of
    only setting a cancellation token the prompt never looks at.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    previous = signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
