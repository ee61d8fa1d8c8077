"""Shared fixtures for gemindex tests."""

import hashlib
import tempfile
import threading
import time
from pathlib import Path
from typing import Optional

import pytest

from gemindex.exceptions import ErrorKind
from gemindex.models import RemoteFile, UploadOutcome


def sha256_of(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


class FakeStoreClient:
    """In-memory remote store recording calls and peak concurrency.

    ``upload_outcomes`` maps a display name to a list of outcomes consumed
    one per attempt; an outcome may be an UploadOutcome or an exception to
    raise. Names without scripted outcomes always succeed.
    """

    def __init__(
        self,
        remote_files: Optional[list[RemoteFile]] = None,
        upload_outcomes: Optional[dict] = None,
        delete_errors: Optional[dict] = None,
        call_delay: float = 0.0,
    ):
        self.remote_files = list(remote_files or [])
        self.upload_outcomes = {k: list(v) for k, v in (upload_outcomes or {}).items()}
        self.delete_errors = dict(delete_errors or {})
        self.call_delay = call_delay
        self.uploads: list[str] = []
        self.deletes: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False
        self._lock = threading.Lock()

    def _enter(self) -> None:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)

    def _leave(self) -> None:
        with self._lock:
            self.in_flight -= 1

    def list_files(self, store: str) -> list[RemoteFile]:
        return list(self.remote_files)

    def close(self) -> None:
        self.closed = True

    def upload_file(self, store: str, file_path: Path, display_name: str):
        self._enter()
        try:
            if self.call_delay:
                time.sleep(self.call_delay)
            with self._lock:
                self.uploads.append(display_name)
                scripted = self.upload_outcomes.get(display_name)
                outcome = scripted.pop(0) if scripted else UploadOutcome.ok()
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self._leave()

    def delete_file(self, store: str, name: str) -> None:
        self._enter()
        try:
            if self.call_delay:
                time.sleep(self.call_delay)
            with self._lock:
                self.deletes.append(name)
            error = self.delete_errors.get(name)
            if error is not None:
                raise error
        finally:
            self._leave()


def transient(message: str = "HTTP 503: unavailable") -> UploadOutcome:
    return UploadOutcome.failed(message, ErrorKind.TRANSIENT)


def remote_file(
    name: str, sha256: Optional[str] = None, remote_id: Optional[str] = None
) -> RemoteFile:
    return RemoteFile(
        name=remote_id or f"fileSearchStores/test/documents/{name}",
        display_name=name,
        original_name=name,
        sha256=sha256,
        state="STATE_ACTIVE",
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
