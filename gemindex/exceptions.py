"""Exception hierarchy for gemindex."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a remote failure, set where the failure originates."""

    CLIENT = "client"
    """Request was rejected (4xx) - retrying will not help"""

    TRANSIENT = "transient"
    """Server-side or throttling failure - may succeed on retry"""

    CONNECTION = "connection"
    """Remote could not be reached at all"""


class GemindexError(Exception):
    """Base exception for all gemindex errors."""


class GemindexConfigError(GemindexError):
    """Configuration file is missing, unreadable or invalid."""


class GemindexScanError(GemindexError):
    """Local filesystem could not be scanned or read."""


class GemindexCancelledError(GemindexError):
    """Operation was cancelled by the user."""

    def __init__(self, message: str = "Operation cancelled by user"):
        super().__init__(message)


class GemindexAPIError(GemindexError):
    """Remote store request failed."""

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GemindexClientError(GemindexAPIError):
    """Remote store rejected the request (non-retryable)."""

    kind = ErrorKind.CLIENT


class GemindexTransientError(GemindexAPIError):
    """Remote store failed in a way that may succeed on retry."""

    kind = ErrorKind.TRANSIENT


class GemindexConnectionError(GemindexAPIError):
    """Remote store is unreachable."""

    kind = ErrorKind.CONNECTION

    def __init__(self, message: str, endpoint: str = ""):
        super().__init__(message)
        self.endpoint = endpoint
