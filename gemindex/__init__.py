"""gemindex - keep a File Search store in sync with a local directory."""

from .api import GemindexClient
from .config import GemindexConfig, load_config
from .exceptions import (
    ErrorKind,
    GemindexAPIError,
    GemindexCancelledError,
    GemindexClientError,
    GemindexConfigError,
    GemindexConnectionError,
    GemindexError,
    GemindexScanError,
    GemindexTransientError,
)
from .models import RemoteFile, UploadOutcome
from .utils import identity_key

__all__ = [
    "GemindexClient",
    "GemindexConfig",
    "load_config",
    "ErrorKind",
    "GemindexAPIError",
    "GemindexCancelledError",
    "GemindexClientError",
    "GemindexConfigError",
    "GemindexConnectionError",
    "GemindexError",
    "GemindexScanError",
    "GemindexTransientError",
    "RemoteFile",
    "UploadOutcome",
    "identity_key",
]
