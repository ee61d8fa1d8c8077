"""Utility functions for gemindex."""

from pathlib import PurePath, PurePosixPath
from typing import Union

# =============================================================================
# Constants for sync operations
# =============================================================================

# Number of actions allowed to talk to the remote at the same time
DEFAULT_CONCURRENCY: int = 8

# Upload attempts per action, including the first one
DEFAULT_MAX_ATTEMPTS: int = 3

# Base delay for exponential backoff between upload attempts
DEFAULT_BASE_DELAY: float = 1.0  # seconds

# Consecutive connection failures before the rest of the batch fails fast
DEFAULT_CONNECTION_FAILURE_THRESHOLD: int = 3

# Read size used while hashing files (1 MiB)
HASH_CHUNK_SIZE: int = 1024 * 1024

DEFAULT_ENDPOINT: str = "http://localhost:4000"
DEFAULT_CONFIG_FILE_NAME: str = ".gemindex.json"


# =============================================================================
# Identity utilities
# =============================================================================


def identity_key(relative_path: Union[str, PurePath]) -> str:
    """Derive the remote identity of a local file from its relative path.

    The identity is the verbatim relative path in POSIX form. It is used to
    match local files against the ``originalDisplayName`` metadata of remote
    documents and is also sent as the display name on upload, so both sides
    always agree.

    Args:
        relative_path: Path relative to the sync base directory

    Returns:
        Identity key string

    Examples:
        >>> identity_key("docs/guide.md")
        'docs/guide.md'
        >>> identity_key(PurePosixPath("./a/b.txt"))
        'a/b.txt'
    """
    if isinstance(relative_path, PurePath):
        return relative_path.as_posix()
    text = relative_path.replace("\\", "/")
    return PurePosixPath(text).as_posix()


# =============================================================================
# Formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


def format_duration(seconds: float) -> str:
    """Format a duration as seconds with one decimal.

    Examples:
        >>> format_duration(1.234)
        '1.2s'
    """
    return f"{seconds:.1f}s"
