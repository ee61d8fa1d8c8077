"""Streaming content hashing for change detection."""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from ..exceptions import GemindexCancelledError, GemindexScanError
from ..utils import HASH_CHUNK_SIZE
from .cancellation import CancellationToken
from .scanner import LocalFile

logger = logging.getLogger(__name__)


def compute_sha256(
    file_path: Path,
    token: Optional[CancellationToken] = None,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute the SHA-256 of a file with a streaming read.

    Args:
        file_path: File to hash
        token: Optional cancellation token, checked between chunks
        chunk_size: Read size in bytes

    Returns:
        Hex digest

    Raises:
        GemindexCancelledError: If cancelled before the read completes
        GemindexScanError: If the file cannot be read
    """
    if token is not None:
        token.raise_if_cancelled()

    digest = hashlib.sha256()
    try:
        with open(file_path, "rb") as f:
            while True:
                if token is not None and token.is_cancelled:
                    raise GemindexCancelledError()
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                digest.update(chunk)
    except OSError as e:
        raise GemindexScanError(f"Cannot read file {file_path}: {e}") from e
    return digest.hexdigest()


class ContentHasher:
    """Computes content digests for scanned files."""

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        workers: int = 1,
        chunk_size: int = HASH_CHUNK_SIZE,
    ):
        """Initialize content hasher.

        Args:
            token: Cancellation token shared with the rest of the run
            workers: Number of files hashed in parallel (default: 1)
            chunk_size: Read size in bytes
        """
        self.token = token
        self.workers = max(1, workers)
        self.chunk_size = chunk_size

    def hash_file(self, local_file: LocalFile) -> str:
        """Hash a single local file."""
        return compute_sha256(local_file.path, self.token, self.chunk_size)

    def hash_files(self, files: list[LocalFile]) -> dict[str, str]:
        """Hash every file.

        Args:
            files: Files to hash

        Returns:
            Mapping of absolute path (string) to hex digest

        Raises:
            GemindexCancelledError: If cancelled while hashing
            GemindexScanError: If a file cannot be read
        """
        hashes: dict[str, str] = {}
        if self.workers == 1 or len(files) < 2:
            for local_file in files:
                hashes[str(local_file.path)] = self.hash_file(local_file)
        else:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                digests = executor.map(self.hash_file, files)
                for local_file, digest in zip(files, digests):
                    hashes[str(local_file.path)] = digest

        logger.debug("Hashed %d file(s)", len(hashes))
        return hashes
