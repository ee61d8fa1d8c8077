"""Tests for content hashing."""

import hashlib

import pytest

from gemindex.exceptions import GemindexCancelledError, GemindexScanError
from gemindex.sync.cancellation import CancellationToken
from gemindex.sync.hasher import ContentHasher, compute_sha256
from gemindex.sync.scanner import LocalFile


def make_file(base, name: str, content: bytes) -> LocalFile:
    path = base / name
    path.write_bytes(content)
    return LocalFile(path=path, relative_path=name, size=len(content))


class TestComputeSha256:
    """Test streaming SHA-256 computation."""

    def test_digest_matches_hashlib(self, temp_dir):
        """Test that the streamed digest equals a one-shot digest."""
        content = b"hello world\n" * 1000
        local = make_file(temp_dir, "a.txt", content)

        digest = compute_sha256(local.path, chunk_size=7)

        assert digest == hashlib.sha256(content).hexdigest()

    def test_empty_file(self, temp_dir):
        """Test hashing an empty file."""
        local = make_file(temp_dir, "empty.txt", b"")
        assert compute_sha256(local.path) == hashlib.sha256(b"").hexdigest()

    def test_missing_file(self, temp_dir):
        """Test that an unreadable file is a scan error."""
        with pytest.raises(GemindexScanError):
            compute_sha256(temp_dir / "missing.txt")

    def test_cancelled_before_read(self, temp_dir):
        """Test that a cancelled token stops hashing."""
        local = make_file(temp_dir, "a.txt", b"data")
        token = CancellationToken()
        token.cancel()

        with pytest.raises(GemindexCancelledError):
            compute_sha256(local.path, token)

    def test_cancelled_between_chunks(self, temp_dir):
        """Test that cancellation is observed while reading."""
        local = make_file(temp_dir, "a.txt", b"x" * 100)
        reads = []

        class CountingToken(CancellationToken):
            @property
            def is_cancelled(self):
                reads.append(1)
                # Cancel after two chunks have been read
                return len(reads) > 2

        with pytest.raises(GemindexCancelledError):
            compute_sha256(local.path, CountingToken(), chunk_size=10)
        assert len(reads) == 3


class TestContentHasher:
    """Test hashing multiple files."""

    @pytest.mark.parametrize("workers", [1, 4])
    def test_hash_files(self, temp_dir, workers):
        """Test that every file is hashed and keyed by absolute path."""
        files = [
            make_file(temp_dir, f"f{i}.txt", f"content {i}".encode()) for i in range(5)
        ]

        hashes = ContentHasher(workers=workers).hash_files(files)

        assert len(hashes) == 5
        for i, local in enumerate(files):
            expected = hashlib.sha256(f"content {i}".encode()).hexdigest()
            assert hashes[str(local.path)] == expected

    def test_same_content_same_digest(self, temp_dir):
        """Test that digests depend only on content."""
        a = make_file(temp_dir, "a.txt", b"same")
        b = make_file(temp_dir, "b.txt", b"same")

        hashes = ContentHasher().hash_files([a, b])

        assert hashes[str(a.path)] == hashes[str(b.path)]

    def test_cancelled_hasher(self, temp_dir):
        """Test that a cancelled run raises instead of returning partial hashes."""
        token = CancellationToken()
        token.cancel()
        files = [make_file(temp_dir, "a.txt", b"a")]

        with pytest.raises(GemindexCancelledError):
            ContentHasher(token=token).hash_files(files)
