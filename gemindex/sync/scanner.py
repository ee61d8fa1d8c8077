"""Directory scanning utilities for sync operations."""

import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from ..exceptions import GemindexScanError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalFile:
    """Represents a local file selected for sync."""

    path: Path
    """Absolute path to the file"""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    size: int
    """File size in bytes"""

    @classmethod
    def from_path(cls, file_path: Path, base_path: Path) -> "LocalFile":
        """Create LocalFile from a path.

        Args:
            file_path: Absolute path to the file
            base_path: Base path for calculating relative paths

        Returns:
            LocalFile instance
        """
        stat = file_path.stat()
        # Use as_posix() to ensure forward slashes on all platforms
        relative_path = file_path.relative_to(base_path).as_posix()
        return cls(path=file_path, relative_path=relative_path, size=stat.st_size)


def _translate_segment(segment: str) -> str:
    """Translate a single glob path segment into a regex fragment.

    Wildcards never match ``/`` and never match a leading dot, so hidden
    files are only selected when the pattern spells the dot out.
    """
    out: list[str] = []
    i = 0
    n = len(segment)
    while i < n:
        c = segment[i]
        at_start = i == 0
        if c == "*":
            while i + 1 < n and segment[i + 1] == "*":
                i += 1
            out.append("(?!\\.)[^/]*" if at_start else "[^/]*")
        elif c == "?":
            out.append("(?!\\.)[^/]" if at_start else "[^/]")
        elif c == "[":
            negated = i + 1 < n and segment[i + 1] in "!^"
            j = segment.find("]", i + 2 if negated else i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = segment[i + 1 : j]
                if body[:1] in ("!", "^"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = j
        elif c == "{":
            j = segment.find("}", i)
            if j == -1:
                out.append(re.escape(c))
            else:
                options = segment[i + 1 : j].split(",")
                out.append(
                    "(?:" + "|".join(_translate_segment(o) for o in options) + ")"
                )
                i = j
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Compile a glob pattern into a regex matching POSIX relative paths.

    Supported syntax: ``*`` and ``?`` within one segment, ``**`` for zero or
    more whole segments, ``[abc]`` character classes and ``{a,b}``
    alternatives. A leading ``./`` or ``/`` is ignored.

    Args:
        pattern: Glob pattern

    Returns:
        Compiled regular expression

    Examples:
        >>> bool(compile_glob("docs/**/*.md").match("docs/a/b/c.md"))
        True
        >>> bool(compile_glob("*.md").match("docs/c.md"))
        False
        >>> bool(compile_glob("**/*.md").match(".hidden/c.md"))
        False
    """
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    pattern = pattern.lstrip("/")

    segments = [s for s in pattern.split("/") if s]
    parts: list[str] = []
    for index, segment in enumerate(segments):
        is_last = index == len(segments) - 1
        if segment == "**":
            if is_last:
                # Trailing ** matches everything below, but never dot segments
                parts.append("(?:(?!\\.)[^/]+(?:/(?!\\.)[^/]+)*)")
            else:
                parts.append("(?:(?!\\.)[^/]+/)*")
        else:
            parts.append(_translate_segment(segment) + ("" if is_last else "/"))
    return re.compile("^" + "".join(parts) + "$")


def matches_any(relative_path: str, patterns: list[str]) -> bool:
    """Check whether a relative path matches any of the glob patterns."""
    return any(compile_glob(p).match(relative_path) for p in patterns)


class FileScanner:
    """Scans a base directory for files matching include/exclude patterns.

    Examples:
        >>> scanner = FileScanner(include=["**/*.md"], exclude=["drafts/**"])
        >>> files = scanner.scan(Path("/project/docs"))
        >>> # Hidden files are only picked up by patterns naming the dot
    """

    def __init__(
        self,
        include: list[str],
        exclude: Optional[list[str]] = None,
    ):
        """Initialize file scanner.

        Args:
            include: Glob patterns selecting files (relative to the base dir)
            exclude: Glob patterns removing files from the selection
        """
        self.include = list(include)
        self.exclude = list(exclude or [])

    def is_selected(self, relative_path: str) -> bool:
        """Check if a relative path is included and not excluded."""
        if not matches_any(relative_path, self.include):
            return False
        if matches_any(relative_path, self.exclude):
            logger.debug("Excluding: %s", relative_path)
            return False
        return True

    def scan(self, base_path: Path) -> list[LocalFile]:
        """Recursively scan a directory.

        Args:
            base_path: Directory to scan

        Returns:
            List of LocalFile objects sorted by relative path

        Raises:
            GemindexScanError: If the directory or any selected file
                cannot be read
        """
        base_path = base_path.resolve()
        if not base_path.exists():
            raise GemindexScanError(f"Directory does not exist: {base_path}")
        if not base_path.is_dir():
            raise GemindexScanError(f"Path is not a directory: {base_path}")

        def _raise(error: OSError) -> None:
            raise GemindexScanError(
                f"Cannot read directory {error.filename}: {error.strerror}"
            ) from error

        files: list[LocalFile] = []
        for dirpath, dirnames, filenames in os.walk(base_path, onerror=_raise):
            dirnames.sort()
            current = Path(dirpath)
            for filename in sorted(filenames):
                file_path = current / filename
                relative_path = file_path.relative_to(base_path).as_posix()
                if not file_path.is_file() or not self.is_selected(relative_path):
                    continue
                try:
                    files.append(LocalFile.from_path(file_path, base_path))
                except OSError as e:
                    raise GemindexScanError(
                        f"Cannot read file {relative_path}: {e}"
                    ) from e

        files.sort(key=lambda f: f.relative_path)
        logger.debug("Scanned %s: %d file(s) selected", base_path, len(files))
        return files
