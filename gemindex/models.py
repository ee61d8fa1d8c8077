"""Data models for remote store API responses."""

from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import ErrorKind


@dataclass(frozen=True)
class RemoteFile:
    """A document in a remote File Search store.

    Instances are immutable snapshots taken when the store is listed.
    """

    name: str
    """Remote identifier (e.g. ``fileSearchStores/abc/documents/xyz``)"""

    display_name: str
    """Display name assigned by the remote store"""

    original_name: str
    """Declared original identity, used to match local files"""

    sha256: Optional[str] = None
    """SHA-256 of the content when the upload recorded one"""

    state: str = ""
    """Remote lifecycle state (e.g. ``STATE_ACTIVE``)"""

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "RemoteFile":
        """Create RemoteFile from an API file object.

        Args:
            data: File dictionary as returned by ``GET /api/stores/{store}/files``

        Returns:
            RemoteFile instance
        """
        display_name = data.get("displayName") or ""
        return cls(
            name=data.get("name", ""),
            display_name=display_name,
            original_name=data.get("originalDisplayName") or display_name,
            sha256=data.get("sha256") or None,
            state=data.get("state") or "",
        )


@dataclass(frozen=True)
class UploadOutcome:
    """Structured result of a single upload request.

    ``kind`` carries the failure classification decided by the client
    adapter, so callers never need to inspect error messages.
    """

    success: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    """Classification of the failure, None on success"""

    @classmethod
    def ok(cls) -> "UploadOutcome":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str, kind: ErrorKind) -> "UploadOutcome":
        return cls(success=False, error=error, kind=kind)
