"""Sync plan construction: diff local files against the remote store."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import RemoteFile
from ..utils import identity_key
from .scanner import LocalFile

logger = logging.getLogger(__name__)

REASON_NEW = "new file"
REASON_CHANGED = "content changed"
REASON_MISSING_HASH = "missing remote hash"
REASON_UNCHANGED = "unchanged"
REASON_ORPHAN = "not present locally"


class SyncActionKind(str, Enum):
    """Actions that can be taken during sync."""

    UPLOAD = "upload"
    """Upload local file to the store"""

    SKIP = "skip"
    """Skip file (no action needed)"""

    DELETE = "delete"
    """Delete remote document"""


@dataclass(frozen=True)
class SyncAction:
    """Represents a decision about how to sync a file."""

    kind: SyncActionKind
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    local_file: Optional[LocalFile] = None
    """Local file (if exists)"""

    remote_file: Optional[RemoteFile] = None
    """Remote file (if exists)"""

    @property
    def display_path(self) -> str:
        """Identity shown to the user for this action."""
        if self.local_file is not None:
            return self.local_file.relative_path
        if self.remote_file is not None:
            return self.remote_file.original_name or self.remote_file.name
        return "unknown"


@dataclass(frozen=True)
class SyncPlan:
    """Complete classification of all files prior to any remote mutation."""

    uploads: tuple[SyncAction, ...] = ()
    skips: tuple[SyncAction, ...] = ()
    deletes: tuple[SyncAction, ...] = ()

    @property
    def has_changes(self) -> bool:
        """Whether executing the plan would touch the remote."""
        return bool(self.uploads or self.deletes)

    @property
    def actionable(self) -> tuple[SyncAction, ...]:
        """Uploads followed by deletes."""
        return self.uploads + self.deletes

    def counts(self) -> dict[str, int]:
        """Number of actions per kind."""
        return {
            "uploads": len(self.uploads),
            "skips": len(self.skips),
            "deletes": len(self.deletes),
        }


class SyncPlanner:
    """Compares local files and remote documents to build a SyncPlan."""

    def __init__(self, delete_remote: bool = False):
        """Initialize sync planner.

        Args:
            delete_remote: Whether remote documents without a local
                counterpart should be deleted
        """
        self.delete_remote = delete_remote

    @staticmethod
    def _index_remote(remote_files: list[RemoteFile]) -> tuple[
        dict[str, RemoteFile], list[RemoteFile]
    ]:
        """Index remote documents by declared identity.

        Returns:
            Tuple of (index, duplicates). Duplicates share an identity with an
            earlier entry and can never be matched.
        """
        index: dict[str, RemoteFile] = {}
        duplicates: list[RemoteFile] = []
        for remote in remote_files:
            key = remote.original_name or remote.display_name
            if not key:
                duplicates.append(remote)
            elif key in index:
                duplicates.append(remote)
            else:
                index[key] = remote
        return index, duplicates

    @staticmethod
    def _classify(
        local_file: LocalFile,
        local_hash: Optional[str],
        remote: Optional[RemoteFile],
    ) -> SyncAction:
        """Classify a single local file against its remote match."""
        if remote is None:
            return SyncAction(SyncActionKind.UPLOAD, REASON_NEW, local_file)

        if not remote.sha256:
            # Legacy documents carry no hash and are always refreshed
            return SyncAction(
                SyncActionKind.UPLOAD, REASON_MISSING_HASH, local_file, remote
            )

        if local_hash != remote.sha256:
            return SyncAction(SyncActionKind.UPLOAD, REASON_CHANGED, local_file, remote)

        return SyncAction(SyncActionKind.SKIP, REASON_UNCHANGED, local_file, remote)

    def build_plan(
        self,
        local_files: list[LocalFile],
        local_hashes: dict[str, str],
        remote_files: list[RemoteFile],
    ) -> SyncPlan:
        """Build a sync plan.

        Args:
            local_files: Scanned local files
            local_hashes: Mapping of absolute path to hex digest
            remote_files: Documents currently in the store

        Returns:
            SyncPlan partitioning every file into uploads, skips and deletes

        Examples:
            >>> planner = SyncPlanner(delete_remote=True)
            >>> plan = planner.build_plan(local_files, hashes, remote_files)
            >>> print(f"{len(plan.uploads)} to upload")
        """
        remaining, duplicates = self._index_remote(remote_files)

        uploads: list[SyncAction] = []
        skips: list[SyncAction] = []

        for local_file in local_files:
            key = identity_key(local_file.relative_path)
            remote = remaining.pop(key, None)
            action = self._classify(
                local_file, local_hashes.get(str(local_file.path)), remote
            )
            if action.kind == SyncActionKind.SKIP:
                skips.append(action)
            else:
                uploads.append(action)

        deletes: list[SyncAction] = []
        if self.delete_remote:
            for remote in list(remaining.values()) + duplicates:
                deletes.append(
                    SyncAction(SyncActionKind.DELETE, REASON_ORPHAN, remote_file=remote)
                )
        elif remaining or duplicates:
            logger.debug(
                "Retaining %d remote document(s) not present locally",
                len(remaining) + len(duplicates),
            )

        plan = SyncPlan(
            uploads=tuple(uploads), skips=tuple(skips), deletes=tuple(deletes)
        )
        logger.debug("Sync plan: %s", plan.counts())
        return plan
