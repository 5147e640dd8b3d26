"""File comparison logic for sync operations."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..models import RemoteFileRecord
from ..utils import SIZE_TOLERANCE, TIMESTAMP_TOLERANCE, names_equal
from .ignore import should_ignore
from .scanner import LocalFile


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    UPLOAD = "upload"
    """Upload a local file that has no remote counterpart"""

    UPDATE = "update"
    """Replace the content of an existing remote file"""

    DOWNLOAD = "download"
    """Download remote file to local (new or newer)"""

    DELETE_LOCAL = "delete_local"
    """Delete local file"""

    SKIP = "skip"
    """Skip file (no action needed)"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    name: str
    """File name the decision applies to"""

    local_file: Optional[LocalFile] = None
    """Local file (if exists)"""

    remote_file: Optional[RemoteFileRecord] = None
    """Remote file (if exists)"""


def index_by_name(records: list[RemoteFileRecord]) -> dict[str, RemoteFileRecord]:
    """Build a case-insensitive name index of remote records."""
    return {record.name.casefold(): record for record in records}


def find_by_name(
    records: list[RemoteFileRecord], name: str
) -> Optional[RemoteFileRecord]:
    """Find the remote record whose name matches (case-insensitively)."""
    for record in records:
        if names_equal(record.name, name):
            return record
    return None


class FileComparator:
    """Decides sync actions from local and remote metadata.

    Timestamps are compared with a tolerance that absorbs clock skew and
    upload latency between the client and the server.
    """

    def __init__(
        self,
        timestamp_tolerance: float = TIMESTAMP_TOLERANCE,
        size_tolerance: int = SIZE_TOLERANCE,
    ):
        """Initialize file comparator.

        Args:
            timestamp_tolerance: Seconds one side must be ahead to count as newer
            size_tolerance: Byte difference that counts as a real edit
        """
        self.timestamp_tolerance = timestamp_tolerance
        self.size_tolerance = size_tolerance

    def is_local_newer(
        self, local_file: LocalFile, remote_file: RemoteFileRecord
    ) -> bool:
        remote_mtime = remote_file.mtime
        if remote_mtime is None:
            # No remote timestamp to compare against, prefer local
            return True
        return local_file.mtime > remote_mtime + self.timestamp_tolerance

    def is_remote_newer(
        self, remote_file: RemoteFileRecord, local_file: LocalFile
    ) -> bool:
        remote_mtime = remote_file.mtime
        if remote_mtime is None:
            return False
        return remote_mtime > local_file.mtime + self.timestamp_tolerance

    def sizes_differ(
        self, local_file: LocalFile, remote_file: RemoteFileRecord
    ) -> bool:
        return abs(local_file.size - remote_file.size) > self.size_tolerance

    def decide_push(
        self, local_file: LocalFile, remote_file: Optional[RemoteFileRecord]
    ) -> SyncDecision:
        """Decide what the local to remote pass does with one local file."""
        if remote_file is None:
            return SyncDecision(
                action=SyncAction.UPLOAD,
                reason="New local file",
                name=local_file.name,
                local_file=local_file,
            )
        if self.is_local_newer(local_file, remote_file):
            return SyncDecision(
                action=SyncAction.UPDATE,
                reason="Local file is newer",
                name=local_file.name,
                local_file=local_file,
                remote_file=remote_file,
            )
        return SyncDecision(
            action=SyncAction.SKIP,
            reason="Remote file is up to date",
            name=local_file.name,
            local_file=local_file,
            remote_file=remote_file,
        )

    def decide_pull(
        self, remote_file: RemoteFileRecord, local_file: Optional[LocalFile]
    ) -> SyncDecision:
        """Decide what the remote to local pass does with one remote file."""
        if local_file is None:
            return SyncDecision(
                action=SyncAction.DOWNLOAD,
                reason="New remote file",
                name=remote_file.name,
                remote_file=remote_file,
            )
        if self.is_remote_newer(remote_file, local_file):
            return SyncDecision(
                action=SyncAction.DOWNLOAD,
                reason="Remote file is newer",
                name=remote_file.name,
                local_file=local_file,
                remote_file=remote_file,
            )
        return SyncDecision(
            action=SyncAction.SKIP,
            reason="Local file is up to date",
            name=remote_file.name,
            local_file=local_file,
            remote_file=remote_file,
        )

    def decide_change(
        self, local_file: LocalFile, remote_file: RemoteFileRecord
    ) -> SyncDecision:
        """Decide whether a modified local file must be pushed.

        A size difference beyond the tolerance counts as an edit even when
        the timestamps are too close to tell apart.
        """
        local_newer = self.is_local_newer(local_file, remote_file)
        size_differs = self.sizes_differ(local_file, remote_file)
        if local_newer or size_differs:
            reason = "Local file is newer" if local_newer else (
                f"Size changed ({remote_file.size} -> {local_file.size} bytes)"
            )
            return SyncDecision(
                action=SyncAction.UPDATE,
                reason=reason,
                name=local_file.name,
                local_file=local_file,
                remote_file=remote_file,
            )
        return SyncDecision(
            action=SyncAction.SKIP,
            reason="No real changes",
            name=local_file.name,
            local_file=local_file,
            remote_file=remote_file,
        )

    def plan_local_to_remote(
        self,
        local_files: list[LocalFile],
        remote_files: list[RemoteFileRecord],
    ) -> list[SyncDecision]:
        """Plan the local to remote pass.

        Remote files without a local counterpart are left alone.
        """
        remote_by_name = index_by_name(remote_files)
        return [
            self.decide_push(local_file, remote_by_name.get(local_file.name.casefold()))
            for local_file in local_files
        ]

    def plan_remote_to_local(
        self,
        remote_files: list[RemoteFileRecord],
        local_files: list[LocalFile],
    ) -> list[SyncDecision]:
        """Plan the remote to local pass.

        The remote listing is authoritative for existence: local files whose
        name is absent remotely are scheduled for deletion, unless the
        ignore filter rejects them.

        Args:
            remote_files: A successful remote listing
            local_files: All local files, including ignored ones
        """
        local_by_name = {f.name.casefold(): f for f in local_files}
        decisions = [
            self.decide_pull(
                remote_file, local_by_name.get(remote_file.name.casefold())
            )
            for remote_file in remote_files
        ]

        remote_names = set(index_by_name(remote_files))
        for local_file in local_files:
            if local_file.name.casefold() in remote_names:
                continue
            if should_ignore(local_file.path):
                continue
            decisions.append(
                SyncDecision(
                    action=SyncAction.DELETE_LOCAL,
                    reason="File deleted from server",
                    name=local_file.name,
                    local_file=local_file,
                )
            )
        return decisions
