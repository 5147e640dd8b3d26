"""Data models for Syncbox API responses."""

from dataclasses import dataclass
from typing import Any, Optional

from .utils import format_size, parse_iso_timestamp


@dataclass
class RemoteFileRecord:
    """A file stored in a remote Syncbox folder."""

    id: int
    """Server-side file ID"""

    name: str
    """File name, unique among the files of a folder"""

    size: int = 0
    """File size in bytes"""

    updated_at: Optional[str] = None
    """ISO timestamp of the last upload or update"""

    created_at: Optional[str] = None
    """ISO timestamp of the first upload"""

    folder_id: Optional[int] = None
    """ID of the containing folder (None for root)"""

    @property
    def mtime(self) -> Optional[float]:
        """Last modification time (Unix timestamp)."""
        return parse_iso_timestamp(self.updated_at)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteFileRecord":
        """Create a record from an API ``data`` item."""
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            size=int(data.get("size") or 0),
            updated_at=data.get("updated_at"),
            created_at=data.get("created_at"),
            folder_id=data.get("folder_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "updated_at": self.updated_at,
            "created_at": self.created_at,
            "folder_id": self.folder_id,
        }

    @property
    def size_formatted(self) -> str:
        return format_size(self.size)


@dataclass
class FolderRecord:
    """A remote folder, optionally associated with a local sync path."""

    id: int
    name: str
    parent_id: Optional[int] = None
    sync_path: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FolderRecord":
        """Create a record from an API ``data`` item."""
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            parent_id=data.get("parent_id"),
            sync_path=data.get("sync_path"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "sync_path": self.sync_path,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
