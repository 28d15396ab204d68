"""Storage data models.

Provides typed dataclasses for file attributes, storage objects and listing
pages exchanged by the S3 virtual filesystem layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, BinaryIO


class FileType(StrEnum):
    """Kind of entry addressed by a virtual path."""

    FILE = "File"
    DIRECTORY = "Directory"


@dataclass(frozen=True)
class FileAttributes:
    """Uniform attributes of a file or emulated directory.

    Attributes:
        file_name: Final path segment, or "/" for the root.
        type: File or Directory.
        size: Content length in bytes (0 for directories).
        last_modified_time: Store's last-modified timestamp.
        creation_time: Same value as last_modified_time; the store keeps no
            separate creation time.
        metadata: User metadata with caller-supplied key casing restored.
    """

    file_name: str
    type: FileType
    size: int
    last_modified_time: datetime | None
    creation_time: datetime | None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        return self.type == FileType.DIRECTORY

    def to_dict(self) -> dict[str, str | int | dict[str, str] | None]:
        """Convert attributes to dictionary for JSON serialization."""
        return {
            "file_name": self.file_name,
            "type": self.type.value,
            "size": self.size,
            "last_modified_time": (
                self.last_modified_time.isoformat() if self.last_modified_time else None
            ),
            "creation_time": self.creation_time.isoformat() if self.creation_time else None,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class StorageObject:
    """Unit exchanged on read/write: user metadata plus a readable byte stream.

    Attributes:
        metadata: User metadata with caller-supplied key casing.
        body: Binary stream positioned at the start of the content.
    """

    metadata: dict[str, str]
    body: BinaryIO


@dataclass(frozen=True)
class PrefixPage:
    """One ListObjectsV2 response page.

    Attributes:
        keys: Object keys returned in this page.
        continuation_token: Token for the next page, None on the last page.
        entries: Raw ``Contents`` entries (Key, Size, LastModified, ...).
    """

    keys: list[str]
    continuation_token: str | None = None
    entries: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_last(self) -> bool:
        return self.continuation_token is None
