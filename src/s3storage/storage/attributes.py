"""Projection of HeadObject responses and listing entries onto FileAttributes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Final

from s3storage.storage.metadata_codec import to_retrieved
from s3storage.storage.models import FileAttributes, FileType
from s3storage.storage.paths import SEPARATOR, file_name

DIRECTORY_CONTENT_TYPE: Final[str] = "application/x-directory"


def is_directory(path: str, head: Mapping[str, Any], forced_directory: bool = False) -> bool:
    """Classify an entry as a directory.

    Any of the three signals is sufficient: an explicit flag, a trailing
    separator on the path, or the directory content type reported by the store.
    """
    if forced_directory or path.endswith(SEPARATOR):
        return True
    content_type = head.get("ContentType") or ""
    return content_type.split(";", 1)[0].strip() == DIRECTORY_CONTENT_TYPE


def project(
    path: str,
    head: Mapping[str, Any],
    forced_directory: bool = False,
) -> FileAttributes:
    """Build FileAttributes from a path and a HeadObject response.

    Args:
        path: Virtual path or object key the response belongs to.
        head: HeadObject (or GetObject) response mapping.
        forced_directory: Treat the entry as a directory regardless of the
            path shape and content type.

    Returns:
        FileAttributes with both timestamps set to the store's LastModified.
    """
    directory = is_directory(path, head, forced_directory)
    last_modified = head.get("LastModified")
    return FileAttributes(
        file_name=file_name(path),
        type=FileType.DIRECTORY if directory else FileType.FILE,
        size=0 if directory else int(head.get("ContentLength") or 0),
        last_modified_time=last_modified,
        creation_time=last_modified,
        metadata=to_retrieved(head.get("Metadata")),
    )


def from_listing(path: str, entry: Mapping[str, Any]) -> FileAttributes:
    """Build FileAttributes from a ListObjectsV2 ``Contents`` entry.

    Listings carry neither content type nor user metadata, so only the
    trailing separator marks a directory and metadata is left empty.
    """
    directory = path.endswith(SEPARATOR)
    last_modified = entry.get("LastModified")
    return FileAttributes(
        file_name=file_name(path),
        type=FileType.DIRECTORY if directory else FileType.FILE,
        size=0 if directory else int(entry.get("Size") or 0),
        last_modified_time=last_modified,
        creation_time=last_modified,
    )


def directory_attributes(path: str) -> FileAttributes:
    """Synthetic attributes for a directory that has no marker (the root)."""
    return FileAttributes(
        file_name=file_name(path),
        type=FileType.DIRECTORY,
        size=0,
        last_modified_time=None,
        creation_time=None,
    )
