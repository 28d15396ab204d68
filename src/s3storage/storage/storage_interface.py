"""Storage interface definition.

Provides the StorageInterface that every storage backend implements. Paths are
tenant-relative virtual paths (``/flows/run-1/out.csv``) or canonical
``storage://`` URIs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import TracebackType
from typing import BinaryIO

from s3storage.storage.models import FileAttributes, StorageObject


class StorageInterface(ABC):
    """Abstract base class for virtual filesystem storage backends.

    Implementations:
    - S3Storage: S3-compatible object store with emulated directories
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g. "s3")."""
        ...

    def init(self) -> None:
        """Acquire long-lived resources. Called once before first use."""

    def close(self) -> None:
        """Release long-lived resources. Called once at shutdown."""

    def __enter__(self) -> StorageInterface:
        self.init()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    @abstractmethod
    def exists(self, tenant_id: str | None, uri: str | None) -> bool:
        """Check whether an object exists at exactly the given path.

        Raises:
            InvalidArgumentError: If the path is malformed or traverses upward.
            StorageBackendError: If the backend cannot answer.
        """
        ...

    @abstractmethod
    def get(self, tenant_id: str | None, uri: str | None) -> BinaryIO:
        """Open the content of a file.

        Returns:
            Readable binary stream; zero-length for empty objects.

        Raises:
            ObjectNotFoundError: If nothing exists at the path.
            InvalidArgumentError: If the path is malformed or traverses upward.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def get_with_metadata(self, tenant_id: str | None, uri: str | None) -> StorageObject:
        """Open the content of a file together with its user metadata.

        Raises:
            ObjectNotFoundError: If nothing exists at the path.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def put(
        self,
        tenant_id: str | None,
        uri: str | None,
        data: BinaryIO | bytes,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Write a file, creating its ancestor directories.

        Args:
            tenant_id: Tenant namespace, or None.
            uri: Destination path.
            data: Content as a binary stream or bytes.
            metadata: Optional user metadata; key casing is preserved.

        Returns:
            Canonical URI of the written file.

        Raises:
            InvalidArgumentError: If the path is malformed, traverses upward or
                yields a key longer than the store allows.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def list(
        self,
        tenant_id: str | None,
        uri: str | None,
        include_metadata: bool = False,
    ) -> list[FileAttributes]:
        """List the direct children of a directory.

        Args:
            tenant_id: Isolation namespace.
            uri: Directory path.
            include_metadata: Also fetch each child's user metadata (one
                extra request per child).

        Raises:
            ObjectNotFoundError: If the directory does not exist.
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...

    @abstractmethod
    def all_by_prefix(
        self,
        tenant_id: str | None,
        prefix: str | None,
        include_directories: bool = False,
    ) -> list[str]:
        """Return the canonical URIs of every entry under a prefix, recursively."""
        ...

    @abstractmethod
    def get_attributes(self, tenant_id: str | None, uri: str | None) -> FileAttributes:
        """Return the attributes of a file or directory.

        Raises:
            ObjectNotFoundError: If nothing exists at the path.
        """
        ...

    @abstractmethod
    def delete(self, tenant_id: str | None, uri: str | None) -> bool:
        """Delete a file, or a directory and everything below it.

        Returns:
            True if something was deleted, False if nothing existed.

        Raises:
            PartialFailureError: If a recursive delete failed partway.
        """
        ...

    @abstractmethod
    def delete_by_prefix(self, tenant_id: str | None, prefix: str | None) -> list[str]:
        """Delete every key under a prefix.

        Returns:
            Canonical URIs of the deleted entries; empty if nothing matched.
        """
        ...

    @abstractmethod
    def create_directory(self, tenant_id: str | None, uri: str | None) -> str:
        """Create a directory and its ancestors.

        Returns:
            Canonical URI of the directory.
        """
        ...

    @abstractmethod
    def move(self, tenant_id: str | None, from_uri: str | None, to_uri: str | None) -> str:
        """Move a file or a whole directory.

        Returns:
            Canonical URI of the destination.

        Raises:
            ObjectNotFoundError: If the source does not exist.
            PartialFailureError: If a directory move failed partway.
        """
        ...
