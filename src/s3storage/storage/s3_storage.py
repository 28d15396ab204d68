"""S3 virtual filesystem storage backend.

Fabricates a POSIX-like hierarchy on a flat, key-addressed S3 bucket:

- Tenant isolation via a ``/<tenant_id>`` key prefix
- Directories emulated with zero-byte marker objects
- Listing and bulk deletion across unbounded key counts (1000 keys per page)
- Move as copy-then-delete, per key, without rollback
- User metadata keys encoded so their casing survives the header round trip

Metadata and listing calls run synchronously on the caller's thread. Object
bodies and copies go through an s3transfer TransferManager whose futures are
awaited before the call returns.
"""

from __future__ import annotations

import io
import logging
import tempfile
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, BinaryIO, Final

from botocore.exceptions import BotoCoreError, ClientError
from s3transfer.exceptions import RetriesExceededError

from s3storage.storage.attributes import directory_attributes, from_listing, project
from s3storage.storage.client_factory import (
    create_s3_client,
    create_transfer_manager,
    credential_source_label,
)
from s3storage.storage.config import S3StorageConfig
from s3storage.storage.directories import DirectoryEmulator
from s3storage.storage.errors import (
    KeyTooLongError,
    ObjectNotFoundError,
    StorageBackendError,
    error_code,
    translate_client_error,
)
from s3storage.storage.metadata_codec import to_retrieved, to_stored
from s3storage.storage.models import FileAttributes, StorageObject
from s3storage.storage.move import MoveOrchestrator
from s3storage.storage.pagination import Paginator, filter_keys
from s3storage.storage.paths import (
    ROOT,
    SEPARATOR,
    as_prefix,
    from_key,
    strip_tenant,
    to_key,
    uri_path,
)
from s3storage.storage.storage_interface import StorageInterface
from s3storage.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

# Downloads larger than this spill from memory to a temporary file
SPOOL_MAX_BYTES: Final[int] = 8 * 1024 * 1024

_TRANSFER_ERRORS = (ClientError, BotoCoreError, RetriesExceededError)


@dataclass(frozen=True)
class _Handles:
    """Open client handles and the helpers bound to them."""

    client: Any
    transfer: Any
    paginator: Paginator
    directories: DirectoryEmulator
    mover: MoveOrchestrator


class S3Storage(StorageInterface):
    """S3-compatible implementation of StorageInterface.

    The S3 client and the transfer manager are opened in ``init()`` (or on
    first use) and released in ``close()``. An operation after ``close()``
    opens fresh handles. Pre-built handles may be injected; they serve the
    first opening and are closed by ``close()`` as well.

    Args:
        config: Validated storage configuration.
        client: Optional pre-built boto3 S3 client.
        transfer_manager: Optional pre-built s3transfer TransferManager.
    """

    def __init__(
        self,
        config: S3StorageConfig,
        *,
        client: Any = None,
        transfer_manager: Any = None,
    ) -> None:
        self._config = config
        self._injected_client = client
        self._injected_transfer = transfer_manager
        self._lock = threading.Lock()
        self._handles: _Handles | None = None

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "s3"

    @property
    def config(self) -> S3StorageConfig:
        return self._config

    @property
    def bucket(self) -> str:
        return self._config.bucket

    @property
    def client(self) -> Any:
        """The underlying boto3 S3 client (opened on first access)."""
        return self._open().client

    @property
    def is_open(self) -> bool:
        return self._handles is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Open the S3 client and the transfer manager. Idempotent."""
        self._open()

    def _open(self) -> _Handles:
        """Return the open handles, opening them first if needed."""
        with self._lock:
            if self._handles is not None:
                return self._handles

            client, self._injected_client = self._injected_client, None
            transfer, self._injected_transfer = self._injected_transfer, None
            if client is None:
                client = create_s3_client(self._config)
            if transfer is None:
                transfer = create_transfer_manager(client, self._config)

            paginator = Paginator(client, self.bucket)
            directories = DirectoryEmulator(client, self.bucket, paginator)
            mover = MoveOrchestrator(client, self.bucket, paginator, transfer, directories)
            self._handles = _Handles(client, transfer, paginator, directories, mover)
            logger.info(
                "S3Storage initialized: bucket=%s credentials=%s",
                self.bucket,
                credential_source_label(self._config),
            )
            return self._handles

    def close(self) -> None:
        """Release both handles.

        Each handle is closed independently; a failure closing one is logged
        and does not prevent closing the other.
        """
        with self._lock:
            handles, self._handles = self._handles, None

        if handles is None:
            return

        try:
            handles.transfer.shutdown()
        except Exception as e:
            logger.warning("Failed to shut down S3 transfer manager: %s", e)

        try:
            handles.client.close()
        except Exception as e:
            logger.warning("Failed to close S3 client: %s", e)

        logger.debug("S3Storage closed: bucket=%s", self.bucket)

    def _bucket_exists(self, client: Any) -> bool:
        try:
            client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            if error_code(e) in ("404", "NoSuchBucket", "NotFound"):
                return False
            raise translate_client_error(e, operation="head_bucket") from e
        return True

    def create_bucket(self) -> str:
        """Create the configured bucket.

        Returns:
            The bucket name.

        Raises:
            StorageBackendError: If the bucket already exists or cannot be created.
        """
        client = self._open().client
        if self._bucket_exists(client):
            raise StorageBackendError(message=f"Bucket already exists: {self.bucket}")

        params: dict[str, Any] = {"Bucket": self.bucket}
        if self._config.region and self._config.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self._config.region}
        try:
            client.create_bucket(**params)
        except (ClientError, BotoCoreError) as e:
            if error_code(e) in ("BucketAlreadyExists", "BucketAlreadyOwnedByYou"):
                raise StorageBackendError(
                    message=f"Bucket already exists: {self.bucket}",
                    cause=e,
                ) from e
            raise translate_client_error(e, operation="create_bucket") from e
        logger.info("Created bucket %s", self.bucket)
        return self.bucket

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_key_length(self, tenant_id: str | None, key: str) -> None:
        if len(key.encode("utf-8")) > self._config.max_key_length:
            raise KeyTooLongError(
                message=(
                    f"Object key exceeds {self._config.max_key_length} bytes "
                    f"({len(key.encode('utf-8'))})"
                ),
                tenant_id=tenant_id,
                key=key[:64] + "...",
                max_length=self._config.max_key_length,
            )

    def _resolve(
        self, handles: _Handles, tenant_id: str | None, key: str
    ) -> tuple[str, FileAttributes]:
        """Look up attributes for ``key``, retrying once in slash form.

        Returns:
            The key that answered and its attributes.
        """
        path = strip_tenant(tenant_id, key)
        try:
            head = handles.directories.head(key, tenant_id=tenant_id)
            return key, project(path, head)
        except ObjectNotFoundError:
            if key.endswith(SEPARATOR):
                raise

        slash_key = as_prefix(key)
        head = handles.directories.head(slash_key, tenant_id=tenant_id)
        return slash_key, project(path, head, forced_directory=True)

    def _delete_object(self, handles: _Handles, tenant_id: str | None, key: str) -> None:
        try:
            handles.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(
                e, tenant_id=tenant_id, key=key, operation="delete"
            ) from e

    def _download(self, handles: _Handles, tenant_id: str | None, key: str) -> BinaryIO:
        body = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_BYTES)
        try:
            handles.transfer.download(self.bucket, key, body).result()
        except _TRANSFER_ERRORS as e:
            body.close()
            raise translate_client_error(
                e, tenant_id=tenant_id, key=key, operation="download"
            ) from e
        body.seek(0)
        return body  # type: ignore[return-value]

    def _read(self, tenant_id: str | None, uri: str | None) -> StorageObject:
        handles = self._open()
        key = to_key(tenant_id, uri)
        head = handles.directories.head(key, tenant_id=tenant_id)
        metadata = to_retrieved(head.get("Metadata"))

        # Empty objects get a plain in-memory stream, never a transport wrapper
        if int(head.get("ContentLength") or 0) == 0:
            return StorageObject(metadata=metadata, body=io.BytesIO(b""))

        return StorageObject(metadata=metadata, body=self._download(handles, tenant_id, key))

    # ------------------------------------------------------------------
    # StorageInterface
    # ------------------------------------------------------------------

    @traced_storage_operation("exists")
    def exists(self, tenant_id: str | None, uri: str | None) -> bool:
        """Check whether an object exists at exactly the given path."""
        return self._open().directories.exists(to_key(tenant_id, uri))

    @traced_storage_operation("get")
    def get(self, tenant_id: str | None, uri: str | None) -> BinaryIO:
        """Open the content of a file."""
        return self._read(tenant_id, uri).body

    @traced_storage_operation("get_with_metadata")
    def get_with_metadata(self, tenant_id: str | None, uri: str | None) -> StorageObject:
        """Open the content of a file together with its user metadata."""
        return self._read(tenant_id, uri)

    @traced_storage_operation("put")
    def put(
        self,
        tenant_id: str | None,
        uri: str | None,
        data: BinaryIO | bytes,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """Write a file, creating markers for all its ancestor directories."""
        handles = self._open()
        key = to_key(tenant_id, uri)
        self._check_key_length(tenant_id, key)
        handles.directories.mkdirs(key)

        stream = io.BytesIO(data) if isinstance(data, (bytes, bytearray)) else data
        extra_args: dict[str, Any] = {}
        stored = to_stored(metadata)
        if stored:
            extra_args["Metadata"] = stored

        try:
            handles.transfer.upload(stream, self.bucket, key, extra_args=extra_args).result()
        except _TRANSFER_ERRORS as e:
            raise translate_client_error(
                e, tenant_id=tenant_id, key=key, operation="upload"
            ) from e

        logger.debug("Stored object: tenant=%s key=%s", tenant_id, key)
        return from_key(tenant_id, key)

    @traced_storage_operation("list")
    def list(
        self,
        tenant_id: str | None,
        uri: str | None,
        include_metadata: bool = False,
    ) -> list[FileAttributes]:
        """List the direct children of a directory, files and subdirectories.

        Attributes come from the listing itself. With ``include_metadata``
        each child is also looked up to fill in user metadata; children
        deleted between the listing and the lookup are left out.
        """
        handles = self._open()
        key = to_key(tenant_id, uri)
        is_root = uri_path(uri).rstrip(SEPARATOR) == ""

        try:
            entries = handles.directories.list_entries(key, is_root=is_root)
        except ObjectNotFoundError as e:
            raise ObjectNotFoundError(
                message="Directory not found", tenant_id=tenant_id, key=key
            ) from e

        if not include_metadata:
            return [
                from_listing(strip_tenant(tenant_id, entry["Key"]), entry) for entry in entries
            ]

        children: list[FileAttributes] = []
        for entry in entries:
            child = entry["Key"]
            try:
                head = handles.directories.head(child, tenant_id=tenant_id)
            except ObjectNotFoundError:
                logger.debug("Child vanished during listing: tenant=%s key=%s", tenant_id, child)
                continue
            children.append(project(strip_tenant(tenant_id, child), head))
        return children

    @traced_storage_operation("all_by_prefix")
    def all_by_prefix(
        self,
        tenant_id: str | None,
        prefix: str | None,
        include_directories: bool = False,
    ) -> list[str]:
        """Return the canonical URIs of every entry under a prefix, recursively."""
        paginator = self._open().paginator
        key = to_key(tenant_id, prefix)
        keys = filter_keys(
            key,
            paginator.list_all(key),
            recursive=True,
            include_directories=include_directories,
        )
        return [from_key(tenant_id, k) for k in keys]

    @traced_storage_operation("get_attributes")
    def get_attributes(self, tenant_id: str | None, uri: str | None) -> FileAttributes:
        """Return attributes, retrying once with a trailing slash for directories."""
        key = to_key(tenant_id, uri)
        if uri_path(uri).rstrip(SEPARATOR) == "":
            return directory_attributes(ROOT)
        _, attributes = self._resolve(self._open(), tenant_id, key)
        return attributes

    def size(self, tenant_id: str | None, uri: str | None) -> int:
        """Return the content length of a file."""
        return self.get_attributes(tenant_id, uri).size

    def last_modified_time(self, tenant_id: str | None, uri: str | None) -> datetime | None:
        """Return the store's last-modified timestamp of a file or directory."""
        return self.get_attributes(tenant_id, uri).last_modified_time

    @traced_storage_operation("delete")
    def delete(self, tenant_id: str | None, uri: str | None) -> bool:
        """Delete a file, or a directory with everything below it.

        A missing target is a normal outcome and returns False.
        """
        handles = self._open()
        key = to_key(tenant_id, uri)
        try:
            resolved, attributes = self._resolve(handles, tenant_id, key)
        except ObjectNotFoundError:
            logger.debug("Nothing to delete: tenant=%s key=%s", tenant_id, key)
            return False

        if attributes.is_directory:
            children = [
                k for k in handles.paginator.list_all(as_prefix(resolved)) if k != resolved
            ]
            handles.paginator.delete_keys(children)
            logger.debug(
                "Deleted %d entries under directory: tenant=%s key=%s",
                len(children),
                tenant_id,
                resolved,
            )

        self._delete_object(handles, tenant_id, resolved)
        return True

    @traced_storage_operation("delete_by_prefix")
    def delete_by_prefix(self, tenant_id: str | None, prefix: str | None) -> list[str]:
        """Delete every key under a prefix, markers included."""
        paginator = self._open().paginator
        key = to_key(tenant_id, prefix)
        return [from_key(tenant_id, k) for k in paginator.delete_all(key)]

    @traced_storage_operation("create_directory")
    def create_directory(self, tenant_id: str | None, uri: str | None) -> str:
        """Create a directory marker and markers for all its ancestors."""
        directories = self._open().directories
        key = as_prefix(to_key(tenant_id, uri))
        self._check_key_length(tenant_id, key)
        return from_key(tenant_id, directories.create_directory(key))

    @traced_storage_operation("move")
    def move(self, tenant_id: str | None, from_uri: str | None, to_uri: str | None) -> str:
        """Move a file or directory by copy-then-delete."""
        handles = self._open()
        source_key = to_key(tenant_id, from_uri)
        dest_key = to_key(tenant_id, to_uri)
        self._check_key_length(tenant_id, dest_key)

        resolved, attributes = self._resolve(handles, tenant_id, source_key)
        if attributes.is_directory:
            moved = handles.mover.move_directory(resolved, dest_key)
            logger.debug(
                "Moved directory: tenant=%s %s -> %s (%d keys)",
                tenant_id,
                resolved,
                dest_key,
                len(moved),
            )
        else:
            handles.mover.move_file(resolved, dest_key)

        return from_key(tenant_id, dest_key)
