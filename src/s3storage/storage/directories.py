"""Directory emulation via zero-byte marker objects.

The store has no directories. A directory is represented by a marker: an
empty object whose key ends with "/" and whose content type is
``application/x-directory``. Writing a file fabricates markers for all of its
ancestors so that every level stays listable.
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from s3storage.storage.attributes import DIRECTORY_CONTENT_TYPE
from s3storage.storage.errors import ObjectNotFoundError, is_not_found, translate_client_error
from s3storage.storage.pagination import Paginator, filter_keys
from s3storage.storage.paths import ROOT, SEPARATOR, as_prefix, parent_prefix

logger = logging.getLogger(__name__)


class DirectoryEmulator:
    """Creates and detects directory markers.

    Args:
        client: boto3 S3 client.
        bucket: Bucket holding the markers.
        paginator: Paginator bound to the same client and bucket.
    """

    def __init__(self, client: Any, bucket: str, paginator: Paginator) -> None:
        self._client = client
        self._bucket = bucket
        self._paginator = paginator

    def head(self, key: str, *, tenant_id: str | None = None) -> dict[str, Any]:
        """Issue a HeadObject for the exact key.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageBackendError: On any other failure.
        """
        try:
            return self._client.head_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(
                e, tenant_id=tenant_id, key=key, operation="head"
            ) from e

    def exists(self, key: str) -> bool:
        """Check whether an object exists at exactly ``key``."""
        try:
            self._client.head_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            if is_not_found(e):
                return False
            raise translate_client_error(e, key=key, operation="head") from e
        return True

    def put_marker(self, prefix: str) -> None:
        """Write a zero-byte directory marker at ``prefix`` (forced "/" suffix)."""
        marker = as_prefix(prefix)
        try:
            self._client.put_object(
                Bucket=self._bucket,
                Key=marker,
                Body=b"",
                ContentType=DIRECTORY_CONTENT_TYPE,
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, key=marker, operation="put") from e
        logger.debug("Created directory marker %s", marker)

    def mkdirs(self, key: str) -> None:
        """Ensure a marker exists for every ancestor directory of ``key``.

        For ``/a/b/c/file`` this writes ``/a/``, ``/a/b/`` and ``/a/b/c/``.
        No-op when the immediate parent already exists.
        """
        parent = parent_prefix(key)
        if parent == ROOT:
            return
        if self.exists(parent):
            return

        accumulated = ""
        for segment in parent.split(SEPARATOR):
            if not segment:
                continue
            accumulated = f"{accumulated}{SEPARATOR}{segment}"
            self.put_marker(accumulated + SEPARATOR)

    def create_directory(self, key: str) -> str:
        """Create the marker for ``key`` and all its ancestors.

        Returns:
            The marker key (with trailing "/").
        """
        marker = as_prefix(key)
        self.mkdirs(marker)
        self.put_marker(marker)
        return marker

    def list_entries(self, key: str, *, is_root: bool = False) -> list[dict[str, Any]]:
        """List the raw listing entries one level under ``key``, markers included.

        An empty listing is ambiguous: the directory may be empty or absent.
        In that case the directory's own existence is re-validated.

        Raises:
            ObjectNotFoundError: If the directory holds nothing and has no
                marker.
        """
        prefix = as_prefix(key)
        entries = self._paginator.list_entries(prefix)
        visible = set(
            filter_keys(
                prefix,
                [entry["Key"] for entry in entries],
                recursive=False,
                include_directories=True,
            )
        )
        children = [entry for entry in entries if entry["Key"] in visible]
        if children:
            return children
        if is_root or prefix == ROOT:
            return []
        if self.exists(prefix) or self.exists(key.rstrip(SEPARATOR)):
            return []
        raise ObjectNotFoundError(message="Directory not found", key=key)

    def list_keys(self, key: str, *, is_root: bool = False) -> list[str]:
        """List the keys one level under ``key``, markers included."""
        return [entry["Key"] for entry in self.list_entries(key, is_root=is_root)]
