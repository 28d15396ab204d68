"""Copy-then-delete move of single objects and whole directory prefixes.

The store has no rename. Each key is copied to its destination through the
managed transfer (multipart copy for large objects), the copy is awaited, and
only then is the source deleted. There is no rollback: a failure partway
through a directory move leaves some keys moved and others not.
"""

from __future__ import annotations

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from s3storage.storage.directories import DirectoryEmulator
from s3storage.storage.errors import (
    ObjectNotFoundError,
    ObjectStorageError,
    PartialFailureError,
    translate_client_error,
)
from s3storage.storage.pagination import Paginator
from s3storage.storage.paths import as_prefix

logger = logging.getLogger(__name__)


class MoveOrchestrator:
    """Moves objects by copy-then-delete.

    Args:
        client: boto3 S3 client used for deletes.
        bucket: Bucket holding both source and destination.
        paginator: Paginator used to enumerate directory contents.
        transfer: s3transfer TransferManager used for copies.
        directories: Emulator used to fabricate destination ancestors.
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        paginator: Paginator,
        transfer: Any,
        directories: DirectoryEmulator,
    ) -> None:
        self._client = client
        self._bucket = bucket
        self._paginator = paginator
        self._transfer = transfer
        self._directories = directories

    def _copy(self, source_key: str, dest_key: str) -> None:
        future = self._transfer.copy(
            copy_source={"Bucket": self._bucket, "Key": source_key},
            bucket=self._bucket,
            key=dest_key,
        )
        try:
            future.result()
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, key=source_key, operation="copy") from e

    def _delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, key=key, operation="delete") from e

    def move_key(self, source_key: str, dest_key: str) -> None:
        """Copy one object to ``dest_key`` and delete the original."""
        self._copy(source_key, dest_key)
        self._delete(source_key)
        logger.debug("Moved %s -> %s", source_key, dest_key)

    def move_file(self, source_key: str, dest_key: str) -> None:
        """Move a single file, creating the destination's ancestor markers."""
        self._directories.mkdirs(dest_key)
        self.move_key(source_key, dest_key)

    def move_directory(self, source_key: str, dest_key: str) -> list[str]:
        """Move every key under the source prefix below the destination prefix.

        Returns:
            Destination keys written, in enumeration order.

        Raises:
            ObjectNotFoundError: If nothing exists under the source prefix.
            PartialFailureError: If a key fails after others were moved.
        """
        source_prefix = as_prefix(source_key)
        dest_prefix = as_prefix(dest_key)

        keys = self._paginator.list_all(source_prefix)
        if not keys:
            raise ObjectNotFoundError(message="Source directory not found", key=source_prefix)

        self._directories.mkdirs(dest_prefix)

        moved: list[str] = []
        for key in keys:
            dest = dest_prefix + key[len(source_prefix) :]
            try:
                self.move_key(key, dest)
            except ObjectStorageError as e:
                if not moved:
                    raise
                logger.warning(
                    "Directory move %s -> %s failed after %d of %d keys at %s",
                    source_prefix,
                    dest_prefix,
                    len(moved),
                    len(keys),
                    key,
                )
                raise PartialFailureError(
                    message="Directory move aborted after partial progress",
                    key=key,
                    completed=moved,
                    failed=[key],
                    cause=e,
                ) from e
            moved.append(dest)

        logger.debug("Moved %d keys %s -> %s", len(moved), source_prefix, dest_prefix)
        return moved
