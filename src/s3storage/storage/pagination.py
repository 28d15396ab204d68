"""Continuation-token driven listing and bulk deletion.

ListObjectsV2 returns at most 1000 keys per call and DeleteObjects accepts at
most 1000 keys per call. Everything that enumerates or deletes "all keys under
a prefix" goes through this module.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, Final

from botocore.exceptions import BotoCoreError, ClientError

from s3storage.storage.errors import (
    PartialFailureError,
    StorageBackendError,
    translate_client_error,
)
from s3storage.storage.models import PrefixPage
from s3storage.storage.paths import SEPARATOR

logger = logging.getLogger(__name__)

MAX_KEYS_PER_PAGE: Final[int] = 1000
MAX_KEYS_PER_DELETE: Final[int] = 1000


def filter_keys(
    prefix: str,
    keys: Iterable[str],
    *,
    recursive: bool,
    include_directories: bool,
) -> list[str]:
    """Select the listing entries visible under ``prefix``.

    Excludes the prefix itself (empty suffix, a suffix equal to the prefix or
    to "/"). In single-level mode, also excludes entries whose suffix holds a
    separator anywhere but at its end. Directory markers ("/"-terminated keys)
    are kept only when ``include_directories`` is set.
    """
    selected: list[str] = []
    for key in keys:
        suffix = key[len(prefix) :] if key.startswith(prefix) else key
        if not suffix or suffix == prefix or suffix == SEPARATOR:
            continue
        if not recursive and SEPARATOR in suffix.rstrip(SEPARATOR):
            continue
        if not include_directories and key.endswith(SEPARATOR):
            continue
        selected.append(key)
    return selected


def _chunks(keys: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    for start in range(0, len(keys), size):
        yield keys[start : start + size]


class Paginator:
    """Drives repeated list/delete calls over unbounded key sets.

    Args:
        client: boto3 S3 client.
        bucket: Bucket all calls are issued against.
        page_size: MaxKeys sent with each list call (store caps it at 1000).
    """

    def __init__(self, client: Any, bucket: str, page_size: int = MAX_KEYS_PER_PAGE) -> None:
        self._client = client
        self._bucket = bucket
        self._page_size = page_size

    def pages(self, prefix: str) -> Iterator[PrefixPage]:
        """Yield one PrefixPage per ListObjectsV2 call until the listing ends.

        Raises:
            StorageBackendError: On transport failure, or when a truncated page
                carries no continuation token.
        """
        token: str | None = None
        round_number = 0
        while True:
            params: dict[str, Any] = {
                "Bucket": self._bucket,
                "Prefix": prefix,
                "MaxKeys": self._page_size,
            }
            if token is not None:
                params["ContinuationToken"] = token

            try:
                response = self._client.list_objects_v2(**params)
            except (ClientError, BotoCoreError) as e:
                raise translate_client_error(e, key=prefix, operation="list") from e

            entries = response.get("Contents", [])
            keys = [entry["Key"] for entry in entries]
            truncated = bool(response.get("IsTruncated"))
            token = response.get("NextContinuationToken") if truncated else None
            round_number += 1

            if truncated and not token:
                raise StorageBackendError(
                    message=(
                        f"Truncated listing without continuation token (page {round_number})"
                    ),
                    key=prefix,
                )

            logger.debug(
                "Listed page %d under prefix=%s keys=%d truncated=%s",
                round_number,
                prefix,
                len(keys),
                truncated,
            )
            yield PrefixPage(keys=keys, continuation_token=token, entries=entries)

            if not truncated:
                return

    def list_all(self, prefix: str) -> list[str]:
        """Return every raw key starting with ``prefix``, across all pages."""
        keys: list[str] = []
        for page in self.pages(prefix):
            keys.extend(page.keys)
        return keys

    def list_entries(self, prefix: str) -> list[dict[str, Any]]:
        """Return every raw listing entry under ``prefix``, across all pages."""
        entries: list[dict[str, Any]] = []
        for page in self.pages(prefix):
            entries.extend(page.entries)
        return entries

    def delete_keys(self, keys: Sequence[str]) -> list[str]:
        """Delete ``keys`` in batches of at most 1000.

        Returns:
            Keys the store reported as deleted.

        Raises:
            PartialFailureError: If the store rejected some keys, or a batch
                failed after earlier batches were applied.
            StorageBackendError: If the first batch fails outright.
        """
        if not keys:
            return []

        deleted: list[str] = []
        for batch in _chunks(list(keys), MAX_KEYS_PER_DELETE):
            try:
                response = self._client.delete_objects(
                    Bucket=self._bucket,
                    Delete={
                        "Objects": [{"Key": key} for key in batch],
                        "Quiet": False,
                    },
                )
            except (ClientError, BotoCoreError) as e:
                error = translate_client_error(e, key=batch[0], operation="delete")
                if not deleted:
                    raise error from e
                raise PartialFailureError(
                    message="Bulk delete aborted after partial progress",
                    key=batch[0],
                    completed=deleted,
                    cause=error,
                ) from e

            deleted.extend(entry["Key"] for entry in response.get("Deleted", []))
            errors = response.get("Errors", [])
            if errors:
                failed = [entry.get("Key", "") for entry in errors]
                logger.warning(
                    "Bulk delete rejected %d keys (first=%s code=%s)",
                    len(failed),
                    failed[0],
                    errors[0].get("Code"),
                )
                raise PartialFailureError(
                    message="Bulk delete rejected some keys",
                    key=failed[0],
                    completed=deleted,
                    failed=failed,
                )

        return deleted

    def delete_all(self, prefix: str) -> list[str]:
        """Delete every key under ``prefix``.

        The full key set is enumerated before the first delete so that
        continuation tokens are never invalidated mid-listing.
        """
        keys = self.list_all(prefix)
        if not keys:
            logger.debug("Nothing to delete under prefix=%s", prefix)
            return []
        deleted = self.delete_keys(keys)
        logger.debug("Deleted %d keys under prefix=%s", len(deleted), prefix)
        return deleted
