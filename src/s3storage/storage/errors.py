"""Object storage error types.

Provides typed exceptions for the S3 virtual filesystem layer. Every public
operation raises one of these; raw botocore exceptions never escape.
"""

from __future__ import annotations

from collections.abc import Sequence

from botocore.exceptions import BotoCoreError, ClientError

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404", "NoSuchBucket"})


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        tenant_id: Tenant ID associated with the operation (if applicable).
        key: Object key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        tenant_id: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.tenant_id:
            parts.append(f"tenant_id={self.tenant_id}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class ObjectNotFoundError(ObjectStorageError):
    """Raised when no object or prefix exists at the given path."""

    def __init__(
        self,
        message: str = "Object not found",
        *,
        tenant_id: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, tenant_id=tenant_id, key=key)


class InvalidArgumentError(ObjectStorageError):
    """Raised when a path or argument cannot be translated into a valid key."""

    def __init__(
        self,
        message: str = "Invalid argument",
        *,
        tenant_id: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, tenant_id=tenant_id, key=key)


class PathTraversalError(InvalidArgumentError):
    """Raised when a path contains a parent-directory (``..``) sequence.

    The store would silently return empty results for such keys, so they are
    rejected before any request is made.
    """

    def __init__(
        self,
        message: str = "Invalid path: parent traversal ('..') is not allowed",
        *,
        tenant_id: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, tenant_id=tenant_id, key=key)


class KeyTooLongError(InvalidArgumentError):
    """Raised when an object key exceeds the store's key-length ceiling."""

    def __init__(
        self,
        message: str = "Object key exceeds maximum length",
        *,
        tenant_id: str | None = None,
        key: str | None = None,
        max_length: int = 1024,
    ) -> None:
        super().__init__(message, tenant_id=tenant_id, key=key)
        self.max_length = max_length


class StorageBackendError(ObjectStorageError):
    """Raised when the store or the network cannot complete an operation.

    Wraps botocore client and transport errors. No retry is layered on top of
    the transport's own retry policy.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        tenant_id: str | None = None,
        key: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, tenant_id=tenant_id, key=key)
        self.cause = cause


class PartialFailureError(StorageBackendError):
    """Raised when a multi-object move or delete fails partway through.

    Copies and deletes already applied are not rolled back.

    Attributes:
        completed: Keys that were fully processed before the failure.
        failed: Keys the store reported as failed (may be empty when the
            sequence aborted on an exception).
    """

    def __init__(
        self,
        message: str = "Multi-object operation partially failed",
        *,
        tenant_id: str | None = None,
        key: str | None = None,
        completed: Sequence[str] = (),
        failed: Sequence[str] = (),
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, tenant_id=tenant_id, key=key, cause=cause)
        self.completed = list(completed)
        self.failed = list(failed)

    def __str__(self) -> str:
        return (
            f"{super().__str__()} completed={len(self.completed)} failed={len(self.failed)}"
        )


class StorageConfigError(ObjectStorageError):
    """Raised when the storage configuration is missing or invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


def error_code(exc: BaseException) -> str | None:
    """Return the service error code of a botocore ``ClientError``, if any."""
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code")
        return str(code) if code is not None else None
    return None


def is_not_found(exc: BaseException) -> bool:
    """Check whether a botocore error is the store's no-such-key/404 signal."""
    return error_code(exc) in _NOT_FOUND_CODES


def translate_client_error(
    exc: BaseException,
    *,
    tenant_id: str | None = None,
    key: str | None = None,
    operation: str = "request",
) -> ObjectStorageError:
    """Map a botocore exception onto the storage error taxonomy.

    Args:
        exc: Exception raised by a botocore/s3transfer call.
        tenant_id: Tenant of the failing operation.
        key: Object key of the failing operation.
        operation: Operation name used in the error message.

    Returns:
        ObjectNotFoundError for no-such-key/404 signals, the exception itself
        if it already belongs to the taxonomy, StorageBackendError otherwise.
    """
    if isinstance(exc, ObjectStorageError):
        return exc
    if is_not_found(exc):
        return ObjectNotFoundError(tenant_id=tenant_id, key=key)
    if isinstance(exc, (ClientError, BotoCoreError)):
        code = error_code(exc) or type(exc).__name__
        return StorageBackendError(
            message=f"S3 {operation} failed ({code})",
            tenant_id=tenant_id,
            key=key,
            cause=exc,
        )
    return StorageBackendError(
        message=f"S3 {operation} failed: {exc}",
        tenant_id=tenant_id,
        key=key,
        cause=exc,
    )
