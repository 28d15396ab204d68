"""S3 virtual filesystem storage.

Provides a tenant-isolated, POSIX-like file hierarchy on top of an
S3-compatible object store, with emulated directories, paginated listing and
deletion, copy-then-delete moves and case-preserving user metadata.

Backends:
- S3Storage: AWS S3 and S3-compatible services (MinIO, LocalStack, ...)

Environment Variables:
    S3STORAGE_BUCKET: Bucket holding all objects (required)
    See s3storage.storage.config for the full list.
"""

from s3storage.storage.config import S3StorageConfig, load_s3_storage_config
from s3storage.storage.errors import (
    InvalidArgumentError,
    KeyTooLongError,
    ObjectNotFoundError,
    ObjectStorageError,
    PartialFailureError,
    PathTraversalError,
    StorageBackendError,
    StorageConfigError,
)
from s3storage.storage.models import FileAttributes, FileType, StorageObject
from s3storage.storage.s3_storage import S3Storage
from s3storage.storage.storage_interface import StorageInterface

__all__ = [
    "S3Storage",
    "S3StorageConfig",
    "StorageInterface",
    "FileAttributes",
    "FileType",
    "StorageObject",
    "load_s3_storage_config",
    "ObjectStorageError",
    "ObjectNotFoundError",
    "InvalidArgumentError",
    "PathTraversalError",
    "KeyTooLongError",
    "StorageBackendError",
    "PartialFailureError",
    "StorageConfigError",
]
