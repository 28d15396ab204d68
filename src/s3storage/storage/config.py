"""S3 storage configuration.

Configuration is validated and defaulted once, at construction, and is never
mutated afterward.

Environment Variables:
    S3STORAGE_BUCKET: Bucket holding all objects (required)
    S3STORAGE_REGION: AWS region (optional)
    S3STORAGE_ENDPOINT: Endpoint override, e.g. a MinIO URL (optional)
    S3STORAGE_ACCESS_KEY / S3STORAGE_SECRET_KEY: Static credential pair
    S3STORAGE_STS_ROLE_ARN: Role to assume through STS
    S3STORAGE_STS_ROLE_EXTERNAL_ID: External id for the assumed role
    S3STORAGE_STS_ROLE_SESSION_NAME: Session name for the assumed role
    S3STORAGE_STS_ROLE_SESSION_DURATION: Session duration in seconds (min 900)
    S3STORAGE_STS_ENDPOINT_OVERRIDE: STS endpoint override
    S3STORAGE_FORCE_PATH_STYLE: "1" to use path-style addressing
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Final

from s3storage.storage.errors import StorageConfigError

ENV_BUCKET: Final[str] = "S3STORAGE_BUCKET"
ENV_REGION: Final[str] = "S3STORAGE_REGION"
ENV_ENDPOINT: Final[str] = "S3STORAGE_ENDPOINT"
ENV_ACCESS_KEY: Final[str] = "S3STORAGE_ACCESS_KEY"
ENV_SECRET_KEY: Final[str] = "S3STORAGE_SECRET_KEY"
ENV_STS_ROLE_ARN: Final[str] = "S3STORAGE_STS_ROLE_ARN"
ENV_STS_ROLE_EXTERNAL_ID: Final[str] = "S3STORAGE_STS_ROLE_EXTERNAL_ID"
ENV_STS_ROLE_SESSION_NAME: Final[str] = "S3STORAGE_STS_ROLE_SESSION_NAME"
ENV_STS_ROLE_SESSION_DURATION: Final[str] = "S3STORAGE_STS_ROLE_SESSION_DURATION"
ENV_STS_ENDPOINT_OVERRIDE: Final[str] = "S3STORAGE_STS_ENDPOINT_OVERRIDE"
ENV_FORCE_PATH_STYLE: Final[str] = "S3STORAGE_FORCE_PATH_STYLE"

MAX_KEY_LENGTH: Final[int] = 1024
MIN_STS_ROLE_SESSION_DURATION: Final[timedelta] = timedelta(seconds=900)
DEFAULT_STS_ROLE_SESSION_DURATION: Final[timedelta] = MIN_STS_ROLE_SESSION_DURATION
DEFAULT_STS_ROLE_SESSION_NAME: Final[str] = "s3storage"
DEFAULT_MULTIPART_THRESHOLD: Final[int] = 8 * 1024 * 1024
DEFAULT_MAX_CONCURRENCY: Final[int] = 10

CREDENTIALS_STS: Final[str] = "sts"
CREDENTIALS_STATIC: Final[str] = "static"
CREDENTIALS_DEFAULT: Final[str] = "default"


@dataclass(frozen=True)
class S3StorageConfig:
    """S3 storage configuration (immutable).

    Attributes:
        bucket: Bucket holding all objects.
        region: AWS region, None for the platform default.
        endpoint: Endpoint URL override (MinIO, LocalStack, ...).
        access_key: Static access key id.
        secret_key: Static secret access key.
        sts_role_arn: Role to assume; enables STS credentials when set.
        sts_role_external_id: External id passed to AssumeRole.
        sts_role_session_name: Session name passed to AssumeRole.
        sts_role_session_duration: Requested session lifetime (>= 15 minutes).
        sts_endpoint_override: STS endpoint URL override.
        force_path_style: Use path-style bucket addressing.
        max_key_length: Store key-length ceiling in bytes (fixed).
        multipart_threshold: Size above which transfers go multipart.
        max_concurrency: Worker threads per managed transfer.
    """

    bucket: str
    region: str | None = None
    endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    sts_role_arn: str | None = None
    sts_role_external_id: str | None = None
    sts_role_session_name: str = DEFAULT_STS_ROLE_SESSION_NAME
    sts_role_session_duration: timedelta = DEFAULT_STS_ROLE_SESSION_DURATION
    sts_endpoint_override: str | None = None
    force_path_style: bool = False
    max_key_length: int = MAX_KEY_LENGTH
    multipart_threshold: int = DEFAULT_MULTIPART_THRESHOLD
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.bucket or not self.bucket.strip():
            raise StorageConfigError(f"{ENV_BUCKET} (bucket) is required")
        if self.max_key_length != MAX_KEY_LENGTH:
            raise StorageConfigError(
                f"max_key_length is fixed at {MAX_KEY_LENGTH}, got {self.max_key_length}"
            )
        if self.sts_role_session_duration < MIN_STS_ROLE_SESSION_DURATION:
            raise StorageConfigError(
                "sts_role_session_duration must be at least "
                f"{int(MIN_STS_ROLE_SESSION_DURATION.total_seconds())} seconds, "
                f"got {int(self.sts_role_session_duration.total_seconds())}"
            )
        if bool(self.access_key) != bool(self.secret_key) and not self.sts_role_arn:
            raise StorageConfigError("access_key and secret_key must be set together")
        if self.multipart_threshold <= 0:
            raise StorageConfigError(
                f"multipart_threshold must be a positive integer, got {self.multipart_threshold}"
            )
        if self.max_concurrency <= 0:
            raise StorageConfigError(
                f"max_concurrency must be a positive integer, got {self.max_concurrency}"
            )

    @property
    def credential_source(self) -> str:
        """Credential resolution order: STS role, then static pair, then default chain."""
        if self.sts_role_arn:
            return CREDENTIALS_STS
        if self.access_key and self.secret_key:
            return CREDENTIALS_STATIC
        return CREDENTIALS_DEFAULT

    def safe_repr(self) -> dict[str, str | bool | None]:
        """Return a loggable view of the configuration without secrets."""
        return {
            "bucket": self.bucket,
            "region": self.region,
            "endpoint": self.endpoint,
            "credential_source": self.credential_source,
            "force_path_style": self.force_path_style,
        }


def _get_env_str(key: str) -> str | None:
    raw = os.environ.get(key)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _parse_duration_seconds(env_var: str, default: timedelta) -> timedelta:
    """Parse a duration in whole seconds from an environment variable.

    Raises:
        StorageConfigError: If the value is set but not an integer.
    """
    raw = _get_env_str(env_var)
    if raw is None:
        return default
    try:
        return timedelta(seconds=int(raw))
    except ValueError as e:
        raise StorageConfigError(
            f"{env_var} must be an integer number of seconds, got '{raw}'"
        ) from e


def load_s3_storage_config() -> S3StorageConfig:
    """Load S3 storage configuration from environment variables.

    Returns:
        S3StorageConfig with validated values.

    Raises:
        StorageConfigError: If the bucket is missing or any value is invalid.
    """
    bucket = _get_env_str(ENV_BUCKET)
    if bucket is None:
        raise StorageConfigError(f"{ENV_BUCKET} is required")

    return S3StorageConfig(
        bucket=bucket,
        region=_get_env_str(ENV_REGION),
        endpoint=_get_env_str(ENV_ENDPOINT),
        access_key=_get_env_str(ENV_ACCESS_KEY),
        secret_key=_get_env_str(ENV_SECRET_KEY),
        sts_role_arn=_get_env_str(ENV_STS_ROLE_ARN),
        sts_role_external_id=_get_env_str(ENV_STS_ROLE_EXTERNAL_ID),
        sts_role_session_name=(
            _get_env_str(ENV_STS_ROLE_SESSION_NAME) or DEFAULT_STS_ROLE_SESSION_NAME
        ),
        sts_role_session_duration=_parse_duration_seconds(
            ENV_STS_ROLE_SESSION_DURATION, DEFAULT_STS_ROLE_SESSION_DURATION
        ),
        sts_endpoint_override=_get_env_str(ENV_STS_ENDPOINT_OVERRIDE),
        force_path_style=_get_env_bool(ENV_FORCE_PATH_STYLE, False),
    )
