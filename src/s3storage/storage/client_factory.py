"""boto3 client construction for the S3 storage backend.

Credential resolution order:
    1. STS assume-role when ``sts_role_arn`` is set (auto-refreshing).
    2. Static access/secret key pair when both are set.
    3. The platform's default credential chain.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import boto3
import botocore.session
from botocore.config import Config as BotoConfig
from botocore.credentials import CredentialProvider, RefreshableCredentials
from s3transfer.manager import TransferConfig, TransferManager

from s3storage.storage.config import (
    CREDENTIALS_STATIC,
    CREDENTIALS_STS,
    S3StorageConfig,
)

logger = logging.getLogger(__name__)


def _static_session(config: S3StorageConfig) -> boto3.session.Session:
    if config.access_key and config.secret_key:
        return boto3.session.Session(
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=config.region,
        )
    return boto3.session.Session(region_name=config.region)


def assume_role_refresher(config: S3StorageConfig, sts_client: Any) -> Any:
    """Build the refresh callback that issues AssumeRole for the configured role."""
    params: dict[str, Any] = {
        "RoleArn": config.sts_role_arn,
        "RoleSessionName": config.sts_role_session_name,
        "DurationSeconds": int(config.sts_role_session_duration.total_seconds()),
    }
    if config.sts_role_external_id:
        params["ExternalId"] = config.sts_role_external_id

    def refresh() -> dict[str, str]:
        response = sts_client.assume_role(**params)
        credentials = response["Credentials"]
        logger.debug(
            "Assumed role %s (session=%s) until %s",
            config.sts_role_arn,
            config.sts_role_session_name,
            credentials["Expiration"],
        )
        return {
            "access_key": credentials["AccessKeyId"],
            "secret_key": credentials["SecretAccessKey"],
            "token": credentials["SessionToken"],
            "expiry_time": credentials["Expiration"].isoformat(),
        }

    return refresh


class AssumeRoleProvider(CredentialProvider):
    """Credential provider that hands out auto-refreshing AssumeRole credentials.

    Placed first in the botocore session's resolver chain, so the role wins
    over environment and shared-file credentials.
    """

    METHOD = "sts-assume-role"
    CANONICAL_NAME = "s3storage-assume-role"

    def __init__(self, refresh: Callable[[], dict[str, str]]) -> None:
        super().__init__()
        self._refresh = refresh

    def load(self) -> RefreshableCredentials:
        return RefreshableCredentials.create_from_metadata(
            metadata=self._refresh(),
            refresh_using=self._refresh,
            method=self.METHOD,
        )


def create_session(config: S3StorageConfig) -> boto3.session.Session:
    """Create a boto3 session carrying the resolved credentials."""
    source = config.credential_source
    logger.debug("Resolving S3 credentials via %s", source)

    if source != CREDENTIALS_STS:
        return _static_session(config)

    base_session = _static_session(config)
    sts_client = base_session.client(
        "sts",
        region_name=config.region,
        endpoint_url=config.sts_endpoint_override,
    )
    provider = AssumeRoleProvider(assume_role_refresher(config, sts_client))

    core_session = botocore.session.Session()
    core_session.get_component("credential_provider").providers.insert(0, provider)
    return boto3.session.Session(botocore_session=core_session, region_name=config.region)


def create_s3_client(
    config: S3StorageConfig,
    session: boto3.session.Session | None = None,
) -> Any:
    """Create the synchronous S3 client used for metadata and listing calls."""
    if session is None:
        session = create_session(config)

    client_config = BotoConfig(
        s3={"addressing_style": "path" if config.force_path_style else "auto"},
        max_pool_connections=max(10, config.max_concurrency),
    )
    client = session.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint,
        config=client_config,
    )
    logger.info("Created S3 client: %s", config.safe_repr())
    return client


def create_transfer_manager(client: Any, config: S3StorageConfig) -> TransferManager:
    """Create the managed transfer used for object bodies and copies.

    Transfers run on the manager's own worker threads; callers wait on the
    returned futures.
    """
    transfer_config = TransferConfig(
        multipart_threshold=config.multipart_threshold,
        max_request_concurrency=config.max_concurrency,
    )
    return TransferManager(client, config=transfer_config)


def credential_source_label(config: S3StorageConfig) -> str:
    """Return a human-readable label of the credential source (for logs)."""
    if config.credential_source == CREDENTIALS_STS:
        return f"sts:{config.sts_role_arn}"
    if config.credential_source == CREDENTIALS_STATIC:
        return "static"
    return "default-chain"
