"""Pytest configuration and fixtures for s3storage tests.

S3 is emulated in-process with moto; no network access is needed.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from typing import Any

import pytest
from moto import mock_aws

TEST_BUCKET = "s3storage-unit-test"
TEST_REGION = "us-east-1"


@pytest.fixture(autouse=True)
def aws_test_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Point the default credential chain at fake credentials.

    Guarantees no test ever signs a request with real credentials.
    """
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    for var in ("AWS_PROFILE", "AWS_ENDPOINT_URL", "AWS_ENDPOINT_URL_S3"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def storage_config() -> Any:
    """Return a minimal configuration for the test bucket."""
    from s3storage.storage.config import S3StorageConfig

    return S3StorageConfig(bucket=TEST_BUCKET, region=TEST_REGION)


@pytest.fixture
def mocked_aws() -> Iterator[None]:
    """Activate moto for the duration of a test."""
    with mock_aws():
        yield


@pytest.fixture
def storage(mocked_aws: None, storage_config: Any) -> Iterator[Any]:
    """Create an initialized S3Storage over an empty mocked bucket."""
    from s3storage.storage.s3_storage import S3Storage

    store = S3Storage(storage_config)
    store.init()
    store.create_bucket()
    yield store
    store.close()


@pytest.fixture
def s3_client(mocked_aws: None) -> Any:
    """Raw boto3 client against the mocked bucket (bucket created)."""
    import boto3

    client = boto3.client("s3", region_name=TEST_REGION)
    client.create_bucket(Bucket=TEST_BUCKET)
    return client


@pytest.fixture
def prefix() -> str:
    """Return a unique top-level directory for one test."""
    return uuid.uuid4().hex


@pytest.fixture
def tenant_a() -> str:
    return "tenant-a"


@pytest.fixture
def tenant_b() -> str:
    return "tenant-b"


@pytest.fixture
def bucket() -> str:
    """Name of the mocked bucket."""
    return TEST_BUCKET
