"""Tests for continuation-token listing and bulk deletion."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest
from botocore.stub import Stubber

from s3storage.storage.errors import PartialFailureError, StorageBackendError
from s3storage.storage.pagination import MAX_KEYS_PER_DELETE, Paginator, filter_keys

BUCKET = "pagination-test"


@pytest.fixture
def stubbed() -> Iterator[tuple[Any, Stubber]]:
    """A real S3 client whose calls are answered by a Stubber."""
    import boto3

    client = boto3.client("s3", region_name="us-east-1")
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def _listing(keys: list[str], *, truncated: bool, token: str | None = None) -> dict[str, Any]:
    response: dict[str, Any] = {
        "Contents": [{"Key": key} for key in keys],
        "IsTruncated": truncated,
    }
    if token is not None:
        response["NextContinuationToken"] = token
    return response


class TestFilterKeys:
    """Tests for filter_keys."""

    KEYS = ["/d/", "/d/a", "/d/sub/", "/d/sub/b", "/d/sub/deeper/c"]

    def test_single_level_with_directories(self) -> None:
        keys = filter_keys("/d/", self.KEYS, recursive=False, include_directories=True)
        assert keys == ["/d/a", "/d/sub/"]

    def test_single_level_files_only(self) -> None:
        keys = filter_keys("/d/", self.KEYS, recursive=False, include_directories=False)
        assert keys == ["/d/a"]

    def test_recursive_files_only(self) -> None:
        keys = filter_keys("/d/", self.KEYS, recursive=True, include_directories=False)
        assert keys == ["/d/a", "/d/sub/b", "/d/sub/deeper/c"]

    def test_recursive_with_directories(self) -> None:
        keys = filter_keys("/d/", self.KEYS, recursive=True, include_directories=True)
        assert keys == ["/d/a", "/d/sub/", "/d/sub/b", "/d/sub/deeper/c"]

    def test_prefix_itself_excluded(self) -> None:
        assert filter_keys("/d/", ["/d/"], recursive=True, include_directories=True) == []

    def test_bare_separator_suffix_excluded(self) -> None:
        assert filter_keys("/d", ["/d/"], recursive=True, include_directories=True) == []


class TestPages:
    """Tests for Paginator.pages / list_all."""

    def test_single_page(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            _listing(["/p/a", "/p/b"], truncated=False),
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1000},
        )

        assert Paginator(client, BUCKET).list_all("/p/") == ["/p/a", "/p/b"]

    def test_token_advances(self, stubbed: tuple[Any, Stubber]) -> None:
        """Each follow-up call carries the previous page's token."""
        client, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            _listing(["/p/a"], truncated=True, token="t1"),
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1},
        )
        stubber.add_response(
            "list_objects_v2",
            _listing(["/p/b"], truncated=True, token="t2"),
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1, "ContinuationToken": "t1"},
        )
        stubber.add_response(
            "list_objects_v2",
            _listing(["/p/c"], truncated=False),
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1, "ContinuationToken": "t2"},
        )

        pages = list(Paginator(client, BUCKET, page_size=1).pages("/p/"))

        assert [page.keys for page in pages] == [["/p/a"], ["/p/b"], ["/p/c"]]
        assert [page.is_last for page in pages] == [False, False, True]

    def test_truncated_without_token_raises(self, stubbed: tuple[Any, Stubber]) -> None:
        """A truncated page with no token is an error, not silent truncation."""
        client, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            _listing(["/p/a"], truncated=True),
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1000},
        )

        with pytest.raises(StorageBackendError):
            Paginator(client, BUCKET).list_all("/p/")

    def test_empty_listing(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            {"IsTruncated": False},
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1000},
        )

        assert Paginator(client, BUCKET).list_all("/p/") == []

    def test_list_entries_keeps_listing_fields(self, stubbed: tuple[Any, Stubber]) -> None:
        from datetime import UTC, datetime

        client, stubber = stubbed
        modified = datetime(2024, 5, 1, tzinfo=UTC)
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [
                    {"Key": "/p/a", "Size": 3, "LastModified": modified},
                    {"Key": "/p/d/", "Size": 0, "LastModified": modified},
                ],
                "IsTruncated": False,
            },
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1000},
        )

        entries = Paginator(client, BUCKET).list_entries("/p/")

        assert [(e["Key"], e["Size"], e["LastModified"]) for e in entries] == [
            ("/p/a", 3, modified),
            ("/p/d/", 0, modified),
        ]

    def test_service_error_translated(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        stubber.add_client_error(
            "list_objects_v2",
            service_error_code="InternalError",
            http_status_code=500,
        )

        with pytest.raises(StorageBackendError) as exc_info:
            Paginator(client, BUCKET).list_all("/p/")

        assert "InternalError" in str(exc_info.value)


class TestDeleteKeys:
    """Tests for Paginator.delete_keys / delete_all."""

    def test_empty_makes_no_call(self, stubbed: tuple[Any, Stubber]) -> None:
        client, _ = stubbed
        assert Paginator(client, BUCKET).delete_keys([]) == []

    def test_delete_all_empty_listing_skips_delete(self, stubbed: tuple[Any, Stubber]) -> None:
        """No DeleteObjects request is issued when nothing matches."""
        client, stubber = stubbed
        stubber.add_response(
            "list_objects_v2",
            {"IsTruncated": False},
            {"Bucket": BUCKET, "Prefix": "/p/", "MaxKeys": 1000},
        )

        assert Paginator(client, BUCKET).delete_all("/p/") == []

    def test_reports_deleted_keys(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        stubber.add_response(
            "delete_objects",
            {"Deleted": [{"Key": "/p/a"}, {"Key": "/p/b"}]},
            {
                "Bucket": BUCKET,
                "Delete": {"Objects": [{"Key": "/p/a"}, {"Key": "/p/b"}], "Quiet": False},
            },
        )

        assert Paginator(client, BUCKET).delete_keys(["/p/a", "/p/b"]) == ["/p/a", "/p/b"]

    def test_rejected_keys_raise_partial_failure(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        stubber.add_response(
            "delete_objects",
            {
                "Deleted": [{"Key": "/p/a"}],
                "Errors": [{"Key": "/p/b", "Code": "AccessDenied", "Message": "denied"}],
            },
            {
                "Bucket": BUCKET,
                "Delete": {"Objects": [{"Key": "/p/a"}, {"Key": "/p/b"}], "Quiet": False},
            },
        )

        with pytest.raises(PartialFailureError) as exc_info:
            Paginator(client, BUCKET).delete_keys(["/p/a", "/p/b"])

        assert exc_info.value.completed == ["/p/a"]
        assert exc_info.value.failed == ["/p/b"]

    def test_batches_of_at_most_1000(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        keys = [f"/p/{i:05d}" for i in range(MAX_KEYS_PER_DELETE + 5)]
        first, second = keys[:MAX_KEYS_PER_DELETE], keys[MAX_KEYS_PER_DELETE:]
        for batch in (first, second):
            stubber.add_response(
                "delete_objects",
                {"Deleted": [{"Key": key} for key in batch]},
                {
                    "Bucket": BUCKET,
                    "Delete": {"Objects": [{"Key": key} for key in batch], "Quiet": False},
                },
            )

        assert Paginator(client, BUCKET).delete_keys(keys) == keys

    def test_second_batch_failure_is_partial(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        keys = [f"/p/{i:05d}" for i in range(MAX_KEYS_PER_DELETE + 1)]
        first = keys[:MAX_KEYS_PER_DELETE]
        stubber.add_response(
            "delete_objects",
            {"Deleted": [{"Key": key} for key in first]},
            {
                "Bucket": BUCKET,
                "Delete": {"Objects": [{"Key": key} for key in first], "Quiet": False},
            },
        )
        stubber.add_client_error(
            "delete_objects",
            service_error_code="SlowDown",
            http_status_code=503,
        )

        with pytest.raises(PartialFailureError) as exc_info:
            Paginator(client, BUCKET).delete_keys(keys)

        assert exc_info.value.completed == first

    def test_first_batch_failure_is_backend_error(self, stubbed: tuple[Any, Stubber]) -> None:
        client, stubber = stubbed
        stubber.add_client_error(
            "delete_objects",
            service_error_code="AccessDenied",
            http_status_code=403,
        )

        with pytest.raises(StorageBackendError) as exc_info:
            Paginator(client, BUCKET).delete_keys(["/p/a"])

        assert not isinstance(exc_info.value, PartialFailureError)


class TestAgainstMockedStore:
    """Pagination against the moto-emulated store."""

    def test_list_all_crosses_page_boundary(self, s3_client: Any, bucket: str) -> None:
        """1500 keys come back complete across two list rounds."""
        for i in range(1500):
            s3_client.put_object(Bucket=bucket, Key=f"/many/{i:05d}", Body=b"x")

        keys = Paginator(s3_client, bucket).list_all("/many/")

        assert len(keys) == 1500
        assert len(set(keys)) == 1500
