"""Tests for storage operation spans.

Spans are captured with the in-memory exporter; no collector is needed.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

TRACING_ENV_VARS = [
    "S3STORAGE_OTEL_ENABLED",
    "S3STORAGE_REQUIRE_OTEL",
    "S3STORAGE_OTEL_SERVICE_NAME",
    "S3STORAGE_OTEL_EXPORTER",
    "S3STORAGE_OTEL_TEST_CAPTURE",
    "S3STORAGE_OTEL_EXPORTER_OTLP_ENDPOINT",
    "S3STORAGE_OTEL_EXPORTER_OTLP_PROTOCOL",
    "S3STORAGE_OTEL_RESOURCE_ATTRS",
]


@pytest.fixture(autouse=True)
def reset_tracing_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset tracing environment and state around each test."""
    from s3storage.observability.tracing import reset_tracing

    for var in TRACING_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    reset_tracing()
    yield
    reset_tracing()


@pytest.fixture
def capture(monkeypatch: pytest.MonkeyPatch) -> None:
    """Enable tracing with the in-memory exporter."""
    from s3storage.observability.tracing import configure_tracing

    monkeypatch.setenv("S3STORAGE_OTEL_ENABLED", "1")
    monkeypatch.setenv("S3STORAGE_OTEL_TEST_CAPTURE", "1")
    assert configure_tracing() is True


def _spans(name: str) -> list[Any]:
    from s3storage.observability.tracing import get_test_spans

    return [span for span in get_test_spans() if span.name == name]


class TestTracingConfiguration:
    """Tests for configure_tracing."""

    def test_disabled_by_default(self) -> None:
        from s3storage.observability.tracing import configure_tracing, get_test_spans

        assert configure_tracing() is False
        assert get_test_spans() == []

    def test_env_bool_parsing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from s3storage.observability.tracing import get_env_bool

        monkeypatch.setenv("S3STORAGE_OTEL_ENABLED", "yes")
        assert get_env_bool("S3STORAGE_OTEL_ENABLED") is True
        monkeypatch.setenv("S3STORAGE_OTEL_ENABLED", "0")
        assert get_env_bool("S3STORAGE_OTEL_ENABLED", True) is False
        monkeypatch.setenv("S3STORAGE_OTEL_ENABLED", "maybe")
        assert get_env_bool("S3STORAGE_OTEL_ENABLED", True) is True

    def test_resource_attrs_parsing(self) -> None:
        from s3storage.observability.tracing import _parse_resource_attrs

        assert _parse_resource_attrs("env=test, team = flows,broken") == {
            "env": "test",
            "team": "flows",
        }

    def test_load_config_defaults(self) -> None:
        from s3storage.observability.tracing import ExporterKind, load_tracing_config

        config = load_tracing_config()

        assert config.enabled is False
        assert config.service_name == "s3storage"
        assert config.exporter == ExporterKind.OTLP
        assert config.otlp_protocol == "grpc"

    def test_load_config_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from s3storage.observability.tracing import ExporterKind, load_tracing_config

        monkeypatch.setenv("S3STORAGE_OTEL_ENABLED", "1")
        monkeypatch.setenv("S3STORAGE_OTEL_EXPORTER", "console")
        monkeypatch.setenv("S3STORAGE_OTEL_SERVICE_NAME", "flows-worker")
        monkeypatch.setenv("S3STORAGE_OTEL_RESOURCE_ATTRS", "env=test")

        config = load_tracing_config()

        assert config.enabled is True
        assert config.exporter == ExporterKind.CONSOLE
        assert config.service_name == "flows-worker"
        assert config.resource_attributes == {"env": "test"}

    def test_test_capture_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        from s3storage.observability.tracing import ExporterKind, load_tracing_config

        monkeypatch.setenv("S3STORAGE_OTEL_EXPORTER", "console")
        monkeypatch.setenv("S3STORAGE_OTEL_TEST_CAPTURE", "1")

        assert load_tracing_config().exporter == ExporterKind.MEMORY

    def test_trace_id_none_outside_span(self) -> None:
        from s3storage.observability.tracing import get_current_trace_id

        assert get_current_trace_id() is None


class TestStorageSpans:
    """Spans emitted by S3Storage operations."""

    def test_no_spans_when_disabled(self, storage: Any) -> None:
        from s3storage.observability.tracing import get_test_spans

        storage.exists("tenant-a", "/nothing")
        assert get_test_spans() == []

    def test_put_and_exists_spans(self, capture: None, storage: Any) -> None:
        from s3storage.storage.tracing import key_digest

        storage.put("tenant-a", "/traced/file.txt", b"data")
        storage.exists("tenant-a", "/traced/file.txt")

        (put_span,) = _spans("s3storage.storage.put")
        (exists_span,) = _spans("s3storage.storage.exists")

        assert put_span.attributes["s3storage.tenant_id"] == "tenant-a"
        assert put_span.attributes["storage.backend"] == "s3"
        assert put_span.attributes["s3storage.object_key_sha256"] == key_digest(
            "/traced/file.txt"
        )
        assert exists_span.attributes["s3storage.result"] is True

    def test_raw_path_never_exported(self, capture: None, storage: Any) -> None:
        storage.put("tenant-a", "/secret-project/plan.txt", b"data")

        for span in _spans("s3storage.storage.put"):
            for value in span.attributes.values():
                assert "secret-project" not in str(value)

    def test_attributes_span(self, capture: None, storage: Any) -> None:
        storage.put("tenant-a", "/traced/file.txt", b"12345")
        storage.get_attributes("tenant-a", "/traced/file.txt")

        (span,) = _spans("s3storage.storage.get_attributes")

        assert span.attributes["s3storage.object_type"] == "File"
        assert span.attributes["s3storage.object_size_bytes"] == 5

    def test_list_result_count(self, capture: None, storage: Any) -> None:
        storage.put("tenant-a", "/traced/a", b"1")
        storage.put("tenant-a", "/traced/b", b"2")
        storage.list("tenant-a", "/traced")

        (span,) = _spans("s3storage.storage.list")
        assert span.attributes["s3storage.result_count"] == 2

    def test_error_recorded(self, capture: None, storage: Any) -> None:
        from s3storage.storage.errors import ObjectNotFoundError

        with pytest.raises(ObjectNotFoundError):
            storage.get("tenant-a", "/missing")

        (span,) = _spans("s3storage.storage.get")
        assert span.attributes["error"] is True
        assert span.attributes["error.type"] == "ObjectNotFoundError"


class TestKeywordArguments:
    """Traced operations accept every argument by keyword."""

    def _exercise(self, storage: Any) -> None:
        t = "tenant-a"
        assert storage.put(tenant_id=t, uri="/kw/a.txt", data=b"abc", metadata={"k": "v"})
        assert storage.exists(tenant_id=t, uri="/kw/a.txt") is True
        assert storage.get(tenant_id=t, uri="/kw/a.txt").read() == b"abc"
        assert storage.get_with_metadata(tenant_id=t, uri="/kw/a.txt").metadata == {"k": "v"}
        assert storage.get_attributes(tenant_id=t, uri="/kw/a.txt").size == 3
        assert [e.file_name for e in storage.list(tenant_id=t, uri="/kw")] == ["a.txt"]
        assert storage.create_directory(tenant_id=t, uri="/kw/dir") == "storage:///kw/dir/"
        assert storage.all_by_prefix(tenant_id=t, prefix="/kw/") == ["storage:///kw/a.txt"]
        assert (
            storage.move(tenant_id=t, from_uri="/kw/a.txt", to_uri="/kw/b.txt")
            == "storage:///kw/b.txt"
        )
        assert storage.delete(tenant_id=t, uri="/kw/dir") is True
        assert sorted(storage.delete_by_prefix(tenant_id=t, prefix="/kw/")) == [
            "storage:///kw/",
            "storage:///kw/b.txt",
        ]

    def test_keyword_calls_without_tracing(self, storage: Any) -> None:
        self._exercise(storage)

    def test_keyword_calls_with_tracing(self, capture: None, storage: Any) -> None:
        self._exercise(storage)

        assert len(_spans("s3storage.storage.move")) == 1
        assert len(_spans("s3storage.storage.delete_by_prefix")) == 1

    def test_path_digest_taken_from_named_argument(self, capture: None, storage: Any) -> None:
        from s3storage.storage.tracing import key_digest

        storage.all_by_prefix(prefix="/kw-digest/", tenant_id="tenant-a")
        (span,) = _spans("s3storage.storage.all_by_prefix")

        assert span.attributes["s3storage.tenant_id"] == "tenant-a"
        assert span.attributes["s3storage.object_key_sha256"] == key_digest("/kw-digest/")

    def test_move_span_hashes_source(self, capture: None, storage: Any) -> None:
        from s3storage.storage.tracing import key_digest

        storage.put("tenant-a", "/kw-move/src", b"x")
        storage.move("tenant-a", to_uri="/kw-move/dst", from_uri="/kw-move/src")
        (span,) = _spans("s3storage.storage.move")

        assert span.attributes["s3storage.object_key_sha256"] == key_digest("/kw-move/src")

    def test_missing_argument_raises_type_error(self, capture: None, storage: Any) -> None:
        with pytest.raises(TypeError):
            storage.move("tenant-a", from_uri="/kw/only-source")
