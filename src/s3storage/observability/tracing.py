"""OpenTelemetry tracing setup for storage operations.

Tracing is off unless explicitly enabled. When enabled, one process-wide
TracerProvider is installed with a single span processor chosen from the
environment: OTLP (gRPC or HTTP), console, or an in-memory capture used by
the test suite.

Environment Variables:
    S3STORAGE_OTEL_ENABLED: "1" turns tracing on (default: off)
    S3STORAGE_REQUIRE_OTEL: "1" makes a failed setup raise TracingConfigError
    S3STORAGE_OTEL_SERVICE_NAME: service.name resource attribute (default: "s3storage")
    S3STORAGE_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    S3STORAGE_OTEL_EXPORTER_OTLP_ENDPOINT: Collector endpoint (optional)
    S3STORAGE_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    S3STORAGE_OTEL_RESOURCE_ATTRS: Extra resource attributes as "k=v,k=v"
    S3STORAGE_OTEL_TEST_CAPTURE: "1" routes spans to an in-memory exporter

Security:
    - Spans never carry credentials, object bodies or raw object keys
    - Tenant ids are allowed as internal attributes
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Final

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor, TracerProvider

logger = logging.getLogger(__name__)

ENV_ENABLED: Final[str] = "S3STORAGE_OTEL_ENABLED"
ENV_REQUIRE: Final[str] = "S3STORAGE_REQUIRE_OTEL"
ENV_SERVICE_NAME: Final[str] = "S3STORAGE_OTEL_SERVICE_NAME"
ENV_EXPORTER: Final[str] = "S3STORAGE_OTEL_EXPORTER"
ENV_OTLP_ENDPOINT: Final[str] = "S3STORAGE_OTEL_EXPORTER_OTLP_ENDPOINT"
ENV_OTLP_PROTOCOL: Final[str] = "S3STORAGE_OTEL_EXPORTER_OTLP_PROTOCOL"
ENV_RESOURCE_ATTRS: Final[str] = "S3STORAGE_OTEL_RESOURCE_ATTRS"
ENV_TEST_CAPTURE: Final[str] = "S3STORAGE_OTEL_TEST_CAPTURE"

DEFAULT_SERVICE_NAME: Final[str] = "s3storage"

_provider: TracerProvider | None = None
_configured: bool = False
_capture_exporter: Any = None  # InMemorySpanExporter once test capture is on


class TracingConfigError(Exception):
    """Raised when tracing setup fails and S3STORAGE_REQUIRE_OTEL=1."""


class ExporterKind(StrEnum):
    OTLP = "otlp"
    CONSOLE = "console"
    MEMORY = "memory"


@dataclass(frozen=True)
class TracingConfig:
    """Tracing settings resolved from the environment (immutable)."""

    enabled: bool = False
    required: bool = False
    service_name: str = DEFAULT_SERVICE_NAME
    exporter: ExporterKind = ExporterKind.OTLP
    otlp_endpoint: str | None = None
    otlp_protocol: str = "grpc"
    resource_attributes: dict[str, str] = field(default_factory=dict)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Read a boolean flag; unrecognized or empty values yield ``default``."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _parse_resource_attrs(attrs_str: str) -> dict[str, str]:
    """Parse "k=v,k=v" into a dict, skipping pairs without "="."""
    attrs: dict[str, str] = {}
    for pair in attrs_str.split(","):
        name, sep, value = pair.partition("=")
        if sep:
            attrs[name.strip()] = value.strip()
    return attrs


def is_tracing_enabled() -> bool:
    """Check whether storage operations should emit spans."""
    return get_env_bool(ENV_ENABLED, False)


def load_tracing_config() -> TracingConfig:
    """Build TracingConfig from S3STORAGE_OTEL_* environment variables."""
    if get_env_bool(ENV_TEST_CAPTURE, False):
        exporter = ExporterKind.MEMORY
    elif os.environ.get(ENV_EXPORTER, "").strip().lower() == ExporterKind.CONSOLE:
        exporter = ExporterKind.CONSOLE
    else:
        exporter = ExporterKind.OTLP

    return TracingConfig(
        enabled=is_tracing_enabled(),
        required=get_env_bool(ENV_REQUIRE, False),
        service_name=os.environ.get(ENV_SERVICE_NAME, "").strip() or DEFAULT_SERVICE_NAME,
        exporter=exporter,
        otlp_endpoint=os.environ.get(ENV_OTLP_ENDPOINT, "").strip() or None,
        otlp_protocol=os.environ.get(ENV_OTLP_PROTOCOL, "").strip().lower() or "grpc",
        resource_attributes=_parse_resource_attrs(os.environ.get(ENV_RESOURCE_ATTRS, "")),
    )


def _build_processor(config: TracingConfig) -> SpanProcessor:
    global _capture_exporter

    from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

    if config.exporter == ExporterKind.MEMORY:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )

        _capture_exporter = InMemorySpanExporter()
        return SimpleSpanProcessor(_capture_exporter)

    if config.exporter == ExporterKind.CONSOLE:
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter

        return SimpleSpanProcessor(ConsoleSpanExporter())

    kwargs: dict[str, Any] = {}
    if config.otlp_endpoint:
        kwargs["endpoint"] = config.otlp_endpoint
    if config.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as HTTPExporter,
        )

        return BatchSpanProcessor(HTTPExporter(**kwargs))

    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
        OTLPSpanExporter as GRPCExporter,
    )

    return BatchSpanProcessor(GRPCExporter(**kwargs))


def configure_tracing(config: TracingConfig | None = None) -> bool:
    """Install the process-wide TracerProvider. Idempotent.

    Args:
        config: Settings to apply; read from the environment when omitted.

    Returns:
        True if tracing is enabled and a provider is installed.

    Raises:
        TracingConfigError: If setup fails and tracing is required.
    """
    global _provider, _configured

    if config is None:
        config = load_tracing_config()

    if not config.enabled:
        _configured = True
        logger.debug("OpenTelemetry tracing disabled (%s not set)", ENV_ENABLED)
        return False

    # A global TracerProvider can be installed only once per process
    if config.exporter == ExporterKind.MEMORY and _capture_exporter is not None:
        return True
    if _configured and _provider is not None:
        return True

    _configured = True
    try:
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider

        resource = Resource.create(
            {"service.name": config.service_name, **config.resource_attributes}
        )
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(_build_processor(config))
        trace.set_tracer_provider(provider)
        _provider = provider
    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if config.required:
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False

    logger.info(
        "OpenTelemetry tracing configured: service=%s exporter=%s",
        config.service_name,
        config.exporter.value,
    )
    return True


def get_current_trace_id() -> str | None:
    """Return the active trace id as 32 hex chars, or None outside a span."""
    ctx = trace.get_current_span().get_span_context()
    if ctx is None or not ctx.is_valid:
        return None
    return format(ctx.trace_id, "032x")


def get_test_spans() -> list[ReadableSpan]:
    """Spans captured by the in-memory exporter (empty unless capture is on)."""
    if _capture_exporter is None:
        return []
    return list(_capture_exporter.get_finished_spans())


def clear_test_spans() -> None:
    if _capture_exporter is not None:
        _capture_exporter.clear()


def reset_tracing() -> None:
    """Forget configuration state between tests.

    The installed TracerProvider cannot be replaced, so the capture exporter
    is kept and only emptied.
    """
    global _configured

    clear_test_spans()
    _configured = False
