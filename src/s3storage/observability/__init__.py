"""s3storage observability module.

Provides the OpenTelemetry tracing baseline for storage operations.
"""

from s3storage.observability.tracing import (
    TracingConfig,
    configure_tracing,
    get_current_trace_id,
    load_tracing_config,
)

__all__ = ["TracingConfig", "configure_tracing", "get_current_trace_id", "load_tracing_config"]
