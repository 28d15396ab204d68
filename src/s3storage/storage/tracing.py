"""OpenTelemetry spans for storage operations.

Security:
    - Never export raw paths or keys in span attributes, only their SHA256
    - No credentials or object bodies in any attribute
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from s3storage.observability.tracing import is_tracing_enabled
from s3storage.storage.models import FileAttributes

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

TRACER_NAME = "s3storage.storage"


def key_digest(uri: str | None) -> str:
    """SHA256 of a path, used to correlate spans without exposing the path."""
    return hashlib.sha256((uri or "/").encode("utf-8")).hexdigest()


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    The decorated method takes ``(self, tenant_id, <path>, ...)`` where the
    third parameter names the path being operated on (``uri``, ``prefix``,
    ``from_uri``). Arguments may be passed positionally or by keyword.

    Args:
        operation: Operation name (e.g., "put", "get", "move").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)
        path_param = list(signature.parameters)[2]

        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, *args, **kwargs)

            # Binding errors surface as the method's own TypeError
            bound = signature.bind(self, *args, **kwargs)
            tenant_id = bound.arguments.get("tenant_id")
            path = bound.arguments.get(path_param)

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"{TRACER_NAME}.{operation}") as span:
                if tenant_id:
                    span.set_attribute("s3storage.tenant_id", tenant_id)
                span.set_attribute("s3storage.object_key_sha256", key_digest(path))
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add safe result-derived attributes (sizes, counts, flags) to the span."""
    if isinstance(result, FileAttributes):
        span.set_attribute("s3storage.object_type", result.type.value)
        span.set_attribute("s3storage.object_size_bytes", result.size)
    elif isinstance(result, bool):
        span.set_attribute("s3storage.result", result)
    elif isinstance(result, list):
        span.set_attribute("s3storage.result_count", len(result))
