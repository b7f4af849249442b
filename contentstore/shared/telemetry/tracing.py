"""Span helpers for storage operations."""

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

# Parameters copied onto spans as ``storage.<name>``. Payloads, metadata and
# credentials are never recorded.
_RECORDED_PARAMS = frozenset({
    "key", "source_key", "destination_key", "folder", "file_name", "prefix",
    "content_type", "operation", "expires_in",
})


def _record_arguments(
    span: trace.Span,
    signature: inspect.Signature,
    args: tuple[Any, ...],
    kwargs: dict[str, Any],
) -> None:
    try:
        bound = signature.bind_partial(*args, **kwargs)
    except TypeError:
        return
    for name, value in bound.arguments.items():
        if name in _RECORDED_PARAMS and value is not None:
            span.set_attribute(f"storage.{name}", str(value))


def _record_failure(span: trace.Span, error: Exception) -> None:
    span.set_status(Status(StatusCode.ERROR, str(error)))
    span.record_exception(error)
    error_code = getattr(error, "error_code", None)
    if error_code:
        span.set_attribute("storage.error_code", error_code)


def traced(
    operation_name: str | None = None,
    attributes: dict | None = None,
) -> Callable:
    """Decorator that runs a function (sync or async) inside a span.

    Positional and keyword arguments named in the allowlist (key,
    source_key, content_type, ...) become ``storage.*`` attributes. Failures
    set ERROR status and, for contentstore exceptions, ``storage.error_code``.

    Args:
        operation_name: Span name (defaults to module.qualname).
        attributes: Static attributes set on every span, e.g. the provider.

    Returns:
        Decorated function.
    """

    def decorator(func: Callable) -> Callable:
        tracer = trace.get_tracer(__name__)
        span_name = operation_name or f"{func.__module__}.{func.__qualname__}"
        signature = inspect.signature(func)
        static_attributes = dict(attributes or {})

        def _start_span():
            return tracer.start_as_current_span(
                span_name,
                attributes=static_attributes,
                record_exception=False,
                set_status_on_exception=False,
            )

        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with _start_span() as span:
                    _record_arguments(span, signature, args, kwargs)
                    try:
                        result = await func(*args, **kwargs)
                    except Exception as e:
                        _record_failure(span, e)
                        raise
                    span.set_status(Status(StatusCode.OK))
                    return result

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with _start_span() as span:
                _record_arguments(span, signature, args, kwargs)
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    _record_failure(span, e)
                    raise
                span.set_status(Status(StatusCode.OK))
                return result

        return sync_wrapper

    return decorator


def add_span_attributes(**attributes: str | int | float | bool) -> None:
    """Add attributes to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        for key, value in attributes.items():
            span.set_attribute(key, value)


def add_span_event(name: str, attributes: dict | None = None) -> None:
    """Add an event to the current span."""
    span = trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name, attributes=attributes or {})
