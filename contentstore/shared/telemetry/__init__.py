"""Shared telemetry: logging setup, OpenTelemetry config, and tracing helpers."""

from contentstore.shared.telemetry.logging import get_logger, setup_logging
from contentstore.shared.telemetry.telemetry import (
    TelemetryConfig,
    get_telemetry,
    set_telemetry,
    setup_telemetry_from_settings,
)
from contentstore.shared.telemetry.tracing import (
    add_span_attributes,
    add_span_event,
    traced,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "TelemetryConfig",
    "get_telemetry",
    "set_telemetry",
    "setup_telemetry_from_settings",
    "traced",
    "add_span_attributes",
    "add_span_event",
]
