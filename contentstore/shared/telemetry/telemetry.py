"""OpenTelemetry tracing configuration for the storage clients.

Spans from ``traced`` provider operations are exported to the console
(development) or an OTLP collector. The outbound clients underneath them,
httpx for Backblaze B2 and botocore for S3, are instrumented so each HTTP
call appears as a child span; log records gain trace and span ids.
"""

import logging
import threading

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
)
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

from contentstore.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Outbound clients used by the providers: (label, instrumentor class)
_CLIENT_INSTRUMENTORS = (
    ("httpx", HTTPXClientInstrumentor),
    ("botocore", BotocoreInstrumentor),
)


def _build_exporter(exporter_type: str, otlp_endpoint: str | None) -> SpanExporter | None:
    """Return the span exporter for exporter_type, or None for "none"."""
    if exporter_type == "none":
        return None
    if exporter_type == "otlp":
        if otlp_endpoint:
            return OTLPSpanExporter(
                endpoint=otlp_endpoint, insecure=otlp_endpoint.startswith("http://")
            )
        logger.warning("OTLP exporter selected without TELEMETRY_OTLP_ENDPOINT, using console")
    elif exporter_type != "console":
        logger.warning("Unknown exporter type '%s', using console", exporter_type)
    return ConsoleSpanExporter()


class TelemetryConfig:
    """Tracer provider, exporter, and client instrumentation for one process."""

    def __init__(
        self,
        service_name: str,
        service_version: str,
        enabled: bool = True,
        environment: str = "development",
    ) -> None:
        self.service_name = service_name
        self.service_version = service_version
        self.enabled = enabled
        self.environment = environment
        self.tracer_provider: TracerProvider | None = None
        self.instrumented: list[str] = []

    def setup_telemetry(
        self,
        exporter_type: str = "console",
        otlp_endpoint: str | None = None,
        sample_rate: float = 1.0,
    ) -> TracerProvider | None:
        """Create the tracer provider and make it global.

        Args:
            exporter_type: "console", "otlp", or "none".
            otlp_endpoint: OTLP gRPC endpoint (e.g. http://localhost:4317).
            sample_rate: Sampling ratio between 0.0 and 1.0.

        Returns:
            TracerProvider, or None if telemetry is disabled or setup failed.
        """
        if not self.enabled:
            logger.info("Telemetry disabled")
            return None
        try:
            provider = TracerProvider(
                resource=Resource(
                    attributes={
                        SERVICE_NAME: self.service_name,
                        SERVICE_VERSION: self.service_version,
                        "deployment.environment": self.environment,
                    }
                ),
                sampler=TraceIdRatioBased(sample_rate),
            )
            exporter = _build_exporter(exporter_type, otlp_endpoint)
            if exporter is not None:
                provider.add_span_processor(BatchSpanProcessor(exporter))
            trace.set_tracer_provider(provider)
        except Exception as e:
            logger.exception("Failed to initialize telemetry: %s", e)
            return None

        self.tracer_provider = provider
        logger.info(
            "OpenTelemetry initialized: service=%s, version=%s, exporter=%s",
            self.service_name,
            self.service_version,
            exporter_type,
        )
        return provider

    def instrument_clients(self) -> None:
        """Instrument the httpx (B2) and botocore (S3) clients."""
        if not self.tracer_provider:
            return
        for label, instrumentor in _CLIENT_INSTRUMENTORS:
            try:
                instrumentor().instrument(tracer_provider=self.tracer_provider)
            except Exception as e:
                logger.exception("Failed to instrument %s: %s", label, e)
                continue
            self.instrumented.append(label)
            logger.info("%s instrumentation enabled", label)

    def instrument_logging(self) -> None:
        """Add trace_id and span_id to log records."""
        if not self.tracer_provider:
            return
        try:
            LoggingInstrumentor().instrument(
                tracer_provider=self.tracer_provider,
                set_logging_format=True,
            )
        except Exception as e:
            logger.exception("Failed to instrument logging: %s", e)
            return
        self.instrumented.append("logging")

    def shutdown(self) -> None:
        """Flush pending spans and shut the provider down."""
        if self.tracer_provider:
            try:
                self.tracer_provider.shutdown()
                logger.info("Telemetry shutdown complete")
            except Exception as e:
                logger.exception("Error during telemetry shutdown: %s", e)


_telemetry: TelemetryConfig | None = None
_telemetry_lock = threading.RLock()


def get_telemetry() -> TelemetryConfig | None:
    """Return the process telemetry instance, if one was registered."""
    with _telemetry_lock:
        return _telemetry


def set_telemetry(telemetry: TelemetryConfig) -> None:
    """Register the process telemetry instance."""
    global _telemetry
    with _telemetry_lock:
        _telemetry = telemetry


def setup_telemetry_from_settings(settings: Settings | None = None) -> TelemetryConfig:
    """Build, initialize, instrument, and register telemetry from settings."""
    s = settings or get_settings()
    telemetry = TelemetryConfig(
        service_name=s.app_name,
        service_version=s.app_version,
        enabled=s.telemetry_enabled,
        environment=s.telemetry_environment,
    )
    telemetry.setup_telemetry(
        exporter_type=s.telemetry_exporter,
        otlp_endpoint=s.telemetry_otlp_endpoint,
        sample_rate=s.telemetry_sample_rate,
    )
    telemetry.instrument_clients()
    telemetry.instrument_logging()
    set_telemetry(telemetry)
    return telemetry
