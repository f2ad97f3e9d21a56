"""OpenTelemetry provider setup.

Builds the tracer, meter and logger providers for one process and wraps them
in a :class:`Telemetry` handle that is passed explicitly to request handlers.
Export happens on the SDK's background workers; nothing here blocks the
request path.
"""

from __future__ import annotations

import logging
import threading
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple
from urllib.parse import urlparse

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, LogExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.trace import Span

from ..exceptions import ConfigurationError
from .metrics import InstrumentRegistry, ProcessMetricsCollector
from .tracing import add_span_event, set_span_attributes, span_scope

logger = logging.getLogger(__name__)

_VALID_SCHEMES = ("http", "https")


@dataclass
class TelemetryConfig:
    """Settings for the OTLP/gRPC export pipeline."""

    service_name: str | None
    service_version: str | None
    otlp_endpoint: str | None
    otlp_headers: str | None = None
    resource_attributes: Dict[str, str] = field(default_factory=dict)
    metric_export_interval_millis: int = 60_000
    shutdown_timeout_millis: int = 5_000
    export_logs: bool = True

    def validate(self) -> None:
        if not self.service_name:
            raise ConfigurationError("Service.Name")
        if not self.service_version:
            raise ConfigurationError("Service.Version")
        validate_endpoint(self.otlp_endpoint)
        parse_headers(self.otlp_headers)


def validate_endpoint(endpoint: str | None) -> str:
    """Return the endpoint if it is an absolute collector URL.

    Raises:
        ConfigurationError: If the endpoint is absent or malformed.
    """
    if not endpoint or not endpoint.strip():
        raise ConfigurationError("SigNoz.Endpoint")
    endpoint = endpoint.strip()
    parsed = urlparse(endpoint)
    if parsed.scheme not in _VALID_SCHEMES:
        raise ConfigurationError(
            "SigNoz.Endpoint", f"must use one of {', '.join(_VALID_SCHEMES)}: {endpoint!r}"
        )
    try:
        port = parsed.port
    except ValueError as e:
        raise ConfigurationError("SigNoz.Endpoint", f"has an invalid port: {endpoint!r}") from e
    if not parsed.hostname or port == 0:
        raise ConfigurationError("SigNoz.Endpoint", f"must include a host: {endpoint!r}")
    return endpoint


def parse_headers(headers: str | None) -> Tuple[Tuple[str, str], ...]:
    """Parse ``key=value`` pairs separated by commas into gRPC metadata.

    gRPC requires lower-case metadata keys, so keys are normalised.
    """
    if not headers or not headers.strip():
        return ()
    pairs = []
    for item in headers.split(","):
        if not item.strip():
            continue
        key, sep, value = item.partition("=")
        key = key.strip().lower()
        if not sep or not key:
            raise ConfigurationError("SigNoz.Headers", f"has a malformed entry: {item.strip()!r}")
        pairs.append((key, value.strip()))
    return tuple(pairs)


class Telemetry:
    """Process-wide telemetry handle.

    Owns the providers built by :func:`init_telemetry` and exposes the small
    surface request handlers use: scoped spans, counters and histograms.
    Recording failures are logged and never raised to the caller.
    """

    def __init__(
        self,
        config: TelemetryConfig,
        tracer_provider: TracerProvider,
        meter_provider: MeterProvider,
        logger_provider: LoggerProvider | None,
    ) -> None:
        self.config = config
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.logger_provider = logger_provider
        self.tracer = tracer_provider.get_tracer(
            config.service_name or __name__, config.service_version
        )
        self.meter = meter_provider.get_meter(
            config.service_name or __name__, config.service_version
        )
        self.instruments = InstrumentRegistry(self.meter)
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def start_span(
        self,
        name: str,
        parent: Span | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> AbstractContextManager[Span]:
        return span_scope(self.tracer, name, parent=parent, attributes=attributes)

    def record_counter(
        self, name: str, delta: int = 1, attributes: Mapping[str, Any] | None = None
    ) -> None:
        try:
            self.instruments.counter(name).add(delta, attributes=attributes)
        except Exception:
            logger.warning("Failed to record counter %s", name, exc_info=True)

    def record_histogram(
        self, name: str, value: int | float, attributes: Mapping[str, Any] | None = None
    ) -> None:
        try:
            self.instruments.histogram(name).record(value, attributes=attributes)
        except Exception:
            logger.warning("Failed to record histogram %s", name, exc_info=True)

    def set_attributes(self, span: Span, attributes: Mapping[str, Any]) -> None:
        set_span_attributes(span, attributes)

    def add_event(
        self, span: Span, name: str, attributes: Mapping[str, Any] | None = None
    ) -> None:
        add_span_event(span, name, attributes)

    def force_flush(self, timeout_millis: int | None = None) -> bool:
        timeout = self.config.shutdown_timeout_millis if timeout_millis is None else timeout_millis
        flushed = self.tracer_provider.force_flush(timeout)
        flushed = self.meter_provider.force_flush(timeout) and flushed
        if self.logger_provider is not None:
            flushed = self.logger_provider.force_flush(timeout) and flushed
        return flushed

    def shutdown(self) -> None:
        """Flush pending telemetry and release the providers.

        The flush and provider shutdowns run on a worker thread that is given
        ``shutdown_timeout_millis`` to finish; exports still pending after
        that are abandoned. Each provider is shut down even if an earlier one
        fails; the first failure is re-raised afterwards.
        """
        if self._shutdown:
            return
        self._shutdown = True
        timeout = self.config.shutdown_timeout_millis
        errors: list[Exception] = []
        worker = threading.Thread(
            target=self._drain, args=(timeout, errors), name="telemetry-shutdown", daemon=True
        )
        worker.start()
        worker.join(timeout=timeout / 1000)
        if worker.is_alive():
            logger.warning("Telemetry export did not finish within %d ms, dropping it", timeout)
        if errors:
            raise errors[0]

    def _drain(self, timeout: int, errors: list[Exception]) -> None:
        steps = [
            ("flush", lambda: self.force_flush(timeout)),
            ("tracer", lambda: self.tracer_provider.shutdown()),
            ("meter", lambda: self.meter_provider.shutdown(timeout_millis=timeout)),
        ]
        if self.logger_provider is not None:
            steps.append(("logger", lambda: self.logger_provider.shutdown()))
        for name, step in steps:
            try:
                step()
            except Exception as e:
                logger.error("Failed to shut down telemetry (%s): %s", name, e)
                errors.append(e)


def _build_resource(config: TelemetryConfig) -> Resource:
    attributes: Dict[str, Any] = dict(config.resource_attributes)
    attributes[SERVICE_NAME] = config.service_name
    attributes[SERVICE_VERSION] = config.service_version
    return Resource.create(attributes)


def _exporter_options(config: TelemetryConfig) -> Dict[str, Any]:
    endpoint = validate_endpoint(config.otlp_endpoint)
    options: Dict[str, Any] = {
        "endpoint": endpoint,
        "insecure": urlparse(endpoint).scheme != "https",
    }
    headers = parse_headers(config.otlp_headers)
    if headers:
        options["headers"] = headers
    return options


def init_telemetry(
    config: TelemetryConfig,
    *,
    span_exporter: SpanExporter | None = None,
    metric_reader: MetricReader | None = None,
    log_exporter: LogExporter | None = None,
    set_global: bool = False,
) -> Telemetry:
    """Initialize tracing, metrics and log export for the process.

    Args:
        config: Telemetry settings. Validated before anything is created.
        span_exporter: Replaces the OTLP span exporter (tests use an in-memory one).
        metric_reader: Replaces the periodic OTLP metric reader.
        log_exporter: Replaces the OTLP log exporter.
        set_global: Also register the providers as the global OTel providers.

    Returns:
        The telemetry handle.

    Raises:
        ConfigurationError: If a required setting is missing or malformed.
    """
    config.validate()
    options = _exporter_options(config)
    resource = _build_resource(config)

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(
        BatchSpanProcessor(span_exporter or OTLPSpanExporter(**options))
    )

    if metric_reader is None:
        metric_reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(**options),
            export_interval_millis=config.metric_export_interval_millis,
        )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])

    logger_provider = None
    if config.export_logs or log_exporter is not None:
        logger_provider = LoggerProvider(resource=resource)
        logger_provider.add_log_record_processor(
            BatchLogRecordProcessor(log_exporter or OTLPLogExporter(**options))
        )

    if set_global:
        trace.set_tracer_provider(tracer_provider)
        metrics.set_meter_provider(meter_provider)

    telemetry = Telemetry(config, tracer_provider, meter_provider, logger_provider)
    ProcessMetricsCollector(telemetry.meter)
    logger.info(
        "Telemetry initialized for %s %s, exporting to %s",
        config.service_name,
        config.service_version,
        options["endpoint"],
    )
    return telemetry


def shutdown_telemetry(telemetry: Telemetry | None) -> None:
    """Shut down telemetry if it was initialized."""
    if telemetry is not None:
        telemetry.shutdown()
