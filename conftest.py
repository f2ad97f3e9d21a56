from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List

import pytest
from opentelemetry.sdk._logs.export import InMemoryLogExporter
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from weather_api.config import AppConfig, ServiceConfig, SigNozConfig
from weather_api.telemetry import Telemetry, TelemetryConfig, init_telemetry

TEST_ENDPOINT = "http://localhost:4317"


@dataclass
class TelemetryHarness:
    """A Telemetry handle wired to in-memory exporters."""

    telemetry: Telemetry
    spans: InMemorySpanExporter
    metrics: InMemoryMetricReader
    logs: InMemoryLogExporter

    def finished_spans(self, name: str | None = None) -> List[ReadableSpan]:
        self.telemetry.tracer_provider.force_flush()
        spans = list(self.spans.get_finished_spans())
        if name is not None:
            spans = [span for span in spans if span.name == name]
        return spans

    def metric_points(self, name: str) -> List[Any]:
        data = self.metrics.get_metrics_data()
        points: List[Any] = []
        if data is None:
            return points
        for resource_metrics in data.resource_metrics:
            for scope_metrics in resource_metrics.scope_metrics:
                for metric in scope_metrics.metrics:
                    if metric.name == name:
                        points.extend(metric.data.data_points)
        return points

    def counter_total(self, name: str) -> int:
        return sum(point.value for point in self.metric_points(name))

    def histogram_count(self, name: str) -> int:
        return sum(point.count for point in self.metric_points(name))


def build_harness(config: TelemetryConfig) -> TelemetryHarness:
    spans = InMemorySpanExporter()
    reader = InMemoryMetricReader()
    logs = InMemoryLogExporter()
    telemetry = init_telemetry(
        config, span_exporter=spans, metric_reader=reader, log_exporter=logs
    )
    return TelemetryHarness(telemetry=telemetry, spans=spans, metrics=reader, logs=logs)


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        service=ServiceConfig(name="weather-api-test", version="0.0.1"),
        signoz=SigNozConfig(endpoint=TEST_ENDPOINT),
        environment="development",
    )


@pytest.fixture
def telemetry_harness(app_config):
    harness = build_harness(app_config.telemetry_config())
    yield harness
    harness.telemetry.shutdown()


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "SERVICE_NAME",
        "SERVICE_VERSION",
        "SIGNOZ_ENDPOINT",
        "SIGNOZ_HEADERS",
        "WEATHER_API_ENV",
    ):
        monkeypatch.delenv(name, raising=False)
