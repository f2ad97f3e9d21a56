from __future__ import annotations

import logging
import random
from pathlib import Path

from opentelemetry.sdk._logs import LoggingHandler

from weather_api.forecast import generate_forecast
from weather_api.telemetry import configure_logging, shutdown_logging

_FILE_LOGGING_YAML = """
version: 1
disable_existing_loggers: false
formatters:
  otel:
    (): weather_api.telemetry.logging.OTelFormatter
handlers:
  file:
    class: logging.FileHandler
    filename: {log_file}
    formatter: otel
root:
  level: INFO
  handlers: [file]
"""


def _write_logging_config(tmp_path: Path, log_file: Path) -> Path:
    path = tmp_path / "logging.yaml"
    path.write_text(_FILE_LOGGING_YAML.format(log_file=log_file.as_posix()), encoding="utf-8")
    return path


def _otel_handlers() -> list:
    return [h for h in logging.getLogger().handlers if isinstance(h, LoggingHandler)]


def test_log_lines_carry_the_active_trace_context(telemetry_harness, tmp_path):
    log_file = tmp_path / "weather-api.log"
    handle = configure_logging(_write_logging_config(tmp_path, log_file))
    try:
        assert _otel_handlers() == []
        handle.attach_otel(telemetry_harness.telemetry.logger_provider)
        generate_forecast(telemetry_harness.telemetry, rng=random.Random(17))
    finally:
        shutdown_logging(handle)

    (root,) = telemetry_harness.finished_spans("GenerateWeatherForecast")
    trace_id = format(root.context.trace_id, "032x")
    span_id = format(root.context.span_id, "016x")
    lines = [
        line
        for line in log_file.read_text(encoding="utf-8").splitlines()
        if "WeatherForecast endpoint called" in line
    ]
    assert len(lines) == 1
    assert f"[trace_id={trace_id} span_id={span_id}]" in lines[0]

    telemetry_harness.telemetry.logger_provider.force_flush()
    exported = [
        data.log_record
        for data in telemetry_harness.logs.get_finished_logs()
        if data.log_record.body == "WeatherForecast endpoint called"
    ]
    assert len(exported) == 1
    assert exported[0].trace_id == root.context.trace_id
    assert _otel_handlers() == []


def test_records_outside_a_span_get_zero_ids(tmp_path):
    log_file = tmp_path / "weather-api.log"
    handle = configure_logging(_write_logging_config(tmp_path, log_file))
    try:
        logging.getLogger("weather_api.tests").info("no active span")
    finally:
        shutdown_logging(handle)

    text = log_file.read_text(encoding="utf-8")
    assert f"[trace_id={'0' * 32} span_id={'0' * 16}] no active span" in text
