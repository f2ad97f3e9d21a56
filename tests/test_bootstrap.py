from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from weather_api.bootstrap import HostState, ServiceHost
from weather_api.config import SigNozConfig
from weather_api.exceptions import ConfigurationError

from conftest import TelemetryHarness, build_harness

# Records are buffered until the handlers are flushed on shutdown.
_BUFFERED_LOGGING_YAML = """
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
  buffer:
    class: logging.handlers.MemoryHandler
    capacity: 10000
    flushLevel: 50
    target: file
root:
  level: INFO
  handlers: [buffer]
"""


@pytest.fixture
def log_file(tmp_path) -> Path:
    return tmp_path / "weather-api.log"


@pytest.fixture
def logging_config(tmp_path, log_file) -> Path:
    path = tmp_path / "logging.yaml"
    path.write_text(_BUFFERED_LOGGING_YAML.format(log_file=log_file.as_posix()), encoding="utf-8")
    return path


@pytest.fixture
def harnesses() -> List[TelemetryHarness]:
    return []


@pytest.fixture
def telemetry_factory(harnesses):
    def _factory(config):
        harness = build_harness(config)
        harnesses.append(harness)
        return harness.telemetry

    return _factory


def test_host_runs_and_shuts_down(
    app_config, logging_config, log_file, telemetry_factory, harnesses
):
    served = []
    host = ServiceHost(
        served.append,
        config=app_config,
        logging_config=logging_config,
        telemetry_factory=telemetry_factory,
    )
    assert host.state is HostState.CONFIGURING

    host.run()

    assert served == [host.app]
    assert host.state is HostState.SHUTTING_DOWN
    (harness,) = harnesses
    assert harness.telemetry.is_shutdown
    text = log_file.read_text(encoding="utf-8")
    assert "Starting up the application" in text
    assert "Application configured, starting web host" in text
    assert "Application shutting down" in text


def test_host_flushes_logs_when_serving_fails(
    app_config, logging_config, log_file, telemetry_factory, harnesses
):
    states = []

    def _crash(app):
        states.append(host.state)
        raise RuntimeError("listener crashed")

    host = ServiceHost(
        _crash,
        config=app_config,
        logging_config=logging_config,
        telemetry_factory=telemetry_factory,
    )

    with pytest.raises(RuntimeError, match="listener crashed"):
        host.run()

    assert states == [HostState.RUNNING]
    assert host.state is HostState.SHUTTING_DOWN
    assert harnesses[0].telemetry.is_shutdown
    text = log_file.read_text(encoding="utf-8")
    assert "Stopped program because of exception" in text
    assert "RuntimeError: listener crashed" in text


def test_host_fails_startup_without_collector_endpoint(
    app_config, logging_config, log_file, telemetry_factory, harnesses
):
    app_config.signoz = SigNozConfig(endpoint=None)
    served = []
    host = ServiceHost(
        served.append,
        config=app_config,
        logging_config=logging_config,
        telemetry_factory=telemetry_factory,
    )

    with pytest.raises(ConfigurationError):
        host.run()

    assert served == []
    assert harnesses == []
    assert host.telemetry is None
    assert host.state is HostState.SHUTTING_DOWN
    text = log_file.read_text(encoding="utf-8")
    assert "Stopped program because of exception" in text
    assert "SigNoz.Endpoint" in text


def test_host_runs_only_once(app_config, telemetry_factory, tmp_path):
    host = ServiceHost(
        lambda app: None,
        config=app_config,
        logging_config=tmp_path / "absent.yaml",
        telemetry_factory=telemetry_factory,
    )
    host.run()

    with pytest.raises(RuntimeError):
        host.run()
