"""OpenTelemetry integration for the weather API.

This module provides observability through Traces, Metrics, and Logs.
"""

from __future__ import annotations

from .logging import LoggingHandle, configure_logging, shutdown_logging
from .metrics import REQUESTS_COUNTER, TEMPERATURE_HISTOGRAM
from .provider import Telemetry, TelemetryConfig, init_telemetry, shutdown_telemetry

__all__ = [
    "LoggingHandle",
    "REQUESTS_COUNTER",
    "TEMPERATURE_HISTOGRAM",
    "Telemetry",
    "TelemetryConfig",
    "configure_logging",
    "init_telemetry",
    "shutdown_logging",
    "shutdown_telemetry",
]
