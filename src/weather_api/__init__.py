"""Synthetic weather forecast service instrumented with OpenTelemetry."""

__version__ = "1.0.0"
