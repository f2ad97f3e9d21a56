"""Logging configuration with OpenTelemetry integration.

Logging is configured from a YAML file in ``logging.config.dictConfig``
format. Every record is stamped with the active trace and span ids, and once
telemetry is up an OTel handler forwards records to the collector.
"""

from __future__ import annotations

import logging
import logging.config
import logging.handlers
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Tuple

import yaml
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler

logger = logging.getLogger(__name__)

DEFAULT_LOG_FORMAT = (
    "%(asctime)s %(levelname)s [%(name)s] "
    "[trace_id=%(otelTraceID)s span_id=%(otelSpanID)s] "
    "%(message)s"
)


class OTelFormatter(logging.Formatter):
    """Formatter that tolerates records created outside the instrumented factory."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None, **kwargs: Any) -> None:
        super().__init__(fmt or DEFAULT_LOG_FORMAT, datefmt, **kwargs)

    def format(self, record: logging.LogRecord) -> str:
        # the instrumentor stamps "0" when no span is active
        if getattr(record, "otelTraceID", "0") == "0":
            record.otelTraceID = "0" * 32
        if getattr(record, "otelSpanID", "0") == "0":
            record.otelSpanID = "0" * 16
        if not hasattr(record, "otelServiceName"):
            record.otelServiceName = ""
        return super().format(record)


@dataclass
class LoggingHandle:
    """Handlers installed by :func:`configure_logging`, released by :func:`shutdown_logging`."""

    installed: List[Tuple[logging.Logger, logging.Handler]] = field(default_factory=list)
    otel_handler: LoggingHandler | None = None
    instrumented: bool = False

    def attach_otel(self, logger_provider: LoggerProvider) -> None:
        """Forward records from the root logger to the OTLP log pipeline."""
        if self.otel_handler is not None:
            return
        self.otel_handler = LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
        logging.getLogger().addHandler(self.otel_handler)

    def detach_otel(self) -> None:
        if self.otel_handler is None:
            return
        logging.getLogger().removeHandler(self.otel_handler)
        self.otel_handler = None


def load_logging_config(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Logging configuration in {path} must be a mapping")
    data.setdefault("version", 1)
    data.setdefault("disable_existing_loggers", False)
    return data


def configure_logging(config_file: Path | None = None, log_level: str = "INFO") -> LoggingHandle:
    """Configure process logging.

    Args:
        config_file: YAML file in ``dictConfig`` format. When it is missing a
            stream handler with the trace-aware format is installed instead.
        log_level: Root level used when no configuration file is available.

    Returns:
        A handle that must be passed to :func:`shutdown_logging` on exit.
    """
    handle = LoggingHandle()

    instrumentor = LoggingInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        # the root handler is attached explicitly by LoggingHandle.attach_otel
        instrumentor.instrument(
            set_logging_format=False,
            inject_trace_context=True,
            enable_log_auto_instrumentation=False,
        )
        handle.instrumented = True

    if config_file is not None and config_file.exists():
        config = load_logging_config(config_file)
        names = list(config.get("loggers", {}))
        before = _handler_pairs(names)
        logging.config.dictConfig(config)
        handle.installed = [pair for pair in _handler_pairs(names) if pair not in before]
        logger.debug("Logging configured from %s", config_file)
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(OTelFormatter())
        root_logger = logging.getLogger()
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        root_logger.addHandler(handler)
        handle.installed = [(root_logger, handler)]
        if config_file is not None:
            logger.warning("Logging configuration %s not found, logging to stderr", config_file)
    return handle


def shutdown_logging(handle: LoggingHandle) -> None:
    """Flush and release every handler installed for this process run."""
    if handle.otel_handler is not None:
        handle.otel_handler.flush()
        handle.detach_otel()
    for owner, handler in handle.installed:
        # MemoryHandler forgets its target on close
        target = handler.target if isinstance(handler, logging.handlers.MemoryHandler) else None
        try:
            handler.flush()
            handler.close()
            if target is not None:
                target.close()
        finally:
            owner.removeHandler(handler)
    handle.installed = []
    if handle.instrumented:
        LoggingInstrumentor().uninstrument()
        handle.instrumented = False


def _handler_pairs(names: List[str]) -> List[Tuple[logging.Logger, logging.Handler]]:
    loggers = [logging.getLogger()] + [logging.getLogger(name) for name in names]
    return [(owner, handler) for owner in loggers for handler in owner.handlers]
