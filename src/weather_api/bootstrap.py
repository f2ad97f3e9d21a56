"""Process host: configures logging and telemetry, serves the app, cleans up.

The host moves through ``CONFIGURING -> RUNNING -> SHUTTING_DOWN``. Logging is
set up before anything else so that configuration failures are recorded, and
the shutdown step runs on every exit path so buffered logs and telemetry are
flushed even when serving ends with an error.
"""

from __future__ import annotations

import logging
import random
from enum import Enum
from pathlib import Path
from typing import Callable

from fastapi import FastAPI

from .config import AppConfig, load_config
from .server import create_root_app
from .telemetry import (
    LoggingHandle,
    Telemetry,
    TelemetryConfig,
    configure_logging,
    init_telemetry,
    shutdown_logging,
    shutdown_telemetry,
)

logger = logging.getLogger(__name__)

Runner = Callable[[FastAPI], None]
TelemetryFactory = Callable[[TelemetryConfig], Telemetry]


class HostState(str, Enum):
    CONFIGURING = "configuring"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


_TRANSITIONS = {
    HostState.CONFIGURING: {HostState.RUNNING, HostState.SHUTTING_DOWN},
    HostState.RUNNING: {HostState.SHUTTING_DOWN},
    HostState.SHUTTING_DOWN: set(),
}


def _global_telemetry(config: TelemetryConfig) -> Telemetry:
    return init_telemetry(config, set_global=True)


class ServiceHost:
    """Runs the service once, from configuration through shutdown."""

    def __init__(
        self,
        runner: Runner,
        *,
        config_path: Path | None = None,
        config: AppConfig | None = None,
        logging_config: Path | None = None,
        log_level: str = "info",
        telemetry_factory: TelemetryFactory = _global_telemetry,
        rng: random.Random | None = None,
    ) -> None:
        self._runner = runner
        self._config_path = config_path
        self._logging_config = logging_config
        self._log_level = log_level
        self._telemetry_factory = telemetry_factory
        self._rng = rng
        self.state = HostState.CONFIGURING
        self.config = config
        self.telemetry: Telemetry | None = None
        self.app: FastAPI | None = None
        self._logging: LoggingHandle | None = None

    def _transition(self, target: HostState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid host transition {self.state.value} -> {target.value}")
        logger.debug("Host state %s -> %s", self.state.value, target.value)
        self.state = target

    def _configure(self) -> FastAPI:
        if self.config is None:
            self.config = load_config(self._config_path)
        else:
            self.config.check_validity()
        self.telemetry = self._telemetry_factory(self.config.telemetry_config())
        if self.telemetry.logger_provider is not None and self._logging is not None:
            self._logging.attach_otel(self.telemetry.logger_provider)
        return create_root_app(self.config, self.telemetry, rng=self._rng)

    def run(self) -> None:
        """Configure and serve until the runner returns, then shut down.

        Raises:
            ConfigurationError: If a required setting is missing or malformed.
            Exception: Anything raised while serving, after it has been logged.
        """
        if self.state is not HostState.CONFIGURING:
            raise RuntimeError("ServiceHost.run() can only be called once")
        self._logging = configure_logging(self._logging_config, self._log_level)
        try:
            logger.info("Starting up the application")
            self.app = self._configure()
            self._transition(HostState.RUNNING)
            logger.info("Application configured, starting web host")
            self._runner(self.app)
        except Exception:
            logger.exception("Stopped program because of exception")
            raise
        finally:
            self._transition(HostState.SHUTTING_DOWN)
            self._shutdown()

    def _shutdown(self) -> None:
        logger.info("Application shutting down")
        if self._logging is not None:
            self._logging.detach_otel()
        try:
            shutdown_telemetry(self.telemetry)
        except Exception:
            logger.exception("Failed to flush telemetry on shutdown")
        finally:
            if self._logging is not None:
                shutdown_logging(self._logging)
                self._logging = None
