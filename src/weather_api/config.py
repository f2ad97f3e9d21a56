"""Configuration helpers for the weather API service.

Settings are read from a YAML file and may be overridden by environment
variables (highest priority):

- SERVICE_NAME / SERVICE_VERSION: service identity reported to the collector
- SIGNOZ_ENDPOINT: OTLP/gRPC collector URL, e.g. ``http://localhost:4317``
- SIGNOZ_HEADERS: exporter metadata, e.g. ``signoz-ingestion-key=<key>``
- WEATHER_API_ENV: deployment environment (``development`` enables API docs)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .exceptions import ConfigurationError
from .telemetry.provider import TelemetryConfig


@dataclass
class ServiceConfig:
    name: str | None = None
    version: str | None = None


@dataclass
class SigNozConfig:
    """Collector connection settings."""

    endpoint: str | None = None
    headers: str | None = None


@dataclass
class AppConfig:
    """Runtime configuration for the FastAPI service."""

    service: ServiceConfig = field(default_factory=ServiceConfig)
    signoz: SigNozConfig = field(default_factory=SigNozConfig)
    environment: str = "production"
    https_redirect: bool = False
    metric_export_interval_millis: int = 60_000
    shutdown_timeout_millis: int = 5_000
    resource_attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    def apply_env_overrides(self, environ: Mapping[str, str] | None = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        if env.get("SERVICE_NAME"):
            self.service.name = env["SERVICE_NAME"]
        if env.get("SERVICE_VERSION"):
            self.service.version = env["SERVICE_VERSION"]
        if env.get("SIGNOZ_ENDPOINT"):
            self.signoz.endpoint = env["SIGNOZ_ENDPOINT"]
        if env.get("SIGNOZ_HEADERS"):
            self.signoz.headers = env["SIGNOZ_HEADERS"]
        if env.get("WEATHER_API_ENV"):
            self.environment = env["WEATHER_API_ENV"]
        return self

    def telemetry_config(self) -> TelemetryConfig:
        return TelemetryConfig(
            service_name=self.service.name,
            service_version=self.service.version,
            otlp_endpoint=self.signoz.endpoint,
            otlp_headers=self.signoz.headers,
            resource_attributes={
                "deployment.environment": self.environment,
                **self.resource_attributes,
            },
            metric_export_interval_millis=self.metric_export_interval_millis,
            shutdown_timeout_millis=self.shutdown_timeout_millis,
        )

    def check_validity(self) -> None:
        """Raise ConfigurationError when a required setting is missing or malformed."""
        self.telemetry_config().validate()
        if self.metric_export_interval_millis <= 0:
            raise ConfigurationError("metric_export_interval_millis", "must be positive")
        if self.shutdown_timeout_millis <= 0:
            raise ConfigurationError("shutdown_timeout_millis", "must be positive")


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(key, "must be a mapping")
    return value


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


def _bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(key, f"must be a boolean, got {value!r}")


def _int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(key, f"must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(key, f"must be an integer, got {value!r}") from e


def parse_config(data: Mapping[str, Any]) -> AppConfig:
    """Build an AppConfig from an already-parsed mapping."""
    service = _section(data, "service")
    signoz = _section(data, "signoz")
    config = AppConfig(
        service=ServiceConfig(
            name=_optional_str(service.get("name")),
            version=_optional_str(service.get("version")),
        ),
        signoz=SigNozConfig(
            endpoint=_optional_str(signoz.get("endpoint")),
            headers=_optional_str(signoz.get("headers")),
        ),
        resource_attributes={
            str(k): str(v) for k, v in _section(data, "resource_attributes").items()
        },
    )
    if "environment" in data:
        config.environment = str(data["environment"])
    if "https_redirect" in data:
        config.https_redirect = _bool("https_redirect", data["https_redirect"])
    if "metric_export_interval_millis" in data:
        config.metric_export_interval_millis = _int(
            "metric_export_interval_millis", data["metric_export_interval_millis"]
        )
    if "shutdown_timeout_millis" in data:
        config.shutdown_timeout_millis = _int(
            "shutdown_timeout_millis", data["shutdown_timeout_millis"]
        )
    return config


def load_yaml_config(path: Path) -> AppConfig:
    """Load configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing or not a mapping.
    """
    if not path.exists():
        raise ConfigurationError(str(path), "does not exist")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(str(path), "must contain a mapping")
    return parse_config(data)


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load the file (if any), apply environment overrides and validate."""
    config = load_yaml_config(path) if path is not None else AppConfig()
    config.apply_env_overrides(environ)
    config.check_validity()
    return config
