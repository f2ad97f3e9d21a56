"""Exception types raised by the weather API service."""

from __future__ import annotations


class WeatherApiError(Exception):
    """Base class for errors raised by the service."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail


class ConfigurationError(WeatherApiError):
    """A required setting is missing or malformed; startup cannot continue."""

    def __init__(self, setting: str, reason: str = "is required") -> None:
        detail = f"Configuration setting '{setting}' {reason}"
        super().__init__(detail)
        self.setting = setting
        self.reason = reason
