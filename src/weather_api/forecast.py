"""Synthetic weather forecast generation."""

from __future__ import annotations

import datetime
import logging
import math
import random

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .telemetry import REQUESTS_COUNTER, TEMPERATURE_HISTOGRAM, Telemetry

logger = logging.getLogger(__name__)

FORECAST_COUNT = 5
MIN_TEMPERATURE_C = -20
MAX_TEMPERATURE_C = 55  # exclusive
KELVIN_OFFSET = 273.15

SUMMARIES = (
    "Freezing",
    "Bracing",
    "Chilly",
    "Cool",
    "Mild",
    "Warm",
    "Balmy",
    "Hot",
    "Sweltering",
    "Scorching",
)

_default_rng = random.Random()


def celsius_to_fahrenheit(temperature_c: int) -> int:
    return 32 + math.floor(temperature_c / 0.5556)


def celsius_to_kelvin(temperature_c: int) -> float:
    return temperature_c + KELVIN_OFFSET


class WeatherForecast(BaseModel):
    """One day of forecast, serialized as ``{date, temperatureC, temperatureF, summary}``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    date: datetime.date
    temperature_c: int = Field(alias="temperatureC")
    summary: str

    @computed_field(alias="temperatureF")  # type: ignore[prop-decorator]
    @property
    def temperature_f(self) -> int:
        return celsius_to_fahrenheit(self.temperature_c)


def generate_forecast(
    telemetry: Telemetry,
    rng: random.Random | None = None,
    today: datetime.date | None = None,
) -> list[WeatherForecast]:
    """Generate a five day forecast, tracing the batch and each record.

    Every call opens one ``GenerateWeatherForecast`` span with one
    ``GenerateForecast`` child per record, increments the request counter
    once and records each temperature, in kelvin, into the histogram.
    """
    rng = rng or _default_rng
    today = today or datetime.date.today()

    with telemetry.start_span(
        "GenerateWeatherForecast",
        attributes={"operation": "weather-forecast", "forecast.count": FORECAST_COUNT},
    ) as span:
        logger.info("WeatherForecast endpoint called")
        telemetry.record_counter(REQUESTS_COUNTER, 1)

        forecasts: list[WeatherForecast] = []
        for index in range(1, FORECAST_COUNT + 1):
            with telemetry.start_span(
                "GenerateForecast", parent=span, attributes={"forecast.index": index}
            ):
                temperature = rng.randrange(MIN_TEMPERATURE_C, MAX_TEMPERATURE_C)
                forecasts.append(
                    WeatherForecast(
                        date=today + datetime.timedelta(days=index),
                        temperature_c=temperature,
                        summary=rng.choice(SUMMARIES),
                    )
                )
                # SDK histograms drop negative measurements
                telemetry.record_histogram(TEMPERATURE_HISTOGRAM, celsius_to_kelvin(temperature))

        avg_temp = sum(f.temperature_c for f in forecasts) / len(forecasts)
        telemetry.set_attributes(
            span,
            {"forecast.generated": len(forecasts), "forecast.avg_temp": round(avg_temp, 1)},
        )
        telemetry.add_event(
            span,
            "ForecastGenerated",
            {"forecast.count": len(forecasts), "forecast.avg_temp": avg_temp},
        )
        logger.info("Generated %d weather forecasts", len(forecasts))

    return forecasts
