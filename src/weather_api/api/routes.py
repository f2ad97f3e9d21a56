import logging
import random
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from ..forecast import WeatherForecast, generate_forecast
from ..telemetry import Telemetry
from ..telemetry.metrics import collect_process_stats
from .deps import get_rng, get_telemetry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/weatherforecast",
    response_model=list[WeatherForecast],
    name="GetWeatherForecast",
)
def get_weather_forecast(
    telemetry: Telemetry = Depends(get_telemetry),
    rng: random.Random | None = Depends(get_rng),
):
    return generate_forecast(telemetry, rng=rng)


@router.get("/metrics/custom", name="GetCustomMetrics")
def get_custom_metrics(telemetry: Telemetry = Depends(get_telemetry)):
    with telemetry.start_span("CustomMetrics", attributes={"operation": "custom-metrics"}):
        logger.info("Custom metrics endpoint called")
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **collect_process_stats(),
        }


@router.get("/health", response_class=PlainTextResponse, include_in_schema=False)
def health() -> str:
    return "Healthy"
