"""FastAPI application factory for the weather API."""

from __future__ import annotations

import random

from fastapi import FastAPI
from fastapi.middleware.httpsredirect import HTTPSRedirectMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from . import __version__
from .api.routes import router
from .config import AppConfig
from .telemetry import Telemetry


def create_root_app(
    config: AppConfig,
    telemetry: Telemetry,
    *,
    rng: random.Random | None = None,
) -> FastAPI:
    """Build the application and instrument it with the given telemetry providers.

    API docs are only published in development.
    """
    docs = config.is_development
    app = FastAPI(
        title=config.service.name or "weather-api",
        version=config.service.version or __version__,
        openapi_url="/openapi.json" if docs else None,
        docs_url="/docs" if docs else None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.telemetry = telemetry
    app.state.rng = rng
    if config.https_redirect:
        app.add_middleware(HTTPSRedirectMiddleware)
    app.include_router(router)
    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=telemetry.tracer_provider,
        meter_provider=telemetry.meter_provider,
        excluded_urls="health",
    )
    return app
