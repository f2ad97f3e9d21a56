import random

from fastapi import Request

from ..telemetry import Telemetry


def get_telemetry(request: Request) -> Telemetry:
    return request.app.state.telemetry


def get_rng(request: Request) -> random.Random | None:
    return getattr(request.app.state, "rng", None)
