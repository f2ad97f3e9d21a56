"""Metrics utilities for the weather API.

Provides the named instruments the service records into and the process
resource gauges exported alongside them.
"""

from __future__ import annotations

import gc
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable

import psutil
from opentelemetry.metrics import CallbackOptions, Counter, Histogram, Meter, Observation

logger = logging.getLogger(__name__)

REQUESTS_COUNTER = "weather_requests"
TEMPERATURE_HISTOGRAM = "weather_temperature"


@dataclass(frozen=True)
class InstrumentSpec:
    unit: str = ""
    description: str = ""


# Known instruments; any other name is created with an empty unit/description.
INSTRUMENT_SPECS: Dict[str, InstrumentSpec] = {
    REQUESTS_COUNTER: InstrumentSpec(
        unit="requests",
        description="Number of weather forecast requests",
    ),
    TEMPERATURE_HISTOGRAM: InstrumentSpec(
        unit="K",
        description="Temperature values in weather forecasts, in kelvin",
    ),
}


class InstrumentRegistry:
    """Creates counters and histograms on first use and caches them by name.

    Instruments are shared by every request; the SDK aggregates concurrent
    ``add``/``record`` calls, so only instrument creation needs a lock.
    """

    def __init__(self, meter: Meter) -> None:
        self._meter = meter
        self._counters: Dict[str, Counter] = {}
        self._histograms: Dict[str, Histogram] = {}
        self._lock = threading.Lock()

    def counter(self, name: str) -> Counter:
        instrument = self._counters.get(name)
        if instrument is None:
            with self._lock:
                instrument = self._counters.get(name)
                if instrument is None:
                    spec = INSTRUMENT_SPECS.get(name, InstrumentSpec())
                    instrument = self._meter.create_counter(
                        name, unit=spec.unit, description=spec.description
                    )
                    self._counters[name] = instrument
        return instrument

    def histogram(self, name: str) -> Histogram:
        instrument = self._histograms.get(name)
        if instrument is None:
            with self._lock:
                instrument = self._histograms.get(name)
                if instrument is None:
                    spec = INSTRUMENT_SPECS.get(name, InstrumentSpec())
                    instrument = self._meter.create_histogram(
                        name, unit=spec.unit, description=spec.description
                    )
                    self._histograms[name] = instrument
        return instrument


def collect_process_stats() -> dict[str, Any]:
    """Snapshot of process uptime, memory and garbage collector activity."""
    process = psutil.Process(os.getpid())
    return {
        "uptime_seconds": round(time.time() - process.create_time(), 3),
        "memory_bytes": process.memory_info().rss,
        "gc_collections": {
            f"gen{generation}": stat["collections"]
            for generation, stat in enumerate(gc.get_stats())
        },
    }


class ProcessMetricsCollector:
    """Registers observable gauges for process memory and GC collections."""

    def __init__(self, meter: Meter) -> None:
        self._process = psutil.Process(os.getpid())
        meter.create_observable_gauge(
            "process.memory_used_bytes",
            callbacks=[self._memory_callback],
            description="Process memory usage in bytes",
            unit="bytes",
        )
        meter.create_observable_gauge(
            "process.gc.collections",
            callbacks=[self._gc_callback],
            description="Garbage collections per generation",
        )

    def _memory_callback(self, options: CallbackOptions) -> Iterable[Observation]:
        try:
            yield Observation(self._process.memory_info().rss)
        except psutil.Error:
            logger.debug("Could not read process memory", exc_info=True)

    def _gc_callback(self, options: CallbackOptions) -> Iterable[Observation]:
        for generation, stat in enumerate(gc.get_stats()):
            yield Observation(stat["collections"], {"generation": f"gen{generation}"})
