"""Tracing utilities for the weather API.

Spans are opened with an explicit parent handle rather than relying on
whichever span happens to be active, and are always ended when their scope
exits. Attribute and event writes are guarded so that a misbehaving exporter
or SDK never breaks the request that is being traced.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode

logger = logging.getLogger(__name__)


@contextmanager
def span_scope(
    tracer: trace.Tracer,
    name: str,
    parent: Span | None = None,
    attributes: Mapping[str, Any] | None = None,
) -> Iterator[Span]:
    """Open a span, activate it for the duration of the block and end it on exit.

    Args:
        tracer: Tracer used to create the span.
        name: Span name.
        parent: Parent span. When omitted the span nests under the currently
            active span (for example the HTTP server span).
        attributes: Attributes set when the span starts.

    Yields:
        The open span. If the SDK fails to create one, a non-recording span
        is yielded instead so the caller's work still runs.
    """
    span = _start_span(tracer, name, parent, attributes)
    try:
        with trace.use_span(
            span, end_on_exit=False, record_exception=False, set_status_on_exception=False
        ):
            try:
                yield span
            except Exception as e:
                _record_error(span, e)
                raise
    finally:
        _end_span(span)


def _start_span(
    tracer: trace.Tracer,
    name: str,
    parent: Span | None,
    attributes: Mapping[str, Any] | None,
) -> Span:
    context = trace.set_span_in_context(parent) if parent is not None else None
    try:
        return tracer.start_span(name, context=context, attributes=attributes)
    except Exception:
        logger.warning("Failed to start span %s", name, exc_info=True)
        return trace.INVALID_SPAN


def _end_span(span: Span) -> None:
    try:
        span.end()
    except Exception:
        logger.warning("Failed to end span", exc_info=True)


def _record_error(span: Span, error: Exception) -> None:
    try:
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, str(error)))
    except Exception:
        logger.warning("Failed to record exception on span", exc_info=True)


def set_span_attributes(span: Span, attributes: Mapping[str, Any]) -> None:
    """Set attributes on a span, logging instead of raising on failure."""
    try:
        span.set_attributes(dict(attributes))
    except Exception:
        logger.warning("Failed to set span attributes %s", sorted(attributes), exc_info=True)


def add_span_event(span: Span, name: str, attributes: Mapping[str, Any] | None = None) -> None:
    """Add a timestamped event to a span, logging instead of raising on failure."""
    try:
        span.add_event(name, attributes=dict(attributes or {}))
    except Exception:
        logger.warning("Failed to add span event %s", name, exc_info=True)
