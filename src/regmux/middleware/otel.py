"""OpenTelemetry tracing and metrics middleware.

Register as global middleware so every routed request, 404 and 405 gets a
server span. Static files are served before middleware and are not traced.

Install with: uv add "regmux[otel]"
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from regmux.rsgi import (
        HTTPProtocol,
        HTTPScope,
        Middleware,
        RSGIHTTPHandler,
    )

try:
    from opentelemetry import metrics, trace
    from opentelemetry.propagate import extract
    from opentelemetry.trace import Span, SpanKind, StatusCode, TracerProvider
except ImportError as e:
    msg = (
        "OpenTelemetry middleware requires the 'otel' extra. "
        "Install with: uv add 'regmux[otel]'"
    )
    raise ImportError(msg) from e

from regmux.params import path_fields
from regmux.rsgi import ProxiedHTTPProtocol


class _StatusRecordingHTTPProtocol(ProxiedHTTPProtocol):
    """Wraps HTTPProtocol to remember the response status."""

    __slots__ = ("status",)

    def __init__(self, proto: HTTPProtocol) -> None:
        super().__init__(proto)
        self.status: int | None = None

    def _respond(
        self, status: int, headers: list[tuple[str, str]]
    ) -> tuple[int, list[tuple[str, str]]]:
        self.status = status
        return status, headers


# Seconds, as recommended by the http.server.request.duration semantic convention
_DURATION_BUCKETS = (
    0.005, 0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0
)  # fmt: skip


def _span_attributes(scope: HTTPScope, route: str) -> dict[str, str | int]:
    attributes: dict[str, str | int] = {
        "http.request.method": scope.method,
        "url.path": scope.path,
        "url.scheme": scope.scheme,
        "network.protocol.version": scope.http_version,
        "server.address": scope.server,
        "client.address": scope.client,
    }
    if route:
        attributes["http.route"] = route
    if scope.query_string:
        attributes["url.query"] = scope.query_string
    user_agent = scope.headers.get("user-agent")
    if user_agent is not None:
        attributes["user_agent.original"] = user_agent
    # not a semantic convention, but captured fields are useful when debugging
    for i, value in enumerate(path_fields(scope)):
        attributes[f"http.route.field.{i}"] = value
    return attributes


def otel(
    *,
    tracer_provider: TracerProvider | None = None,
    meter_provider: metrics.MeterProvider | None = None,
) -> Middleware:
    """Create OpenTelemetry tracing and metrics middleware.

    Spans are named "METHOD pattern" for matched routes, e.g.
    "GET /user/([0-9]+)", and "METHOD status" for 404/405 responses. Trace
    context is extracted from the request headers (e.g. ``traceparent``).

    Metrics emitted:
        - ``http.server.request.duration`` (histogram, seconds)
        - ``http.server.active_requests`` (up-down counter)

    Args:
        tracer_provider: Optional TracerProvider. If None, uses the global provider.
        meter_provider: Optional MeterProvider. If None, uses the global provider.

    Example:
        router.use(otel())
    """
    tracer = trace.get_tracer("regmux", tracer_provider=tracer_provider)
    meter = metrics.get_meter("regmux", meter_provider=meter_provider)
    duration_histogram = meter.create_histogram(
        "http.server.request.duration",
        unit="s",
        description="Duration of HTTP server requests.",
        explicit_bucket_boundaries_advisory=_DURATION_BUCKETS,
    )
    active_requests = meter.create_up_down_counter(
        "http.server.active_requests",
        unit="{request}",
        description="Number of active HTTP server requests.",
    )

    def middleware(handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
        async def traced_handler(scope: HTTPScope, proto: HTTPProtocol) -> None:
            route: str = getattr(scope, "route", "")
            metric_attrs: dict[str, str | int] = {
                "http.request.method": scope.method,
                "url.scheme": scope.scheme,
            }
            if route:
                metric_attrs["http.route"] = route

            recorder = _StatusRecordingHTTPProtocol(proto)
            active_requests.add(1, metric_attrs)
            start = time.perf_counter()
            with tracer.start_as_current_span(
                f"{scope.method} {route}" if route else scope.method,
                context=extract(scope.headers),
                kind=SpanKind.SERVER,
                attributes=_span_attributes(scope, route),
                record_exception=True,
                set_status_on_exception=True,
            ) as span:
                try:
                    await handler(scope, recorder)
                finally:
                    elapsed = time.perf_counter() - start
                    active_requests.add(-1, metric_attrs)
                    status = recorder.status
                    if status is not None:
                        _annotate_status(span, scope.method, route, status)
                        metric_attrs = {**metric_attrs, "http.response.status_code": status}
                    duration_histogram.record(elapsed, metric_attrs)

        return traced_handler

    return middleware


def _annotate_status(span: Span, method: str, route: str, status: int) -> None:
    span.set_attribute("http.response.status_code", status)
    # unrouted requests are named by outcome, e.g. "GET 404"
    if not route:
        span.update_name(f"{method} {status}")
    if status >= 500:
        span.set_status(StatusCode.ERROR)
