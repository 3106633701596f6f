from __future__ import annotations

"""
Prometheus metrics and the /metrics exporter.

Records:
    http_requests_total{method,path,status}
    http_request_duration_seconds{method,path,status}
    http_inprogress_requests{method}
    engine_calls_total{operation,outcome}
    engine_call_duration_seconds{operation}

``outcome`` is ``ok``, ``engine_reported`` (the engine answered success=false)
or the EngineError class name.

Usage
-----
    from krakatau_service.metrics import setup_metrics

    metrics = setup_metrics(app)
    metrics.observe_engine_call("decompile", "ok", 0.12)
"""

import os
import time
from typing import Optional

from fastapi import APIRouter, FastAPI
from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Gauge, Histogram, generate_latest)
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

_LATENCY_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class Metrics:
    """Registry and metric objects. Exposed via ``app.state.metrics``."""

    def __init__(self, service_name: str, service_version: Optional[str] = None) -> None:
        self.registry = CollectorRegistry()

        self.http_inprogress = Gauge(
            "http_inprogress_requests",
            "In-progress HTTP requests",
            ["method"],
            registry=self.registry,
        )
        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
            registry=self.registry,
        )
        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "path", "status"],
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.engine_calls_total = Counter(
            "engine_calls_total",
            "Engine request cycles by operation and outcome",
            ["operation", "outcome"],
            registry=self.registry,
        )
        self.engine_call_duration_seconds = Histogram(
            "engine_call_duration_seconds",
            "Wall time of engine calls including lock wait",
            ["operation"],
            buckets=_LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.service_info = Gauge(
            "service_info",
            "Service metadata",
            ["name", "version"],
            registry=self.registry,
        )
        self.service_info.labels(service_name, service_version or "unknown").set(1)

    def observe_engine_call(self, operation: str, outcome: str, seconds: float) -> None:
        self.engine_calls_total.labels(operation, outcome).inc()
        self.engine_call_duration_seconds.labels(operation).observe(seconds)

    def render_latest(self) -> bytes:
        return generate_latest(self.registry)


def _path_template(scope: Scope) -> str:
    route = scope.get("route")
    for attr in ("path_format", "path"):
        val = getattr(route, attr, None) if route is not None else None
        if isinstance(val, str) and val:
            return val
    # Unmatched paths collapse into one label to keep cardinality bounded.
    return "<unmatched>"


class PrometheusMiddleware:
    def __init__(self, app: ASGIApp, metrics: Metrics) -> None:
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "GET")
        start = time.perf_counter()
        status_code = 500
        self.metrics.http_inprogress.labels(method).inc()

        async def send_wrapped(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = int(message.get("status", 500))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapped)
        finally:
            labels = (method, _path_template(scope), str(status_code))
            self.metrics.http_requests_total.labels(*labels).inc()
            self.metrics.http_request_duration_seconds.labels(*labels).observe(time.perf_counter() - start)
            self.metrics.http_inprogress.labels(method).dec()


def create_metrics_router(metrics: Metrics, path: str = "/metrics") -> APIRouter:
    router = APIRouter()

    @router.get(path, include_in_schema=False)
    async def metrics_endpoint() -> Response:
        return Response(content=metrics.render_latest(), media_type=CONTENT_TYPE_LATEST)

    return router


def setup_metrics(
    app: FastAPI,
    *,
    service_name: str = "krakatau-service",
    service_version: Optional[str] = None,
    path: Optional[str] = None,
) -> Metrics:
    """
    Create the registry, add the HTTP middleware and mount the exporter.
    Returns the Metrics instance and stores it in ``app.state.metrics``.
    """
    metrics = Metrics(service_name=service_name, service_version=service_version)
    app.add_middleware(PrometheusMiddleware, metrics=metrics)
    app.include_router(create_metrics_router(metrics, path or os.getenv("METRICS_PATH") or "/metrics"))
    app.state.metrics = metrics
    return metrics


__all__ = ["Metrics", "PrometheusMiddleware", "create_metrics_router", "setup_metrics"]
