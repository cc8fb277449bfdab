# clypse/observability/metrics.py
# minimal prometheus instrumentation

from __future__ import annotations

import os
import time
from typing import Optional

from fastapi import APIRouter, Request, Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from prometheus_client.multiprocess import MultiProcessCollector
from starlette.middleware.base import BaseHTTPMiddleware

# Detect multiprocess mode via environment.
# NOTE: PROMETHEUS_MULTIPROC_DIR must be set BEFORE importing this module in real multi-proc setups.
PROM_MP_DIR = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
HAVE_MP = bool(PROM_MP_DIR and os.path.isdir(PROM_MP_DIR))

# Choose registry depending on mode; None means the default global registry
REGISTRY: Optional[CollectorRegistry] = None
if HAVE_MP:
    REGISTRY = CollectorRegistry()
    MultiProcessCollector(REGISTRY)

_registry_kwargs = {"registry": REGISTRY} if REGISTRY is not None else {}
_gauge_kwargs = dict(_registry_kwargs)
if HAVE_MP:
    _gauge_kwargs["multiprocess_mode"] = "livesum"  # sum values across workers

REQUEST_COUNT = Counter(
    "clypse_request_count",
    "Total request count",
    labelnames=("method", "path", "status"),
    **_registry_kwargs,
)
REQUEST_LATENCY = Histogram(
    "clypse_request_latency_seconds",
    "Request latency in seconds",
    **_registry_kwargs,
)
REQUEST_IN_PROGRESS = Gauge(
    "clypse_request_in_progress",
    "Requests currently in progress",
    ("method",),
    **_gauge_kwargs,
)
ERROR_COUNT = Counter(
    "clypse_error_count",
    "Total error count",
    labelnames=("method", "path", "status"),
    **_registry_kwargs,
)

# Domain counters
CODES_ALLOCATED = Counter(
    "clypse_codes_allocated",
    "Short codes handed out",
    labelnames=("kind",),
    **_registry_kwargs,
)
FILES_SWEPT = Counter(
    "clypse_files_swept",
    "Expired file records removed by the sweep",
    **_registry_kwargs,
)


def _route_path(request: Request) -> str:
    # Use the route template (/api/files/{code}) so codes don't explode label cardinality
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """// register minimal prometheus instrumentation for FastAPI"""

    async def dispatch(self, request: Request, call_next):
        method = request.method
        REQUEST_IN_PROGRESS.labels(method).inc()
        start = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            REQUEST_IN_PROGRESS.labels(method).dec()
            REQUEST_LATENCY.observe(time.perf_counter() - start)
            path = _route_path(request)
            REQUEST_COUNT.labels(method, path, str(status)).inc()
            if status >= 400:
                ERROR_COUNT.labels(method, path, str(status)).inc()


router = APIRouter(tags=["Metrics"])


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics() -> Response:
    """// expose /metrics"""
    payload = generate_latest(REGISTRY) if REGISTRY is not None else generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
