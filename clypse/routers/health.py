# clypse/routers/health.py
# Health check endpoints for monitoring and load balancers
# Provides liveness and readiness probes

import time
import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from clypse.routers.deps import get_store
from clypse.storage.base import KeyValueStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthStatus(BaseModel):
    """Health check response model."""
    status: str  # "healthy" or "unhealthy"
    timestamp: float
    version: str = "1.0.0"
    checks: Dict[str, Dict[str, Any]] = {}


class ComponentHealth(BaseModel):
    """Individual component health."""
    status: str
    latency_ms: float = 0.0
    message: str = ""


async def check_store_health(store: KeyValueStore) -> ComponentHealth:
    """Round-trip the storage backend."""
    start = time.time()
    try:
        ok = await store.ping()
    except Exception as e:
        logger.error(f"Store health check failed: {e}")
        return ComponentHealth(
            status="unhealthy",
            latency_ms=(time.time() - start) * 1000,
            message=f"Store error: {type(e).__name__}",
        )

    latency_ms = (time.time() - start) * 1000
    if not ok:
        return ComponentHealth(status="unhealthy", latency_ms=latency_ms, message="Store unreachable")
    return ComponentHealth(status="healthy", latency_ms=latency_ms, message=type(store).__name__)


@router.get("/health", response_model=HealthStatus)
async def health_check(response: Response, store: KeyValueStore = Depends(get_store)):
    """Full health check: status of every component."""
    store_health = await check_store_health(store)
    checks = {
        "store": {
            "status": store_health.status,
            "latency_ms": round(store_health.latency_ms, 2),
            "message": store_health.message,
        }
    }

    overall_status = "healthy"
    if store_health.status == "unhealthy":
        overall_status = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthStatus(status=overall_status, timestamp=time.time(), checks=checks)


@router.get("/health/live")
async def liveness_probe():
    """
    Kubernetes liveness check.
    Returns 200 if the application is running.
    Does NOT check external dependencies.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_probe(response: Response, store: KeyValueStore = Depends(get_store)):
    """Returns 200 only when the storage backend answers."""
    store_health = await check_store_health(store)
    if store_health.status == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "reason": store_health.message}
    return {"status": "ready"}
