"""
Health check endpoints.

Reports service status together with the state of the cache backend
(shared tier or local fallback, circuit breaker).
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, Request

from ...services.cache.cache_manager import CacheManager
from ..dependencies import get_cache

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check(
    request: Request, cache: CacheManager = Depends(get_cache)
) -> Dict[str, Any]:
    """
    Basic health check endpoint.

    The service stays healthy while the cache runs on its local tier; the
    ``cache`` block shows whether it has degraded.
    """
    settings = request.app.state.services.settings
    cache_status = cache.backend_status()
    degraded = cache_status["circuit"]["state"] != "closed"

    return {
        "status": "degraded" if degraded else "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.SERVICE_NAME,
        "environment": settings.ENVIRONMENT,
        "cache": cache_status,
    }


@router.get("/live")
async def liveness_check(request: Request) -> Dict[str, Any]:
    """Indicates the process is alive."""
    return {
        "status": "alive",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": int(time.time() - request.app.state.startup_time),
    }
