"""
Monitoring API Endpoints

Read access to the performance monitor and administrative reset of rate
limit windows.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Path, Query, status

from ...core.exceptions import NotFoundError
from ...monitoring.performance_monitor import PerformanceMonitor
from ...services.rate_limiting.rate_limiter import RateLimiter
from ..dependencies import get_performance_monitor, get_rate_limiters

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/monitoring", tags=["monitoring"])


@router.get("/performance")
async def performance_summary(
    window_ms: Optional[int] = Query(
        None, ge=1, description="Trailing window in milliseconds (default 5 minutes)"
    ),
    monitor: PerformanceMonitor = Depends(get_performance_monitor),
) -> Dict[str, Any]:
    """Windowed performance summary."""
    return monitor.get_performance_summary(window_ms).to_dict()


@router.get("/realtime")
async def realtime_metrics(
    monitor: PerformanceMonitor = Depends(get_performance_monitor),
) -> Dict[str, Any]:
    """Latest operations, process memory and uptime."""
    return monitor.get_realtime_metrics()


@router.delete(
    "/rate-limits/{policy}/{identifier}", status_code=status.HTTP_204_NO_CONTENT
)
async def reset_rate_limit(
    policy: str = Path(..., description="Rate limit policy name"),
    identifier: str = Path(..., description="Caller identifier, e.g. user:42"),
    rate_limiters: Dict[str, RateLimiter] = Depends(get_rate_limiters),
) -> None:
    """
    Reset a caller's current window for one policy.

    Raises:
        NotFoundError: If the policy is not configured
    """
    limiter = rate_limiters.get(policy)
    if limiter is None:
        raise NotFoundError(resource="Rate limit policy", resource_id=policy)

    await limiter.reset(identifier)
    logger.info("Rate limit window reset via API", policy=policy, identifier=identifier)
