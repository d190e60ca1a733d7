"""
FastAPI dependencies resolving the shared infrastructure services.

The container is built once by ``create_app`` and stored on
``app.state.services``; routes receive it through ``Depends``.
"""

from typing import Dict

from fastapi import Depends, Request

from ..monitoring.performance_monitor import PerformanceMonitor
from ..services.cache.cache_manager import CacheManager
from ..services.container import InfrastructureServices
from ..services.rate_limiting.rate_limiter import RateLimiter


def get_services(request: Request) -> InfrastructureServices:
    return request.app.state.services


def get_cache(services: InfrastructureServices = Depends(get_services)) -> CacheManager:
    return services.cache


def get_performance_monitor(
    services: InfrastructureServices = Depends(get_services),
) -> PerformanceMonitor:
    return services.performance_monitor


def get_rate_limiters(
    services: InfrastructureServices = Depends(get_services),
) -> Dict[str, RateLimiter]:
    return services.rate_limiters
