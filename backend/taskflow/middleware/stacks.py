"""
Middleware Stack Composition

Builds pipelines from the shared services. Presets cover the common route
families; anything else can be composed with ``build_middleware_stack``.
"""

from typing import List, Optional, Sequence

from ..services.container import InfrastructureServices
from ..services.rate_limiting.identifiers import (
    IdentifierResolver,
    network_identifier,
    user_identifier,
)
from .caching import ResponseCacheStage, TtlResolver
from .compression import CompressionStage
from .errors import ErrorBoundaryStage
from .pipeline import MiddlewarePipeline, PipelineStage
from .rate_limit import RateLimitStage
from .request_logging import RequestLoggingStage
from .security import SecurityHeadersStage
from .validation import ValidationStage


def build_middleware_stack(
    services: InfrastructureServices,
    enable_rate_limit: bool = True,
    enable_caching: bool = True,
    enable_compression: bool = True,
    enable_performance_tracking: bool = True,
    rate_limit_policy: str = "api",
    identifier_resolver: IdentifierResolver = user_identifier,
    extra_rate_limit_policies: Sequence[str] = (),
    cache_ttl_resolver: Optional[TtlResolver] = None,
) -> MiddlewarePipeline:
    """
    Compose a pipeline from the canonical stages.

    Security headers, the error boundary and validation are always present.
    Disabling a stage removes it without changing the order of the others.

    Raises:
        KeyError: If a named rate limit policy is not configured
    """
    settings = services.settings
    stages: List[PipelineStage] = [
        SecurityHeadersStage(),
        ErrorBoundaryStage(
            services.performance_monitor, expose_details=not settings.is_production
        ),
        ValidationStage(max_body_bytes=settings.MAX_REQUEST_BODY_BYTES),
    ]

    if enable_performance_tracking:
        stages.append(RequestLoggingStage(services.performance_monitor))

    if enable_rate_limit:
        for policy in (rate_limit_policy, *extra_rate_limit_policies):
            stages.append(
                RateLimitStage(services.rate_limiter(policy), identifier_resolver)
            )

    if enable_compression:
        stages.append(CompressionStage(min_bytes=settings.COMPRESSION_MIN_BYTES))

    if enable_caching:
        stages.append(ResponseCacheStage(services.cache, ttl_resolver=cache_ttl_resolver))

    return MiddlewarePipeline(stages)


def api_pipeline(services: InfrastructureServices) -> MiddlewarePipeline:
    """General API routes: every stage, ``api`` policy."""
    return build_middleware_stack(services)


def auth_pipeline(services: InfrastructureServices) -> MiddlewarePipeline:
    """Authentication routes: strict policy per network address, never cached."""
    return build_middleware_stack(
        services,
        enable_caching=False,
        rate_limit_policy="auth",
        identifier_resolver=network_identifier,
    )


def upload_pipeline(services: InfrastructureServices) -> MiddlewarePipeline:
    """Upload routes: general and upload quotas, never cached."""
    return build_middleware_stack(
        services, enable_caching=False, extra_rate_limit_policies=("upload",)
    )


def search_pipeline(services: InfrastructureServices) -> MiddlewarePipeline:
    return build_middleware_stack(services, extra_rate_limit_policies=("search",))


def public_pipeline(
    services: InfrastructureServices, enable_caching: bool = True
) -> MiddlewarePipeline:
    """Public routes such as health checks: no rate limiting."""
    return build_middleware_stack(
        services, enable_rate_limit=False, enable_caching=enable_caching
    )
