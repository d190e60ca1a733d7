"""
Request middleware pipeline.

An ordered chain of stages (security headers, error boundary, logging,
rate limiting, validation, compression, response caching) mounted on the
app through ``PipelineMiddleware``.
"""

from .caching import ResponseCacheStage, default_should_cache
from .compression import CompressionStage
from .context import RequestContext, default_user_id_extractor
from .errors import ErrorBoundaryStage
from .pipeline import MiddlewarePipeline, PipelineMiddleware, PipelineStage
from .rate_limit import RateLimitStage
from .request_logging import RequestLoggingStage
from .security import SECURITY_HEADERS, SecurityHeadersStage
from .stacks import (
    api_pipeline,
    auth_pipeline,
    build_middleware_stack,
    public_pipeline,
    search_pipeline,
    upload_pipeline,
)
from .validation import ValidationStage

__all__ = [
    "RequestContext",
    "default_user_id_extractor",
    "PipelineStage",
    "MiddlewarePipeline",
    "PipelineMiddleware",
    "SECURITY_HEADERS",
    "SecurityHeadersStage",
    "ErrorBoundaryStage",
    "RequestLoggingStage",
    "RateLimitStage",
    "ValidationStage",
    "CompressionStage",
    "ResponseCacheStage",
    "default_should_cache",
    "build_middleware_stack",
    "api_pipeline",
    "auth_pipeline",
    "upload_pipeline",
    "search_pipeline",
    "public_pipeline",
]
