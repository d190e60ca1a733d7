"""
Rate Limiting Stage

Counts the request against a policy, always sets the X-RateLimit-* headers,
and short-circuits with HTTP 429 when the caller is over quota.
"""

from typing import Optional

import structlog
from opentelemetry import trace
from starlette import status
from starlette.responses import JSONResponse, Response

from ..services.rate_limiting.identifiers import IdentifierResolver, user_identifier
from ..services.rate_limiting.rate_limiter import RateLimiter, RateLimitResult
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class RateLimitStage(PipelineStage):
    """Apply one rate limit policy to every request passing through."""

    order = 4
    name = "rate_limit"

    def __init__(
        self,
        limiter: RateLimiter,
        identifier_resolver: Optional[IdentifierResolver] = None,
    ):
        self.limiter = limiter
        self.identifier_resolver = identifier_resolver or user_identifier

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        with tracer.start_as_current_span("rate_limit_stage") as span:
            span.set_attribute("http.method", context.method)
            span.set_attribute("http.path", context.path)

            identifier = self.identifier_resolver(context)
            result = await self.limiter.check_limit(identifier)
            self._add_rate_limit_headers(context, result)

            span.set_attribute("rate_limit.policy", result.policy)
            span.set_attribute("rate_limit.allowed", result.allowed)
            span.set_attribute("rate_limit.remaining", result.remaining)

            if not result.allowed:
                span.set_attribute("http.status_code", status.HTTP_429_TOO_MANY_REQUESTS)
                return self._create_rate_limit_response(result)

        return await call_next()

    def _add_rate_limit_headers(
        self, context: RequestContext, result: RateLimitResult
    ) -> None:
        context.set_header("X-RateLimit-Limit", str(result.limit))
        context.set_header("X-RateLimit-Remaining", str(result.remaining))
        context.set_header("X-RateLimit-Reset", str(result.reset_at_seconds))

    def _create_rate_limit_response(self, result: RateLimitResult) -> JSONResponse:
        """Create HTTP 429 Too Many Requests response."""
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Too Many Requests",
                "message": "Rate limit exceeded. Please try again later.",
                "retryAfter": result.retry_after_seconds(self.limiter.cache.clock()),
            },
        )
