"""
Rate Limiter Service

Fixed-window request counters keyed by caller identity, built on the cache
layer's atomic windowed increment. Each named policy (api, auth, upload,
search, password_reset) counts independently.
"""

import math
from typing import Dict, Optional

import structlog
from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, Field

from ...constants import now_ms
from ...core.config import Settings
from ..cache.cache_manager import CacheManager
from ..cache.keys import CacheKeys

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


class RateLimitPolicy(BaseModel):
    """Window size and quota for one traffic class."""

    model_config = ConfigDict(frozen=True)

    window_ms: int = Field(..., ge=1, description="Window length in milliseconds")
    max_requests: int = Field(..., ge=1, description="Requests allowed per window")

    @property
    def window_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)


class RateLimitResult(BaseModel):
    """Result of rate limit check."""

    allowed: bool = Field(..., description="Whether request is allowed")
    remaining: int = Field(..., ge=0, description="Remaining requests in window")
    reset_at_ms: int = Field(..., description="Window reset time (epoch ms)")
    total_hits: int = Field(..., description="Requests counted in this window")
    limit: int = Field(..., description="Rate limit threshold")
    policy: str = Field(..., description="Policy name")
    identifier: str = Field(..., description="Rate limit identifier")

    @property
    def reset_at_seconds(self) -> int:
        return math.ceil(self.reset_at_ms / 1000)

    def retry_after_seconds(self, current_ms: Optional[int] = None) -> int:
        """Seconds until the window resets, never negative."""
        current = now_ms() if current_ms is None else current_ms
        return max(0, math.ceil((self.reset_at_ms - current) / 1000))


DEFAULT_POLICIES: Dict[str, RateLimitPolicy] = {
    # 1000 requests per 15 minutes
    "api": RateLimitPolicy(window_ms=15 * 60 * 1000, max_requests=1000),
    # 5 login attempts per 15 minutes
    "auth": RateLimitPolicy(window_ms=15 * 60 * 1000, max_requests=5),
    # 10 uploads per minute
    "upload": RateLimitPolicy(window_ms=60 * 1000, max_requests=10),
    # 60 searches per minute
    "search": RateLimitPolicy(window_ms=60 * 1000, max_requests=60),
    # 1 password reset request per 24 hours
    "password_reset": RateLimitPolicy(window_ms=24 * 60 * 60 * 1000, max_requests=1),
}


def policies_from_settings(settings: Settings) -> Dict[str, RateLimitPolicy]:
    """Build the named policy table from settings."""
    return {
        "api": RateLimitPolicy(
            window_ms=settings.RATE_LIMIT_API_WINDOW_MS,
            max_requests=settings.RATE_LIMIT_API_MAX_REQUESTS,
        ),
        "auth": RateLimitPolicy(
            window_ms=settings.RATE_LIMIT_AUTH_WINDOW_MS,
            max_requests=settings.RATE_LIMIT_AUTH_MAX_REQUESTS,
        ),
        "upload": RateLimitPolicy(
            window_ms=settings.RATE_LIMIT_UPLOAD_WINDOW_MS,
            max_requests=settings.RATE_LIMIT_UPLOAD_MAX_REQUESTS,
        ),
        "search": RateLimitPolicy(
            window_ms=settings.RATE_LIMIT_SEARCH_WINDOW_MS,
            max_requests=settings.RATE_LIMIT_SEARCH_MAX_REQUESTS,
        ),
        "password_reset": RateLimitPolicy(
            window_ms=settings.RATE_LIMIT_PASSWORD_RESET_WINDOW_MS,
            max_requests=settings.RATE_LIMIT_PASSWORD_RESET_MAX_REQUESTS,
        ),
    }


class RateLimiter:
    """
    Fixed-window rate limiter for a single policy.

    Requests over the limit are still counted, so ``total_hits`` reflects
    offered load. The limiter inherits the cache's failure semantics: it
    never raises, and during a backend outage it limits per process.
    """

    def __init__(self, cache: CacheManager, policy: RateLimitPolicy, name: str):
        self.cache = cache
        self.policy = policy
        self.name = name

    def _key(self, identifier: str) -> str:
        return CacheKeys.rate_limit(self.name, identifier)

    async def check_limit(self, identifier: str) -> RateLimitResult:
        """
        Count a request and decide whether it is allowed.

        Args:
            identifier: Caller identity (user or network based)

        Returns:
            Rate limit check result
        """
        with tracer.start_as_current_span("rate_limiter.check_limit") as span:
            span.set_attribute("rate_limit.policy", self.name)
            span.set_attribute("rate_limit.identifier", identifier)

            snapshot = await self.cache.increment(
                self._key(identifier), self.policy.window_ms
            )

            allowed = snapshot.count <= self.policy.max_requests
            result = RateLimitResult(
                allowed=allowed,
                remaining=max(0, self.policy.max_requests - snapshot.count),
                reset_at_ms=snapshot.reset_at_ms,
                total_hits=snapshot.count,
                limit=self.policy.max_requests,
                policy=self.name,
                identifier=identifier,
            )

            span.set_attribute("rate_limit.allowed", allowed)
            span.set_attribute("rate_limit.total_hits", snapshot.count)

            if not allowed:
                logger.info(
                    "Rate limit exceeded",
                    policy=self.name,
                    identifier=identifier,
                    total_hits=snapshot.count,
                    limit=self.policy.max_requests,
                )

            return result

    async def reset(self, identifier: str) -> None:
        """Drop the current window, granting a fresh quota immediately."""
        await self.cache.delete(self._key(identifier))
        logger.info("Rate limit reset", policy=self.name, identifier=identifier)


def build_rate_limiters(
    cache: CacheManager,
    policies: Optional[Dict[str, RateLimitPolicy]] = None,
) -> Dict[str, RateLimiter]:
    """Create one limiter per named policy, all sharing the same cache."""
    policies = policies or DEFAULT_POLICIES
    return {
        name: RateLimiter(cache, policy, name) for name, policy in policies.items()
    }


def format_remaining_time(ms: int) -> str:
    """Format a remaining duration as e.g. '2 hours and 5 minutes'."""
    hours = ms // (1000 * 60 * 60)
    minutes = (ms % (1000 * 60 * 60)) // (1000 * 60)

    minute_text = f"{minutes} minute{'s' if minutes != 1 else ''}"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} and {minute_text}"
    return minute_text
