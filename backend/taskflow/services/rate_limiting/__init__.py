"""
Rate Limiting Services

Fixed-window rate limiting on top of the cache layer, with named policies
for general API traffic, authentication, uploads, search and password
resets.
"""

from .rate_limiter import (
    DEFAULT_POLICIES,
    RateLimiter,
    RateLimitPolicy,
    RateLimitResult,
    build_rate_limiters,
    format_remaining_time,
    policies_from_settings,
)
from .identifiers import IdentifierResolver, network_identifier, user_identifier

__all__ = [
    "DEFAULT_POLICIES",
    "RateLimiter",
    "RateLimitPolicy",
    "RateLimitResult",
    "build_rate_limiters",
    "format_remaining_time",
    "policies_from_settings",
    "IdentifierResolver",
    "network_identifier",
    "user_identifier",
]
