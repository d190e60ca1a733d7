"""
Caller identity resolution for rate limiting.

Resolvers take the request context and return the string the limiter keys
its windows by.
"""

from typing import Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from ...middleware.context import RequestContext

IdentifierResolver = Callable[["RequestContext"], str]


def network_identifier(context: "RequestContext") -> str:
    """Identify the caller by network address."""
    forwarded_for = context.header("x-forwarded-for")
    if forwarded_for:
        # Take the first IP in the chain
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = context.header("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return context.client_host or "unknown"


def user_identifier(context: "RequestContext") -> str:
    """Identify the caller by user id when authenticated, else by network."""
    if context.user_id:
        return f"user:{context.user_id}"
    return network_identifier(context)
