"""
Security Headers Stage

Protects against common web vulnerabilities:
- X-Content-Type-Options
- X-Frame-Options
- X-XSS-Protection (legacy browsers)
- Referrer-Policy
- Content-Security-Policy

The headers are registered on the request context before anything else
runs, so every response carries them, error and short-circuit responses
included.
"""

import structlog
from starlette.responses import Response

from ..constants import CONTENT_SECURITY_POLICY
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage

logger = structlog.get_logger(__name__)

SECURITY_HEADERS = {
    # Prevent MIME type sniffing
    "X-Content-Type-Options": "nosniff",
    # Page cannot be displayed in a frame
    "X-Frame-Options": "DENY",
    # Block rendering if XSS detected (legacy browsers)
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
}


class SecurityHeadersStage(PipelineStage):
    """Add security headers to all responses."""

    order = 1
    name = "security"

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        context.response_headers.update(SECURITY_HEADERS)

        logger.debug(
            "Security headers registered", path=context.path, method=context.method
        )

        return await call_next()
