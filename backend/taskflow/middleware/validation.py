"""
Request Validation Stage

Rejects mutating requests with an unsupported content type, and any request
declaring a body larger than the configured limit, before they reach a handler.
"""

from typing import Optional

import structlog
from starlette import status
from starlette.responses import JSONResponse, Response

from ..constants import ACCEPTED_CONTENT_TYPES, MAX_REQUEST_BODY_BYTES, MUTATING_METHODS
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage

logger = structlog.get_logger(__name__)


class ValidationStage(PipelineStage):
    order = 5
    name = "validation"

    def __init__(self, max_body_bytes: int = MAX_REQUEST_BODY_BYTES):
        self.max_body_bytes = max_body_bytes

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        if context.method in MUTATING_METHODS:
            content_type = (context.header("content-type") or "").lower()
            if not any(accepted in content_type for accepted in ACCEPTED_CONTENT_TYPES):
                logger.info(
                    "Rejected request content type",
                    path=context.path,
                    method=context.method,
                    content_type=content_type or None,
                )
                return JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={"error": "Invalid content type"},
                )

        content_length = _parse_content_length(context.header("content-length"))
        if content_length is not None and content_length > self.max_body_bytes:
            logger.info(
                "Rejected oversized request",
                path=context.path,
                method=context.method,
                content_length=content_length,
                limit=self.max_body_bytes,
            )
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={"error": "Request too large"},
            )

        return await call_next()


def _parse_content_length(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
