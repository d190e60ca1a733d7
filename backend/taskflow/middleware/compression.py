"""
Compression Stage

Gzips response bodies for clients that advertise support, once the body is
larger than the configured threshold.
"""

import gzip

import structlog
from starlette.responses import Response

from ..constants import COMPRESSION_MIN_BYTES
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage
from .responses import read_body, replace_body

logger = structlog.get_logger(__name__)


class CompressionStage(PipelineStage):
    """
    Response compression.

    A response is compressed when:
    - the request's Accept-Encoding mentions gzip
    - the response has no Content-Encoding yet
    - its body is larger than ``min_bytes``
    - the gzipped body is actually smaller
    """

    order = 6
    name = "compression"

    def __init__(self, min_bytes: int = COMPRESSION_MIN_BYTES, level: int = 6):
        self.min_bytes = min_bytes
        self.level = level

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        accepts_gzip = "gzip" in (context.header("accept-encoding") or "").lower()

        response = await call_next()

        if not accepts_gzip or "content-encoding" in response.headers:
            return response

        if response.status_code in (204, 304):
            return response

        declared_length = response.headers.get("content-length")
        if declared_length is not None and declared_length.isdigit():
            if int(declared_length) <= self.min_bytes:
                return response

        body = await read_body(response)
        if len(body) <= self.min_bytes:
            return replace_body(response, body)

        compressed = gzip.compress(body, compresslevel=self.level)
        # gzip overhead can make small or pre-compressed bodies larger
        if len(compressed) >= len(body):
            return replace_body(response, body)

        compressed_response = replace_body(response, compressed)
        compressed_response.headers["Content-Encoding"] = "gzip"

        vary = compressed_response.headers.get("Vary", "")
        if "accept-encoding" not in vary.lower():
            compressed_response.headers["Vary"] = f"{vary}, Accept-Encoding".lstrip(", ")

        logger.debug(
            "Response compressed",
            path=context.path,
            original_bytes=len(body),
            compressed_bytes=len(compressed),
        )
        return compressed_response
