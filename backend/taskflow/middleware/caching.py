"""
Response Caching Stage

Serves safe, non-authentication read requests from the cache, keyed by
method, path, caller identity and query string. Successful JSON responses
are stored on the way out.
"""

import json
from typing import Callable, Optional

import structlog
from starlette.responses import JSONResponse, Response

from ..services.cache.cache_manager import CacheManager
from ..services.cache.keys import CacheKeys
from .context import NextHandler, RequestContext
from .pipeline import PipelineStage
from .responses import is_json_response, read_body, replace_body

logger = structlog.get_logger(__name__)

TtlResolver = Callable[[RequestContext], Optional[int]]
CachePredicate = Callable[[RequestContext], bool]


def default_should_cache(context: RequestContext) -> bool:
    """Only GET requests outside authentication routes are cacheable."""
    return context.method == "GET" and "/auth/" not in f"{context.path}/"


class ResponseCacheStage(PipelineStage):
    order = 7
    name = "cache"

    def __init__(
        self,
        cache: CacheManager,
        ttl_resolver: Optional[TtlResolver] = None,
        should_cache: Optional[CachePredicate] = None,
    ):
        self.cache = cache
        self.ttl_resolver = ttl_resolver
        self.should_cache = should_cache or default_should_cache

    def cache_key(self, context: RequestContext) -> str:
        return CacheKeys.response(
            context.method, context.path, context.identity, context.query_string
        )

    async def __call__(
        self, context: RequestContext, call_next: NextHandler
    ) -> Response:
        if not self.should_cache(context):
            return await call_next()

        key = self.cache_key(context)
        cached = await self.cache.get(key)
        if cached is not None:
            context.set_header("X-Cache", "HIT")
            logger.debug("Response served from cache", key=key)
            return JSONResponse(content=cached)

        response = await call_next()
        if response.status_code != 200 or not is_json_response(response):
            return response

        body = await read_body(response)
        try:
            payload = json.loads(body)
        except ValueError:
            logger.warning("Skipping cache for undecodable JSON response", key=key)
            return replace_body(response, body)

        ttl = self.ttl_resolver(context) if self.ttl_resolver else None
        await self.cache.set(key, payload, ttl)
        context.set_header("X-Cache", "MISS")

        return replace_body(response, body)
