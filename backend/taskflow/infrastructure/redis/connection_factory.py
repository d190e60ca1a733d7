"""
Redis Connection Factory

Builds the asyncio Redis client used as the shared cache tier. Connections
are opened lazily on first command, so constructing the client never blocks
process start even when Redis is down.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from redis.asyncio import ConnectionPool, Redis

from ...core.config import Settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> Optional[Redis]:
    """
    Create a Redis client from settings.

    Args:
        settings: Application settings

    Returns:
        Configured client, or None when no REDIS_URL is configured
    """
    if not settings.REDIS_URL:
        logger.info("REDIS_URL not configured, using local cache tier only")
        return None

    # Timeouts surface as errors CacheManager recovers from
    pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
        socket_timeout=settings.REDIS_OPERATION_TIMEOUT,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
    )

    parsed_url = urlparse(settings.REDIS_URL)
    logger.info(
        "Redis client configured",
        extra={
            "host": parsed_url.hostname or "localhost",
            "port": parsed_url.port or 6379,
            "max_connections": settings.REDIS_MAX_CONNECTIONS,
        },
    )

    return Redis(connection_pool=pool)
