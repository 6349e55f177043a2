"""
Provides async Redis client for the read-through cache; callers fall back to the
store when Redis is not configured or unreachable.
"""
import logging
from typing import Optional

import redis.asyncio as redis

from ghmirror_backend.core.config import get_settings

logger = logging.getLogger(__name__)

_redis_client = None
_redis_available: Optional[bool] = None


async def get_redis():
    """
    Returns async Redis client or None if not configured.
    Lazy initialization with connection pooling.
    """
    global _redis_client, _redis_available

    if _redis_available is False:
        return None

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()

    if not settings.redis_url:
        logger.warning("REDIS_URL not configured; mirror cache reads go straight to the store")
        _redis_available = False
        return None

    try:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )

        await _redis_client.ping()
        logger.info("Connected to Redis successfully")
        _redis_available = True
        return _redis_client

    except Exception as e:
        logger.warning(f"Failed to connect to Redis: {e}; cache disabled for this process")
        _redis_client = None
        _redis_available = False
        return None


async def close_redis() -> None:
    """Closes Redis connection pool. Called when a job finishes."""
    global _redis_client, _redis_available

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _redis_available = None
        logger.info("Redis connection closed")


def reset_redis_for_testing() -> None:
    """Resets Redis state for testing purposes only."""
    global _redis_client, _redis_available
    _redis_client = None
    _redis_available = None
