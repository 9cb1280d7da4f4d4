"""Redis connection for the generation marker and the edge response cache.

Both stores share one connection: the marker lives under
settings.generation_key with no expiry, cached index responses under
settings.edge_cache_prefix with a TTL. Redis failures surface to callers as
UpstreamUnavailable with store="cache", so the API renders them like any
other upstream failure.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import redis as redis_lib

from songindex.core.config import settings
from songindex.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

CACHE_STORE = "cache"

_client: Optional[redis_lib.Redis] = None


@contextmanager
def cache_store_errors(operation: str) -> Iterator[None]:
    """Re-raise Redis failures inside the block as UpstreamUnavailable."""
    try:
        yield
    except redis_lib.RedisError as e:
        logger.error(f"Cache store {operation} failed: {type(e).__name__}")
        raise UpstreamUnavailable(
            f"Cache store {operation} failed: {type(e).__name__}",
            store=CACHE_STORE,
            operation=operation,
        ) from e


def init_redis_client() -> redis_lib.Redis:
    """Connect to the cache store configured in settings."""
    global _client
    _client = redis_lib.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        socket_timeout=settings.upstream_timeout,
        decode_responses=True,
    )
    logger.info(
        f"Redis client initialized for {settings.redis_host}:{settings.redis_port}"
        f"/{settings.redis_db}"
    )
    return _client


def get_redis_client() -> redis_lib.Redis:
    """The connected cache store client."""
    if _client is None:
        raise RuntimeError("Redis client not initialized. Call init_redis_client() first.")
    return _client


def close_redis_client() -> None:
    global _client
    if _client:
        _client.close()
        _client = None
        logger.info("Redis client closed")


def check_connection() -> bool:
    """True when the cache store answers a ping."""
    if _client is None:
        return False
    try:
        return bool(_client.ping())
    except redis_lib.RedisError as e:
        logger.warning(f"Redis ping failed: {type(e).__name__}")
        return False
