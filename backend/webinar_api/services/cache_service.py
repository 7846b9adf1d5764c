"""
Redis caching service for public webinar listings.

CACHING STRATEGY
================

What we cache:
  - Webinar listing responses (paginated, JSON-serialized)
  - Key pattern: "webinars:list:page={page}&size={size}&status={status}&upcoming={upcoming}"

Invalidation:
  - On webinar create/update/delete
  - On registration confirmed or cancelled
  - TTL as a safety net (REDIS_CACHE_TTL)

  All listing keys share the "webinars:list:" prefix, so invalidation is a
  SCAN + DELETE over that prefix.

Individual webinars are never cached: the detail view carries live seat counts.

The cache fails open. Any Redis error is logged and the caller falls back to
the database.
"""

import json
from typing import Optional

import redis.asyncio as redis

from webinar_api.core.config import get_settings
from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

LIST_KEY_PREFIX = "webinars:list:"

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis connection. Returns None if Redis is disabled or down."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def make_list_key(page: int, page_size: int, status: Optional[str], upcoming_only: bool) -> str:
    return f"{LIST_KEY_PREFIX}page={page}&size={page_size}&status={status or 'any'}&upcoming={upcoming_only}"


async def get_cached_webinars(
    page: int, page_size: int, status: Optional[str], upcoming_only: bool
) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = make_list_key(page, page_size, status, upcoming_only)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_webinars(
    page: int,
    page_size: int,
    status: Optional[str],
    upcoming_only: bool,
    data: dict,
) -> None:
    client = await get_redis()
    if not client:
        return

    key = make_list_key(page, page_size, status, upcoming_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_webinar_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{LIST_KEY_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Redis hit/miss counters for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
