"""
Redis caching service for advisory capacity reads.

CACHING STRATEGY
================

What we cache:
  - The capacity snapshot shown next to an event (capacity, going count,
    waitlist length), JSON-serialized
  - Cache key pattern: "capacity:{event_id}"

Why:
  - Event pages poll "spots left" far more often than anyone RSVPs
  - Serving from Redis: ~1ms vs loading the attendee set: ~15-50ms

Invalidation strategy:
  - A post-commit hook on the attendee store deletes the event's key after
    every committed attendee write
  - Capacity config sync and event deletion delete the key too
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

What this cache must NEVER do:
  - Gate an admission. Admission, waitlist placement and promotion read
    capacity from inside their own transaction; a stale cached count would
    overbook or wrongly reject.
"""

import json
from typing import Optional

import redis.asyncio as redis
from rsvp_engine.core.config import get_settings
from rsvp_engine.core.logging import get_logger
from rsvp_engine.services.records import Attendee

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    if not settings.REDIS_ENABLED:
        return None

    try:
        _redis_client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
        )
        # Test connection
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.REDIS_URL)
    except Exception as e:
        logger.error("redis_connection_failed", error=str(e))
        _redis_client = None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_capacity_key(event_id: str) -> str:
    return f"capacity:{event_id}"


async def get_cached_capacity(event_id: str) -> Optional[dict]:
    """Retrieve a cached capacity snapshot."""
    client = await get_redis()
    if not client:
        return None

    key = _make_capacity_key(event_id)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_capacity(event_id: str, data: dict) -> None:
    """Cache a capacity snapshot with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_capacity_key(event_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_capacity(event_id: str) -> None:
    """Drop the cached snapshot for one event."""
    client = await get_redis()
    if not client:
        return

    key = _make_capacity_key(event_id)
    try:
        await client.delete(key)
        logger.debug("cache_invalidated", key=key)
    except Exception as e:
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def invalidate_on_commit(event_id: str, written: list[Attendee], deleted: list[str]) -> None:
    """Attendee store commit hook."""
    await invalidate_capacity(event_id)


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        keyspace = await client.info("keyspace")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "hit_rate": (
                round(
                    info.get("keyspace_hits", 0)
                    / max(info.get("keyspace_hits", 0) + info.get("keyspace_misses", 0), 1)
                    * 100,
                    2,
                )
            ),
            "keys": keyspace,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
