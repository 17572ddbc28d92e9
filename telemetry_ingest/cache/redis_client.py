"""
Redis client for the snapshot view cache.

The snapshot of a device is cached under ``snapshot:{device_id}`` for a short
TTL and invalidated whenever new measurements for the device are stored.
All cache operations are best-effort: connection failures are logged and
never propagate to the request.

CHANGELOG:
- 2026-10-16: Initial creation
"""

import json
import logging
import os
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)


def snapshot_cache_key(device_id: str) -> str:
    """Return the cache key of a device's snapshot."""
    return f"snapshot:{device_id}"


def _get_redis_url() -> str:
    """Read REDIS_URL from environment.

    Raises:
        RuntimeError: If REDIS_URL is not set.
    """
    url = os.environ.get("REDIS_URL")
    if not url:
        raise RuntimeError("REDIS_URL environment variable is required")
    return url


async def get_redis() -> redis.Redis:
    """Create an async Redis client from REDIS_URL."""
    return redis.from_url(_get_redis_url())


async def get_cached_snapshot(device_id: str) -> dict[str, Any] | None:
    """Return the cached snapshot of a device, or ``None`` on miss or failure."""
    key = snapshot_cache_key(device_id)
    try:
        client = await get_redis()
        try:
            cached = await client.get(key)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis read failed for key %s", key, exc_info=True)
        return None
    if cached is None:
        return None
    return json.loads(cached)


async def cache_snapshot(device_id: str, snapshot: dict[str, Any], ttl_s: int) -> None:
    """Store a JSON-serialisable snapshot for *ttl_s* seconds (best-effort)."""
    key = snapshot_cache_key(device_id)
    try:
        client = await get_redis()
        try:
            await client.set(key, json.dumps(snapshot), ex=ttl_s or None)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis write failed for key %s", key, exc_info=True)


async def invalidate_device_cache(device_id: str) -> None:
    """Delete the snapshot cache key of a device (best-effort).

    Ingest must never fail because the cache is unavailable, so errors are
    logged and swallowed.
    """
    try:
        client = await get_redis()
        try:
            await client.delete(snapshot_cache_key(device_id))
        finally:
            await client.aclose()
    except Exception:
        logger.warning(
            "Failed to invalidate cache for device %s",
            device_id,
            exc_info=True,
        )
