"""
Tests for the snapshot cache helpers.

CHANGELOG:
- 2026-10-16: Initial creation

TODO:
- None
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from conftest import DEVICE_ID

from telemetry_ingest.cache.redis_client import (
    cache_snapshot,
    get_cached_snapshot,
    get_redis,
    snapshot_cache_key,
)

SNAPSHOT = {"deviceId": DEVICE_ID, "timestamp": None, "ports": {}}


@pytest.fixture()
def patched_redis(mock_redis: AsyncMock):
    with patch(
        "telemetry_ingest.cache.redis_client.get_redis",
        new_callable=AsyncMock,
        return_value=mock_redis,
    ):
        yield mock_redis


class TestSnapshotCache:
    def test_key(self) -> None:
        assert snapshot_cache_key("d-1") == "snapshot:d-1"

    @pytest.mark.asyncio
    async def test_miss(self, patched_redis: AsyncMock) -> None:
        assert await get_cached_snapshot(DEVICE_ID) is None
        patched_redis.get.assert_awaited_once_with(f"snapshot:{DEVICE_ID}")
        patched_redis.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_hit_is_decoded(self, patched_redis: AsyncMock) -> None:
        patched_redis.get = AsyncMock(return_value=json.dumps(SNAPSHOT).encode())
        assert await get_cached_snapshot(DEVICE_ID) == SNAPSHOT

    @pytest.mark.asyncio
    async def test_write_with_ttl(self, patched_redis: AsyncMock) -> None:
        await cache_snapshot(DEVICE_ID, SNAPSHOT, 5)
        patched_redis.set.assert_awaited_once_with(
            f"snapshot:{DEVICE_ID}", json.dumps(SNAPSHOT), ex=5
        )

    @pytest.mark.asyncio
    async def test_zero_ttl_writes_without_expiry(self, patched_redis: AsyncMock) -> None:
        await cache_snapshot(DEVICE_ID, SNAPSHOT, 0)
        assert patched_redis.set.await_args.kwargs["ex"] is None

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, patched_redis: AsyncMock) -> None:
        patched_redis.get = AsyncMock(side_effect=ConnectionError("refused"))
        patched_redis.set = AsyncMock(side_effect=ConnectionError("refused"))

        assert await get_cached_snapshot(DEVICE_ID) is None
        await cache_snapshot(DEVICE_ID, SNAPSHOT, 5)
        assert patched_redis.aclose.await_count == 2


class TestGetRedis:
    @pytest.mark.asyncio
    async def test_requires_redis_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("REDIS_URL")
        with pytest.raises(RuntimeError, match="REDIS_URL"):
            await get_redis()
