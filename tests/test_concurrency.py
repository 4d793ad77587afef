"""
Critical-section tests.

Demonstrates:
1. The Redis lock acquires with ``SET NX EX``, polls until the key is
   free and releases through the check-and-delete script.
2. The in-process provider serializes holders of one key and leaves
   other keys free.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from carpool.infrastructure.locks import (
    DistributedLock,
    LocalLockProvider,
    RedisLockProvider,
    review_key,
    trip_key,
    user_key,
)


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_try_acquire_uses_set_nx_ex(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "trip:1", ttl_seconds=10)
        assert await lock.try_acquire() is True
        mock_redis.set.assert_awaited_once_with("lock:trip:1", lock.token, nx=True, ex=10)

    @pytest.mark.asyncio
    async def test_try_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "trip:1")
        assert await lock.try_acquire() is False

    @pytest.mark.asyncio
    async def test_acquire_polls_until_free(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[None, None, True])

        lock = DistributedLock(mock_redis, "trip:1", poll_interval=0.001)
        await lock.acquire()
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_acquire_waits_out_a_long_holder(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[None] * 200 + [True])

        lock = DistributedLock(mock_redis, "trip:1", poll_interval=0.0)
        await lock.acquire()
        assert mock_redis.set.await_count == 201

    @pytest.mark.asyncio
    async def test_release_calls_eval_with_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "user:3")
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_awaited_once()
        _, numkeys, key, token = mock_redis.eval.await_args.args
        assert (numkeys, key, token) == (1, "lock:user:3", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with DistributedLock(mock_redis, "trip:1"):
            mock_redis.eval.assert_not_awaited()
        mock_redis.eval.assert_awaited_once()

    def test_tokens_are_unique_per_holder(self):
        mock_redis = AsyncMock()
        assert DistributedLock(mock_redis, "k").token != DistributedLock(mock_redis, "k").token


class TestRedisLockProvider:
    def test_hold_builds_lock_with_provider_settings(self):
        provider = RedisLockProvider(AsyncMock(), ttl_seconds=7, poll_interval=0.5)

        lock = provider.hold(trip_key(12))

        assert lock.key == "lock:trip:12"
        assert (lock.ttl, lock.poll_interval) == (7, 0.5)


class TestLocalLockProvider:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = LocalLockProvider()
        events = []

        async def worker(name):
            async with locks.hold("trip:1"):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(worker("a"), worker("b"), worker("c"))

        # Each holder leaves before the next one enters
        for i in range(0, len(events), 2):
            assert events[i].split(":")[0] == events[i + 1].split(":")[0]
            assert events[i].endswith(":in") and events[i + 1].endswith(":out")

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = LocalLockProvider()

        async with locks.hold("trip:1"):
            # Would time out if keys shared one lock
            async def inner():
                async with locks.hold("trip:2"):
                    return True

            assert await asyncio.wait_for(inner(), timeout=1.0) is True

    def test_key_helpers(self):
        assert trip_key(5) == "trip:5"
        assert user_key(9) == "user:9"
        assert review_key(5, 9) == "review:5:9"
