"""
Per-key critical sections.

Every mutation of a trip's seat counters runs under ``trip:{id}``; rating
updates run under ``user:{id}``.  Keys are independent: there is no global
lock, so work on different trips proceeds in parallel.

Two providers share the ``hold(key)`` interface:

* :class:`RedisLockProvider` -- distributed, for several API processes.
  Acquire is ``SET NX EX`` retried until the key is free (a crashed
  holder's key expires after the TTL); release is a Lua script doing an
  atomic check-and-delete.
* :class:`LocalLockProvider` -- one ``asyncio.Lock`` per key, for a single
  process and for tests.

Callers acquire locks *before* opening a DB transaction and always in the
same order, so two holders can never wait on each other.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
import weakref
from typing import AsyncIterator

import redis.asyncio as aioredis

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    def __init__(
        self,
        client: aioredis.Redis,
        key: str,
        ttl_seconds: int = 10,
        poll_interval: float = 0.02,
    ):
        self.redis = client
        self.key = f"lock:{key}"
        self.ttl = ttl_seconds
        self.poll_interval = poll_interval
        self.token = str(uuid.uuid4())

    async def try_acquire(self) -> bool:
        """Single attempt. Returns True on success."""
        return bool(
            await self.redis.set(self.key, self.token, nx=True, ex=self.ttl)
        )

    async def acquire(self) -> None:
        """Wait for the key, polling until it is free.

        A crashed holder's key expires after ``ttl``, so waiting always ends.
        """
        while not await self.try_acquire():
            await asyncio.sleep(self.poll_interval)

    async def release(self) -> None:
        """Release only if we still own the lock (atomic via Lua)."""
        await self.redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)

    # context-manager support
    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, *args):
        await self.release()


class RedisLockProvider:
    def __init__(
        self,
        client: aioredis.Redis,
        ttl_seconds: int = 10,
        poll_interval: float = 0.02,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.poll_interval = poll_interval

    def hold(self, key: str) -> DistributedLock:
        return DistributedLock(
            self.client,
            key,
            ttl_seconds=self.ttl_seconds,
            poll_interval=self.poll_interval,
        )


class LocalLockProvider:
    def __init__(self) -> None:
        # Entries vanish once no coroutine holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._lock_for(key)
        async with lock:
            yield


def trip_key(trip_id: int) -> str:
    return f"trip:{trip_id}"


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


def review_key(trip_id: int, reviewer_id: int) -> str:
    return f"review:{trip_id}:{reviewer_id}"
