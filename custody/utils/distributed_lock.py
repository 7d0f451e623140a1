"""
Distributed lock.

Redis-backed mutual exclusion for job guards, with an in-process
asyncio.Lock fallback when Redis is not configured. Used to keep two
passes of the same reconciliation job from running at once.
"""

import asyncio
import secrets
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger

# Release only if we still own the key
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class DistributedLock:
    """
    Named lock shared by all engine instances.

    Local locks are always taken first so same-process contention never
    reaches Redis. If redis_client is None, only the local lock applies.
    """

    def __init__(self, redis_client: Any = None) -> None:
        """
        Initialize lock.

        Args:
            redis_client: redis.asyncio.Redis instance (optional)
        """
        self.redis_client = redis_client
        self._local_locks: dict[str, asyncio.Lock] = {}

    def _local_lock(self, key: str) -> asyncio.Lock:
        if key not in self._local_locks:
            self._local_locks[key] = asyncio.Lock()
        return self._local_locks[key]

    def is_locked(self, key: str) -> bool:
        """Whether the in-process lock for key is currently held."""
        lock = self._local_locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def lock(
        self,
        key: str,
        timeout: int = 60,
        blocking: bool = True,
        blocking_timeout: float = 5.0,
    ) -> AsyncIterator[bool]:
        """
        Acquire lock for key.

        Args:
            key: Lock name
            timeout: Redis key expiry in seconds
            blocking: Wait for the lock instead of failing immediately
            blocking_timeout: Maximum wait in seconds when blocking

        Yields:
            True if acquired, False otherwise. The body runs either way;
            callers must check the flag.
        """
        local = self._local_lock(key)
        acquired_local = await self._acquire_local(local, blocking, blocking_timeout)
        if not acquired_local:
            yield False
            return

        token: str | None = None
        try:
            if self.redis_client is not None:
                token = await self._acquire_redis(key, timeout, blocking, blocking_timeout)
                if token is None:
                    yield False
                    return
            yield True
        finally:
            if token is not None:
                await self._release_redis(key, token)
            local.release()

    async def _acquire_local(
        self, local: asyncio.Lock, blocking: bool, blocking_timeout: float
    ) -> bool:
        if not blocking:
            if local.locked():
                return False
            await local.acquire()
            return True
        try:
            await asyncio.wait_for(local.acquire(), timeout=blocking_timeout)
            return True
        except TimeoutError:
            return False

    async def _acquire_redis(
        self, key: str, timeout: int, blocking: bool, blocking_timeout: float
    ) -> str | None:
        token = secrets.token_hex(16)
        deadline = time.monotonic() + blocking_timeout

        while True:
            acquired = await self.redis_client.set(key, token, nx=True, ex=timeout)
            if acquired:
                logger.debug(f"Acquired distributed lock {key}")
                return token
            if not blocking or time.monotonic() >= deadline:
                logger.debug(f"Distributed lock {key} is held elsewhere")
                return None
            await asyncio.sleep(0.1)

    async def _release_redis(self, key: str, token: str) -> None:
        try:
            await self.redis_client.eval(_RELEASE_SCRIPT, 1, key, token)
            logger.debug(f"Released distributed lock {key}")
        except Exception as e:
            # Key expires on its own after timeout
            logger.warning(f"Failed to release distributed lock {key}: {e}")
