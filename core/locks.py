"""
Per-key mutual exclusion for engine writes.

Writes to one aggregate (an application, a candidate's relationships) are
serialized through a lock keyed by that aggregate. The local manager covers a
single process; the Redis manager covers a fleet of API workers.

Usage:
    async with lock_manager.acquire("application:42"):
        ...
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from redis.asyncio import Redis, from_url
from redis.exceptions import LockError, RedisError

from core.config import settings
from core.errors import Busy

logger = logging.getLogger(__name__)


def application_lock_key(application_id: int) -> str:
    return f"application:{application_id}"


def candidate_lock_key(candidate_id: int) -> str:
    return f"candidate:{candidate_id}"


class LockManager:
    """Interface for keyed locks. ``acquire`` raises ``Busy`` on timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout

    def acquire(self, key: str, timeout: Optional[float] = None):
        raise NotImplementedError

    async def close(self) -> None:
        return None


class LocalLockManager(LockManager):
    """In-process asyncio locks; entries are dropped once nobody holds or waits."""

    def __init__(self, timeout: float):
        super().__init__(timeout)
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        wait = self.timeout if timeout is None else timeout
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=wait)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out after {wait}s waiting for lock {key}")
                raise Busy(f"Resource {key} is busy, retry later", lock_key=key)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                self._locks.pop(key, None)


class RedisLockManager(LockManager):
    """
    Distributed locks on Redis (redis-py ``Lock``).

    The lease bounds how long a crashed holder can keep a key.
    """

    def __init__(
        self,
        redis: Redis,
        timeout: float,
        lease_seconds: float = 30.0,
        key_prefix: str = "rights:lock:",
    ):
        super().__init__(timeout)
        self._redis = redis
        self.lease_seconds = lease_seconds
        self.key_prefix = key_prefix

    @asynccontextmanager
    async def acquire(self, key: str, timeout: Optional[float] = None) -> AsyncIterator[None]:
        wait = self.timeout if timeout is None else timeout
        lock = self._redis.lock(
            f"{self.key_prefix}{key}",
            timeout=self.lease_seconds,
            blocking_timeout=wait,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error(f"Lock backend error for {key}: {e}")
            raise Busy(f"Lock service unavailable for {key}", lock_key=key) from e

        if not acquired:
            logger.warning(f"Timed out after {wait}s waiting for lock {key}")
            raise Busy(f"Resource {key} is busy, retry later", lock_key=key)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # lease ran out while we held it
                logger.warning(f"Lock {key} was lost before release: {e}")

    async def close(self) -> None:
        await self._redis.aclose()


def build_lock_manager() -> LockManager:
    """Lock manager for the configured backend."""
    if settings.lock_backend == "redis":
        redis = from_url(settings.redis_url, decode_responses=True)
        logger.info("Using Redis lock backend")
        return RedisLockManager(
            redis,
            timeout=settings.lock_timeout_seconds,
            lease_seconds=settings.lock_lease_seconds,
        )
    return LocalLockManager(timeout=settings.lock_timeout_seconds)
