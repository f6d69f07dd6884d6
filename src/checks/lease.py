"""
Run Lease Manager

Keeps two checks for the same keyword from running at once. A lease is an
atomic "acquire if absent, else fail" lock with an expiry, so a crashed
orchestrator cannot wedge a keyword forever.

Backends:
- InMemoryLeaseManager: single process (development, tests)
- RedisLeaseManager: shared across workers (SET NX PX + compare-and-delete)
"""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.errors import AlreadyRunningError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lease:
    """Proof of holding the run lease for one key."""
    key: str
    token: str
    ttl: float


class RunLeaseManager(ABC):
    """Base class for lease backends."""

    @abstractmethod
    async def acquire(self, key: str, ttl: float) -> Lease:
        """
        Take the lease for key.

        Raises:
            AlreadyRunningError: Another holder has an unexpired lease
        """

    @abstractmethod
    async def release(self, lease: Lease) -> bool:
        """Give the lease back. Returns False if it had already expired or been taken over."""

    @asynccontextmanager
    async def hold(self, key: str, ttl: float) -> AsyncIterator[Lease]:
        """
        Hold the lease for the duration of the block.

        Usage:
            async with leases.hold(str(keyword_id), ttl=180):
                ...
        """
        lease = await self.acquire(key, ttl)
        try:
            yield lease
        finally:
            await self.release(lease)


class InMemoryLeaseManager(RunLeaseManager):
    """
    Process-local leases.

    Guarded by a threading lock so acquire stays atomic even when several
    event loops share one manager.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._leases: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    async def acquire(self, key: str, ttl: float) -> Lease:
        now = self._clock()
        with self._lock:
            held = self._leases.get(key)
            if held is not None and held[1] > now:
                raise AlreadyRunningError(key)
            if held is not None:
                logger.warning(f"Lease for {key} expired without release, taking over")

            token = secrets.token_hex(16)
            self._leases[key] = (token, now + ttl)

        return Lease(key=key, token=token, ttl=ttl)

    async def release(self, lease: Lease) -> bool:
        with self._lock:
            held = self._leases.get(lease.key)
            if held is None or held[0] != lease.token:
                logger.warning(f"Lease for {lease.key} was lost before release")
                return False
            del self._leases[lease.key]
        return True

    def is_held(self, key: str) -> bool:
        """True if an unexpired lease exists for key."""
        with self._lock:
            held = self._leases.get(key)
            return held is not None and held[1] > self._clock()


# Delete the key only if we still own it
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLeaseManager(RunLeaseManager):
    """
    Redis-backed leases shared by every API worker.

    Usage:
        leases = RedisLeaseManager.from_url("redis://localhost:6379/0")
    """

    def __init__(self, redis: Redis, namespace: str = "visibility:lease"):
        self._redis = redis
        self.namespace = namespace

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisLeaseManager":
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def acquire(self, key: str, ttl: float) -> Lease:
        token = secrets.token_hex(16)
        try:
            acquired = await self._redis.set(
                self._make_key(key), token, nx=True, px=max(1, int(ttl * 1000))
            )
        except RedisError as e:
            logger.error(f"Lease store unavailable while acquiring {key}: {e}")
            raise PersistenceError(f"Run lease store unavailable: {e}") from e

        if not acquired:
            raise AlreadyRunningError(key)
        return Lease(key=key, token=token, ttl=ttl)

    async def release(self, lease: Lease) -> bool:
        try:
            deleted = await self._redis.eval(RELEASE_SCRIPT, 1, self._make_key(lease.key), lease.token)
        except RedisError as e:
            # The lease still expires on its own
            logger.warning(f"Failed to release lease for {lease.key}, it will expire in {lease.ttl:.0f}s: {e}")
            return False

        if not deleted:
            logger.warning(f"Lease for {lease.key} was lost before release")
            return False
        return True

    async def close(self):
        await self._redis.aclose()


def create_lease_manager(redis_url: Optional[str] = None) -> RunLeaseManager:
    """Redis leases when a URL is configured, in-process otherwise."""
    if redis_url:
        logger.info("Using Redis run leases")
        return RedisLeaseManager.from_url(redis_url)
    logger.info("Using in-process run leases")
    return InMemoryLeaseManager()
