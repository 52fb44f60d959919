"""
Caching and locking shared by validation requests.

Uses Redis when REDIS_URL is configured, so several worker processes share
the zone catalog and serialize taps on the same issued title. Without
Redis (or when it is unreachable at startup) both fall back to in-process
structures, which only serialize requests handled by this process.
"""

from contextlib import contextmanager
from typing import Dict, FrozenSet, Iterable, Iterator, Optional
import json
import logging
import threading
import time

import redis
from redis.exceptions import LockError, RedisError

from portam.config import settings
from portam.exceptions import LockTimeout

logger = logging.getLogger(__name__)


def connect_redis(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """Open a Redis client, or return None when Redis is disabled or down."""
    if not redis_url:
        return None
    try:
        client = redis.from_url(redis_url)
        client.ping()
    except (RedisError, ValueError) as e:
        logger.warning("Redis connection failed: %s. Using in-process cache and locks.", e)
        return None
    logger.info("Redis cache and locks initialized")
    return client


class ZoneCatalogCache:
    """
    Two-level cache of the ids of all existing zones:
    1. In-memory (process level)
    2. Redis (shared across processes)
    The database stays the source of truth.
    """

    KEY = "zones:existing"

    def __init__(self, redis_client: Optional[redis.Redis] = None, ttl: int = 300):
        self.redis_client = redis_client
        self.ttl = ttl
        self._zone_ids: Optional[FrozenSet[int]] = None
        self._timestamp: float = 0

    def _is_memory_valid(self) -> bool:
        return self._zone_ids is not None and (time.time() - self._timestamp) < self.ttl

    def get_zone_ids(self) -> Optional[FrozenSet[int]]:
        """Cached zone ids, or None on a miss."""
        if self._is_memory_valid():
            return self._zone_ids

        if self.redis_client is not None:
            try:
                cached_value = self.redis_client.get(self.KEY)
            except RedisError as e:
                logger.warning("Redis get error: %s", e)
                cached_value = None
            if cached_value:
                zone_ids = frozenset(json.loads(cached_value))
                self._zone_ids = zone_ids
                self._timestamp = time.time()
                return zone_ids

        return None

    def set_zone_ids(self, zone_ids: Iterable[int]):
        zone_ids = frozenset(zone_ids)
        self._zone_ids = zone_ids
        self._timestamp = time.time()

        if self.redis_client is not None:
            try:
                self.redis_client.setex(self.KEY, self.ttl, json.dumps(sorted(zone_ids)))
            except RedisError as e:
                logger.warning("Redis set error: %s", e)

    def invalidate(self):
        """Drop the cached catalog, e.g. after zones are added or removed."""
        self._zone_ids = None
        self._timestamp = 0

        if self.redis_client is not None:
            try:
                self.redis_client.delete(self.KEY)
            except RedisError as e:
                logger.warning("Redis delete error: %s", e)


class UserTitleLockRegistry:
    """
    One mutex per issued title. Validation of a title holds its mutex from
    the re-read of the title until the outcome is committed.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        timeout: float = 5.0,
        ttl: float = 30.0,
    ):
        """
        Args:
            redis_client: Shared Redis for cross-process locks, or None
            timeout: Seconds to wait for the lock before giving up
            ttl: Seconds after which a Redis lock expires if its holder died
        """
        self.redis_client = redis_client
        self.timeout = timeout
        self.ttl = ttl
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}
        self._holders: Dict[int, int] = {}

    @contextmanager
    def hold(self, user_title_id: int) -> Iterator[None]:
        if self.redis_client is not None:
            with self._hold_redis(user_title_id):
                yield
        else:
            with self._hold_local(user_title_id):
                yield

    @contextmanager
    def _hold_redis(self, user_title_id: int) -> Iterator[None]:
        lock = self.redis_client.lock(
            f"lock:user_title:{user_title_id}",
            timeout=self.ttl,
            blocking_timeout=self.timeout,
        )
        try:
            acquired = lock.acquire()
        except RedisError as e:
            raise LockTimeout(f"Could not lock user title {user_title_id}: {e}") from e
        if not acquired:
            raise LockTimeout(f"Timed out waiting for user title {user_title_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                logger.error("Lock on user title %s expired before it was released", user_title_id)

    @contextmanager
    def _hold_local(self, user_title_id: int) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(user_title_id, threading.Lock())
            self._holders[user_title_id] = self._holders.get(user_title_id, 0) + 1
        try:
            if not lock.acquire(timeout=self.timeout):
                raise LockTimeout(f"Timed out waiting for user title {user_title_id}")
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._guard:
                self._holders[user_title_id] -= 1
                if not self._holders[user_title_id]:
                    del self._holders[user_title_id]
                    del self._locks[user_title_id]


# Global instances (singleton pattern)
_UNSET = object()
_redis_client = _UNSET
_zone_cache: Optional[ZoneCatalogCache] = None
_lock_registry: Optional[UserTitleLockRegistry] = None


def get_redis_client() -> Optional[redis.Redis]:
    global _redis_client
    if _redis_client is _UNSET:
        _redis_client = connect_redis(settings.REDIS_URL)
    return _redis_client


def get_zone_cache() -> ZoneCatalogCache:
    """Get singleton zone catalog cache."""
    global _zone_cache
    if _zone_cache is None:
        _zone_cache = ZoneCatalogCache(get_redis_client(), ttl=settings.ZONES_CACHE_TTL)
    return _zone_cache


def get_lock_registry() -> UserTitleLockRegistry:
    """Get singleton lock registry."""
    global _lock_registry
    if _lock_registry is None:
        _lock_registry = UserTitleLockRegistry(
            get_redis_client(),
            timeout=settings.LOCK_TIMEOUT_SECONDS,
            ttl=settings.LOCK_TTL_SECONDS,
        )
    return _lock_registry
