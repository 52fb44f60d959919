"""Unit tests for the zone catalog cache and the per-title locks."""

import threading
import time

import pytest

from portam.cache import UserTitleLockRegistry, ZoneCatalogCache, connect_redis
from portam.exceptions import LockTimeout


class TestZoneCatalogCache:

    def test_miss_then_hit(self):
        cache = ZoneCatalogCache(redis_client=None, ttl=60)
        assert cache.get_zone_ids() is None

        cache.set_zone_ids([3, 1, 2])
        assert cache.get_zone_ids() == frozenset({1, 2, 3})

    def test_invalidate(self):
        cache = ZoneCatalogCache(redis_client=None, ttl=60)
        cache.set_zone_ids([1])
        cache.invalidate()
        assert cache.get_zone_ids() is None

    def test_expired_entry_is_a_miss(self):
        cache = ZoneCatalogCache(redis_client=None, ttl=0)
        cache.set_zone_ids([1])
        assert cache.get_zone_ids() is None


class TestUserTitleLockRegistry:

    def test_locks_are_released_and_forgotten(self):
        registry = UserTitleLockRegistry(timeout=0.1)
        with registry.hold(7):
            assert 7 in registry._locks
        assert registry._locks == {}
        assert registry._holders == {}

    def test_same_title_is_serialized(self):
        registry = UserTitleLockRegistry(timeout=0.05)
        with registry.hold(7):
            with pytest.raises(LockTimeout):
                with registry.hold(7):
                    pass
        assert registry._locks == {}

    def test_different_titles_do_not_block(self):
        registry = UserTitleLockRegistry(timeout=0.05)
        with registry.hold(7):
            with registry.hold(8):
                pass

    def test_waiter_gets_lock_after_release(self):
        registry = UserTitleLockRegistry(timeout=2)
        entered = []

        def worker():
            with registry.hold(7):
                entered.append(time.monotonic())

        with registry.hold(7):
            thread = threading.Thread(target=worker)
            thread.start()
            time.sleep(0.05)
            assert entered == []
        thread.join()

        assert len(entered) == 1
        assert registry._locks == {}


class TestRedisConnection:

    def test_disabled_without_url(self):
        assert connect_redis("") is None

    def test_unreachable_redis_falls_back(self):
        assert connect_redis("redis://127.0.0.1:1/0") is None
