"""Tests for the permission decision cache."""

import pytest

from hotelhub.authz.cache import PermissionCache
from hotelhub.authz.models import AuthzDecision, Permission


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> PermissionCache:
    return PermissionCache(ttl_seconds=60, max_entries=3, clock=clock)


def allow(key: str = "guests.read.property") -> AuthzDecision:
    return AuthzDecision.allow(Permission.parse(key), matched_role="property_manager")


class TestPermissionCache:
    """Basic get/set, TTL and eviction."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        key = cache.make_key("u-1", "guests", "read", "property", "fp")

        await cache.set(key, "u-1", allow())

        assert (await cache.get(key)).allowed
        assert cache.get_stats().total_hits == 1

    @pytest.mark.asyncio
    async def test_entries_expire(self, cache, clock):
        key = cache.make_key("u-1", "guests", "read", "property", "fp")
        await cache.set(key, "u-1", allow())

        clock.now += 61

        assert await cache.get(key) is None
        assert cache.get_stats().total_entries == 0

    @pytest.mark.asyncio
    async def test_shorter_ttl_is_honoured_and_capped(self, cache, clock):
        short = cache.make_key("u-1", "guests", "read", "property", "a")
        long = cache.make_key("u-1", "guests", "read", "property", "b")
        await cache.set(short, "u-1", allow(), ttl_seconds=5)
        await cache.set(long, "u-1", allow(), ttl_seconds=3600)

        clock.now += 10
        assert await cache.get(short) is None
        assert await cache.get(long) is not None

        clock.now += 60
        assert await cache.get(long) is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_not_stored(self, cache):
        key = cache.make_key("u-1", "guests", "read", "property", "fp")

        await cache.set(key, "u-1", allow(), ttl_seconds=0)

        assert cache.get_stats().total_entries == 0

    @pytest.mark.asyncio
    async def test_least_recently_used_is_evicted(self, cache, clock):
        keys = [cache.make_key("u-1", "guests", "read", "property", str(i)) for i in range(4)]
        for key in keys[:3]:
            clock.now += 1
            await cache.set(key, "u-1", allow())

        clock.now += 1
        await cache.get(keys[0])
        clock.now += 1
        await cache.set(keys[3], "u-1", allow())

        assert await cache.get(keys[1]) is None
        assert await cache.get(keys[0]) is not None
        assert cache.get_stats().evictions == 1

    @pytest.mark.asyncio
    async def test_recency_without_clock_movement(self, cache):
        keys = [cache.make_key("u-1", "guests", "read", "property", str(i)) for i in range(4)]
        for key in keys[:3]:
            await cache.set(key, "u-1", allow())

        await cache.get(keys[0])
        await cache.set(keys[3], "u-1", allow())

        assert await cache.get(keys[0]) is not None
        assert await cache.get(keys[1]) is None
        assert cache.get_stats().total_entries == 3

    @pytest.mark.asyncio
    async def test_overwriting_a_key_does_not_evict(self, cache):
        keys = [cache.make_key("u-1", "guests", "read", "property", str(i)) for i in range(3)]
        for key in keys:
            await cache.set(key, "u-1", allow())

        await cache.set(keys[1], "u-1", allow())

        assert cache.get_stats().evictions == 0
        assert cache.get_stats().total_entries == 3

    @pytest.mark.asyncio
    async def test_sweep_expired(self, cache, clock):
        await cache.set(cache.make_key("u-1", "a", "read", "own", "fp"), "u-1", allow())
        clock.now += 120

        assert await cache.sweep_expired() == 1


class TestInvalidation:
    """Invalidation bumps versions so stale keys can never be hit again."""

    @pytest.mark.asyncio
    async def test_invalidate_user(self, cache):
        key = cache.make_key("u-1", "guests", "read", "property", "fp")
        other = cache.make_key("u-2", "guests", "read", "property", "fp")
        await cache.set(key, "u-1", allow())
        await cache.set(other, "u-2", allow())

        assert await cache.invalidate_user("u-1") == 1

        assert await cache.get(key) is None
        assert await cache.get(other) is not None
        assert cache.make_key("u-1", "guests", "read", "property", "fp") != key

    @pytest.mark.asyncio
    async def test_late_write_after_invalidation_is_unreachable(self, cache):
        """A decision computed before an invalidation cannot be served after it."""
        stale_key = cache.make_key("u-1", "guests", "read", "property", "fp")

        await cache.invalidate_user("u-1")
        await cache.set(stale_key, "u-1", allow())

        fresh_key = cache.make_key("u-1", "guests", "read", "property", "fp")
        assert await cache.get(fresh_key) is None

    @pytest.mark.asyncio
    async def test_invalidate_all(self, cache):
        key = cache.make_key("u-1", "guests", "read", "property", "fp")
        await cache.set(key, "u-1", allow())

        await cache.invalidate_all()

        assert cache.get_stats().total_entries == 0
        assert cache.make_key("u-1", "guests", "read", "property", "fp") != key
        assert cache.get_stats().invalidations == 1

    @pytest.mark.asyncio
    async def test_disabled_cache(self):
        cache = PermissionCache(enabled=False)
        key = cache.make_key("u-1", "guests", "read", "property", "fp")

        await cache.set(key, "u-1", allow())

        assert await cache.get(key) is None
        stats = cache.get_stats()
        assert not stats.enabled
        assert stats.total_entries == 0
        assert stats.total_misses == 1
