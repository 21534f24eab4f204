import asyncio
from datetime import date

from fakeredis import FakeAsyncRedis, FakeServer

from threadfolio.services.cache import AppointmentCountsCache, counts_key

MONDAY = date(2025, 3, 3)
SUNDAY = date(2025, 3, 9)


def _cache(ttl_seconds=60, server=None):
    cache = AppointmentCountsCache(redis_url="", ttl_seconds=ttl_seconds)
    cache.redis_client = FakeAsyncRedis(server=server or FakeServer(), decode_responses=True)
    return cache


def test_entries_are_stored_with_ttl():
    cache = _cache(ttl_seconds=60)

    async def scenario():
        assert await cache.set("shop-1", MONDAY, SUNDAY, {MONDAY: 2})
        ttl = await cache.redis_client.ttl(counts_key("shop-1", MONDAY, SUNDAY))
        return await cache.get("shop-1", MONDAY, SUNDAY), ttl

    counts, ttl = asyncio.run(scenario())
    assert counts == {MONDAY: 2}
    assert 0 < ttl <= 60


def test_invalidate_is_per_shop():
    cache = _cache()

    async def scenario():
        await cache.set("shop-1", MONDAY, SUNDAY, {MONDAY: 1})
        await cache.set("shop-1", MONDAY, MONDAY, {MONDAY: 1})
        await cache.set("shop-2", MONDAY, SUNDAY, {MONDAY: 3})
        removed = await cache.invalidate_shop("shop-1")
        return (
            removed,
            await cache.get("shop-1", MONDAY, SUNDAY),
            await cache.get("shop-2", MONDAY, SUNDAY),
            await cache.invalidate_shop("shop-1"),
        )

    removed, mine, theirs, again = asyncio.run(scenario())
    assert removed == 2
    assert mine is None
    assert theirs == {MONDAY: 3}
    assert again == 0


def test_zero_ttl_disables_caching():
    cache = _cache(ttl_seconds=0)

    async def scenario():
        stored = await cache.set("shop-1", MONDAY, SUNDAY, {MONDAY: 1})
        return stored, await cache.get("shop-1", MONDAY, SUNDAY)

    assert asyncio.run(scenario()) == (False, None)


def test_without_redis_url_cache_is_off():
    cache = AppointmentCountsCache(redis_url="", ttl_seconds=60)

    async def scenario():
        stored = await cache.set("shop-1", MONDAY, SUNDAY, {MONDAY: 1})
        return stored, await cache.get("shop-1", MONDAY, SUNDAY), await cache.invalidate_shop("shop-1")

    assert asyncio.run(scenario()) == (False, None, 0)
    assert cache.redis_client is None


def test_redis_outage_fails_open():
    server = FakeServer()
    server.connected = False
    cache = _cache(server=server)

    async def scenario():
        return (
            await cache.get("shop-1", MONDAY, SUNDAY),
            await cache.set("shop-1", MONDAY, SUNDAY, {MONDAY: 2}),
            await cache.invalidate_shop("shop-1"),
        )

    assert asyncio.run(scenario()) == (None, False, 0)


def test_close_releases_client():
    cache = _cache()
    asyncio.run(cache.close())
    assert cache.redis_client is None
