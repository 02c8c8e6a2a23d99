from __future__ import annotations

import anyio
import pytest

from rate_engine.services.price_cache import (
    InMemoryCacheStore,
    PriceCache,
    build_price_cache,
    campaigns_key,
    generate_key,
    price_key,
)


class BrokenStore(InMemoryCacheStore):
    async def get(self, key):
        raise ConnectionError("cache backend down")

    async def set(self, key, value, ttl_seconds):
        raise ConnectionError("cache backend down")


def test_keys_are_deterministic_and_scoped():
    a = price_key("h1", "std", "bb", "eu", adults=2, children=[{"age": 5}], date="2026-05-10")
    b = price_key("h1", "std", "bb", "eu", date="2026-05-10", children=[{"age": 5}], adults=2)
    c = price_key("h1", "std", "bb", "eu", adults=3, children=[{"age": 5}], date="2026-05-10")

    assert a == b
    assert a != c
    assert a.startswith("price:h1:std:bb:eu:")
    assert campaigns_key("h1", check_in="2026-05-10").startswith("campaigns:h1:")
    assert generate_key("rate", "h1", None, x=1).startswith("rate:h1:")


@pytest.mark.anyio
async def test_ttl_expiry_with_fake_clock(price_cache, fake_clock):
    await price_cache.set("price:h1:x", {"total": 100}, ttl_seconds=60)
    assert await price_cache.get("price:h1:x") == {"total": 100}

    fake_clock.advance(59)
    assert await price_cache.get("price:h1:x") is not None

    fake_clock.advance(1)
    assert await price_cache.get("price:h1:x") is None


@pytest.mark.anyio
async def test_get_or_set_computes_once_and_skips_none(price_cache):
    calls = []

    async def compute():
        calls.append(1)
        return {"total": 42}

    assert await price_cache.get_or_set("price:a", compute) == {"total": 42}
    assert await price_cache.get_or_set("price:a", compute) == {"total": 42}
    assert len(calls) == 1

    async def nothing():
        calls.append(1)
        return None

    assert await price_cache.get_or_set("price:b", nothing) is None
    assert await price_cache.get_or_set("price:b", nothing) is None
    assert len(calls) == 3


@pytest.mark.anyio
async def test_concurrent_get_or_set_shares_one_computation(price_cache):
    calls = []

    async def slow():
        calls.append(1)
        await anyio.sleep(0.01)
        return {"total": 1}

    results = []

    async def worker():
        results.append(await price_cache.get_or_set("price:slow", slow))

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(worker)

    assert len(calls) == 1
    assert results == [{"total": 1}] * 5


@pytest.mark.anyio
async def test_prefix_invalidation_and_clear(price_cache):
    for key in ("price:h1:std:a", "price:h1:fam:a", "price:h2:std:a", "campaigns:h1:a"):
        await price_cache.set(key, 1)

    assert await price_cache.invalidate_prefix("price:h1:") == 2
    assert await price_cache.get("price:h2:std:a") == 1
    assert await price_cache.delete("campaigns:h1:a") is True
    assert await price_cache.clear() == 1


@pytest.mark.anyio
async def test_invalidate_entity_targets(price_cache):
    keys = [
        "price:h1:std:bb:eu:x",
        "price:h1:fam:bb:eu:x",
        "availability:h1:std:bb:eu:x",
        "campaigns:h1:x",
        "price:h2:std:bb:eu:x",
    ]
    for key in keys:
        await price_cache.set(key, 1)

    assert await price_cache.invalidate_entity("rate", "h1", "std") == 2
    assert await price_cache.invalidate_entity("campaign", "h1") == 2
    assert await price_cache.get("price:h2:std:bb:eu:x") == 1

    await price_cache.set("price:h1:std:bb:eu:y", 1)
    assert await price_cache.invalidate_entity("market", "h1") == 1


@pytest.mark.anyio
async def test_sweep_and_stats(price_cache, fake_clock):
    await price_cache.set("price:a", 1, ttl_seconds=10)
    await price_cache.set("price:b", 1, ttl_seconds=100)
    await price_cache.get("price:a")
    await price_cache.get("price:zzz")

    fake_clock.advance(50)
    assert await price_cache.sweep() == 1

    stats = await price_cache.get_stats()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0
    assert stats["backend"] == "InMemoryCacheStore"

    price_cache.reset_stats()
    assert (await price_cache.get_stats())["hits"] == 0


@pytest.mark.anyio
async def test_disabled_cache_always_computes():
    cache = build_price_cache(enabled=False)
    calls = []

    async def compute():
        calls.append(1)
        return 1

    await cache.get_or_set("k", compute)
    await cache.get_or_set("k", compute)
    assert len(calls) == 2


@pytest.mark.anyio
async def test_store_failures_fall_back_to_compute():
    cache = PriceCache(BrokenStore())

    async def compute():
        return {"total": 5}

    assert await cache.get_or_set("price:x", compute) == {"total": 5}
    assert cache.errors == 2
