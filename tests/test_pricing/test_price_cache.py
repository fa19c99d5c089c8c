"""Tests for the price cache implementations (TTL expiry, invalidation, no-op cache)."""

import pytest

from oracle.pricing.cache import InMemoryPriceCache, NoPriceCache, history_key, price_key


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestKeys:
    def test_price_key_distinguishes_adjusted(self) -> None:
        assert price_key("aapl", True) != price_key("AAPL", False)
        assert price_key("aapl", True) == price_key("AAPL", True)

    def test_history_key(self) -> None:
        assert history_key("msft", "2024-01-01", "2024-02-01") == "history:MSFT:2024-01-01:2024-02-01"


class TestInMemoryPriceCache:
    @pytest.mark.asyncio
    async def test_hit_before_expiry(self) -> None:
        clock = _Clock()
        cache = InMemoryPriceCache(clock=clock)
        await cache.set("k", "v", ttl_seconds=60)
        clock.now += 59
        assert await cache.get("k") == "v"

    @pytest.mark.asyncio
    async def test_miss_after_expiry(self) -> None:
        clock = _Clock()
        cache = InMemoryPriceCache(clock=clock)
        await cache.set("k", "v", ttl_seconds=60)
        clock.now += 60
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_expired_entries_swept_on_write(self) -> None:
        clock = _Clock()
        cache = InMemoryPriceCache(clock=clock)
        for i in range(500):
            await cache.set(history_key("AAPL", f"start-{i}", "end"), i, ttl_seconds=60)

        clock.now += 10_000
        await cache.set(price_key("AAPL", True), "live", ttl_seconds=60)

        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_least_recently_used_evicted_beyond_max_entries(self) -> None:
        cache = InMemoryPriceCache(max_entries=2)
        await cache.set("a", 1, 60)
        await cache.set("b", 2, 60)
        assert await cache.get("a") == 1

        await cache.set("c", 3, 60)

        assert len(cache) == 2
        assert await cache.get("b") is None
        assert await cache.get("a") == 1
        assert await cache.get("c") == 3

    @pytest.mark.asyncio
    async def test_invalidate_symbol_drops_both_variants(self) -> None:
        cache = InMemoryPriceCache()
        await cache.set(price_key("AAPL", True), 1, 60)
        await cache.set(price_key("AAPL", False), 2, 60)
        await cache.set(price_key("MSFT", True), 3, 60)

        await cache.invalidate_symbol("aapl")

        assert await cache.get(price_key("AAPL", True)) is None
        assert await cache.get(price_key("AAPL", False)) is None
        assert await cache.get(price_key("MSFT", True)) == 3


class TestNoPriceCache:
    @pytest.mark.asyncio
    async def test_always_misses(self) -> None:
        cache = NoPriceCache()
        await cache.set("k", "v", 60)
        assert await cache.get("k") is None
