"""Price cache abstraction injected into the aggregator.

Entries expire after a per-entry TTL: live consensus prices use a short TTL
and historical series a long one (see ConsensusSettings).
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Callable
from typing import Any


def price_key(symbol: str, adjusted: bool) -> str:
    return f"price:{symbol.upper()}:{'adjusted' if adjusted else 'raw'}"


def history_key(symbol: str, start: str, end: str) -> str:
    return f"history:{symbol.upper()}:{start}:{end}"


class PriceCache(ABC):
    """Async key/value cache with explicit TTLs."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss or expiry."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        ...

    @abstractmethod
    async def invalidate(self, key: str) -> None:
        ...

    async def invalidate_symbol(self, symbol: str) -> None:
        """Drop the live entries for a symbol (both adjusted and raw)."""
        await self.invalidate(price_key(symbol, True))
        await self.invalidate(price_key(symbol, False))


class NoPriceCache(PriceCache):
    """No-op cache -- always misses."""

    async def get(self, key: str) -> Any | None:
        return None

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        pass

    async def invalidate(self, key: str) -> None:
        pass


class InMemoryPriceCache(PriceCache):
    """In-process TTL cache guarded by an asyncio.Lock.

    Expired entries are swept on every read and write. Beyond max_entries the
    least recently used entry is evicted.

    Args:
        max_entries: Upper bound on live entries.
        clock: Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
        self, max_entries: int = 1000, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._max_entries = max_entries
        self._lock = asyncio.Lock()
        self._clock = clock

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def _evict_lru(self) -> None:
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            self._evict_expired()
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry[0]

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        async with self._lock:
            self._evict_expired()
            self._entries[key] = (value, self._clock() + ttl_seconds)
            self._entries.move_to_end(key)
            self._evict_lru()

    async def invalidate(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
