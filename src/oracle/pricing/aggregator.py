"""Price consensus aggregator -- fans out to every spot source per request.

Every read triggers a fresh concurrent fetch from all configured sources
(no background scheduler). Each call is bounded by a per-source timeout and
all calls are awaited before the consensus is computed: failures and
timeouts are logged and dropped, never short-circuit the request.

Degradation:
- zero successful sources: last persisted snapshot, confidence multiplied by
  the stale penalty and flagged is_stale; NotFoundError if never priced.
- one source: its price, with its reliability as confidence.
- two or more: outlier-filtered, reliability-weighted consensus.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.config import ConsensusSettings
from oracle.corporate_actions.adjustment import applied_actions, fold_actions
from oracle.exceptions import BadRequestError, NotFoundError
from oracle.logging import get_logger
from oracle.models import (
    ConsensusResult,
    EquityPriceSnapshot,
    PriceQuote,
    SourcePrice,
    SourceQuote,
    utc_now,
)
from oracle.pricing.cache import NoPriceCache, PriceCache, history_key, price_key
from oracle.pricing.consensus import build_consensus

if TYPE_CHECKING:
    from oracle.corporate_actions.adjustment import PriceAdjustmentEngine
    from oracle.data.store import OracleDataStore
    from oracle.sources.base import SpotPriceSource

logger = get_logger(__name__)


class PriceAggregator:
    """Consensus price reads, history and point-in-time lookups.

    Args:
        sources: Spot price sources queried on every live read.
        store: Snapshot persistence (also the historical price reader).
        adjustment: Corporate action adjustment engine.
        settings: Consensus, cache TTL and batch limits.
        cache: Injected price cache. None = no caching.
        source_timeout_seconds: Per-source call timeout.
    """

    def __init__(
        self,
        sources: list[SpotPriceSource],
        store: OracleDataStore,
        adjustment: PriceAdjustmentEngine,
        settings: ConsensusSettings,
        cache: PriceCache | None = None,
        source_timeout_seconds: float = 10.0,
    ) -> None:
        self._sources = sources
        self._store = store
        self._adjustment = adjustment
        self._settings = settings
        self._cache = cache if cache is not None else NoPriceCache()
        self._timeout = source_timeout_seconds

    def _reliability(self, source: SpotPriceSource) -> Decimal:
        return source.reliability_score or self._settings.default_reliability

    # ──────────────────────────────────────────────
    # Consensus
    # ──────────────────────────────────────────────

    async def get_consensus_price(self, symbol: str) -> ConsensusResult:
        """Fetch all sources concurrently and reduce to one consensus price.

        Raises:
            NotFoundError: If every source failed and no snapshot exists.
        """
        symbol = symbol.upper()
        prices = await self._collect_quotes(symbol)
        if not prices:
            return await self._stale_fallback(symbol)

        result = build_consensus(symbol, prices, self._settings)
        logger.debug(
            "consensus_computed",
            symbol=symbol,
            price=str(result.price),
            confidence=str(result.confidence),
            sources=len(prices),
            excluded=[s.source_name for s in result.sources if s.excluded],
        )
        return result

    async def _collect_quotes(self, symbol: str) -> list[SourcePrice]:
        results = await asyncio.gather(
            *(self._fetch_one(source, symbol) for source in self._sources),
            return_exceptions=True,
        )

        prices: list[SourcePrice] = []
        for source, result in zip(self._sources, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "price_source_failed",
                    source=source.name,
                    symbol=symbol,
                    error=repr(result),
                )
                continue
            if result.price <= 0:
                logger.warning(
                    "price_source_invalid_price",
                    source=source.name,
                    symbol=symbol,
                    price=str(result.price),
                )
                continue
            prices.append(
                SourcePrice(
                    source_name=result.source_name or source.name,
                    price=result.price,
                    timestamp=result.timestamp,
                    reliability=self._reliability(source),
                    latency_ms=result.latency_ms,
                )
            )
        return prices

    async def _fetch_one(self, source: SpotPriceSource, symbol: str) -> SourceQuote:
        return await asyncio.wait_for(source.fetch(symbol), timeout=self._timeout)

    async def _stale_fallback(self, symbol: str) -> ConsensusResult:
        snapshot = await self._store.get_latest_price_snapshot(symbol)
        if snapshot is None:
            logger.error("price_unavailable", symbol=symbol, sources=len(self._sources))
            raise NotFoundError(f"No price available for {symbol}")

        confidence = snapshot.confidence * self._settings.stale_confidence_penalty
        logger.warning(
            "price_stale_fallback",
            symbol=symbol,
            snapshot_date=snapshot.price_date.isoformat(),
            confidence=str(confidence),
        )
        return ConsensusResult(
            symbol=symbol,
            price=snapshot.raw_price,
            confidence=confidence,
            sources=snapshot.sources,
            computed_at=snapshot.price_date,
            is_stale=True,
        )

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def get_price(self, symbol: str, adjusted: bool = True) -> PriceQuote:
        """Current price for a symbol, served from cache when fresh.

        A fresh (non-stale) consensus is persisted as a snapshot and cached
        under (symbol, adjusted) with the live TTL.
        """
        symbol = symbol.upper()
        key = price_key(symbol, adjusted)
        cached = await self._cache.get(key)
        if cached is not None:
            return cached

        consensus = await self.get_consensus_price(symbol)
        adjusted_price, applied = await self._adjustment.adjust(
            symbol, consensus.price, consensus.computed_at
        )
        quote = PriceQuote(
            symbol=symbol,
            raw_price=consensus.price,
            adjusted_price=adjusted_price,
            confidence=consensus.confidence,
            price_date=consensus.computed_at,
            sources=consensus.sources,
            corporate_actions_applied=applied,
            last_updated=consensus.computed_at,
            is_stale=consensus.is_stale,
        )

        if not consensus.is_stale:
            now = utc_now()
            await self._store.insert_price_snapshot(
                EquityPriceSnapshot(
                    symbol=symbol,
                    raw_price=consensus.price,
                    adjusted_price=adjusted_price,
                    confidence=consensus.confidence,
                    price_date=consensus.computed_at,
                    sources=consensus.sources,
                    created_at=now,
                    updated_at=now,
                )
            )
            await self._cache.set(key, quote, self._settings.live_cache_ttl_seconds)
        return quote

    async def get_adjusted_price(self, symbol: str) -> PriceQuote:
        return await self.get_price(symbol, adjusted=True)

    async def get_raw_price(self, symbol: str) -> PriceQuote:
        return await self.get_price(symbol, adjusted=False)

    async def get_batch_prices(
        self, symbols: list[str], adjusted: bool = True
    ) -> dict[str, PriceQuote]:
        """Prices for up to max_batch_symbols symbols; failing symbols are omitted.

        Raises:
            BadRequestError: If no symbols are given or the batch limit is exceeded.
        """
        unique = list(dict.fromkeys(s.upper() for s in symbols if s.strip()))
        if not unique:
            raise BadRequestError("At least one symbol is required")
        if len(unique) > self._settings.max_batch_symbols:
            raise BadRequestError(
                f"Maximum {self._settings.max_batch_symbols} symbols allowed per batch"
            )

        results = await asyncio.gather(
            *(self.get_price(s, adjusted) for s in unique),
            return_exceptions=True,
        )
        quotes: dict[str, PriceQuote] = {}
        for symbol, result in zip(unique, results):
            if isinstance(result, BaseException):
                logger.warning("batch_price_failed", symbol=symbol, error=repr(result))
                continue
            quotes[symbol] = result
        return quotes

    async def get_price_history(
        self, symbol: str, start: datetime, end: datetime
    ) -> list[PriceQuote]:
        """Persisted snapshots in [start, end], oldest first, cached with the historical TTL."""
        if start > end:
            raise BadRequestError("start must not be after end")
        symbol = symbol.upper()
        key = history_key(symbol, start.isoformat(), end.isoformat())
        cached = await self._cache.get(key)
        if cached is not None:
            return cached

        snapshots = await self._store.get_price_snapshots(symbol, since=start, until=end)
        actions = await self._adjustment.load_actions(symbol, end=end.date())
        history = [
            PriceQuote(
                symbol=s.symbol,
                raw_price=s.raw_price,
                adjusted_price=s.adjusted_price,
                confidence=s.confidence,
                price_date=s.price_date,
                sources=s.sources,
                corporate_actions_applied=applied_actions(actions, s.price_date),
                last_updated=s.updated_at,
            )
            for s in snapshots
        ]
        await self._cache.set(key, history, self._settings.historical_cache_ttl_seconds)
        return history

    async def get_price_at_date(self, symbol: str, day: date) -> PriceQuote:
        """Price on a calendar day.

        Uses the latest snapshot persisted that day; otherwise asks the
        historical-capable source directly, bypassing consensus.

        Raises:
            NotFoundError: If neither a snapshot nor a historical quote exists.
        """
        symbol = symbol.upper()
        snapshot = await self._store.get_price_snapshot_on(symbol, day)
        actions = await self._adjustment.load_actions(symbol, end=day)
        if snapshot is not None:
            return PriceQuote(
                symbol=symbol,
                raw_price=snapshot.raw_price,
                adjusted_price=snapshot.adjusted_price,
                confidence=snapshot.confidence,
                price_date=snapshot.price_date,
                sources=snapshot.sources,
                corporate_actions_applied=applied_actions(actions, day),
                last_updated=snapshot.updated_at,
            )

        key = history_key(symbol, day.isoformat(), day.isoformat())
        cached = await self._cache.get(key)
        if cached is not None:
            return cached

        source = next((s for s in self._sources if s.supports_history), None)
        if source is None:
            raise NotFoundError(f"No price available for {symbol} on {day.isoformat()}")

        try:
            result = await asyncio.wait_for(
                source.fetch_at_date(symbol, day), timeout=self._timeout
            )
        except Exception as exc:
            logger.warning(
                "historical_price_failed",
                source=source.name,
                symbol=symbol,
                day=day.isoformat(),
                error=repr(exc),
            )
            raise NotFoundError(
                f"No price available for {symbol} on {day.isoformat()}"
            ) from exc

        reliability = self._reliability(source)
        price_date = datetime.combine(day, time.min, tzinfo=timezone.utc)
        quote = PriceQuote(
            symbol=symbol,
            raw_price=result.price,
            adjusted_price=fold_actions(result.price, actions),
            confidence=reliability,
            price_date=price_date,
            sources=[
                SourcePrice(
                    source_name=source.name,
                    price=result.price,
                    timestamp=result.timestamp,
                    reliability=reliability,
                    latency_ms=result.latency_ms,
                )
            ],
            corporate_actions_applied=applied_actions(actions, day),
            last_updated=utc_now(),
        )
        await self._cache.set(key, quote, self._settings.historical_cache_ttl_seconds)
        return quote
