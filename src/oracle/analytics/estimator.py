"""Volatility and liquidity estimates from persisted price snapshots.

Snapshots are collapsed to one adjusted close per UTC day (the last snapshot
of the day) over the lookback window before any statistic is computed, so
intraday polling frequency never changes the result.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.analytics.liquidity import compute_liquidity_score
from oracle.analytics.volatility import compute_volatility
from oracle.config import AnalyticsSettings
from oracle.logging import get_logger
from oracle.models import EquityPriceSnapshot, utc_now

if TYPE_CHECKING:
    from oracle.data.store import OracleDataStore

logger = get_logger(__name__)


def daily_closes(snapshots: list[EquityPriceSnapshot]) -> list[tuple[date, Decimal]]:
    """Last adjusted price per UTC day, ascending by day."""
    closes: dict[date, tuple[datetime, Decimal]] = {}
    for snapshot in snapshots:
        day = snapshot.price_date.date()
        current = closes.get(day)
        if current is None or snapshot.price_date >= current[0]:
            closes[day] = (snapshot.price_date, snapshot.adjusted_price)
    return [(day, closes[day][1]) for day in sorted(closes)]


class VolatilityLiquidityEstimator:
    """Reads the snapshot history and derives volatility and liquidity.

    Args:
        store: Historical price reader (snapshot range query).
        settings: Lookback, annualization and liquidity weights.
    """

    def __init__(self, store: OracleDataStore, settings: AnalyticsSettings) -> None:
        self._store = store
        self._settings = settings

    async def _closes(self, symbol: str, now: datetime) -> list[tuple[date, Decimal]]:
        since = now - timedelta(days=self._settings.lookback_days)
        snapshots = await self._store.get_price_snapshots(symbol.upper(), since=since, until=now)
        return daily_closes(snapshots)

    async def get_volatility(self, symbol: str, now: datetime | None = None) -> Decimal:
        """Annualized volatility over the lookback window.

        Raises:
            InsufficientDataError: Fewer than 2 daily closes or 2 returns.
        """
        now = now or utc_now()
        closes = await self._closes(symbol, now)
        volatility = compute_volatility(
            [price for _, price in closes], self._settings.trading_days_per_year
        )
        logger.debug("volatility_estimated", symbol=symbol, volatility=str(volatility), days=len(closes))
        return volatility

    async def get_liquidity_score(self, symbol: str, now: datetime | None = None) -> Decimal:
        """Liquidity score in [0, 1]; the default score if history cannot be read."""
        now = now or utc_now()
        try:
            closes = await self._closes(symbol, now)
        except Exception:
            logger.warning("liquidity_history_failed", symbol=symbol, exc_info=True)
            return self._settings.default_liquidity

        recent_start = (now - timedelta(days=self._settings.recent_activity_days)).date()
        recent_points = sum(1 for day, _ in closes if day > recent_start)
        score = compute_liquidity_score(
            [price for _, price in closes], recent_points, self._settings
        )
        logger.debug("liquidity_estimated", symbol=symbol, score=str(score), days=len(closes))
        return score
