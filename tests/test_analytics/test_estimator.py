"""Tests for VolatilityLiquidityEstimator over mocked snapshot history."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from oracle.analytics.estimator import VolatilityLiquidityEstimator, daily_closes
from oracle.config import AnalyticsSettings
from oracle.exceptions import InsufficientDataError
from oracle.models import EquityPriceSnapshot

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


def _make_snapshot(moment: datetime, price: str) -> EquityPriceSnapshot:
    return EquityPriceSnapshot(
        symbol="AAPL",
        raw_price=Decimal(price),
        adjusted_price=Decimal(price),
        confidence=Decimal("0.9"),
        price_date=moment,
    )


def _make_estimator(snapshots=None, error: Exception | None = None) -> VolatilityLiquidityEstimator:
    store = AsyncMock()
    if error is not None:
        store.get_price_snapshots = AsyncMock(side_effect=error)
    else:
        store.get_price_snapshots = AsyncMock(return_value=snapshots or [])
    return VolatilityLiquidityEstimator(store, AnalyticsSettings())


class TestDailyCloses:
    def test_last_snapshot_of_day_wins(self) -> None:
        day = NOW.replace(hour=0)
        snapshots = [
            _make_snapshot(day + timedelta(hours=20), "105"),
            _make_snapshot(day + timedelta(hours=9), "100"),
            _make_snapshot(day - timedelta(hours=2), "99"),
        ]
        closes = daily_closes(snapshots)
        assert [price for _, price in closes] == [Decimal("99"), Decimal("105")]


class TestEstimator:
    @pytest.mark.asyncio
    async def test_constant_history(self) -> None:
        snapshots = [_make_snapshot(NOW - timedelta(days=d), "100") for d in range(30)]
        # intraday noise on the same days must not change the result
        snapshots += [_make_snapshot(NOW - timedelta(days=d, hours=3), "180") for d in range(30)]
        estimator = _make_estimator(snapshots)

        assert await estimator.get_volatility("AAPL", now=NOW) == Decimal("0")
        assert await estimator.get_liquidity_score("AAPL", now=NOW) == Decimal("1")

    @pytest.mark.asyncio
    async def test_volatility_insufficient_data(self) -> None:
        estimator = _make_estimator([_make_snapshot(NOW, "100")])
        with pytest.raises(InsufficientDataError):
            await estimator.get_volatility("AAPL", now=NOW)

    @pytest.mark.asyncio
    async def test_liquidity_default_without_history(self) -> None:
        assert await _make_estimator([]).get_liquidity_score("AAPL", now=NOW) == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_liquidity_default_on_store_error(self) -> None:
        estimator = _make_estimator(error=RuntimeError("db locked"))
        assert await estimator.get_liquidity_score("AAPL", now=NOW) == Decimal("0.5")

    @pytest.mark.asyncio
    async def test_queries_lookback_window(self) -> None:
        estimator = _make_estimator([])
        await estimator.get_liquidity_score("aapl", now=NOW)
        estimator._store.get_price_snapshots.assert_awaited_once_with(
            "AAPL", since=NOW - timedelta(days=30), until=NOW
        )
