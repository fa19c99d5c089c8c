"""Tests for OracleDataStore against a temporary SQLite database.

Covers:
- Decimal round trips for snapshots, funding rates and recommendations
- Per-day snapshot lookup and range queries
- Corporate action filters, key lookup and soft deletion
- Funding rate validity
- Active / upcoming / recent risk window queries and factor ordering
- Database lifecycle: idempotent connect and schema version
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from oracle.data import OracleDatabase
from oracle.models import (
    CorporateAction,
    CorporateActionType,
    DividendDetails,
    EquityPriceSnapshot,
    FundingRateComponents,
    FundingRateRecord,
    MergerDetails,
    SourcePrice,
    SplitDetails,
)
from oracle.risk.models import RiskFactor, RiskFactorType, RiskLevel, RiskWindow

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


def _make_snapshot(moment: datetime, price: str, symbol: str = "AAPL") -> EquityPriceSnapshot:
    return EquityPriceSnapshot(
        symbol=symbol,
        raw_price=Decimal(price),
        adjusted_price=Decimal(price) / 4,
        confidence=Decimal("0.925"),
        price_date=moment,
        sources=[
            SourcePrice("IEX Cloud", Decimal(price), moment, Decimal("0.95"), latency_ms=12.5),
            SourcePrice("Alpha Vantage", Decimal("1"), moment, Decimal("0.75"), excluded=True),
        ],
    )


def _make_action(
    action_type: CorporateActionType, day: date, details, symbol: str = "AAPL"
) -> CorporateAction:
    return CorporateAction(
        symbol=symbol,
        action_type=action_type,
        ex_date=day,
        record_date=day,
        effective_date=day,
        details=details,
        source="IEX Cloud",
    )


def _make_funding(calculated_at: datetime) -> FundingRateRecord:
    return FundingRateRecord(
        symbol="AAPL",
        rate=Decimal("1.23456789"),
        hourly_rate=Decimal("1.23456789") / Decimal(8760),
        mark_price=Decimal("101.5"),
        spot_price=Decimal("400"),
        adjusted_spot_price=Decimal("100"),
        premium=Decimal("1.5"),
        premium_percentage=Decimal("1.5"),
        components=FundingRateComponents(
            Decimal("0.15"), Decimal("1.0"), Decimal("0.03"), Decimal("0.05456789")
        ),
        calculated_at=calculated_at,
        valid_until=calculated_at + timedelta(hours=1),
    )


def _make_window(level: RiskLevel, start: datetime, end: datetime, symbol: str = "AAPL") -> RiskWindow:
    factors = [
        RiskFactor(
            factor_type=RiskFactorType.CORPORATE_ACTION,
            description="Stock split effective 2024-06-05",
            impact=Decimal("1.0"),
            effective_date=start,
            level=level,
            start_date=start,
            end_date=end,
            details={"action_id": "a1", "days_until": 2},
        ),
        RiskFactor(
            factor_type=RiskFactorType.LOW_LIQUIDITY,
            description="Low liquidity score: 0.20",
            impact=Decimal("0.8"),
            effective_date=start,
        ),
    ]
    return RiskWindow(symbol=symbol, level=level, start_date=start, end_date=end, factors=factors)


# ---------------------------------------------------------------------------
# Price snapshots
# ---------------------------------------------------------------------------


class TestPriceSnapshots:
    @pytest.mark.asyncio
    async def test_round_trip(self, store) -> None:
        snapshot = _make_snapshot(NOW, "500.10")
        await store.insert_price_snapshot(snapshot)

        loaded = await store.get_latest_price_snapshot("AAPL")
        assert loaded.raw_price == Decimal("500.10")
        assert loaded.adjusted_price == Decimal("125.025")
        assert loaded.confidence == Decimal("0.925")
        assert loaded.price_date == NOW
        assert [s.source_name for s in loaded.sources] == ["IEX Cloud", "Alpha Vantage"]
        assert loaded.sources[0].latency_ms == 12.5
        assert loaded.sources[1].excluded is True

    @pytest.mark.asyncio
    async def test_latest_and_unknown(self, store) -> None:
        await store.insert_price_snapshot(_make_snapshot(NOW - timedelta(hours=1), "1"))
        await store.insert_price_snapshot(_make_snapshot(NOW, "2"))
        assert (await store.get_latest_price_snapshot("AAPL")).raw_price == Decimal("2")
        assert await store.get_latest_price_snapshot("MSFT") is None

    @pytest.mark.asyncio
    async def test_snapshot_on_day(self, store) -> None:
        await store.insert_price_snapshot(_make_snapshot(NOW.replace(hour=9), "1"))
        await store.insert_price_snapshot(_make_snapshot(NOW.replace(hour=20), "2"))
        await store.insert_price_snapshot(_make_snapshot(NOW + timedelta(days=1), "3"))

        on_day = await store.get_price_snapshot_on("AAPL", NOW.date())
        assert on_day.raw_price == Decimal("2")
        assert await store.get_price_snapshot_on("AAPL", date(2024, 1, 1)) is None

    @pytest.mark.asyncio
    async def test_range_is_inclusive_and_ascending(self, store) -> None:
        for days in (3, 2, 1, 0):
            await store.insert_price_snapshot(_make_snapshot(NOW - timedelta(days=days), str(days)))
        snapshots = await store.get_price_snapshots(
            "AAPL", since=NOW - timedelta(days=2), until=NOW - timedelta(days=1)
        )
        assert [s.raw_price for s in snapshots] == [Decimal("2"), Decimal("1")]


# ---------------------------------------------------------------------------
# Corporate actions
# ---------------------------------------------------------------------------


class TestCorporateActions:
    @pytest.mark.asyncio
    async def test_details_round_trip(self, store) -> None:
        split = _make_action(CorporateActionType.STOCK_SPLIT, date(2020, 8, 31), SplitDetails(Decimal("4")))
        dividend = _make_action(
            CorporateActionType.DIVIDEND, date(2020, 8, 7), DividendDetails(Decimal("0.82"), "USD")
        )
        merger = _make_action(
            CorporateActionType.MERGER, date(2021, 1, 4), MergerDetails("NEWCO", Decimal("1.5"))
        )
        for action in (split, dividend, merger):
            await store.insert_corporate_action(action)

        loaded = await store.get_corporate_actions("AAPL")
        assert [a.id for a in loaded] == [dividend.id, split.id, merger.id]
        assert loaded[0].details == DividendDetails(Decimal("0.82"), "USD")
        assert loaded[1].details == SplitDetails(Decimal("4"))
        assert loaded[2].details == MergerDetails("NEWCO", Decimal("1.5"))

    @pytest.mark.asyncio
    async def test_filters_and_count(self, store) -> None:
        for month in (1, 2, 3):
            await store.insert_corporate_action(
                _make_action(
                    CorporateActionType.DIVIDEND,
                    date(2024, month, 10),
                    DividendDetails(Decimal("0.24")),
                )
            )
        await store.insert_corporate_action(
            _make_action(CorporateActionType.STOCK_SPLIT, date(2024, 2, 20), SplitDetails(Decimal("2")))
        )

        in_range = await store.get_corporate_actions(
            "AAPL", start=date(2024, 2, 10), end=date(2024, 3, 10)
        )
        assert len(in_range) == 3
        dividends = await store.count_corporate_actions(
            "AAPL", action_type=CorporateActionType.DIVIDEND
        )
        assert dividends == 3
        page = await store.get_corporate_actions("AAPL", limit=2, offset=2)
        assert [a.effective_date for a in page] == [date(2024, 2, 20), date(2024, 3, 10)]

    @pytest.mark.asyncio
    async def test_soft_delete_hides_but_key_lookup_can_include(self, store) -> None:
        action = _make_action(CorporateActionType.STOCK_SPLIT, date(2020, 8, 31), SplitDetails(Decimal("4")))
        await store.insert_corporate_action(action)

        action.is_deleted = True
        action.verified = True
        await store.update_corporate_action_state(action)

        assert await store.get_corporate_action(action.id) is None
        assert await store.get_corporate_actions("AAPL") == []
        key = (action.symbol, action.action_type, action.effective_date)
        assert await store.get_corporate_action_by_key(*key) is None
        hidden = await store.get_corporate_action_by_key(*key, include_deleted=True)
        assert hidden.is_deleted is True
        assert hidden.verified is True


# ---------------------------------------------------------------------------
# Funding rates
# ---------------------------------------------------------------------------


class TestFundingRates:
    @pytest.mark.asyncio
    async def test_round_trip_and_validity(self, store) -> None:
        record = _make_funding(NOW)
        await store.insert_funding_rate(record)

        current = await store.get_current_funding_rate("AAPL", NOW + timedelta(minutes=30))
        assert current.rate == Decimal("1.23456789")
        assert current.hourly_rate == record.hourly_rate
        assert current.components.total == record.components.total
        assert await store.get_current_funding_rate("AAPL", NOW + timedelta(hours=1)) is None

    @pytest.mark.asyncio
    async def test_history_newest_first(self, store) -> None:
        for hours in (3, 2, 1):
            await store.insert_funding_rate(_make_funding(NOW - timedelta(hours=hours)))
        history = await store.get_funding_rates("AAPL", since=NOW - timedelta(hours=2))
        assert [r.calculated_at for r in history] == [
            NOW - timedelta(hours=1),
            NOW - timedelta(hours=2),
        ]


# ---------------------------------------------------------------------------
# Risk windows
# ---------------------------------------------------------------------------


class TestRiskWindows:
    @pytest.mark.asyncio
    async def test_active_most_severe_first_with_factors(self, store) -> None:
        high = _make_window(RiskLevel.HIGH, NOW - timedelta(days=1), NOW + timedelta(days=1))
        critical = _make_window(RiskLevel.CRITICAL, NOW - timedelta(hours=1), NOW + timedelta(days=2))
        other = _make_window(RiskLevel.CRITICAL, NOW, NOW + timedelta(days=1), symbol="MSFT")
        for window in (high, critical, other):
            await store.insert_risk_window(window)

        active = await store.get_active_risk_windows(["AAPL"], NOW)
        assert [w.id for w in active] == [critical.id, high.id]
        factors = active[0].factors
        assert [f.factor_type for f in factors] == [
            RiskFactorType.CORPORATE_ACTION,
            RiskFactorType.LOW_LIQUIDITY,
        ]
        assert factors[0].details == {"action_id": "a1", "days_until": 2}
        assert factors[1].start_date is None
        assert await store.get_active_risk_windows([], NOW) == []

    @pytest.mark.asyncio
    async def test_upcoming_and_recent(self, store) -> None:
        past = _make_window(RiskLevel.HIGH, NOW - timedelta(days=5), NOW - timedelta(days=2))
        older = _make_window(RiskLevel.HIGH, NOW - timedelta(days=9), NOW - timedelta(days=4))
        soon = _make_window(RiskLevel.HIGH, NOW + timedelta(days=2), NOW + timedelta(days=4))
        for window in (past, older, soon):
            await store.insert_risk_window(window)

        upcoming = await store.get_upcoming_risk_windows(["AAPL"], NOW, NOW + timedelta(days=7))
        assert [w.id for w in upcoming] == [soon.id]

        recent = await store.get_recent_risk_window("AAPL", NOW - timedelta(days=7), NOW)
        assert recent.id == past.id


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------


class TestDatabase:
    @pytest.mark.asyncio
    async def test_reconnect_keeps_single_schema_version(self, tmp_path) -> None:
        path = str(tmp_path / "nested" / "oracle.db")
        async with OracleDatabase(path) as database:
            assert database.is_connected
        async with OracleDatabase(path) as database:
            async with database.db.execute("SELECT COUNT(*) FROM schema_version") as cursor:
                row = await cursor.fetchone()
        assert row[0] == 1
        assert not database.is_connected

    def test_db_before_connect_raises(self, tmp_path) -> None:
        with pytest.raises(RuntimeError):
            OracleDatabase(str(tmp_path / "oracle.db")).db
