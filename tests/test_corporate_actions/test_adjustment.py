"""Tests for the corporate action adjustment engine.

Covers:
- Per-type adjusters (split, reverse split, merger, dividends)
- Effective-date ordering and as-of prefix selection
- Split/reverse-split round trips
- adjustment_factor window bounds and adjustment_history steps
- raw × adjustment_factor equals the adjusted price when the window starts before every action
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from oracle.corporate_actions.adjustment import (
    PriceAdjustmentEngine,
    action_factor,
    applied_actions,
    cumulative_factor,
    fold_actions,
)
from oracle.models import (
    CorporateAction,
    CorporateActionType,
    DividendDetails,
    MergerDetails,
    SplitDetails,
)


class _ActionStore:
    """In-memory stand-in for OracleDataStore.get_corporate_actions."""

    def __init__(self, actions: list[CorporateAction]) -> None:
        self.actions = actions

    async def get_corporate_actions(self, symbol, start=None, end=None, **kwargs):
        return [
            a
            for a in self.actions
            if a.symbol == symbol
            and not a.is_deleted
            and (start is None or a.effective_date >= start)
            and (end is None or a.effective_date <= end)
        ]


def _split(day: date, ratio: str, symbol: str = "AAPL", reverse: bool = False) -> CorporateAction:
    return CorporateAction(
        symbol=symbol,
        action_type=CorporateActionType.REVERSE_SPLIT if reverse else CorporateActionType.STOCK_SPLIT,
        ex_date=day,
        record_date=day,
        effective_date=day,
        details=SplitDetails(ratio=Decimal(ratio)),
    )


def _merger(day: date, ratio: str, symbol: str = "AAPL") -> CorporateAction:
    return CorporateAction(
        symbol=symbol,
        action_type=CorporateActionType.MERGER,
        ex_date=day,
        record_date=day,
        effective_date=day,
        details=MergerDetails(acquiring_symbol="NEWCO", exchange_ratio=Decimal(ratio)),
    )


def _dividend(day: date, symbol: str = "AAPL") -> CorporateAction:
    return CorporateAction(
        symbol=symbol,
        action_type=CorporateActionType.DIVIDEND,
        ex_date=day,
        record_date=day,
        effective_date=day,
        details=DividendDetails(amount=Decimal("0.24")),
    )


D1 = date(2024, 1, 10)
D2 = date(2024, 2, 10)


# ---------------------------------------------------------------------------
# Pure folding
# ---------------------------------------------------------------------------


class TestAdjusters:
    def test_split_divides(self) -> None:
        assert fold_actions(Decimal("500"), [_split(D1, "4")]) == Decimal("125")

    def test_reverse_split_multiplies(self) -> None:
        assert fold_actions(Decimal("2"), [_split(D1, "10", reverse=True)]) == Decimal("20")

    def test_merger_multiplies_by_exchange_ratio(self) -> None:
        assert fold_actions(Decimal("40"), [_merger(D1, "1.5")]) == Decimal("60")

    def test_dividend_is_identity(self) -> None:
        assert fold_actions(Decimal("123.45"), [_dividend(D1)]) == Decimal("123.45")
        assert action_factor(_dividend(D1)) == Decimal("1")

    def test_empty_fold_returns_price(self) -> None:
        assert fold_actions(Decimal("10"), []) == Decimal("10")

    def test_fold_sorts_by_effective_date(self) -> None:
        later, earlier = _merger(D2, "1.5"), _split(D1, "2")
        assert fold_actions(Decimal("100"), [later, earlier]) == Decimal("75")

    @pytest.mark.parametrize("ratio", ["2", "4", "1.5"])
    def test_split_then_reverse_split_round_trips(self, ratio: str) -> None:
        actions = [_split(D1, ratio), _split(D2, ratio, reverse=True)]
        result = fold_actions(Decimal("100"), actions)
        assert abs(result - Decimal("100")) < Decimal("1e-20")


class TestAppliedActions:
    def test_only_actions_effective_by_as_of(self) -> None:
        split, merger = _split(D1, "2"), _merger(D2, "1.5")
        applied = applied_actions([merger, split], D1 + timedelta(days=1))
        assert [a.action_id for a in applied] == [split.id]
        assert applied[0].adjustment_factor == Decimal("0.5")

    def test_accepts_datetime(self) -> None:
        split = _split(D1, "2")
        moment = datetime(2024, 1, 10, 23, 0, tzinfo=timezone.utc)
        assert len(applied_actions([split], moment)) == 1


# ---------------------------------------------------------------------------
# Engine over a store
# ---------------------------------------------------------------------------


class TestPriceAdjustmentEngine:
    @pytest.mark.asyncio
    async def test_aapl_four_for_one_split(self) -> None:
        engine = PriceAdjustmentEngine(_ActionStore([_split(date(2020, 8, 31), "4")]))
        after = await engine.adjusted_price("aapl", Decimal("500"), date(2020, 9, 1))
        before = await engine.adjusted_price("AAPL", Decimal("500"), date(2020, 8, 30))
        assert after == Decimal("125")
        assert before == Decimal("500")

    @pytest.mark.asyncio
    async def test_order_matters_between_actions(self) -> None:
        between = D1 + timedelta(days=5)
        split_first = PriceAdjustmentEngine(_ActionStore([_split(D1, "2"), _merger(D2, "1.5")]))
        merger_first = PriceAdjustmentEngine(_ActionStore([_merger(D1, "1.5"), _split(D2, "2")]))

        assert await split_first.adjusted_price("AAPL", Decimal("100"), between) == Decimal("50")
        assert await merger_first.adjusted_price("AAPL", Decimal("100"), between) == Decimal("150")

        after = D2 + timedelta(days=1)
        assert await split_first.adjusted_price("AAPL", Decimal("100"), after) == Decimal("75")
        assert await merger_first.adjusted_price("AAPL", Decimal("100"), after) == Decimal("75")

    @pytest.mark.asyncio
    async def test_other_symbols_and_deleted_ignored(self) -> None:
        deleted = _split(D1, "2")
        deleted.is_deleted = True
        engine = PriceAdjustmentEngine(_ActionStore([deleted, _split(D1, "3", symbol="MSFT")]))
        assert await engine.adjusted_price("AAPL", Decimal("90"), D2) == Decimal("90")

    @pytest.mark.asyncio
    async def test_adjust_returns_applied_actions(self) -> None:
        split = _split(D1, "2")
        engine = PriceAdjustmentEngine(_ActionStore([split, _merger(D2, "1.5")]))
        price, applied = await engine.adjust("AAPL", Decimal("100"), D1)
        assert price == Decimal("50")
        assert [a.action_id for a in applied] == [split.id]

    @pytest.mark.asyncio
    async def test_adjustment_factor_excludes_start_day(self) -> None:
        engine = PriceAdjustmentEngine(_ActionStore([_split(D1, "2"), _merger(D2, "1.5")]))
        assert await engine.adjustment_factor("AAPL", D1, D2) == Decimal("1.5")
        assert await engine.adjustment_factor("AAPL", D1 - timedelta(days=1), D2) == Decimal("0.75")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["500", "123.45", "0.37"])
    async def test_factor_times_raw_matches_adjusted_price(self, raw: str) -> None:
        engine = PriceAdjustmentEngine(
            _ActionStore(
                [
                    _split(D1, "4"),
                    _dividend(D1 + timedelta(days=2)),
                    _merger(D2, "1.5"),
                    _split(D2 + timedelta(days=4), "5", reverse=True),
                ]
            )
        )
        start = D1 - timedelta(days=30)
        end = D2 + timedelta(days=10)
        price = Decimal(raw)

        factor = await engine.adjustment_factor("AAPL", start, end)

        assert price * factor == await engine.adjusted_price("AAPL", price, end)

    @pytest.mark.asyncio
    async def test_adjustment_history_steps(self) -> None:
        engine = PriceAdjustmentEngine(
            _ActionStore([_merger(D2, "1.5"), _split(D1, "2"), _dividend(D1 + timedelta(days=3))])
        )
        steps = await engine.adjustment_history("AAPL", D1, D2)
        assert [s.action_type for s in steps] == [
            CorporateActionType.STOCK_SPLIT,
            CorporateActionType.DIVIDEND,
            CorporateActionType.MERGER,
        ]
        assert steps[0].price_before == Decimal("100")
        assert steps[0].price_after == Decimal("50")
        assert steps[1].price_after == Decimal("50")
        assert steps[2].price_after == Decimal("75")
        assert cumulative_factor(steps) == Decimal("0.75")
        assert cumulative_factor([]) == Decimal("1")
