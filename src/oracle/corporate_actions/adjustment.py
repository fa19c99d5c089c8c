"""Chronological corporate-action replay over raw prices.

An adjusted price is a left fold, in effective-date order, of one adjuster
per action over the raw price:

- stock split: price / ratio
- reverse split: price * ratio
- merger / acquisition: price * exchange ratio
- dividends: unchanged

Actions are always sorted by effective date (then creation time) before
folding. An as-of date between two actions sees only the prefix of the
sequence effective by then, so the calendar order decides which adjusters
a given date includes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from functools import reduce
from typing import TYPE_CHECKING

from oracle.models import (
    AppliedCorporateAction,
    CorporateAction,
    CorporateActionDetails,
    CorporateActionType,
    as_day,
)

if TYPE_CHECKING:
    from oracle.data.store import OracleDataStore

_ONE = Decimal("1")

#: Base price used to illustrate the cumulative effect in adjustment histories.
HISTORY_BASE_PRICE = Decimal("100")

Adjuster = Callable[[Decimal, CorporateActionDetails], Decimal]

_ADJUSTERS: dict[CorporateActionType, Adjuster] = {
    CorporateActionType.STOCK_SPLIT: lambda price, d: price / d.ratio,  # type: ignore[union-attr]
    CorporateActionType.REVERSE_SPLIT: lambda price, d: price * d.ratio,  # type: ignore[union-attr]
    CorporateActionType.MERGER: lambda price, d: price * d.exchange_ratio,  # type: ignore[union-attr]
    CorporateActionType.ACQUISITION: lambda price, d: price * d.exchange_ratio,  # type: ignore[union-attr]
    CorporateActionType.DIVIDEND: lambda price, d: price,
    CorporateActionType.SPECIAL_DIVIDEND: lambda price, d: price,
}


@dataclass
class AdjustmentStep:
    """One action's effect within an adjustment history."""

    action_id: str
    action_type: CorporateActionType
    effective_date: date
    price_before: Decimal
    price_after: Decimal
    adjustment_factor: Decimal


def chronological(actions: Iterable[CorporateAction]) -> list[CorporateAction]:
    return sorted(actions, key=lambda a: (a.effective_date, a.created_at))


def apply_action(price: Decimal, action: CorporateAction) -> Decimal:
    """Apply a single action's adjuster to a price."""
    return _ADJUSTERS[action.action_type](price, action.details)


def fold_actions(price: Decimal, actions: Iterable[CorporateAction]) -> Decimal:
    """Replay actions in effective-date order over a starting price."""
    return reduce(apply_action, chronological(actions), price)


def action_factor(action: CorporateAction) -> Decimal:
    """Multiplicative factor an action applies to any price."""
    return apply_action(_ONE, action)


def cumulative_factor(steps: Iterable[AdjustmentStep]) -> Decimal:
    """Product of the step factors; 1 when there are none."""
    return reduce(lambda acc, step: acc * step.adjustment_factor, steps, _ONE)


def applied_actions(
    actions: Iterable[CorporateAction], as_of: date | datetime
) -> list[AppliedCorporateAction]:
    """Actions effective on or before as_of, in application order, with their factors."""
    day = as_day(as_of)
    return [
        AppliedCorporateAction(
            action_id=a.id,
            action_type=a.action_type,
            effective_date=a.effective_date,
            adjustment_factor=action_factor(a),
        )
        for a in chronological(actions)
        if a.effective_date <= day
    ]


class PriceAdjustmentEngine:
    """Adjusts raw prices for the corporate actions stored for a symbol.

    Args:
        store: Source of non-deleted corporate actions.
    """

    def __init__(self, store: OracleDataStore) -> None:
        self._store = store

    async def load_actions(
        self,
        symbol: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[CorporateAction]:
        return chronological(
            await self._store.get_corporate_actions(symbol.upper(), start=start, end=end)
        )

    async def adjusted_price(
        self, symbol: str, raw_price: Decimal, as_of: date | datetime
    ) -> Decimal:
        """Raw price adjusted for every action effective on or before as_of."""
        actions = await self.load_actions(symbol, end=as_day(as_of))
        return fold_actions(raw_price, actions)

    async def adjust(
        self, symbol: str, raw_price: Decimal, as_of: date | datetime
    ) -> tuple[Decimal, list[AppliedCorporateAction]]:
        """Adjusted price together with the actions that produced it."""
        actions = await self.load_actions(symbol, end=as_day(as_of))
        return fold_actions(raw_price, actions), applied_actions(actions, as_of)

    async def adjustment_factor(
        self, symbol: str, start: date | datetime, end: date | datetime
    ) -> Decimal:
        """Cumulative factor of actions with start < effective_date <= end."""
        first, last = as_day(start), as_day(end)
        actions = await self.load_actions(symbol, start=first, end=last)
        return fold_actions(_ONE, (a for a in actions if a.effective_date > first))

    async def adjustment_history(
        self, symbol: str, start: date | datetime, end: date | datetime
    ) -> list[AdjustmentStep]:
        """Per-action steps for actions in [start, end], replayed from a base price of 100."""
        actions = await self.load_actions(symbol, start=as_day(start), end=as_day(end))
        steps: list[AdjustmentStep] = []
        price = HISTORY_BASE_PRICE
        for action in actions:
            after = apply_action(price, action)
            steps.append(
                AdjustmentStep(
                    action_id=action.id,
                    action_type=action.action_type,
                    effective_date=action.effective_date,
                    price_before=price,
                    price_after=after,
                    adjustment_factor=action_factor(action),
                )
            )
            price = after
        return steps
