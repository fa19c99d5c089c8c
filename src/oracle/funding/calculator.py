"""Funding rate synthesis for equity perpetuals.

The rate (annualized percent) is the premium of the perp mark price over the
corporate-action-adjusted spot price, scaled by funding_multiplier, plus three
additive risk adjustments:

- corporate action: +near adjustment if an action is effective within the
  near horizon, else +far adjustment within the far horizon, else 0
- liquidity: (1 - liquidity score) * liquidity_multiplier
- volatility: max(0, volatility - threshold) * volatility_multiplier

The sum is clamped to [min_rate, max_rate]; hourly rate = rate / hours_per_year.

Graceful degradation: each adjustment input falls back to a neutral default
(no corporate action, default liquidity, default volatility) when its
estimator fails. Only a missing spot price fails the calculation.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.config import FundingSettings
from oracle.exceptions import BadRequestError, InternalError, NotFoundError, OracleError
from oracle.logging import get_logger
from oracle.models import FundingRateComponents, FundingRateRecord, utc_now

if TYPE_CHECKING:
    from oracle.analytics.estimator import VolatilityLiquidityEstimator
    from oracle.corporate_actions.service import CorporateActionService
    from oracle.data.store import OracleDataStore
    from oracle.pricing.aggregator import PriceAggregator

logger = get_logger(__name__)

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def clamp_rate(rate: Decimal, settings: FundingSettings) -> Decimal:
    return max(settings.min_rate, min(settings.max_rate, rate))


def premium_percentage(mark_price: Decimal, spot_price: Decimal) -> Decimal:
    """(mark - spot) / spot * 100; 0 when spot is 0."""
    if spot_price == _ZERO:
        return _ZERO
    return (mark_price - spot_price) / spot_price * _HUNDRED


class FundingRateCalculator:
    """Computes, persists and serves funding rates.

    Args:
        aggregator: Source of the adjusted spot price.
        corporate_actions: Upcoming action lookup for the proximity adjustment.
        estimator: Volatility and liquidity inputs.
        store: Funding rate persistence.
        settings: Multipliers, horizons, bounds and neutral defaults.
        max_batch_symbols: Batch read limit.
    """

    def __init__(
        self,
        aggregator: PriceAggregator,
        corporate_actions: CorporateActionService,
        estimator: VolatilityLiquidityEstimator,
        store: OracleDataStore,
        settings: FundingSettings,
        max_batch_symbols: int = 50,
    ) -> None:
        self._aggregator = aggregator
        self._corporate_actions = corporate_actions
        self._estimator = estimator
        self._store = store
        self._settings = settings
        self._max_batch_symbols = max_batch_symbols

    # ──────────────────────────────────────────────
    # Calculation
    # ──────────────────────────────────────────────

    async def calculate(
        self, symbol: str, mark_price: Decimal, now: datetime | None = None
    ) -> FundingRateRecord:
        """Compute and persist a funding rate valid for validity_hours.

        Raises:
            BadRequestError: If mark_price is not positive.
            NotFoundError: If no adjusted spot price is available.
            InternalError: On any unexpected failure during the computation.
        """
        if mark_price <= _ZERO:
            raise BadRequestError("Mark price must be greater than 0")
        symbol = symbol.upper()
        now = now or utc_now()

        try:
            quote = await self._aggregator.get_adjusted_price(symbol)
        except NotFoundError:
            raise
        except Exception as exc:
            logger.warning("funding_spot_unavailable", symbol=symbol, exc_info=True)
            raise NotFoundError(f"No spot price available for {symbol}") from exc

        try:
            spot = quote.adjusted_price
            premium = mark_price - spot
            premium_pct = premium_percentage(mark_price, spot)
            components = await self._components(symbol, premium_pct, now)
            rate = clamp_rate(components.total, self._settings)
            record = FundingRateRecord(
                symbol=symbol,
                rate=rate,
                hourly_rate=rate / Decimal(self._settings.hours_per_year),
                mark_price=mark_price,
                spot_price=quote.raw_price,
                adjusted_spot_price=spot,
                premium=premium,
                premium_percentage=premium_pct,
                components=components,
                calculated_at=now,
                valid_until=now + timedelta(hours=self._settings.validity_hours),
            )
            await self._store.insert_funding_rate(record)
        except OracleError:
            raise
        except Exception as exc:
            logger.error("funding_rate_failed", symbol=symbol, exc_info=True)
            raise InternalError(f"Funding rate calculation failed for {symbol}") from exc

        logger.info(
            "funding_rate_calculated",
            symbol=symbol,
            rate=str(record.rate),
            hourly_rate=str(record.hourly_rate),
            premium_pct=str(premium_pct),
        )
        return record

    async def _components(
        self, symbol: str, premium_pct: Decimal, now: datetime
    ) -> FundingRateComponents:
        corporate, liquidity, volatility = await asyncio.gather(
            self._corporate_action_adjustment(symbol, now),
            self._liquidity(symbol, now),
            self._volatility(symbol, now),
        )
        return FundingRateComponents(
            base_rate=premium_pct * self._settings.funding_multiplier,
            corporate_action_adjustment=corporate,
            liquidity_adjustment=(_ONE - liquidity) * self._settings.liquidity_multiplier,
            volatility_adjustment=(
                max(_ZERO, volatility - self._settings.volatility_threshold)
                * self._settings.volatility_multiplier
            ),
        )

    async def _corporate_action_adjustment(self, symbol: str, now: datetime) -> Decimal:
        try:
            upcoming = await self._corporate_actions.get_upcoming_actions(
                symbol, days_ahead=self._settings.corporate_action_far_days, as_of=now
            )
        except Exception:
            logger.warning("funding_corporate_actions_failed", symbol=symbol, exc_info=True)
            return _ZERO

        if not upcoming:
            return _ZERO
        days_until = min((a.effective_date - now.date()).days for a in upcoming)
        if days_until <= self._settings.corporate_action_near_days:
            return self._settings.corporate_action_near_adjustment
        return self._settings.corporate_action_far_adjustment

    async def _liquidity(self, symbol: str, now: datetime) -> Decimal:
        try:
            return await self._estimator.get_liquidity_score(symbol, now)
        except Exception:
            logger.warning("funding_liquidity_failed", symbol=symbol, exc_info=True)
            return self._settings.default_liquidity

    async def _volatility(self, symbol: str, now: datetime) -> Decimal:
        try:
            return await self._estimator.get_volatility(symbol, now)
        except Exception:
            logger.debug("funding_volatility_default", symbol=symbol, exc_info=True)
            return self._settings.default_volatility

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def get_current(self, symbol: str, now: datetime | None = None) -> FundingRateRecord:
        """Latest unexpired rate.

        Raises:
            NotFoundError: If no rate is valid at now.
        """
        record = await self._store.get_current_funding_rate(symbol.upper(), now or utc_now())
        if record is None:
            raise NotFoundError(f"No current funding rate for {symbol.upper()}")
        return record

    async def get_history(
        self, symbol: str, hours: int = 24, now: datetime | None = None
    ) -> list[FundingRateRecord]:
        """Rates calculated within the last `hours`, newest first."""
        if hours <= 0:
            raise BadRequestError("hours must be greater than 0")
        since = (now or utc_now()) - timedelta(hours=hours)
        return await self._store.get_funding_rates(symbol.upper(), since=since)

    async def get_batch(
        self, symbols: list[str], now: datetime | None = None
    ) -> dict[str, FundingRateRecord]:
        """Current rates for up to max_batch_symbols symbols; symbols without one are omitted."""
        unique = list(dict.fromkeys(s.upper() for s in symbols if s.strip()))
        if not unique:
            raise BadRequestError("At least one symbol is required")
        if len(unique) > self._max_batch_symbols:
            raise BadRequestError(f"Maximum {self._max_batch_symbols} symbols allowed per batch")

        now = now or utc_now()
        rates: dict[str, FundingRateRecord] = {}
        for symbol in unique:
            record = await self._store.get_current_funding_rate(symbol, now)
            if record is not None:
                rates[symbol] = record
        return rates

    async def get_components(
        self, symbol: str, now: datetime | None = None
    ) -> FundingRateComponents:
        """Breakdown of the current rate."""
        return (await self.get_current(symbol, now)).components
