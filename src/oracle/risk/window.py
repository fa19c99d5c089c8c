"""Risk window identification.

A risk window is the span during which elevated leverage is discouraged for
a symbol. Three independent checks each contribute a factor:

- corporate action: an upcoming action whose ex or effective date is within
  the high horizon (CRITICAL inside the critical horizon, else HIGH)
- volatility above the high threshold (CRITICAL above the critical threshold)
- liquidity below the low threshold (HIGH)

The window level is the maximum factor level, so adding a factor can never
lower it. Windows with factors are persisted; a factorless LOW window is
returned to the caller only.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.config import RiskSettings
from oracle.logging import get_logger
from oracle.models import CorporateAction, utc_now
from oracle.risk.models import RiskFactor, RiskFactorType, RiskLevel, RiskWindow

if TYPE_CHECKING:
    from oracle.analytics.estimator import VolatilityLiquidityEstimator
    from oracle.corporate_actions.service import CorporateActionService
    from oracle.data.store import OracleDataStore

logger = get_logger(__name__)

_ONE = Decimal("1")


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def window_bounds(
    factors: list[RiskFactor], as_of: datetime, policy: str = "union"
) -> tuple[datetime, datetime]:
    """Start/end covering the factor ranges.

    "union" covers every factor; "max_severity" covers only the factors at
    the highest level present.
    """
    if not factors:
        return as_of, as_of
    if policy == "max_severity":
        top = max(f.level for f in factors)
        factors = [f for f in factors if f.level == top]
    starts = [f.start_date or f.effective_date for f in factors]
    ends = [f.end_date or f.effective_date for f in factors]
    return min(starts), max(ends)


def window_from_factors(
    symbol: str,
    factors: list[RiskFactor],
    as_of: datetime,
    policy: str = "union",
) -> RiskWindow:
    """Assemble a window from its factors. No factors -> LOW [as_of, as_of]."""
    level = max((f.level for f in factors), default=RiskLevel.LOW)
    start, end = window_bounds(factors, as_of, policy)
    return RiskWindow(
        symbol=symbol,
        level=level,
        start_date=start,
        end_date=end,
        factors=list(factors),
        created_at=as_of,
    )


class RiskWindowIdentifier:
    """Builds, persists and queries risk windows.

    Args:
        corporate_actions: Upcoming corporate action lookup.
        estimator: Volatility and liquidity inputs.
        store: Risk window persistence.
        settings: Horizons, thresholds and the bounds policy.

    Graceful degradation: a failing input contributes no factor.
    """

    def __init__(
        self,
        corporate_actions: CorporateActionService,
        estimator: VolatilityLiquidityEstimator,
        store: OracleDataStore,
        settings: RiskSettings,
    ) -> None:
        self._corporate_actions = corporate_actions
        self._estimator = estimator
        self._store = store
        self._settings = settings

    async def identify_window(self, symbol: str, as_of: datetime | None = None) -> RiskWindow:
        symbol = symbol.upper()
        as_of = as_of or utc_now()

        factors = await self._corporate_action_factors(symbol, as_of)
        volatility = await self._volatility_factor(symbol, as_of)
        if volatility is not None:
            factors.append(volatility)
        liquidity = await self._liquidity_factor(symbol, as_of)
        if liquidity is not None:
            factors.append(liquidity)

        window = window_from_factors(symbol, factors, as_of, self._settings.window_bounds_policy)
        if window.has_factors:
            await self._store.insert_risk_window(window)
            logger.info(
                "risk_window_identified",
                symbol=symbol,
                level=window.level.value,
                start=window.start_date.isoformat(),
                end=window.end_date.isoformat(),
                factors=[f.factor_type.value for f in factors],
            )
        return window

    # ──────────────────────────────────────────────
    # Factor checks
    # ──────────────────────────────────────────────

    async def _corporate_action_factors(self, symbol: str, as_of: datetime) -> list[RiskFactor]:
        try:
            upcoming = await self._corporate_actions.get_upcoming_actions(
                symbol, days_ahead=self._settings.corporate_action_high_days, as_of=as_of
            )
        except Exception:
            logger.warning("risk_corporate_actions_failed", symbol=symbol, exc_info=True)
            return []
        return [
            factor
            for factor in (self.corporate_action_factor(a, as_of.date()) for a in upcoming)
            if factor is not None
        ]

    def corporate_action_factor(self, action: CorporateAction, today: date) -> RiskFactor | None:
        """Factor for one action, or None if neither date falls within the high horizon.

        A passed ex-date still counts: the symbol is already inside the window.
        """
        days_until = min(
            (action.ex_date - today).days, (action.effective_date - today).days
        )
        if days_until <= self._settings.corporate_action_critical_days:
            level = RiskLevel.CRITICAL
            impact = self._settings.corporate_action_critical_impact
        elif days_until <= self._settings.corporate_action_high_days:
            level = RiskLevel.HIGH
            impact = self._settings.corporate_action_high_impact
        else:
            return None

        return RiskFactor(
            factor_type=RiskFactorType.CORPORATE_ACTION,
            description=(
                f"{action.action_type.value.replace('_', ' ').capitalize()} "
                f"effective {action.effective_date.isoformat()}"
            ),
            impact=impact,
            effective_date=_midnight(action.effective_date),
            level=level,
            start_date=_midnight(action.ex_date - timedelta(days=self._settings.window_days_before)),
            end_date=_midnight(
                action.effective_date + timedelta(days=self._settings.window_days_after)
            ),
            details={"action_id": action.id, "days_until": days_until},
        )

    async def _volatility_factor(self, symbol: str, as_of: datetime) -> RiskFactor | None:
        try:
            volatility = await self._estimator.get_volatility(symbol, as_of)
        except Exception:
            logger.debug("risk_volatility_unavailable", symbol=symbol, exc_info=True)
            return None
        return self.volatility_factor(volatility, as_of)

    def volatility_factor(self, volatility: Decimal, as_of: datetime) -> RiskFactor | None:
        s = self._settings
        if volatility <= s.volatility_high_threshold:
            return None
        level = (
            RiskLevel.CRITICAL if volatility > s.volatility_critical_threshold else RiskLevel.HIGH
        )
        return RiskFactor(
            factor_type=RiskFactorType.HIGH_VOLATILITY,
            description=f"High volatility: {volatility * 100:.1f}%",
            impact=min(s.volatility_impact_cap, volatility / s.volatility_impact_divisor),
            effective_date=as_of,
            level=level,
            start_date=as_of,
            end_date=as_of + timedelta(days=s.market_window_days),
            details={"volatility": str(volatility)},
        )

    async def _liquidity_factor(self, symbol: str, as_of: datetime) -> RiskFactor | None:
        try:
            score = await self._estimator.get_liquidity_score(symbol, as_of)
        except Exception:
            logger.debug("risk_liquidity_unavailable", symbol=symbol, exc_info=True)
            return None
        return self.liquidity_factor(score, as_of)

    def liquidity_factor(self, score: Decimal, as_of: datetime) -> RiskFactor | None:
        s = self._settings
        if score >= s.liquidity_low_threshold:
            return None
        return RiskFactor(
            factor_type=RiskFactorType.LOW_LIQUIDITY,
            description=f"Low liquidity score: {score:.2f}",
            impact=_ONE - score,
            effective_date=as_of,
            level=RiskLevel.HIGH,
            start_date=as_of,
            end_date=as_of + timedelta(days=s.market_window_days),
            details={"liquidity_score": str(score)},
        )

    # ──────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────

    async def get_active_windows(
        self, symbols: list[str], now: datetime | None = None
    ) -> list[RiskWindow]:
        """Windows containing now, most severe first."""
        return await self._store.get_active_risk_windows(
            [s.upper() for s in symbols], now or utc_now()
        )

    async def get_upcoming_windows(
        self, symbols: list[str], days_ahead: int = 7, now: datetime | None = None
    ) -> list[RiskWindow]:
        """Windows starting within the next days_ahead days, soonest first."""
        now = now or utc_now()
        return await self._store.get_upcoming_risk_windows(
            [s.upper() for s in symbols], now, now + timedelta(days=days_ahead)
        )

    async def get_recent_window(
        self, symbol: str, days_back: int | None = None, now: datetime | None = None
    ) -> RiskWindow | None:
        """The window that ended most recently within the last days_back days."""
        now = now or utc_now()
        days = days_back if days_back is not None else self._settings.recent_window_days
        return await self._store.get_recent_risk_window(
            symbol.upper(), now - timedelta(days=days), now
        )
