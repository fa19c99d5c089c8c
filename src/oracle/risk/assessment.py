"""Leverage risk assessment.

Scoring (0-100):
    base by level {LOW 0, MEDIUM 20, HIGH 40, CRITICAL 60}
  + min(20, sum(factor impact) * 20)
  + min(20, (current - recommended) / recommended * 40) when over-levered

Recommended leverage = baseline * {LOW 1.0, MEDIUM 0.7, HIGH 0.5, CRITICAL 0.3}.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.config import RiskSettings
from oracle.exceptions import InternalError, OracleError
from oracle.logging import get_logger
from oracle.models import Position, utc_now
from oracle.risk.models import RiskAssessment, RiskFactor, RiskLevel

if TYPE_CHECKING:
    from oracle.data.store import OracleDataStore
    from oracle.risk.window import RiskWindowIdentifier

logger = get_logger(__name__)

_ZERO = Decimal("0")
_LEVEL_BASE_SCORE = {
    RiskLevel.LOW: Decimal("0"),
    RiskLevel.MEDIUM: Decimal("20"),
    RiskLevel.HIGH: Decimal("40"),
    RiskLevel.CRITICAL: Decimal("60"),
}
_COMPONENT_CAP = Decimal("20")
_IMPACT_WEIGHT = Decimal("20")
_DEVIATION_WEIGHT = Decimal("40")
_MAX_SCORE = Decimal("100")


def recommended_leverage(level: RiskLevel, settings: RiskSettings) -> Decimal:
    ratio = {
        RiskLevel.LOW: Decimal("1"),
        RiskLevel.MEDIUM: settings.medium_leverage_ratio,
        RiskLevel.HIGH: settings.high_leverage_ratio,
        RiskLevel.CRITICAL: settings.critical_leverage_ratio,
    }[level]
    return settings.baseline_leverage * ratio


def risk_score(
    level: RiskLevel,
    factors: list[RiskFactor],
    current_leverage: Decimal,
    recommended: Decimal,
) -> Decimal:
    score = _LEVEL_BASE_SCORE[level]
    score += min(_COMPONENT_CAP, sum((f.impact for f in factors), _ZERO) * _IMPACT_WEIGHT)
    if recommended > _ZERO and current_leverage > recommended:
        deviation = (current_leverage - recommended) / recommended
        score += min(_COMPONENT_CAP, deviation * _DEVIATION_WEIGHT)
    return min(_MAX_SCORE, score)


class RiskAssessor:
    """Point-in-time risk assessment for a symbol or position.

    Args:
        identifier: Risk window identification.
        store: Source of open recommendations attached to each assessment.
        settings: Baseline leverage and leverage schedule.
    """

    def __init__(
        self,
        identifier: RiskWindowIdentifier,
        store: OracleDataStore,
        settings: RiskSettings,
    ) -> None:
        self._identifier = identifier
        self._store = store
        self._settings = settings

    async def assess_risk(
        self,
        symbol: str,
        position: Position | None = None,
        now: datetime | None = None,
    ) -> RiskAssessment:
        """Assess current leverage against the identified risk window.

        Raises:
            InternalError: On any unexpected failure.
        """
        symbol = symbol.upper()
        now = now or utc_now()
        try:
            window = await self._identifier.identify_window(symbol, now)
            current = position.leverage if position is not None else self._settings.baseline_leverage
            recommended = recommended_leverage(window.level, self._settings)
            assessment = RiskAssessment(
                symbol=symbol,
                level=window.level,
                current_leverage=current,
                recommended_leverage=recommended,
                risk_score=risk_score(window.level, window.factors, current, recommended),
                factors=window.factors,
                active_window=window if window.has_factors else None,
                recommendations=await self._store.get_open_recommendations(symbol, now),
                assessed_at=now,
            )
        except OracleError:
            raise
        except Exception as exc:
            logger.error("risk_assessment_failed", symbol=symbol, exc_info=True)
            raise InternalError(f"Risk assessment failed for {symbol}") from exc

        logger.debug(
            "risk_assessed",
            symbol=symbol,
            level=assessment.level.value,
            score=str(assessment.risk_score),
            current_leverage=str(current),
            recommended_leverage=str(recommended),
        )
        return assessment

    async def assess_batch(
        self, symbols: list[str], now: datetime | None = None
    ) -> dict[str, RiskAssessment]:
        """Assess several symbols concurrently; failing symbols are omitted."""
        unique = list(dict.fromkeys(s.upper() for s in symbols if s.strip()))
        now = now or utc_now()
        results = await asyncio.gather(
            *(self.assess_risk(s, now=now) for s in unique),
            return_exceptions=True,
        )
        assessments: dict[str, RiskAssessment] = {}
        for symbol, result in zip(unique, results):
            if isinstance(result, BaseException):
                logger.warning("batch_assessment_failed", symbol=symbol, error=repr(result))
                continue
            assessments[symbol] = result
        return assessments
