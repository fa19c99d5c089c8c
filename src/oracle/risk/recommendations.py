"""Leverage recommendations driven by risk windows.

Deleverage when over-levered ahead of (or inside) a risk window:
- window starts within immediate_deleverage_days -> DELEVERAGE to the
  recommended leverage (CRITICAL priority for a CRITICAL window, else HIGH)
- within gradual_deleverage_days -> GRADUAL_DELEVERAGE to
  recommended * gradual_target_ratio (MEDIUM)

Return to baseline once the most recent window has ended and leverage sits
below baseline * baseline_threshold (LOW, no expiry).

Generation is idempotent per (symbol, position, action): an existing
recommendation whose validity is still open suppresses a new one, whether or
not it was acknowledged.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.config import RiskSettings
from oracle.exceptions import BadRequestError, InternalError, NotFoundError, OracleError
from oracle.logging import get_logger
from oracle.models import Position, utc_now
from oracle.risk.assessment import recommended_leverage
from oracle.risk.models import (
    Priority,
    RiskAction,
    RiskLevel,
    RiskRecommendation,
    RiskWindow,
)

if TYPE_CHECKING:
    from oracle.data.store import OracleDataStore
    from oracle.risk.window import RiskWindowIdentifier

logger = get_logger(__name__)

_HUNDRED = Decimal("100")
MAX_PAGE_SIZE = 100


class RecommendationEngine:
    """Generates, lists and acknowledges leverage recommendations.

    Args:
        identifier: Risk window identification and stored window queries.
        store: Recommendation persistence.
        settings: Leverage schedule, horizons and thresholds.
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

    # ──────────────────────────────────────────────
    # Generation
    # ──────────────────────────────────────────────

    async def generate_recommendations(
        self,
        symbol: str,
        position: Position | None = None,
        now: datetime | None = None,
        window: RiskWindow | None = None,
    ) -> list[RiskRecommendation]:
        """Create any recommendations the current risk picture calls for.

        Args:
            symbol: Equity symbol.
            position: Position being evaluated. None = baseline leverage, no position id.
            now: Evaluation time.
            window: Already-identified window to reuse. None = identify now.

        Returns:
            The newly created recommendations (empty when nothing new is warranted).

        Raises:
            InternalError: On any unexpected failure.
        """
        symbol = symbol.upper()
        now = now or utc_now()
        try:
            created = await self._generate(symbol, position, now, window)
        except OracleError:
            raise
        except Exception as exc:
            logger.error("recommendation_generation_failed", symbol=symbol, exc_info=True)
            raise InternalError(f"Recommendation generation failed for {symbol}") from exc

        if created:
            await self._store.insert_recommendations(created)
            for rec in created:
                logger.info(
                    "recommendation_created",
                    symbol=symbol,
                    action=rec.action.value,
                    priority=rec.priority.value,
                    current_leverage=str(rec.current_leverage),
                    target_leverage=str(rec.target_leverage),
                    position_id=rec.position_id,
                )
        return created

    async def _generate(
        self,
        symbol: str,
        position: Position | None,
        now: datetime,
        window: RiskWindow | None,
    ) -> list[RiskRecommendation]:
        s = self._settings
        current = position.leverage if position is not None else s.baseline_leverage
        position_id = position.id if position is not None else None
        created: list[RiskRecommendation] = []

        if window is None:
            window = await self._identifier.identify_window(symbol, now)
        relevant = window if window.has_factors else await self._next_window(symbol, now)

        if relevant is not None:
            rec = self._deleverage(symbol, relevant, current, position_id, now)
            if rec is not None and not await self._is_suppressed(rec, now):
                created.append(rec)

        recent = await self._identifier.get_recent_window(symbol, now=now)
        if recent is not None and now > recent.end_date:
            rec = self._return_to_baseline(symbol, current, position_id, now)
            if rec is not None and not await self._is_suppressed(rec, now, since=recent.end_date):
                created.append(rec)

        return created

    async def _next_window(self, symbol: str, now: datetime) -> RiskWindow | None:
        upcoming = await self._identifier.get_upcoming_windows(
            [symbol], days_ahead=self._settings.gradual_deleverage_days, now=now
        )
        return next((w for w in upcoming if w.has_factors), None)

    def _deleverage(
        self,
        symbol: str,
        window: RiskWindow,
        current: Decimal,
        position_id: str | None,
        now: datetime,
    ) -> RiskRecommendation | None:
        s = self._settings
        recommended = recommended_leverage(window.level, s)
        if current <= recommended * s.leverage_buffer:
            return None

        days_until = (window.start_date - now).days
        if days_until <= s.immediate_deleverage_days:
            action = RiskAction.DELEVERAGE
            target = recommended
            priority = Priority.CRITICAL if window.level == RiskLevel.CRITICAL else Priority.HIGH
        elif days_until <= s.gradual_deleverage_days:
            action = RiskAction.GRADUAL_DELEVERAGE
            target = recommended * s.gradual_target_ratio
            priority = Priority.MEDIUM
        else:
            return None

        return RiskRecommendation(
            symbol=symbol,
            action=action,
            current_leverage=current,
            target_leverage=target,
            reason="Risk window identified: " + ", ".join(f.description for f in window.factors),
            priority=priority,
            position_id=position_id,
            reduction_percentage=(current - target) / current * _HUNDRED,
            recommended_at=now,
            valid_until=window.end_date,
        )

    def _return_to_baseline(
        self,
        symbol: str,
        current: Decimal,
        position_id: str | None,
        now: datetime,
    ) -> RiskRecommendation | None:
        s = self._settings
        if current <= 0 or current >= s.baseline_leverage * s.baseline_threshold:
            return None
        return RiskRecommendation(
            symbol=symbol,
            action=RiskAction.RETURN_TO_BASELINE,
            current_leverage=current,
            target_leverage=s.baseline_leverage,
            reason="Risk window has passed, returning to baseline leverage",
            priority=Priority.LOW,
            position_id=position_id,
            increase_percentage=(s.baseline_leverage - current) / current * _HUNDRED,
            recommended_at=now,
        )

    async def _is_suppressed(
        self,
        candidate: RiskRecommendation,
        now: datetime,
        since: datetime | None = None,
    ) -> bool:
        """Whether an existing recommendation with the same key is still open."""
        existing = await self._store.find_recommendations(
            candidate.symbol, candidate.action, candidate.position_id
        )
        for rec in existing:
            if since is not None:
                if rec.recommended_at > since:
                    return True
            elif rec.valid_until is not None and rec.valid_until >= now:
                return True
        return False

    # ──────────────────────────────────────────────
    # Reads and acknowledgment
    # ──────────────────────────────────────────────

    async def get_recommendations(
        self,
        symbol: str,
        page: int = 1,
        page_size: int = 20,
        now: datetime | None = None,
    ) -> tuple[list[RiskRecommendation], int]:
        """Open, unacknowledged recommendations by priority, and their total count."""
        if page < 1:
            raise BadRequestError("page must be at least 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise BadRequestError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        symbol = symbol.upper()
        now = now or utc_now()
        items = await self._store.get_open_recommendations(
            symbol, now, limit=page_size, offset=(page - 1) * page_size
        )
        total = await self._store.count_open_recommendations(symbol, now)
        return items, total

    async def get_return_to_baseline(
        self, symbol: str, now: datetime | None = None
    ) -> list[RiskRecommendation]:
        return await self._store.get_open_recommendations(
            symbol.upper(), now or utc_now(), action=RiskAction.RETURN_TO_BASELINE
        )

    async def acknowledge(
        self,
        recommendation_id: str,
        acknowledged_by: str | None = None,
        now: datetime | None = None,
    ) -> RiskRecommendation:
        """Mark a recommendation acknowledged.

        Raises:
            NotFoundError: If no recommendation has this id.
        """
        found = await self._store.acknowledge_recommendation(
            recommendation_id, now or utc_now(), acknowledged_by
        )
        if not found:
            raise NotFoundError(f"Recommendation {recommendation_id} not found")
        logger.info("recommendation_acknowledged", id=recommendation_id, by=acknowledged_by)
        rec = await self._store.get_recommendation(recommendation_id)
        if rec is None:
            raise NotFoundError(f"Recommendation {recommendation_id} not found")
        return rec
