"""Background refresh loop for tracked symbols.

Each cycle, per symbol: reconcile corporate actions from every provider,
record a fresh consensus snapshot (the history the volatility and liquidity
estimators read), then regenerate baseline-position risk recommendations.
A failure for one symbol or one step is logged and never stops the cycle.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import TYPE_CHECKING

from oracle.config import UpdaterSettings
from oracle.logging import get_logger
from oracle.models import utc_now

if TYPE_CHECKING:
    from oracle.corporate_actions.service import CorporateActionService
    from oracle.pricing.aggregator import PriceAggregator
    from oracle.risk.recommendations import RecommendationEngine

logger = get_logger(__name__)


class OracleUpdater:
    """Periodically refreshes oracle state for the configured symbols."""

    def __init__(
        self,
        aggregator: PriceAggregator,
        corporate_actions: CorporateActionService,
        recommendations: RecommendationEngine,
        settings: UpdaterSettings,
    ) -> None:
        self._aggregator = aggregator
        self._corporate_actions = corporate_actions
        self._recommendations = recommendations
        self._settings = settings
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin the refresh loop in the background."""
        if self._running:
            logger.warning("oracle_updater_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "oracle_updater_started",
            symbols=self._settings.tracked_symbols,
            interval=self._settings.interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the refresh loop gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("oracle_updater_stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("oracle_updater_cycle_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._settings.interval_seconds)

    async def run_once(self) -> dict[str, bool]:
        """Refresh every tracked symbol once.

        Returns:
            Symbol -> True if every step succeeded for it.
        """
        results = {}
        for symbol in self._settings.tracked_symbols:
            results[symbol.upper()] = await self._refresh_symbol(symbol.upper())
        logger.info(
            "oracle_update_cycle_complete",
            symbols=len(results),
            failed=[s for s, ok in results.items() if not ok],
        )
        return results

    async def _refresh_symbol(self, symbol: str) -> bool:
        ok = True
        since = utc_now().date() - timedelta(days=self._settings.corporate_action_lookback_days)

        try:
            await self._corporate_actions.fetch_and_reconcile(symbol, since)
        except Exception:
            ok = False
            logger.warning("updater_corporate_actions_failed", symbol=symbol, exc_info=True)

        try:
            await self._aggregator.get_price(symbol)
        except Exception:
            ok = False
            logger.warning("updater_price_failed", symbol=symbol, exc_info=True)

        try:
            await self._recommendations.generate_recommendations(symbol)
        except Exception:
            ok = False
            logger.warning("updater_recommendations_failed", symbol=symbol, exc_info=True)

        return ok
