"""Entry point for the equity perpetuals price oracle.

Wires all components together, optionally serves the JSON API, and runs the
background updater. When the API is enabled (default), the updater and the
API share a single asyncio event loop via uvicorn's programmatic API and
FastAPI's lifespan context manager.

Component wiring order (in _build_components):
1. OracleDatabase + OracleDataStore (persistence)
2. SourceRegistry (price and corporate action adapters with API keys)
3. PriceAdjustmentEngine (corporate action replay)
4. InMemoryPriceCache + PriceAggregator (consensus prices)
5. CorporateActionService (multi-source reconciliation)
6. VolatilityLiquidityEstimator (snapshot analytics)
7. FundingRateCalculator (funding rates)
8. RiskWindowIdentifier, RiskAssessor, RecommendationEngine (leverage risk)
9. OracleUpdater (background refresh of tracked symbols)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from oracle.analytics.estimator import VolatilityLiquidityEstimator
from oracle.config import AppSettings
from oracle.corporate_actions.adjustment import PriceAdjustmentEngine
from oracle.corporate_actions.service import CorporateActionService
from oracle.data import OracleDatabase, OracleDataStore
from oracle.funding.calculator import FundingRateCalculator
from oracle.logging import get_logger, setup_logging
from oracle.pricing.aggregator import PriceAggregator
from oracle.pricing.cache import InMemoryPriceCache
from oracle.risk.assessment import RiskAssessor
from oracle.risk.recommendations import RecommendationEngine
from oracle.risk.window import RiskWindowIdentifier
from oracle.sources import build_sources
from oracle.updater import OracleUpdater


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all oracle components from settings.

    Note: Does NOT connect the database -- that happens in the lifespan
    (API mode) or run() (updater-only mode).
    """
    database = OracleDatabase(settings.database.db_path)
    store = OracleDataStore(database)
    sources = build_sources(settings.sources)

    adjustment = PriceAdjustmentEngine(store)
    aggregator = PriceAggregator(
        sources.price_sources,
        store,
        adjustment,
        settings.consensus,
        cache=InMemoryPriceCache(max_entries=settings.consensus.cache_max_entries),
        source_timeout_seconds=settings.sources.request_timeout_seconds,
    )
    corporate_actions = CorporateActionService(
        sources.corporate_action_sources,
        store,
        source_timeout_seconds=settings.sources.corporate_action_timeout_seconds,
        default_reliability=settings.consensus.default_reliability,
    )
    estimator = VolatilityLiquidityEstimator(store, settings.analytics)
    funding = FundingRateCalculator(
        aggregator,
        corporate_actions,
        estimator,
        store,
        settings.funding,
        max_batch_symbols=settings.consensus.max_batch_symbols,
    )
    risk_windows = RiskWindowIdentifier(corporate_actions, estimator, store, settings.risk)
    risk_assessor = RiskAssessor(risk_windows, store, settings.risk)
    recommendations = RecommendationEngine(risk_windows, store, settings.risk)
    updater = OracleUpdater(aggregator, corporate_actions, recommendations, settings.updater)

    return {
        "database": database,
        "store": store,
        "sources": sources,
        "adjustment": adjustment,
        "aggregator": aggregator,
        "corporate_actions": corporate_actions,
        "estimator": estimator,
        "funding": funding,
        "risk_windows": risk_windows,
        "risk_assessor": risk_assessor,
        "recommendations": recommendations,
        "updater": updater,
    }


async def _shutdown(components: dict[str, Any]) -> None:
    await components["updater"].stop()
    await components["sources"].close()
    await components["database"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect storage, expose components on app.state and run the updater."""
    logger = get_logger("oracle.main")
    settings = app.state.settings
    components = app.state.components

    for name in (
        "aggregator",
        "adjustment",
        "corporate_actions",
        "funding",
        "risk_windows",
        "risk_assessor",
        "recommendations",
    ):
        setattr(app.state, name, components[name])

    await components["database"].connect()
    if settings.updater.enabled:
        await components["updater"].start()

    logger.info("lifespan_started", tracked_symbols=settings.updater.tracked_symbols)

    yield

    await _shutdown(components)
    logger.info("equity_oracle_stopped")


async def run() -> None:
    """Run the oracle.

    With the API enabled (API_ENABLED=true, the default) uvicorn serves the
    JSON API and the lifespan manages startup/shutdown. Otherwise only the
    updater loop runs until SIGINT/SIGTERM.
    """
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("oracle.main")

    components = _build_components(settings)

    if settings.api.enabled:
        from oracle.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info("starting_with_api", host=settings.api.host, port=settings.api.port)

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
        return

    logger.info("starting_without_api", tracked_symbols=settings.updater.tracked_symbols)
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await components["database"].connect()
        await components["updater"].start()
        await stop_event.wait()
    finally:
        await _shutdown(components)
        logger.info("equity_oracle_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
