"""Build the configured source adapters from settings.

A provider is registered only when its API key is set. Each provider gets
one shared HTTP client for its price and corporate action adapters.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from oracle.config import SourceSettings
from oracle.logging import get_logger
from oracle.sources.alpha_vantage import (
    AlphaVantageCorporateActionSource,
    AlphaVantagePriceSource,
)
from oracle.sources.base import CorporateActionSource, SpotPriceSource
from oracle.sources.http import JsonHttpClient
from oracle.sources.iex_cloud import IexCloudCorporateActionSource, IexCloudPriceSource
from oracle.sources.polygon import PolygonCorporateActionSource, PolygonPriceSource

logger = get_logger(__name__)


@dataclass
class SourceRegistry:
    price_sources: list[SpotPriceSource] = field(default_factory=list)
    corporate_action_sources: list[CorporateActionSource] = field(default_factory=list)
    _clients: list[JsonHttpClient] = field(default_factory=list)

    async def close(self) -> None:
        for client in self._clients:
            await client.close()


def build_sources(settings: SourceSettings) -> SourceRegistry:
    registry = SourceRegistry()

    providers = (
        (
            "polygon",
            settings.polygon_api_key.get_secret_value(),
            settings.polygon_base_url,
            PolygonPriceSource,
            PolygonCorporateActionSource,
        ),
        (
            "iex_cloud",
            settings.iex_api_key.get_secret_value(),
            settings.iex_base_url,
            IexCloudPriceSource,
            IexCloudCorporateActionSource,
        ),
        (
            "alpha_vantage",
            settings.alpha_vantage_api_key.get_secret_value(),
            settings.alpha_vantage_base_url,
            AlphaVantagePriceSource,
            AlphaVantageCorporateActionSource,
        ),
    )

    for provider, api_key, base_url, price_cls, action_cls in providers:
        if not api_key:
            logger.warning("source_not_configured", provider=provider)
            continue
        client = JsonHttpClient(provider, timeout_seconds=settings.corporate_action_timeout_seconds)
        registry._clients.append(client)
        registry.price_sources.append(price_cls(api_key, base_url, client))
        registry.corporate_action_sources.append(action_cls(api_key, base_url, client))

    logger.info(
        "sources_registered",
        price_sources=[s.name for s in registry.price_sources],
        corporate_action_sources=[s.name for s in registry.corporate_action_sources],
    )
    return registry
